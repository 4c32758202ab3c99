"""
Tenant access scoping

Resolves the authenticated caller (principal) to the set of companies it may
act upon. Administrators are unrestricted; everybody else is pinned to the
company they own. The resolved scope is ANDed into every entry query, so a
non-admin can never read or mutate another tenant's records.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union


class AccessError(Exception):
    """Base exception for principal/scope resolution failures."""
    pass


class NoCompanyError(AccessError):
    """Raised when a tenant-scoped operation is called by a principal without a company."""

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} has no associated company")
        self.user_id = user_id


class UnknownPrincipalError(AccessError):
    """Raised when the principal id does not match any user."""

    def __init__(self, user_id: int):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


@dataclass(frozen=True)
class Principal:
    """Authorization view of a user"""
    user_id: int
    is_admin: bool = False
    company_id: Optional[int] = None


@dataclass(frozen=True)
class Unrestricted:
    """Scope of administrators: every company"""

    def allows(self, company_id: int) -> bool:
        return True


@dataclass(frozen=True)
class RestrictedTo:
    """Scope pinned to exactly one company"""
    company_id: int

    def allows(self, company_id: int) -> bool:
        return company_id == self.company_id


AccessScope = Union[Unrestricted, RestrictedTo]

BASE_PERMISSIONS = ("read_blacklist", "write_blacklist", "read_profile", "write_profile")
ADMIN_PERMISSIONS = ("read_all_companies", "manage_users", "export_activity_logs")


def resolve_scope(principal: Principal) -> AccessScope:
    """
    Resolve the authorization scope of a principal.

    Raises:
        NoCompanyError: non-admin principal without a company
    """
    if principal.is_admin:
        return Unrestricted()
    if principal.company_id is None:
        raise NoCompanyError(principal.user_id)
    return RestrictedTo(principal.company_id)


def require_company(principal: Principal) -> int:
    """
    Company that owns records created by this principal.

    Admins are not exempt: every entry needs an owning tenant.
    """
    if principal.company_id is None:
        raise NoCompanyError(principal.user_id)
    return principal.company_id


def effective_company_filter(scope: AccessScope, requested_company_id: Optional[int] = None) -> Optional[int]:
    """
    Company id to filter on, or None for "all companies".

    A restricted scope always wins over whatever the caller asked for;
    only unrestricted callers may narrow to an explicit company.
    """
    if isinstance(scope, RestrictedTo):
        return scope.company_id
    return requested_company_id


def role_for(principal: Principal) -> Tuple[str, List[str]]:
    """Role name and permission list of a principal."""
    if principal.is_admin:
        return "admin", list(BASE_PERMISSIONS + ADMIN_PERMISSIONS)
    return "user", list(BASE_PERMISSIONS)
