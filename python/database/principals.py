"""
Principal and scope resolution shared by the tenant-scoped services.
"""

from typing import Optional, Tuple

from sqlalchemy.orm import Session

from access_scope import (
    AccessScope,
    NoCompanyError,
    Principal,
    UnknownPrincipalError,
    require_company,
    resolve_scope,
)
from database.repositories import UserRepository
from security_logger import SecurityLogger


def load_principal(
    session: Session,
    principal_id: int,
    security_log: Optional[SecurityLogger] = None,
    source: str = ""
) -> Principal:
    """
    Load the authorization view of a user.

    Raises:
        UnknownPrincipalError: no user with this id
    """
    principal = UserRepository(session).get_principal(principal_id)
    if principal is None:
        if security_log is not None:
            security_log.log_unknown_principal(principal_id, source=source)
        raise UnknownPrincipalError(principal_id)
    return principal


def load_scope(
    session: Session,
    principal_id: int,
    security_log: Optional[SecurityLogger] = None,
    operation: str = ""
) -> Tuple[Principal, AccessScope]:
    """
    Load a principal and resolve its access scope.

    Raises:
        UnknownPrincipalError: no user with this id
        NoCompanyError: non-admin principal without a company
    """
    principal = load_principal(session, principal_id, security_log, source=operation)
    try:
        return principal, resolve_scope(principal)
    except NoCompanyError:
        if security_log is not None:
            security_log.log_no_company(principal_id, operation, source=operation)
        raise


def load_owning_company(
    session: Session,
    principal_id: int,
    security_log: Optional[SecurityLogger] = None,
    operation: str = ""
) -> Tuple[Principal, int]:
    """Principal plus the company its new records belong to."""
    principal = load_principal(session, principal_id, security_log, source=operation)
    try:
        return principal, require_company(principal)
    except NoCompanyError:
        if security_log is not None:
            security_log.log_no_company(principal_id, operation, source=operation)
        raise
