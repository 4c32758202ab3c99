"""
Filter-to-predicate translation for listing queries

A ``QueryFilterBuilder`` is configured once with the columns it targets and
turns a filter object plus the caller's access scope into a list of SQL
predicates to be ANDed. The blacklist listing and the activity-log listing
share the same builder; only the targets differ.

Absent filter fields (None) never produce a predicate. In particular an
absent status or score bound means "no constraint", not "match NULL".
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence

from sqlalchemy import ColumnElement, or_, select

from access_scope import AccessScope, effective_company_filter
from database.models import ActivityLog, BlacklistEntry, BlacklistStatus, Company


# ============================================
# FILTER OBJECTS
# ============================================

@dataclass
class ListFilter:
    """Fields shared by every listing filter"""
    company_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


@dataclass
class EntryFilter(ListFilter):
    """Blacklist entry listing filter"""
    status: Optional[BlacklistStatus] = None
    search: Optional[str] = None
    min_score: Optional[int] = None
    max_score: Optional[int] = None

    def __post_init__(self):
        if self.status is not None and not isinstance(self.status, BlacklistStatus):
            self.status = BlacklistStatus(self.status)


@dataclass
class ActivityLogFilter(ListFilter):
    """Activity log listing filter"""
    user_id: Optional[int] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None


@dataclass
class Pagination:
    """1-based page pagination; bounds are enforced by the API schemas"""
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# ============================================
# BUILDER
# ============================================

@dataclass(frozen=True)
class FilterTargets:
    """Columns a builder translates filter fields onto"""
    company: Callable[[int], ColumnElement]
    created_at: Any
    search: Sequence[Any] = ()
    status: Optional[Any] = None
    score: Optional[Any] = None
    exact: Mapping[str, Any] = field(default_factory=dict)


def text_match(columns: Sequence[Any], term: str) -> ColumnElement:
    """Case-insensitive substring match OR'd across ``columns``.

    LIKE wildcards in ``term`` are escaped, so "%" matches a literal percent sign.
    """
    return or_(*[column.icontains(term, autoescape=True) for column in columns])


class QueryFilterBuilder:
    """Translates a listing filter and an access scope into AND-able predicates."""

    def __init__(self, targets: FilterTargets):
        self.targets = targets

    def build(self, scope: AccessScope, filters: Optional[ListFilter] = None) -> List[ColumnElement]:
        filters = filters or ListFilter()
        targets = self.targets
        conditions: List[ColumnElement] = []

        company_id = effective_company_filter(scope, filters.company_id)
        if company_id is not None:
            conditions.append(targets.company(company_id))

        status = getattr(filters, "status", None)
        if status is not None and targets.status is not None:
            conditions.append(targets.status == status)

        search = getattr(filters, "search", None)
        if search is not None and search.strip() and targets.search:
            conditions.append(text_match(targets.search, search.strip()))

        if filters.date_from is not None:
            conditions.append(targets.created_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(targets.created_at <= filters.date_to)

        if targets.score is not None:
            min_score = getattr(filters, "min_score", None)
            max_score = getattr(filters, "max_score", None)
            if min_score is not None:
                conditions.append(targets.score >= min_score)
            if max_score is not None:
                conditions.append(targets.score <= max_score)

        for name, column in targets.exact.items():
            value = getattr(filters, name, None)
            if value is not None:
                conditions.append(column == value)

        return conditions


def _activity_company_predicate(company_id: int) -> ColumnElement:
    # Activity rows carry only the actor; a company's logs are its owner's
    owners = select(Company.user_id).where(Company.id == company_id)
    return ActivityLog.user_id.in_(owners)


ENTRY_LIST_TARGETS = FilterTargets(
    company=lambda company_id: BlacklistEntry.company_id == company_id,
    created_at=BlacklistEntry.created_at,
    search=(
        BlacklistEntry.first_name,
        BlacklistEntry.last_name,
        BlacklistEntry.id_number,
        BlacklistEntry.email,
        BlacklistEntry.reason,
    ),
    status=BlacklistEntry.status,
    score=BlacklistEntry.blacklist_score,
)

# The search screen matches on contact details rather than on the reason text
ENTRY_SEARCH_TARGETS = FilterTargets(
    company=lambda company_id: BlacklistEntry.company_id == company_id,
    created_at=BlacklistEntry.created_at,
    search=(
        BlacklistEntry.first_name,
        BlacklistEntry.last_name,
        BlacklistEntry.id_number,
        BlacklistEntry.email,
        BlacklistEntry.phone,
    ),
    status=BlacklistEntry.status,
)

ACTIVITY_LOG_TARGETS = FilterTargets(
    company=_activity_company_predicate,
    created_at=ActivityLog.created_at,
    exact={
        "user_id": ActivityLog.user_id,
        "action": ActivityLog.action,
        "resource_type": ActivityLog.resource_type,
    },
)

entry_filter_builder = QueryFilterBuilder(ENTRY_LIST_TARGETS)
search_filter_builder = QueryFilterBuilder(ENTRY_SEARCH_TARGETS)
activity_filter_builder = QueryFilterBuilder(ACTIVITY_LOG_TARGETS)


def entry_ordering() -> list:
    """Newest first; id breaks ties between rows created in the same instant"""
    return [BlacklistEntry.created_at.desc(), BlacklistEntry.id.desc()]


def activity_ordering() -> list:
    return [ActivityLog.created_at.desc(), ActivityLog.id.desc()]
