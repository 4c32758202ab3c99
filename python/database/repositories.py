"""
Repository Pattern for Blacklist Registry Database Operations

Provides clean data access layer with proper typing and error handling.
Repositories never commit; transaction boundaries belong to the caller's
UnitOfWork. SQLAlchemy errors propagate unchanged.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.orm import Session

from access_scope import Principal
from database.models import (
    ActivityLog,
    BlacklistEntry,
    Company,
    User,
)
from database.monitoring import timed_query

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""
    pass


def _where(query, conditions: Sequence[Any]):
    if conditions:
        return query.where(and_(*conditions))
    return query


# ============================================
# BLACKLIST ENTRY REPOSITORY
# ============================================

class BlacklistEntryRepository:
    """Storage port for blacklist entries."""

    # Columns a caller may never overwrite through update()
    IMMUTABLE_FIELDS = frozenset({"id", "company_id", "user_id", "created_at"})

    def __init__(self, session: Session):
        self.session = session

    @timed_query("blacklist.insert")
    def insert(self, entry: BlacklistEntry) -> BlacklistEntry:
        """
        Persist a new entry.

        Returns:
            The same instance with its id assigned
        """
        self.session.add(entry)
        self.session.flush()
        logger.debug("Created blacklist entry %s for company %s", entry.id, entry.company_id)
        return entry

    @timed_query("blacklist.find_by_id")
    def find_by_id(self, entry_id: int) -> Optional[BlacklistEntry]:
        """Get an entry by id, regardless of tenant."""
        return self.session.get(BlacklistEntry, entry_id)

    @timed_query("blacklist.find_first")
    def find_first(
        self,
        conditions: Sequence[Any],
        for_update: bool = False
    ) -> Optional[BlacklistEntry]:
        """
        First entry matching every condition.

        Args:
            conditions: Predicates to AND together
            for_update: Lock the row for the rest of the transaction

        Returns:
            BlacklistEntry or None
        """
        query = _where(select(BlacklistEntry), conditions).limit(1)
        if for_update:
            query = query.with_for_update()
        return self.session.execute(query).scalar_one_or_none()

    @timed_query("blacklist.find_many")
    def find_many(
        self,
        conditions: Sequence[Any],
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[BlacklistEntry]:
        """
        Entries matching every condition.

        Args:
            conditions: Predicates to AND together
            order_by: Ordering clauses
            limit: Maximum rows (None for all)
            offset: Rows to skip

        Returns:
            List of entries
        """
        query = _where(select(BlacklistEntry), conditions)
        if order_by:
            query = query.order_by(*order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars().all())

    @timed_query("blacklist.count")
    def count(self, conditions: Sequence[Any]) -> int:
        """Number of entries matching every condition."""
        query = _where(select(func.count()).select_from(BlacklistEntry), conditions)
        return self.session.execute(query).scalar_one()

    @timed_query("blacklist.update")
    def update(self, entry_id: int, values: Dict[str, Any]) -> BlacklistEntry:
        """
        Apply column values to an entry.

        Args:
            entry_id: Id of the entry
            values: Column name -> new value

        Returns:
            Updated entry

        Raises:
            EntityNotFoundError: If the entry does not exist
            RepositoryError: If an immutable or unknown column is targeted
        """
        entry = self.session.get(BlacklistEntry, entry_id)
        if entry is None:
            raise EntityNotFoundError(f"Blacklist entry not found: {entry_id}")

        forbidden = self.IMMUTABLE_FIELDS.intersection(values)
        if forbidden:
            raise RepositoryError(f"Immutable fields cannot be updated: {sorted(forbidden)}")

        for key, value in values.items():
            if not hasattr(BlacklistEntry, key):
                raise RepositoryError(f"Unknown blacklist entry field: {key}")
            setattr(entry, key, value)

        self.session.flush()
        return entry

    @timed_query("blacklist.delete")
    def delete(self, entry_id: int) -> bool:
        """
        Hard-delete an entry.

        Returns:
            True if deleted, False if not found
        """
        entry = self.session.get(BlacklistEntry, entry_id)
        if entry is None:
            return False
        self.session.delete(entry)
        self.session.flush()
        return True

    @timed_query("blacklist.count_by_status")
    def count_by_status(self, conditions: Sequence[Any]) -> Dict[str, int]:
        """Entry counts grouped by status."""
        query = _where(
            select(BlacklistEntry.status, func.count(BlacklistEntry.id)),
            conditions
        ).group_by(BlacklistEntry.status)
        return {row[0].value: row[1] for row in self.session.execute(query)}

    @timed_query("blacklist.scores")
    def scores(self, conditions: Sequence[Any]) -> List[int]:
        """Risk scores of every matching entry."""
        query = _where(select(BlacklistEntry.blacklist_score), conditions)
        return list(self.session.execute(query).scalars().all())


# ============================================
# ACCOUNT REPOSITORIES
# ============================================

class UserRepository:
    """Repository for users and their principal view."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, user_data: Dict[str, Any]) -> User:
        """Create a new user."""
        user = User(**user_data)
        self.session.add(user)
        self.session.flush()
        return user

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by id."""
        return self.session.get(User, user_id)

    @timed_query("users.get_principal")
    def get_principal(self, user_id: int) -> Optional[Principal]:
        """
        Authorization view of a user.

        Returns:
            Principal (company_id None when the user owns no company),
            or None when the user does not exist
        """
        query = select(User.id, User.is_admin, Company.id).outerjoin(
            Company, Company.user_id == User.id
        ).where(User.id == user_id)
        row = self.session.execute(query).first()
        if row is None:
            return None
        return Principal(user_id=row[0], is_admin=bool(row[1]), company_id=row[2])


class CompanyRepository:
    """Repository for companies (tenants)."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, company_data: Dict[str, Any]) -> Company:
        """Create a company owned by ``company_data['user_id']``."""
        company = Company(**company_data)
        self.session.add(company)
        self.session.flush()
        return company

    def get_for_user(self, user_id: int) -> Optional[Company]:
        """Company owned by a user."""
        query = select(Company).where(Company.user_id == user_id)
        return self.session.execute(query).scalar_one_or_none()


# ============================================
# ACTIVITY LOG REPOSITORY
# ============================================

class ActivityLogRepository:
    """Repository for activity log operations."""

    def __init__(self, session: Session):
        self.session = session

    @timed_query("activity.insert")
    def log(
        self,
        user_id: int,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        details: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> ActivityLog:
        """
        Create an activity log row.

        Returns:
            Created ActivityLog
        """
        log = ActivityLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent
        )
        if created_at is not None:
            log.created_at = created_at
        self.session.add(log)
        self.session.flush()
        return log

    @timed_query("activity.search")
    def search(
        self,
        conditions: Sequence[Any],
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[ActivityLog], int]:
        """
        Activity logs matching every condition, with the total count.

        Returns:
            Tuple of (logs list, total count ignoring pagination)
        """
        count_query = _where(select(func.count()).select_from(ActivityLog), conditions)
        total = self.session.execute(count_query).scalar_one()

        query = _where(select(ActivityLog), conditions)
        if order_by:
            query = query.order_by(*order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        logs = list(self.session.execute(query).scalars().all())
        return logs, total

    @timed_query("activity.recent_with_actor")
    def recent_with_actor(
        self,
        conditions: Sequence[Any],
        order_by: Sequence[Any],
        limit: int
    ) -> List[Tuple[ActivityLog, User]]:
        """Most recent logs joined with the acting user."""
        query = _where(
            select(ActivityLog, User).join(User, User.id == ActivityLog.user_id),
            conditions
        ).order_by(*order_by).limit(limit)
        return [(row[0], row[1]) for row in self.session.execute(query)]
