"""
Dashboard analytics for the caller's scope.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from database.connection import DatabaseSessionProvider
from database.filters import activity_filter_builder, activity_ordering, entry_filter_builder
from database.models import BlacklistEntry, BlacklistStatus
from database.principals import load_scope
from database.repositories import ActivityLogRepository, BlacklistEntryRepository
from risk_scoring import empty_distribution, score_bucket
from security_logger import SecurityLogger, get_security_logger

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


@dataclass
class RecentActivity:
    id: int
    action: str
    resource_type: str
    user_name: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "resource_type": self.resource_type,
            "user_name": self.user_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class DashboardAnalytics:
    """Aggregates shown on the dashboard"""
    total_entries: int = 0
    active_blacklisted: int = 0
    pending_entries: int = 0
    resolved_entries: int = 0
    risk_score_distribution: List[dict] = field(default_factory=empty_distribution)
    recent_activities: List[RecentActivity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "active_blacklisted": self.active_blacklisted,
            "pending_entries": self.pending_entries,
            "resolved_entries": self.resolved_entries,
            "risk_score_distribution": [dict(bucket) for bucket in self.risk_score_distribution],
            "recent_activities": [activity.to_dict() for activity in self.recent_activities],
        }


class DashboardService:
    """Computes dashboard analytics."""

    def __init__(
        self,
        db: DatabaseSessionProvider,
        security_logger: Optional[SecurityLogger] = None,
        recent_activity_limit: int = RECENT_ACTIVITY_LIMIT
    ):
        self.db = db
        self.security_log = security_logger or get_security_logger()
        self.recent_activity_limit = recent_activity_limit

    def analytics(self, principal_id: int) -> DashboardAnalytics:
        """
        Entry counts, score distribution and recent activity in scope.

        Raises:
            UnknownPrincipalError: principal id matches no user
            NoCompanyError: non-admin principal without a company
        """
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "dashboard")
            entry_conditions = entry_filter_builder.build(scope)
            entries = BlacklistEntryRepository(uow.session)

            by_status = entries.count_by_status(entry_conditions)
            active_blacklisted = entries.count(entry_conditions + [
                BlacklistEntry.status == BlacklistStatus.ACTIVE,
                BlacklistEntry.is_blacklisted.is_(True),
            ])
            scores = entries.scores(entry_conditions)

            recent = ActivityLogRepository(uow.session).recent_with_actor(
                activity_filter_builder.build(scope),
                order_by=activity_ordering(),
                limit=self.recent_activity_limit
            )

        distribution = empty_distribution()
        index = {bucket["range"]: bucket for bucket in distribution}
        for score in scores:
            index[score_bucket(score)]["count"] += 1

        return DashboardAnalytics(
            total_entries=sum(by_status.values()),
            active_blacklisted=active_blacklisted,
            pending_entries=by_status.get(BlacklistStatus.PENDING.value, 0),
            resolved_entries=by_status.get(BlacklistStatus.RESOLVED.value, 0),
            risk_score_distribution=distribution,
            recent_activities=[
                RecentActivity(
                    id=log.id,
                    action=log.action,
                    resource_type=log.resource_type,
                    user_name=user.full_name,
                    created_at=log.created_at
                )
                for log, user in recent
            ]
        )
