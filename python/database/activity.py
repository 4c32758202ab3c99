"""
Activity Log Recording and Listing

- ActivityRecorder: append-only sink used by the lifecycle services. Every
  write runs in its own unit of work after the primary operation committed;
  failures are logged for operators and never reach the caller.
- ActivityLogService: tenant-scoped listing and CSV export of the log.
"""

import csv
import io
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from database.connection import DatabaseSessionProvider
from database.filters import (
    ActivityLogFilter,
    Pagination,
    activity_filter_builder,
    activity_ordering,
)
from database.models import ActivityLog, utcnow
from database.principals import load_scope
from database.repositories import ActivityLogRepository
from security_logger import SecurityLogger, get_security_logger

logger = logging.getLogger(__name__)

CSV_COLUMNS = (
    "id",
    "user_id",
    "action",
    "resource_type",
    "resource_id",
    "details",
    "ip_address",
    "user_agent",
    "created_at",
)


class ActivityRecorder:
    """Fire-and-forget writer for activity log rows."""

    def __init__(
        self,
        db: DatabaseSessionProvider,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.clock = clock or utcnow

    def record(
        self,
        user_id: int,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        details: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> None:
        """
        Append one activity row.

        Never raises: any failure, storage or otherwise, is logged with its
        traceback on this module's logger and dropped.
        """
        try:
            with self.db.get_unit_of_work() as uow:
                ActivityLogRepository(uow.session).log(
                    user_id=user_id,
                    action=str(getattr(action, "value", action)),
                    resource_type=resource_type,
                    resource_id=resource_id,
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=self.clock()
                )
                uow.commit()
        except Exception:
            logger.exception(
                "Failed to record activity '%s' on %s %s by user %s",
                getattr(action, "value", action), resource_type, resource_id, user_id
            )


class ActivityLogService:
    """Tenant-scoped reads of the activity log."""

    def __init__(
        self,
        db: DatabaseSessionProvider,
        security_logger: Optional[SecurityLogger] = None
    ):
        self.db = db
        self.security_log = security_logger or get_security_logger()

    def list_logs(
        self,
        principal_id: int,
        filters: Optional[ActivityLogFilter] = None,
        pagination: Optional[Pagination] = None
    ) -> Tuple[List[ActivityLog], int]:
        """
        Page of activity logs visible to the principal.

        Restricted principals see the rows written by the owner of their
        company; admins see every row and may narrow by company.

        Returns:
            Tuple of (logs, total matching count)
        """
        pagination = pagination or Pagination()
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "activity.list")
            conditions = activity_filter_builder.build(scope, filters or ActivityLogFilter())
            return ActivityLogRepository(uow.session).search(
                conditions,
                order_by=activity_ordering(),
                limit=pagination.limit,
                offset=pagination.offset
            )

    def export_csv(
        self,
        principal_id: int,
        filters: Optional[ActivityLogFilter] = None
    ) -> str:
        """Every visible log row matching ``filters`` as CSV text."""
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "activity.export")
            conditions = activity_filter_builder.build(scope, filters or ActivityLogFilter())
            logs, total = ActivityLogRepository(uow.session).search(
                conditions,
                order_by=activity_ordering()
            )

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for log in logs:
            writer.writerow([
                log.id,
                log.user_id,
                log.action,
                log.resource_type,
                "" if log.resource_id is None else log.resource_id,
                log.details or "",
                log.ip_address or "",
                log.user_agent or "",
                log.created_at.isoformat() if log.created_at else "",
            ])

        logger.info("Exported %d activity log rows for user %s", total, principal_id)
        return buffer.getvalue()
