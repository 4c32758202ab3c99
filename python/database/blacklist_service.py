"""
Blacklist Entry Lifecycle Service

Orchestrates create/list/get/update/delete/toggle on blacklist entries:
- Resolves the caller's access scope and ANDs it into every query
- Derives the risk score from reason and evidence on create and on any
  update touching reason, documents or face image
- Runs each operation in a single unit of work, locking the row for
  read-modify-write operations
- Records one activity event per successful mutation, after commit

Missing entries and entries outside the caller's scope are reported
identically (EntryNotFoundOrDenied / None).
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from access_scope import AccessScope
from database.activity import ActivityRecorder
from database.connection import DatabaseSessionProvider
from database.filters import EntryFilter, Pagination, entry_filter_builder, entry_ordering
from database.models import (
    BLACKLIST_ENTRY_RESOURCE,
    ActivityAction,
    BlacklistEntry,
    BlacklistStatus,
    utcnow,
)
from database.principals import load_owning_company, load_scope
from database.repositories import BlacklistEntryRepository
from log_utils import sanitize_for_logging
from risk_scoring import compute_entry_score
from security_logger import SecurityLogger, get_security_logger

logger = logging.getLogger(__name__)


class EntryNotFoundOrDenied(Exception):
    """Entry does not exist or lies outside the caller's scope."""

    MESSAGE = "Blacklist entry not found or access denied"

    def __init__(self, entry_id: int):
        super().__init__(self.MESSAGE)
        self.entry_id = entry_id


# ============================================
# INPUT STRUCTURES
# ============================================

class _Unset:
    """Marker for a patch field the caller did not provide"""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

# Fields whose change invalidates the stored risk score
SCORE_INPUTS = ("reason", "id_document_urls", "face_image_url")


@dataclass
class EntrySubmission:
    """Validated input for a new blacklist entry"""
    first_name: str
    last_name: str
    id_number: str
    reason: str
    phone: Optional[str] = None
    email: Optional[str] = None
    face_image_url: Optional[str] = None
    id_document_urls: List[str] = field(default_factory=list)
    is_blacklisted: bool = True


@dataclass
class EntryPatch:
    """
    Partial update of a blacklist entry.

    Every field defaults to UNSET (leave untouched). ``phone``, ``email`` and
    ``face_image_url`` also accept None, which clears the stored value; the
    other fields reject None.
    """
    first_name: Any = UNSET
    last_name: Any = UNSET
    id_number: Any = UNSET
    phone: Any = UNSET
    email: Any = UNSET
    face_image_url: Any = UNSET
    id_document_urls: Any = UNSET
    reason: Any = UNSET
    status: Any = UNSET
    is_blacklisted: Any = UNSET

    NULLABLE = frozenset({"phone", "email", "face_image_url"})

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None and f.name not in self.NULLABLE:
                raise ValueError(f"{f.name} cannot be null")
        if self.status is not UNSET and not isinstance(self.status, BlacklistStatus):
            self.status = BlacklistStatus(self.status)
        if self.id_document_urls is not UNSET:
            self.id_document_urls = list(self.id_document_urls)

    def provided_fields(self) -> Dict[str, Any]:
        """Field name -> value for every field that is not UNSET."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    @property
    def touches_score(self) -> bool:
        return any(getattr(self, name) is not UNSET for name in SCORE_INPUTS)


# ============================================
# SERVICE
# ============================================

class BlacklistEntryService:
    """Tenant-scoped lifecycle operations on blacklist entries."""

    def __init__(
        self,
        db: DatabaseSessionProvider,
        recorder: Optional[ActivityRecorder] = None,
        security_logger: Optional[SecurityLogger] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            db: Session provider for the record store
            recorder: Activity sink (defaults to a recorder on the same store)
            security_logger: Sink for access-denied and tenant events
            clock: Source of timestamps (defaults to current UTC time)
        """
        self.db = db
        self.clock = clock or utcnow
        self.recorder = recorder or ActivityRecorder(db, clock=self.clock)
        self.security_log = security_logger or get_security_logger()

    # ----------------------------------------
    # Helpers
    # ----------------------------------------

    def _find_in_scope(
        self,
        session: Session,
        scope: AccessScope,
        entry_id: int,
        for_update: bool = False
    ) -> Optional[BlacklistEntry]:
        conditions = [BlacklistEntry.id == entry_id]
        conditions.extend(entry_filter_builder.build(scope))
        return BlacklistEntryRepository(session).find_first(conditions, for_update=for_update)

    def _deny(self, principal_id: int, entry_id: int, operation: str) -> None:
        self.security_log.log_access_denied(
            user_id=principal_id,
            resource_type=BLACKLIST_ENTRY_RESOURCE,
            resource_id=entry_id,
            operation=operation,
            source=f"blacklist.{operation}"
        )

    def _record(self, principal_id: int, action: ActivityAction, entry_id: int, details: str) -> None:
        self.recorder.record(
            user_id=principal_id,
            action=action.value,
            resource_type=BLACKLIST_ENTRY_RESOURCE,
            resource_id=entry_id,
            details=details
        )

    # ----------------------------------------
    # Operations
    # ----------------------------------------

    def create(self, principal_id: int, submission: EntrySubmission) -> BlacklistEntry:
        """
        File a new entry under the principal's company.

        Raises:
            UnknownPrincipalError: principal id matches no user
            NoCompanyError: principal owns no company (admins included)
        """
        with self.db.get_unit_of_work() as uow:
            _, company_id = load_owning_company(
                uow.session, principal_id, self.security_log, "create"
            )
            now = self.clock()
            entry = BlacklistEntry(
                user_id=principal_id,
                company_id=company_id,
                first_name=submission.first_name,
                last_name=submission.last_name,
                id_number=submission.id_number,
                phone=submission.phone,
                email=submission.email,
                face_image_url=submission.face_image_url,
                id_document_urls=list(submission.id_document_urls),
                reason=submission.reason,
                status=BlacklistStatus.ACTIVE,
                is_blacklisted=submission.is_blacklisted,
                blacklist_score=compute_entry_score(
                    submission.reason,
                    submission.id_document_urls,
                    submission.face_image_url
                ),
                created_at=now,
                updated_at=now
            )
            BlacklistEntryRepository(uow.session).insert(entry)
            uow.commit()

        logger.info(
            "Blacklist entry %s created by user %s (score=%s)",
            entry.id, principal_id, entry.blacklist_score
        )
        self._record(
            principal_id, ActivityAction.CREATED, entry.id,
            f"Created blacklist entry for {entry.full_name}"
        )
        return entry

    def list_entries(
        self,
        principal_id: int,
        filters: Optional[EntryFilter] = None,
        pagination: Optional[Pagination] = None
    ) -> Tuple[List[BlacklistEntry], int]:
        """
        Page of entries visible to the principal, newest first.

        Returns:
            Tuple of (entries, total matching count ignoring pagination)
        """
        pagination = pagination or Pagination()
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "list")
            conditions = entry_filter_builder.build(scope, filters or EntryFilter())
            repo = BlacklistEntryRepository(uow.session)
            total = repo.count(conditions)
            entries = repo.find_many(
                conditions,
                order_by=entry_ordering(),
                limit=pagination.limit,
                offset=pagination.offset
            )
        return entries, total

    def get(self, principal_id: int, entry_id: int) -> Optional[BlacklistEntry]:
        """Entry if it exists within the principal's scope, else None."""
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "get")
            entry = self._find_in_scope(uow.session, scope, entry_id)

        if entry is None:
            self._deny(principal_id, entry_id, "get")
        return entry

    def update(self, principal_id: int, entry_id: int, patch: EntryPatch) -> BlacklistEntry:
        """
        Apply a partial update.

        The score is recomputed from post-patch values when the patch
        provides reason, id_document_urls or face_image_url; an empty patch
        only moves updated_at.

        Raises:
            EntryNotFoundOrDenied: entry missing or out of scope
        """
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "update")
            entry = self._find_in_scope(uow.session, scope, entry_id, for_update=True)
            if entry is None:
                self._deny(principal_id, entry_id, "update")
                raise EntryNotFoundOrDenied(entry_id)

            values = patch.provided_fields()
            if patch.touches_score:
                values["blacklist_score"] = compute_entry_score(
                    values.get("reason", entry.reason),
                    values.get("id_document_urls", entry.id_document_urls),
                    values.get("face_image_url", entry.face_image_url)
                )
            values["updated_at"] = self.clock()

            entry = BlacklistEntryRepository(uow.session).update(entry.id, values)
            uow.commit()

        logger.info(
            "Blacklist entry %s updated by user %s (fields=%s)",
            entry_id, principal_id, sanitize_for_logging(",".join(sorted(patch.provided_fields())))
        )
        self._record(
            principal_id, ActivityAction.UPDATED, entry_id,
            f"Updated blacklist entry for {entry.full_name}"
        )
        return entry

    def delete(self, principal_id: int, entry_id: int) -> bool:
        """
        Hard-delete an entry.

        Raises:
            EntryNotFoundOrDenied: entry missing or out of scope
        """
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "delete")
            entry = self._find_in_scope(uow.session, scope, entry_id, for_update=True)
            if entry is None:
                self._deny(principal_id, entry_id, "delete")
                raise EntryNotFoundOrDenied(entry_id)

            full_name = entry.full_name
            BlacklistEntryRepository(uow.session).delete(entry.id)
            uow.commit()

        logger.info("Blacklist entry %s deleted by user %s", entry_id, principal_id)
        self._record(
            principal_id, ActivityAction.DELETED, entry_id,
            f"Deleted blacklist entry for {full_name}"
        )
        return True

    def toggle_status(self, principal_id: int, entry_id: int, is_blacklisted: bool) -> BlacklistEntry:
        """
        Set the blacklist flag and derive status from it (active/inactive).

        Raises:
            EntryNotFoundOrDenied: entry missing or out of scope
        """
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "toggle_status")
            entry = self._find_in_scope(uow.session, scope, entry_id, for_update=True)
            if entry is None:
                self._deny(principal_id, entry_id, "toggle_status")
                raise EntryNotFoundOrDenied(entry_id)

            entry = BlacklistEntryRepository(uow.session).update(entry.id, {
                "is_blacklisted": is_blacklisted,
                "status": BlacklistStatus.ACTIVE if is_blacklisted else BlacklistStatus.INACTIVE,
                "updated_at": self.clock(),
            })
            uow.commit()

        action = ActivityAction.BLACKLISTED if is_blacklisted else ActivityAction.UNBLACKLISTED
        logger.info("Blacklist entry %s %s by user %s", entry_id, action.value, principal_id)
        self._record(
            principal_id, action, entry_id,
            f"{action.value.capitalize()} {entry.full_name}"
        )
        return entry
