"""
Blacklist search and type-ahead suggestions.

Both operations honour the caller's access scope exactly like the entry
listing: admins may narrow to one company, everybody else is pinned to
their own.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from access_scope import AccessError
from database.connection import DatabaseSessionProvider
from database.filters import EntryFilter, entry_ordering, search_filter_builder
from database.models import BlacklistEntry, BlacklistStatus
from database.principals import load_scope
from database.repositories import BlacklistEntryRepository
from log_utils import sanitize_for_logging
from security_logger import SecurityLogger, get_security_logger

logger = logging.getLogger(__name__)

MIN_SUGGESTION_QUERY = 2
SUGGESTION_LIMIT = 10


@dataclass(frozen=True)
class Suggestion:
    """One type-ahead hit"""
    type: str  # name | id_number | email | phone
    value: str
    entry_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "value": self.value, "entry_id": self.entry_id}


def suggestions_for(entry: BlacklistEntry, query: str) -> List[Suggestion]:
    """Suggestions one entry contributes for ``query``.

    Names, id numbers and emails match case-insensitively; phone numbers
    match verbatim.
    """
    needle = query.lower()
    found = []
    if needle in entry.full_name.lower():
        found.append(Suggestion("name", entry.full_name, entry.id))
    if needle in entry.id_number.lower():
        found.append(Suggestion("id_number", entry.id_number, entry.id))
    if entry.email and needle in entry.email.lower():
        found.append(Suggestion("email", entry.email, entry.id))
    if entry.phone and query in entry.phone:
        found.append(Suggestion("phone", entry.phone, entry.id))
    return found


class SearchService:
    """Free-text search over blacklist entries."""

    def __init__(
        self,
        db: DatabaseSessionProvider,
        security_logger: Optional[SecurityLogger] = None,
        suggestion_limit: int = SUGGESTION_LIMIT
    ):
        self.db = db
        self.security_log = security_logger or get_security_logger()
        self.suggestion_limit = suggestion_limit

    def search(
        self,
        principal_id: int,
        query: Optional[str] = None,
        company_id: Optional[int] = None,
        status: Optional[BlacklistStatus] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[BlacklistEntry], int]:
        """
        Search entries by name, id number, email or phone.

        Args:
            principal_id: Caller
            query: Substring to match; blank means "everything in scope"
            company_id: Narrow to one company (admins only, ignored otherwise)
            status: Exact status filter
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (entries, total matching count)
        """
        filters = EntryFilter(company_id=company_id, status=status, search=query)
        with self.db.get_unit_of_work() as uow:
            _, scope = load_scope(uow.session, principal_id, self.security_log, "search")
            conditions = search_filter_builder.build(scope, filters)
            repo = BlacklistEntryRepository(uow.session)
            total = repo.count(conditions)
            entries = repo.find_many(
                conditions,
                order_by=entry_ordering(),
                limit=limit,
                offset=offset
            )

        logger.debug(
            "Search '%s' by user %s matched %d entries",
            sanitize_for_logging(query or "", max_length=100), principal_id, total
        )
        return entries, total

    def suggestions(self, principal_id: int, query: Optional[str]) -> List[Suggestion]:
        """
        Type-ahead suggestions for a partial query.

        Queries shorter than two characters, unknown principals and
        non-admins without a company all yield an empty list.
        """
        term = (query or "").strip()
        if len(term) < MIN_SUGGESTION_QUERY:
            return []

        with self.db.get_unit_of_work() as uow:
            try:
                _, scope = load_scope(uow.session, principal_id, self.security_log, "suggestions")
            except AccessError:
                return []
            conditions = search_filter_builder.build(scope, EntryFilter(search=term))
            candidates = BlacklistEntryRepository(uow.session).find_many(
                conditions,
                order_by=entry_ordering(),
                limit=self.suggestion_limit
            )

        unique: List[Suggestion] = []
        seen = set()
        for entry in candidates:
            for suggestion in suggestions_for(entry, term):
                key = (suggestion.type, suggestion.value)
                if key not in seen:
                    seen.add(key)
                    unique.append(suggestion)
        return unique[:self.suggestion_limit]
