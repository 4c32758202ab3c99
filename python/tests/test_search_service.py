"""
Tests for blacklist search and suggestions.
"""

import pytest

from access_scope import NoCompanyError
from database.models import BlacklistStatus
from database.search_service import SearchService

from conftest import make_submission


@pytest.fixture
def search(db_provider, security_log):
    return SearchService(db_provider, security_logger=security_log)


@pytest.fixture
def entries(service, accounts):
    service.create(accounts.alice, make_submission(
        first_name="Maria", last_name="Lopez", id_number="AB-123",
        email="maria@mail.test", phone="+1-555-0101",
    ))
    service.create(accounts.alice, make_submission(
        first_name="Mario", last_name="Rossi", id_number="CD-456",
        email="mrossi@mail.test", phone="+1-555-0102",
    ))
    service.create(accounts.bob, make_submission(
        first_name="Marianne", last_name="Keller", id_number="EF-789",
    ))
    return accounts


class TestSearch:

    def test_scoped_to_own_company(self, search, entries):
        results, total = search.search(entries.alice, query="mari")
        assert total == 2
        assert {e.first_name for e in results} == {"Maria", "Mario"}

    def test_admin_sees_all_companies(self, search, entries):
        _, total = search.search(entries.admin, query="mari")
        assert total == 3

    def test_admin_narrows_by_company(self, search, entries):
        results, total = search.search(entries.admin, query="mari", company_id=entries.globex)
        assert total == 1
        assert results[0].first_name == "Marianne"

    def test_user_company_id_ignored(self, search, entries):
        _, total = search.search(entries.alice, query="mari", company_id=entries.globex)
        assert total == 2

    def test_query_is_trimmed(self, search, entries):
        _, total = search.search(entries.alice, query="  lopez  ")
        assert total == 1

    def test_matches_phone_and_id_number(self, search, entries):
        assert search.search(entries.alice, query="0102")[1] == 1
        assert search.search(entries.alice, query="ab-1")[1] == 1

    def test_reason_not_searched(self, search, entries):
        assert search.search(entries.alice, query="paying")[1] == 0

    def test_blank_query_returns_everything_in_scope(self, search, entries):
        assert search.search(entries.alice, query="")[1] == 2
        assert search.search(entries.alice)[1] == 2

    def test_status_filter_and_paging(self, search, entries):
        results, total = search.search(entries.alice, status=BlacklistStatus.ACTIVE, limit=1, offset=1)
        assert total == 2
        assert len(results) == 1
        assert search.search(entries.alice, status=BlacklistStatus.RESOLVED)[1] == 0

    def test_no_company(self, search, accounts):
        with pytest.raises(NoCompanyError):
            search.search(accounts.carol, query="x")


class TestSuggestions:

    def test_short_query_returns_nothing(self, search, entries):
        assert search.suggestions(entries.alice, "m") == []
        assert search.suggestions(entries.alice, "  m ") == []
        assert search.suggestions(entries.alice, None) == []

    def test_name_suggestions(self, search, entries):
        suggestions = search.suggestions(entries.alice, "MARI")
        names = {(s.type, s.value) for s in suggestions}
        assert ("name", "Maria Lopez") in names
        assert ("name", "Mario Rossi") in names
        assert all(s.value != "Marianne Keller" for s in suggestions)

    def test_email_and_id_number_suggestions(self, search, entries):
        assert [(s.type, s.value) for s in search.suggestions(entries.alice, "mrossi")] == [
            ("email", "mrossi@mail.test"),
        ]
        assert [(s.type, s.value) for s in search.suggestions(entries.alice, "cd-4")] == [
            ("id_number", "CD-456"),
        ]

    def test_phone_suggestions(self, search, entries):
        suggestions = search.suggestions(entries.alice, "555-01")
        assert {s.value for s in suggestions if s.type == "phone"} == {"+1-555-0101", "+1-555-0102"}

    def test_deduplicated_on_type_and_value(self, service, search, accounts):
        for _ in range(3):
            service.create(accounts.alice, make_submission(first_name="Dup", last_name="Name"))
        suggestions = search.suggestions(accounts.alice, "dup")
        assert [(s.type, s.value) for s in suggestions] == [("name", "Dup Name")]

    def test_capped_at_limit(self, service, search, accounts):
        for i in range(15):
            service.create(accounts.alice, make_submission(first_name=f"Zed{i}", id_number=f"ZED-{i}"))
        assert len(search.suggestions(accounts.alice, "zed")) == 10

    def test_no_company_returns_empty(self, search, entries):
        assert search.suggestions(entries.carol, "mari") == []

    def test_unknown_user_returns_empty(self, search, entries):
        assert search.suggestions(9999, "mari") == []

    def test_to_dict(self, search, entries):
        suggestion = search.suggestions(entries.alice, "lopez")[0]
        assert suggestion.to_dict() == {"type": "name", "value": "Maria Lopez", "entry_id": suggestion.entry_id}
