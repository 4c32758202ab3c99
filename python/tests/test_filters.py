"""
Tests for the filter-to-predicate builder.
"""

from datetime import datetime, timezone

import pytest

from access_scope import RestrictedTo, Unrestricted
from database.filters import (
    ActivityLogFilter,
    EntryFilter,
    Pagination,
    activity_filter_builder,
    entry_filter_builder,
    search_filter_builder,
)
from database.models import BlacklistStatus


class TestEntryFilterBuilder:

    def test_absent_fields_produce_no_predicates(self):
        assert entry_filter_builder.build(Unrestricted(), EntryFilter()) == []

    def test_no_filter_object(self):
        assert entry_filter_builder.build(Unrestricted()) == []

    def test_restricted_scope_always_adds_company(self):
        conditions = entry_filter_builder.build(RestrictedTo(3), EntryFilter())
        assert len(conditions) == 1
        assert "company_id" in str(conditions[0])

    def test_restricted_scope_ignores_requested_company(self):
        conditions = entry_filter_builder.build(RestrictedTo(3), EntryFilter(company_id=9))
        compiled = conditions[0].compile(compile_kwargs={"literal_binds": True})
        assert "3" in str(compiled)
        assert "9" not in str(compiled)

    def test_every_field_adds_one_predicate(self):
        filters = EntryFilter(
            company_id=1,
            status=BlacklistStatus.PENDING,
            search="doe",
            date_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
            date_to=datetime(2024, 2, 1, tzinfo=timezone.utc),
            min_score=10,
            max_score=90,
        )
        assert len(entry_filter_builder.build(Unrestricted(), filters)) == 7

    def test_blank_search_is_ignored(self):
        assert entry_filter_builder.build(Unrestricted(), EntryFilter(search="   ")) == []

    def test_zero_score_bound_is_a_constraint(self):
        assert len(entry_filter_builder.build(Unrestricted(), EntryFilter(min_score=0))) == 1

    def test_status_string_is_coerced(self):
        assert EntryFilter(status="resolved").status is BlacklistStatus.RESOLVED

    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError):
            EntryFilter(status="archived")

    def test_search_builder_ignores_score_bounds(self):
        conditions = search_filter_builder.build(Unrestricted(), EntryFilter(min_score=10, max_score=20))
        assert conditions == []


class TestActivityFilterBuilder:

    def test_exact_fields(self):
        filters = ActivityLogFilter(user_id=1, action="created", resource_type="blacklist_entry")
        assert len(activity_filter_builder.build(Unrestricted(), filters)) == 3

    def test_restricted_scope_uses_company_owner(self):
        conditions = activity_filter_builder.build(RestrictedTo(4), ActivityLogFilter())
        assert len(conditions) == 1
        assert "companies" in str(conditions[0])

    def test_entry_only_fields_do_not_apply(self):
        assert activity_filter_builder.build(Unrestricted(), ActivityLogFilter()) == []


class TestPagination:

    def test_offset_is_page_based(self):
        assert Pagination(page=1, limit=20).offset == 0
        assert Pagination(page=3, limit=10).offset == 20
