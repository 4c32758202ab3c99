"""
Unit tests for database models, connection management and repositories.

Uses an in-memory SQLite database; the schema is portable to PostgreSQL.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from database.connection import DatabaseSettings, UnitOfWork, get_pool_settings
from database.models import (
    ActivityLog,
    ActivityAction,
    BlacklistEntry,
    BlacklistStatus,
    Company,
    User,
)
from database.repositories import (
    ActivityLogRepository,
    BlacklistEntryRepository,
    EntityNotFoundError,
    RepositoryError,
    UserRepository,
)


def new_entry(accounts, **overrides) -> BlacklistEntry:
    data = {
        "user_id": accounts.alice,
        "company_id": accounts.acme,
        "first_name": "John",
        "last_name": "Doe",
        "id_number": "ID-1",
        "reason": "Unpaid rent",
    }
    data.update(overrides)
    return BlacklistEntry(**data)


class TestEnums:
    """Tests for enum values stored in the database."""

    def test_blacklist_status_values(self):
        assert [s.value for s in BlacklistStatus] == ["active", "inactive", "pending", "resolved"]

    def test_activity_action_values(self):
        assert ActivityAction.BLACKLISTED.value == "blacklisted"
        assert ActivityAction.UNBLACKLISTED.value == "unblacklisted"

    def test_status_is_string_enum(self):
        assert BlacklistStatus("pending") is BlacklistStatus.PENDING
        assert BlacklistStatus.ACTIVE == "active"


class TestModels:
    """Tests for model defaults and constraints."""

    def test_entry_defaults(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            entry = BlacklistEntryRepository(session).insert(new_entry(accounts))
            assert entry.status is BlacklistStatus.ACTIVE
            assert entry.is_blacklisted is True
            assert entry.blacklist_score == 50
            assert entry.id_document_urls == []
            assert entry.created_at is not None

    def test_document_urls_round_trip(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            entry_id = BlacklistEntryRepository(session).insert(
                new_entry(accounts, id_document_urls=["a.pdf", "b.pdf"])
            ).id
        with db_provider.session_scope() as session:
            assert session.get(BlacklistEntry, entry_id).id_document_urls == ["a.pdf", "b.pdf"]

    def test_score_range_enforced(self, db_provider, accounts):
        with pytest.raises(IntegrityError):
            with db_provider.session_scope() as session:
                BlacklistEntryRepository(session).insert(new_entry(accounts, blacklist_score=101))

    def test_user_email_unique(self, db_provider, accounts):
        with pytest.raises(IntegrityError):
            with db_provider.session_scope() as session:
                UserRepository(session).create(
                    {"email": "alice@acme.test", "first_name": "A", "last_name": "B"}
                )

    def test_one_company_per_user(self, db_provider, accounts):
        with pytest.raises(IntegrityError):
            with db_provider.session_scope() as session:
                session.add(Company(
                    user_id=accounts.alice,
                    name="Second",
                    legal_representative_name="X",
                    phone="1",
                    address="2",
                    city="3",
                ))

    def test_relationships(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            BlacklistEntryRepository(session).insert(new_entry(accounts))
        with db_provider.session_scope() as session:
            user = session.get(User, accounts.alice)
            assert user.company.id == accounts.acme
            assert user.company.owner is user
            assert [e.first_name for e in user.company.entries] == ["John"]
            assert session.get(User, accounts.carol).company is None

    def test_full_names(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            assert session.get(User, accounts.alice).full_name == "Alice Owner"
            entry = BlacklistEntryRepository(session).insert(new_entry(accounts))
            assert entry.full_name == "John Doe"
            assert "score=50" in repr(entry)


class TestBlacklistEntryRepository:

    def test_find_first_and_many(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = BlacklistEntryRepository(session)
            repo.insert(new_entry(accounts, first_name="A"))
            repo.insert(new_entry(accounts, first_name="B"))
            repo.insert(new_entry(accounts, user_id=accounts.bob, company_id=accounts.globex, first_name="C"))

            acme_only = [BlacklistEntry.company_id == accounts.acme]
            assert repo.count(acme_only) == 2
            assert repo.count([]) == 3
            names = [e.first_name for e in repo.find_many(acme_only, order_by=[BlacklistEntry.id.desc()])]
            assert names == ["B", "A"]
            assert len(repo.find_many([], limit=1, offset=2)) == 1
            assert repo.find_first([BlacklistEntry.first_name == "C"], for_update=True).company_id == accounts.globex
            assert repo.find_first([BlacklistEntry.first_name == "Z"]) is None

    def test_update(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = BlacklistEntryRepository(session)
            entry = repo.insert(new_entry(accounts))
            updated = repo.update(entry.id, {"reason": "Fraud", "blacklist_score": 80})
            assert (updated.reason, updated.blacklist_score) == ("Fraud", 80)

    @pytest.mark.parametrize("field", ["company_id", "user_id", "id", "created_at"])
    def test_update_rejects_immutable_fields(self, db_provider, accounts, field):
        with db_provider.session_scope() as session:
            repo = BlacklistEntryRepository(session)
            entry = repo.insert(new_entry(accounts))
            with pytest.raises(RepositoryError, match="Immutable"):
                repo.update(entry.id, {field: 1})

    def test_update_rejects_unknown_field(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = BlacklistEntryRepository(session)
            entry = repo.insert(new_entry(accounts))
            with pytest.raises(RepositoryError, match="Unknown"):
                repo.update(entry.id, {"nickname": "JD"})

    def test_update_missing(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            with pytest.raises(EntityNotFoundError):
                BlacklistEntryRepository(session).update(999, {"reason": "x"})

    def test_delete(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = BlacklistEntryRepository(session)
            entry = repo.insert(new_entry(accounts))
            assert repo.delete(entry.id) is True
            assert repo.delete(entry.id) is False
            assert repo.find_by_id(entry.id) is None

    def test_aggregates(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = BlacklistEntryRepository(session)
            repo.insert(new_entry(accounts, blacklist_score=20))
            repo.insert(new_entry(accounts, blacklist_score=90, status=BlacklistStatus.PENDING))
            assert repo.count_by_status([]) == {"active": 1, "pending": 1}
            assert sorted(repo.scores([])) == [20, 90]


class TestAccountRepositories:

    def test_principal_with_company(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            principal = UserRepository(session).get_principal(accounts.alice)
        assert (principal.user_id, principal.is_admin, principal.company_id) == (
            accounts.alice, False, accounts.acme
        )

    def test_principal_without_company(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = UserRepository(session)
            assert repo.get_principal(accounts.carol).company_id is None
            assert repo.get_principal(accounts.admin).is_admin is True

    def test_unknown_principal(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            assert UserRepository(session).get_principal(404) is None


class TestActivityLogRepository:

    def test_log_and_search(self, db_provider, accounts):
        with db_provider.session_scope() as session:
            repo = ActivityLogRepository(session)
            repo.log(accounts.alice, "created", "blacklist_entry", 1, "one")
            repo.log(accounts.bob, "deleted", "blacklist_entry", 2, "two")

            logs, total = repo.search([ActivityLog.user_id == accounts.alice])
            assert total == 1
            assert logs[0].details == "one"

            pairs = repo.recent_with_actor([], [ActivityLog.id.desc()], limit=5)
            assert [(log.action, user.first_name) for log, user in pairs] == [
                ("deleted", "Bob"), ("created", "Alice"),
            ]


class TestConnection:
    """Tests for connection settings and the unit of work."""

    def test_settings_url(self):
        settings = DatabaseSettings(host="db", port=5433, database="x", user="u", password="p")
        assert settings.get_url() == "postgresql+psycopg2://u:p@db:5433/x"
        assert settings.is_sqlite is False

    def test_explicit_url_wins(self):
        assert DatabaseSettings(url="sqlite://").get_url() == "sqlite://"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "envhost")
        monkeypatch.setenv("DB_POOL_SIZE", "9")
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = DatabaseSettings.from_env()
        assert settings.host == "envhost"
        assert settings.pool_size == 9

    def test_pool_settings(self):
        assert "pool_size" not in get_pool_settings(DatabaseSettings(url="sqlite://"))
        assert get_pool_settings(DatabaseSettings())["pool_pre_ping"] is True

    def test_unit_of_work_rolls_back_without_commit(self, db_provider, accounts):
        with db_provider.get_unit_of_work() as uow:
            BlacklistEntryRepository(uow.session).insert(new_entry(accounts))
        with db_provider.session_scope() as session:
            assert BlacklistEntryRepository(session).count([]) == 0

    def test_unit_of_work_commit(self, db_provider, accounts):
        with db_provider.get_unit_of_work() as uow:
            BlacklistEntryRepository(uow.session).insert(new_entry(accounts))
            uow.commit()
        with db_provider.session_scope() as session:
            assert BlacklistEntryRepository(session).count([]) == 1

    def test_unit_of_work_requires_context(self, db_provider):
        with pytest.raises(RuntimeError):
            UnitOfWork(db_provider.session_factory).session

    def test_health_check(self, db_provider):
        assert db_provider.health_check() is True
