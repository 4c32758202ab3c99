"""
Shared pytest fixtures for the Blacklist Registry test suite.

Every test gets a fresh in-memory SQLite database (StaticPool) seeded with
two tenants, a user without a company and an administrator.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import security_logger
from config_manager import ConfigManager
from database.blacklist_service import BlacklistEntryService, EntrySubmission
from database.connection import create_test_provider
from database.repositories import CompanyRepository, UserRepository
from security_logger import SecurityLogger


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture(autouse=True)
def security_log():
    """Security logger that writes no files; installed as the global instance."""
    log = SecurityLogger(enable_file=False)
    security_logger._security_logger = log
    yield log
    security_logger.reset_security_logger()


@pytest.fixture(autouse=True)
def reset_config():
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


@pytest.fixture
def db_provider():
    provider = create_test_provider()
    yield provider
    provider.close()


@pytest.fixture
def clock():
    return FakeClock()


def _company_data(user_id: int, name: str) -> dict:
    return {
        "user_id": user_id,
        "name": name,
        "legal_representative_name": f"{name} Legal",
        "phone": "+10000000000",
        "address": "1 Main Street",
        "city": "Springfield",
    }


@pytest.fixture
def accounts(db_provider):
    """Seed users and companies; returns their ids."""
    with db_provider.session_scope() as session:
        users = UserRepository(session)
        companies = CompanyRepository(session)

        alice = users.create({"email": "alice@acme.test", "first_name": "Alice", "last_name": "Owner"})
        bob = users.create({"email": "bob@globex.test", "first_name": "Bob", "last_name": "Owner"})
        carol = users.create({"email": "carol@nowhere.test", "first_name": "Carol", "last_name": "Loner"})
        admin = users.create({
            "email": "admin@registry.test",
            "first_name": "Ada",
            "last_name": "Admin",
            "is_admin": True,
        })

        acme = companies.create(_company_data(alice.id, "Acme"))
        globex = companies.create(_company_data(bob.id, "Globex"))

        ids = SimpleNamespace(
            alice=alice.id,
            bob=bob.id,
            carol=carol.id,
            admin=admin.id,
            acme=acme.id,
            globex=globex.id,
        )
    return ids


@pytest.fixture
def service(db_provider, security_log, clock):
    return BlacklistEntryService(db_provider, security_logger=security_log, clock=clock)


def make_submission(**overrides) -> EntrySubmission:
    data = {
        "first_name": "John",
        "last_name": "Doe",
        "id_number": "ID-1001",
        "reason": "Left without paying",
    }
    data.update(overrides)
    return EntrySubmission(**data)


@pytest.fixture
def submission_factory():
    return make_submission
