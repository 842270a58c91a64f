"""Tests for the duplicate guard."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from resource_discovery.core.enums import GuardType, TombstoneKind
from resource_discovery.core.schema import CandidateResource, ExistingResource
from resource_discovery.db.models import Base
from resource_discovery.db.repositories import ResourceRepository, TombstoneRepository
from resource_discovery.discovery.detector import RunIndex
from resource_discovery.discovery.guard import DuplicateGuard, _domain_candidates


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    engine = create_engine(f"sqlite:///{temp_db_path}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def guard(session: Session) -> DuplicateGuard:
    return DuplicateGuard(session)


def make_candidate(**overrides) -> CandidateResource:
    data = {
        "name": "Midtown Food Pantry",
        "address": "1500 Q St",
        "city": "Sacramento",
        "state": "CA",
        "latitude": 38.5723,
        "longitude": -121.4838,
        "source_url": "https://www.midtownpantry.org/visit",
    }
    data.update(overrides)
    return CandidateResource(**data)


class TestDomainCandidates:
    """Tests for source domain expansion."""

    def test_parent_domains(self) -> None:
        """Test a host expands to itself and each parent domain."""
        assert _domain_candidates("https://www.pages.example.org/x") == [
            "pages.example.org",
            "example.org",
        ]

    def test_missing(self) -> None:
        """Test missing or unparseable URLs yield nothing."""
        assert _domain_candidates(None) == []
        assert _domain_candidates("not a url") == []


class TestDuplicateGuard:
    """Tests for DuplicateGuard.is_duplicate_or_blocked."""

    def test_new_resource_passes(self, guard: DuplicateGuard) -> None:
        """Test an unknown candidate is not stopped."""
        result = guard.is_duplicate_or_blocked(make_candidate())
        assert result.is_duplicate is False
        assert result.type == GuardType.NONE

    def test_tombstoned_address(self, guard: DuplicateGuard, session: Session) -> None:
        """Test a tombstoned address is blocked regardless of case."""
        TombstoneRepository(session).add(TombstoneKind.ADDRESS, "1500 q st", "Closed permanently")
        session.commit()

        result = guard.is_duplicate_or_blocked(make_candidate(address="1500 Q ST"))
        assert result.is_duplicate is True
        assert result.type == GuardType.BLOCKED
        assert result.reason == "Tombstoned: Closed permanently"

    def test_blocked_source_subdomain(self, guard: DuplicateGuard, session: Session) -> None:
        """Test a blocked domain also blocks its subdomains."""
        TombstoneRepository(session).add(TombstoneKind.SOURCE, "spam-directory.com", "Scraped")
        session.commit()

        result = guard.is_duplicate_or_blocked(
            make_candidate(source_url="https://listings.spam-directory.com/pantry/1")
        )
        assert result.type == GuardType.BLOCKED
        assert result.reason == "Blocked source spam-directory.com: Scraped"

    def test_hard_duplicate(self, guard: DuplicateGuard, session: Session) -> None:
        """Test the same organization at a reformatted address is a hard duplicate."""
        existing = ResourceRepository(session).create(make_candidate(address="1500 Q Street"))
        session.commit()

        result = guard.is_duplicate_or_blocked(make_candidate(name="Midtown Food Pantry Inc"))
        assert result.is_duplicate is True
        assert result.type == GuardType.HARD
        assert result.duplicate_id == existing.id
        assert result.reason == "Duplicate of Midtown Food Pantry at 1500 Q Street"

    def test_different_organization_same_address(
        self, guard: DuplicateGuard, session: Session
    ) -> None:
        """Test a different name at a known address is left to the detector."""
        ResourceRepository(session).create(make_candidate())
        session.commit()

        result = guard.is_duplicate_or_blocked(make_candidate(name="Sacramento Tenants Union"))
        assert result.type == GuardType.NONE

    def test_same_address_other_city(self, guard: DuplicateGuard, session: Session) -> None:
        """Test known resources in other areas do not count."""
        ResourceRepository(session).create(make_candidate(city="Davis"))
        session.commit()

        assert guard.is_duplicate_or_blocked(make_candidate()).type == GuardType.NONE

    def test_run_index_duplicate(self, guard: DuplicateGuard) -> None:
        """Test resources inserted earlier in the scan are checked too."""
        index = RunIndex()
        index.add(
            ExistingResource(
                id="run-1",
                name="Midtown Food Pantry",
                address="1500 Q St",
                city="Sacramento",
                state="CA",
            )
        )

        result = guard.is_duplicate_or_blocked(make_candidate(), run_index=index)
        assert result.type == GuardType.HARD
        assert result.duplicate_id == "run-1"

    def test_block_takes_precedence(self, guard: DuplicateGuard, session: Session) -> None:
        """Test a tombstone wins over a hard duplicate."""
        ResourceRepository(session).create(make_candidate())
        TombstoneRepository(session).add(TombstoneKind.ADDRESS, "1500 Q St", "Closed")
        session.commit()

        assert guard.is_duplicate_or_blocked(make_candidate()).type == GuardType.BLOCKED

    def test_threshold_configurable(self, session: Session) -> None:
        """Test a stricter name threshold lets near-names through."""
        ResourceRepository(session).create(make_candidate())
        session.commit()

        strict = DuplicateGuard(session, name_similarity_threshold=0.99)
        result = strict.is_duplicate_or_blocked(make_candidate(name="Midtown Food Pantry Inc"))
        assert result.type == GuardType.NONE

    def test_hard_duplicate_ignores_other_addresses(
        self, guard: DuplicateGuard, session: Session
    ) -> None:
        """Test only resources stored under the candidate's address fingerprint are compared."""
        repo = ResourceRepository(session)
        repo.create(make_candidate(address="1600 Q St"))
        existing = repo.create(make_candidate(address="1500 Q Street"))
        session.commit()

        result = guard.is_duplicate_or_blocked(make_candidate())
        assert result.type == GuardType.HARD
        assert result.duplicate_id == existing.id
