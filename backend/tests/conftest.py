"""Shared fixtures: in-memory record store, fake ledger, fake content store."""

import itertools
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from educhain.core.database import build_engine, build_session_maker, create_tables
from educhain.models import Certificate, Institution, VerificationStatus
from educhain.services.mocks import FakeContentStore, FakeLedgerClient
from educhain.services.reconciliation import ReconciliationEngine
from educhain.services.records import RecordStore

_counter = itertools.count(1)


@pytest_asyncio.fixture
async def db_engine():
    engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def ledger():
    return FakeLedgerClient()


@pytest.fixture
def content_store():
    return FakeContentStore()


@pytest.fixture
def store(session):
    return RecordStore(session)


@pytest.fixture
def engine(store, ledger):
    return ReconciliationEngine(store, ledger)


@pytest.fixture
def make_institution(store):
    """Factory for persisted institutions (approved and verified by default)."""
    async def _make(
        name: str = "Acme U",
        wallet_address: str = "0xABC",
        status: VerificationStatus = VerificationStatus.APPROVED,
        **overrides,
    ) -> Institution:
        n = next(_counter)
        institution = Institution(
            name=name,
            email=overrides.pop("email", f"registrar{n}@example.edu"),
            wallet_address=wallet_address,
            registration_number=overrides.pop("registration_number", f"REG-{n:04d}"),
            verification_status=status,
            is_verified=overrides.pop("is_verified", status == VerificationStatus.APPROVED),
            **overrides,
        )
        return await store.add_institution(institution)
    
    return _make


@pytest.fixture
def make_certificate(store):
    """Factory for persisted, unminted certificates."""
    async def _make(
        institution: Institution,
        student_address: str = "0xDEF",
        course_name: str = "BSc Computer Science",
        **overrides,
    ) -> Certificate:
        n = next(_counter)
        certificate = Certificate(
            institution_id=institution.id,
            institution_name=institution.name,
            student_id=overrides.pop("student_id", f"STU{n:03d}"),
            student_address=student_address,
            student_name=overrides.pop("student_name", "Jane Doe"),
            course_name=course_name,
            completion_date=overrides.pop("completion_date", datetime(2024, 6, 30)),
            content_hash=overrides.pop("content_hash", f"QmContent{n:04d}"),
            **overrides,
        )
        return await store.add_certificate(certificate)
    
    return _make
