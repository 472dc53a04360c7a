"""Dependency injection helpers for FastAPI."""

from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.bridges.content import ContentStore
from educhain.bridges.ledger import LedgerClient
from educhain.core.config import Settings
from educhain.core.database import get_db
from educhain.services.bulk_sync import BulkSynchronizer
from educhain.services.issuance import IssuanceService
from educhain.services.ledger_status import LedgerStatusService
from educhain.services.reconciliation import ReconciliationEngine
from educhain.services.records import RecordStore
from educhain.services.review import ReviewService
from educhain.services.verification import VerificationResolver


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> LedgerClient:
    """The ledger client selected at startup."""
    return request.app.state.ledger


def get_content_store(request: Request) -> ContentStore:
    return request.app.state.content_store


async def get_store(db: AsyncSession = Depends(get_db)) -> RecordStore:
    return RecordStore(db)


def get_engine(
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
) -> ReconciliationEngine:
    return ReconciliationEngine(store, ledger)


def get_resolver(
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
    settings: Settings = Depends(get_app_settings),
) -> VerificationResolver:
    return VerificationResolver(store, ledger, contract_address=settings.LEDGER_CONTRACT_ADDRESS)


def get_bulk_synchronizer(
    store: RecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> BulkSynchronizer:
    return BulkSynchronizer(store, engine, settle_seconds=settings.BULK_SYNC_SETTLE_SECONDS)


def get_review_service(
    store: RecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
) -> ReviewService:
    return ReviewService(store, engine)


def get_issuance_service(
    store: RecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
    content_store: ContentStore = Depends(get_content_store),
) -> IssuanceService:
    return IssuanceService(store, engine, content_store)


def get_ledger_status_service(
    store: RecordStore = Depends(get_store),
    ledger: LedgerClient = Depends(get_ledger),
) -> LedgerStatusService:
    return LedgerStatusService(store, ledger)


async def require_admin(
    settings: Settings = Depends(get_app_settings),
    x_admin_email: Optional[str] = Header(default=None, alias="X-Admin-Email"),
) -> str:
    """Admin gate. Returns the admin identity used as reviewer."""
    if not x_admin_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    if x_admin_email.lower() != settings.ADMIN_EMAIL.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return x_admin_email


async def get_current_institution_id(
    x_institution_id: Optional[UUID] = Header(default=None, alias="X-Institution-Id"),
) -> UUID:
    """Issuing institution for the request.
    
    TODO: derive from the session token once institution login is wired in.
    """
    if not x_institution_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return x_institution_id
