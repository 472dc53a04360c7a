"""
Institution API

Registration, verification requests and the institution's ledger legs.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from educhain.dependencies import (
    get_engine,
    get_ledger_status_service,
    get_review_service,
    get_store,
    require_admin,
)
from educhain.schemas.institution import (
    InstitutionCreate,
    InstitutionLedgerStatus,
    InstitutionResponse,
    LedgerSyncResponse,
    VerificationRequestCreate,
    VerificationRequestResponse,
)
from educhain.services.ledger_status import LedgerStatusService
from educhain.services.reconciliation import ReconcileResult, ReconciliationEngine, SyncOutcome
from educhain.services.records import RecordStore
from educhain.services.review import ReviewService

router = APIRouter(prefix="/institutions", tags=["institutions"])


def _sync_status(result: ReconcileResult) -> str:
    if result.outcome.succeeded:
        return "success"
    if result.outcome == SyncOutcome.DEGRADED_NO_LEDGER:
        return "degraded"
    return "error"


@router.post("", response_model=InstitutionResponse, status_code=status.HTTP_201_CREATED)
async def register_institution(
    payload: InstitutionCreate,
    service: ReviewService = Depends(get_review_service),
):
    """Register an institution (store only; ledger registration follows approval)."""
    institution = await service.register_institution(payload)
    return InstitutionResponse.model_validate(institution)


@router.get("/{institution_id}", response_model=InstitutionResponse)
async def get_institution(
    institution_id: UUID,
    store: RecordStore = Depends(get_store),
):
    institution = await store.require_institution(institution_id)
    return InstitutionResponse.model_validate(institution)


@router.post(
    "/{institution_id}/verification-requests",
    response_model=VerificationRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_verification_request(
    institution_id: UUID,
    payload: VerificationRequestCreate,
    service: ReviewService = Depends(get_review_service),
):
    request = await service.submit_verification(institution_id, payload.documents)
    return VerificationRequestResponse.model_validate(request)


@router.post(
    "/{institution_id}/ledger-register",
    response_model=LedgerSyncResponse,
    dependencies=[Depends(require_admin)],
)
async def register_on_ledger(
    institution_id: UUID,
    store: RecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """
    Reconcile an approved institution with the ledger.
    
    Always 200 once the institution exists and is approved; the ledger leg
    is reported in ``blockchainStatus``.
    """
    institution = await store.require_institution(institution_id)
    result = await engine.reconcile_institution(institution)
    return LedgerSyncResponse(
        status=_sync_status(result),
        message=result.message,
        institution=InstitutionResponse.model_validate(institution),
        blockchain_status=result.outcome.value,
        transaction_hash=result.tx_hash,
    )


@router.post(
    "/{institution_id}/ledger-authorize",
    response_model=LedgerSyncResponse,
    dependencies=[Depends(require_admin)],
)
async def authorize_on_ledger(
    institution_id: UUID,
    store: RecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
):
    institution = await store.require_institution(institution_id)
    result = await engine.authorize_institution(institution)
    return LedgerSyncResponse(
        status=_sync_status(result),
        message=result.message,
        institution=InstitutionResponse.model_validate(institution),
        blockchain_status=result.outcome.value,
        transaction_hash=result.tx_hash,
    )


@router.get("/{institution_id}/ledger-status", response_model=InstitutionLedgerStatus)
async def ledger_status(
    institution_id: UUID,
    service: LedgerStatusService = Depends(get_ledger_status_service),
):
    return await service.institution_status(institution_id)
