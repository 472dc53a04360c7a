from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from educhain.dependencies import (
    get_bulk_synchronizer,
    get_ledger_status_service,
    get_review_service,
    get_store,
    require_admin,
)
from educhain.models import RequestStatus
from educhain.schemas.institution import (
    InstitutionLedgerStatus,
    InstitutionResponse,
    LedgerSummary,
    ReviewDecision,
    ReviewResponse,
    VerificationRequestResponse,
)
from educhain.schemas.sync import SummaryReport
from educhain.services.bulk_sync import BulkSynchronizer
from educhain.services.ledger_status import LedgerStatusService
from educhain.services.records import RecordStore
from educhain.services.review import ReviewService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/ledger-register-all", response_model=SummaryReport)
async def register_all_on_ledger(
    synchronizer: BulkSynchronizer = Depends(get_bulk_synchronizer),
):
    """Register every verified institution that is not yet on the ledger."""
    return await synchronizer.sync_all()


@router.post("/certificates/mint-pending", response_model=SummaryReport)
async def mint_pending_certificates(
    synchronizer: BulkSynchronizer = Depends(get_bulk_synchronizer),
):
    """Mint every valid, unminted certificate with a known student wallet."""
    return await synchronizer.sync_unminted_certificates()


@router.get("/verification-requests", response_model=list[VerificationRequestResponse])
async def list_verification_requests(
    status: Optional[RequestStatus] = None,
    store: RecordStore = Depends(get_store),
):
    requests = await store.list_verification_requests(status)
    return [VerificationRequestResponse.model_validate(r) for r in requests]


@router.post("/verification-requests/{request_id}/review", response_model=ReviewResponse)
async def review_verification_request(
    request_id: UUID,
    decision: ReviewDecision,
    service: ReviewService = Depends(get_review_service),
    admin_email: str = Depends(require_admin),
):
    outcome = await service.review(request_id, decision.status, admin_email, decision.comments)
    return ReviewResponse(
        message=f"Verification request {decision.status.value}",
        request=VerificationRequestResponse.model_validate(outcome.request),
        institution=InstitutionResponse.model_validate(outcome.institution),
        blockchain_status=outcome.ledger.outcome.value if outcome.ledger else None,
        blockchain_message=outcome.ledger.message if outcome.ledger else None,
    )


@router.post("/institutions/{institution_id}/verify", response_model=InstitutionResponse)
async def verify_institution(
    institution_id: UUID,
    service: ReviewService = Depends(get_review_service),
):
    institution = await service.set_verified(institution_id, True)
    return InstitutionResponse.model_validate(institution)


@router.post("/institutions/{institution_id}/unverify", response_model=InstitutionResponse)
async def unverify_institution(
    institution_id: UUID,
    service: ReviewService = Depends(get_review_service),
):
    institution = await service.set_verified(institution_id, False)
    return InstitutionResponse.model_validate(institution)


@router.get("/ledger-status", response_model=list[InstitutionLedgerStatus])
async def ledger_status(
    service: LedgerStatusService = Depends(get_ledger_status_service),
):
    return await service.all_statuses()


@router.get("/ledger-summary", response_model=LedgerSummary)
async def ledger_summary(
    service: LedgerStatusService = Depends(get_ledger_status_service),
):
    return await service.summary()
