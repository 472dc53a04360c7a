"""
EduChain - Institution Review

Admin workflow around institution accreditation. Workflow status lives in
the record store; approval hands the institution to the reconciliation
engine, whose ledger outcome never undoes the approval.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from educhain.core.errors import DuplicateInstitution, InvalidRequest, PreconditionFailed
from educhain.models import Institution, RequestStatus, VerificationRequest, VerificationStatus
from educhain.schemas.institution import InstitutionCreate
from educhain.services.reconciliation import ReconcileResult, ReconciliationEngine
from educhain.services.records import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    """Result of reviewing one verification request."""
    institution: Institution
    request: VerificationRequest
    ledger: Optional[ReconcileResult] = None


class ReviewService:
    """Institution registration and accreditation review."""
    
    def __init__(self, store: RecordStore, engine: ReconciliationEngine) -> None:
        self.store = store
        self.engine = engine
    
    async def register_institution(self, payload: InstitutionCreate) -> Institution:
        """Create an institution. Ledger-sync fields start false/null."""
        existing = await self.store.find_institution_conflict(
            payload.email, payload.wallet_address, payload.registration_number
        )
        if existing is not None:
            raise DuplicateInstitution(
                "Institution with this email, wallet address or registration number already exists"
            )
        
        institution = Institution(
            name=payload.name,
            email=payload.email,
            wallet_address=payload.wallet_address,
            registration_number=payload.registration_number,
            verification_status=VerificationStatus.NOT_SUBMITTED,
            is_verified=False,
            blockchain_registered=False,
            blockchain_authorized=False,
        )
        await self.store.add_institution(institution)
        logger.info(f"[REVIEW] Institution {institution.id} registered: {institution.name}")
        return institution
    
    async def submit_verification(self, institution_id: uuid.UUID, documents: list[str]) -> VerificationRequest:
        institution = await self.store.require_institution(institution_id)
        if institution.is_verified:
            raise PreconditionFailed("Institution is already verified")
        
        latest = await self.store.latest_verification_request(institution_id)
        if latest is not None and latest.status == RequestStatus.PENDING:
            raise PreconditionFailed("A verification request is already pending")
        
        request = VerificationRequest(
            institution_id=institution.id,
            documents=list(documents),
            status=RequestStatus.PENDING,
            submitted_at=datetime.utcnow(),
        )
        await self.store.add_verification_request(request)
        
        institution.verification_status = VerificationStatus.PENDING
        await self.store.save(institution)
        return request
    
    async def review(
        self,
        request_id: uuid.UUID,
        decision: RequestStatus,
        reviewer: str,
        comments: Optional[str] = None,
    ) -> ReviewOutcome:
        """
        Approve or reject a pending request.
        
        Approval runs ledger registration right away; a degraded or failed
        ledger leg is reported in the outcome while the approval stands.
        """
        if decision == RequestStatus.PENDING:
            raise InvalidRequest("Decision must be approved or rejected")
        
        request = await self.store.require_verification_request(request_id)
        if request.status != RequestStatus.PENDING:
            raise PreconditionFailed(f"Verification request already {request.status.value}")
        institution = await self.store.require_institution(request.institution_id)
        
        request.status = decision
        request.reviewed_at = datetime.utcnow()
        request.reviewed_by = reviewer
        request.comments = comments
        await self.store.save(request)
        
        if decision == RequestStatus.REJECTED:
            institution.verification_status = VerificationStatus.REJECTED
            institution.is_verified = False
            await self.store.save(institution)
            logger.info(f"[REVIEW] Institution {institution.id} rejected by {reviewer}")
            return ReviewOutcome(institution=institution, request=request)
        
        institution.verification_status = VerificationStatus.APPROVED
        institution.is_verified = True
        await self.store.save(institution)
        logger.info(f"[REVIEW] Institution {institution.id} approved by {reviewer}")
        
        result = await self.engine.reconcile_institution(institution)
        return ReviewOutcome(institution=institution, request=request, ledger=result)
    
    async def set_verified(self, institution_id: uuid.UUID, verified: bool) -> Institution:
        """Manual verify/unverify. Store-only; ledger authorization is left as is."""
        institution = await self.store.require_institution(institution_id)
        institution.is_verified = verified
        institution.verification_status = (
            VerificationStatus.APPROVED if verified else VerificationStatus.REJECTED
        )
        await self.store.save(institution)
        logger.info(f"[REVIEW] Institution {institution.id} verified={verified}")
        return institution
