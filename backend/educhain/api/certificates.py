"""
Certificate API

Issuance, student-initiated minting, revocation and public verification.
Every state-changing response carries ``blockchainStatus`` so the caller
knows whether the ledger leg succeeded, failed or was skipped.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError

from educhain.dependencies import (
    get_current_institution_id,
    get_engine,
    get_issuance_service,
    get_resolver,
    get_store,
)
from educhain.schemas.certificate import (
    CertificateResponse,
    CertificateStats,
    CertificateSyncResponse,
    IssueResponse,
    MintRequest,
    OnchainMintRequest,
    RevokeRequest,
    VerificationResult,
)
from educhain.services.issuance import CertificateDraft, IssuanceService
from educhain.services.reconciliation import ReconciliationEngine
from educhain.services.records import RecordStore
from educhain.services.verification import VerificationResolver

router = APIRouter(prefix="/certificates", tags=["certificates"])


@router.post("/issue", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
async def issue_certificate(
    student_name: str = Form(..., alias="studentName"),
    course_name: str = Form(..., alias="courseName"),
    student_address: str = Form("", alias="studentAddress"),
    student_id: Optional[str] = Form(None, alias="studentId"),
    student_email: Optional[str] = Form(None, alias="studentEmail"),
    grade: str = Form("N/A"),
    certificate_type: str = Form("Academic", alias="certificateType"),
    completion_date: Optional[datetime] = Form(None, alias="completionDate"),
    file: UploadFile = File(...),
    institution_id: UUID = Depends(get_current_institution_id),
    service: IssuanceService = Depends(get_issuance_service),
):
    try:
        draft = CertificateDraft(
            student_name=student_name,
            course_name=course_name,
            student_address=student_address,
            student_id=student_id or None,
            student_email=student_email or None,
            grade=grade,
            certificate_type=certificate_type,
            completion_date=completion_date,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    
    artifact = await file.read()
    outcome = await service.issue(
        institution_id,
        draft,
        artifact,
        filename=file.filename or "certificate",
        content_type=file.content_type or "application/octet-stream",
    )
    
    return IssueResponse(
        message="Certificate issued successfully",
        certificate=CertificateResponse.model_validate(outcome.certificate),
        blockchain_status=outcome.ledger.outcome.value,
        blockchain_message=outcome.ledger.message,
        content_url=outcome.content.url if outcome.content else None,
    )


@router.post("/{certificate_id}/mint", response_model=CertificateSyncResponse)
async def mint_certificate(
    certificate_id: UUID,
    payload: MintRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Student-initiated mint to the wallet recorded on the certificate."""
    certificate, result = await engine.mint_for_student(certificate_id, payload.wallet_address)
    return CertificateSyncResponse(
        message=result.message,
        certificate=CertificateResponse.model_validate(certificate),
        blockchain_status=result.outcome.value,
        transaction_hash=result.tx_hash,
    )


@router.post("/{certificate_id}/onchain-mint", response_model=CertificateSyncResponse)
async def record_onchain_mint(
    certificate_id: UUID,
    payload: OnchainMintRequest,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Record a token the student minted from their own wallet, once the ledger confirms it."""
    certificate, result = await engine.record_onchain_mint(
        certificate_id, payload.wallet_address, payload.token_id
    )
    return CertificateSyncResponse(
        message=result.message,
        certificate=CertificateResponse.model_validate(certificate),
        blockchain_status=result.outcome.value,
        transaction_hash=result.tx_hash,
    )


@router.post("/{certificate_id}/revoke", response_model=CertificateSyncResponse)
async def revoke_certificate(
    certificate_id: UUID,
    payload: RevokeRequest,
    institution_id: UUID = Depends(get_current_institution_id),
    store: RecordStore = Depends(get_store),
    engine: ReconciliationEngine = Depends(get_engine),
):
    certificate = await store.require_certificate(certificate_id)
    if certificate.institution_id != institution_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the issuing institution can revoke this certificate",
        )
    
    result = await engine.revoke_certificate(certificate, payload.reason, revoked_by=str(institution_id))
    return CertificateSyncResponse(
        message=result.message,
        certificate=CertificateResponse.model_validate(certificate),
        blockchain_status=result.outcome.value,
        transaction_hash=result.tx_hash,
    )


@router.get("/verify/{identifier}", response_model=VerificationResult)
async def verify_certificate(
    identifier: str,
    resolver: VerificationResolver = Depends(get_resolver),
):
    """Verify by certificate id, ledger token id or content hash."""
    return await resolver.verify(identifier)


@router.get("/wallet/{wallet_address}", response_model=list[CertificateResponse])
async def certificates_for_wallet(
    wallet_address: str,
    store: RecordStore = Depends(get_store),
):
    certificates = await store.list_certificates_for_wallet(wallet_address)
    return [CertificateResponse.model_validate(c) for c in certificates]


@router.get("/institution", response_model=list[CertificateResponse])
async def certificates_for_institution(
    institution_id: UUID = Depends(get_current_institution_id),
    store: RecordStore = Depends(get_store),
):
    """Certificates issued by the calling institution."""
    certificates = await store.list_certificates_for_institution(institution_id)
    return [CertificateResponse.model_validate(c) for c in certificates]


@router.get("/stats", response_model=CertificateStats)
async def certificate_stats(
    institution_id: UUID = Depends(get_current_institution_id),
    service: IssuanceService = Depends(get_issuance_service),
):
    return await service.stats(institution_id)
