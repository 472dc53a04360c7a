"""
EduChain - Certificate Issuance

Issue flow:
1. Gate: verified institution, or one on an active free trial
2. Duplicate (student, course, institution) check, before upload and ledger
3. Upload the artifact to the content store
4. Create the unminted record (even when the upload failed)
5. Hand the record to the reconciliation engine for minting
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import Field
from sqlalchemy.exc import IntegrityError

from educhain.bridges.content import ContentReference, ContentStore
from educhain.core.errors import (
    ContentUploadFailure,
    DuplicateCertificate,
    InvalidRequest,
    IssuanceForbidden,
)
from educhain.models import FREE_TRIAL_PLAN, Certificate, Institution
from educhain.schemas.base import CamelModel
from educhain.schemas.certificate import CertificateStats
from educhain.services.reconciliation import ReconcileResult, ReconciliationEngine, SyncOutcome
from educhain.services.records import RecordStore

logger = logging.getLogger(__name__)


class CertificateDraft(CamelModel):
    """Certificate fields supplied by the issuing institution."""
    student_name: str = Field(min_length=1, max_length=255)
    course_name: str = Field(min_length=1, max_length=255)
    student_address: str = ""
    student_id: Optional[str] = None
    student_email: Optional[str] = None
    grade: str = "N/A"
    certificate_type: str = "Academic"
    completion_date: Optional[datetime] = None


@dataclass
class IssueOutcome:
    certificate: Certificate
    ledger: ReconcileResult
    content: Optional[ContentReference] = None


class IssuanceService:
    """Issues certificates for an institution and hands them to the ledger."""
    
    def __init__(self, store: RecordStore, engine: ReconciliationEngine, content_store: ContentStore) -> None:
        self.store = store
        self.engine = engine
        self.content_store = content_store
    
    async def _check_can_issue(self, institution: Institution) -> None:
        if institution.is_verified:
            return
        subscription = await self.store.get_active_subscription(institution.id)
        if subscription is None or subscription.plan_id != FREE_TRIAL_PLAN:
            raise IssuanceForbidden("Institution must be verified to issue certificates")
    
    async def issue(
        self,
        institution_id: uuid.UUID,
        draft: CertificateDraft,
        artifact: bytes,
        filename: str = "certificate.pdf",
        content_type: str = "application/pdf",
    ) -> IssueOutcome:
        institution = await self.store.require_institution(institution_id)
        await self._check_can_issue(institution)
        
        if not draft.student_name.strip() or not draft.course_name.strip():
            raise InvalidRequest("Student name and course name are required")
        if not artifact:
            raise InvalidRequest("Certificate file is required")
        
        student_address = draft.student_address.strip()
        duplicate = await self.store.find_duplicate_certificate(
            institution.id,
            draft.course_name,
            student_id=draft.student_id,
            student_address=student_address,
        )
        if duplicate is not None:
            raise DuplicateCertificate(
                f"Certificate already issued for this student and course ({duplicate.id})"
            )
        
        completion_date = draft.completion_date or datetime.utcnow()
        if completion_date.tzinfo is not None:
            completion_date = completion_date.astimezone(timezone.utc).replace(tzinfo=None)
        
        content: Optional[ContentReference] = None
        upload_error: Optional[str] = None
        try:
            content = await self.content_store.upload(artifact, filename, content_type)
        except ContentUploadFailure as e:
            upload_error = e.message
            logger.warning(f"[ISSUANCE] Artifact upload failed for {draft.student_name}: {e.message}")
        
        certificate = Certificate(
            institution_id=institution.id,
            institution_name=institution.name,
            student_id=draft.student_id,
            student_address=student_address,
            student_name=draft.student_name,
            student_email=draft.student_email,
            course_name=draft.course_name,
            grade=draft.grade or "N/A",
            certificate_type=draft.certificate_type or "Academic",
            completion_date=completion_date,
            issued_at=datetime.utcnow(),
            content_hash=content.hash if content else None,
            is_valid=True,
            is_minted=False,
            blockchain_error=f"content upload failed: {upload_error}" if upload_error else None,
        )
        try:
            await self.store.add_certificate(certificate)
        except IntegrityError as e:
            await self.store.rollback()
            raise DuplicateCertificate("Certificate already issued for this student and course") from e
        
        logger.info(f"[ISSUANCE] Certificate {certificate.id} stored for {institution.name}")
        
        if content is None:
            ledger = ReconcileResult(
                outcome=SyncOutcome.SKIPPED,
                message="Content upload failed; blockchain minting not attempted",
            )
        else:
            ledger = await self.engine.reconcile_certificate(certificate)
        
        return IssueOutcome(certificate=certificate, ledger=ledger, content=content)
    
    async def stats(self, institution_id: uuid.UUID) -> CertificateStats:
        """Dashboard counts for one issuing institution."""
        stats = CertificateStats()
        for certificate_type, is_valid, is_minted, count in await self.store.count_certificates_for_institution(institution_id):
            stats.total_certificates += count
            if is_valid:
                stats.active_certificates += count
            else:
                stats.revoked_certificates += count
            if is_minted:
                stats.minted_certificates += count
            stats.certificates_by_type[certificate_type] = stats.certificates_by_type.get(certificate_type, 0) + count
        return stats
