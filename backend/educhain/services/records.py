"""
EduChain - Record Store

Entity-shaped reads and writes over one AsyncSession. The reconciliation
core goes through this class only and never builds queries itself.
``save`` commits per call so each bulk item persists independently.
"""

import uuid
from datetime import datetime
from typing import Optional, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from educhain.core.errors import StoreNotFound
from educhain.models import (
    Certificate,
    Institution,
    RequestStatus,
    Subscription,
    VerificationRequest,
)

E = TypeVar("E")


class RecordStore:
    """Record store for institutions, certificates, requests and subscriptions."""
    
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
    
    async def save(self, entity: E) -> E:
        self.session.add(entity)
        await self.session.commit()
        return entity
    
    async def rollback(self) -> None:
        await self.session.rollback()
    
    async def refresh(self, entity: E) -> E:
        await self.session.refresh(entity)
        return entity
    
    # =========================================================================
    # INSTITUTIONS
    # =========================================================================
    
    async def get_institution(self, institution_id: uuid.UUID) -> Optional[Institution]:
        return await self.session.get(Institution, institution_id)
    
    async def require_institution(self, institution_id: uuid.UUID) -> Institution:
        institution = await self.get_institution(institution_id)
        if institution is None:
            raise StoreNotFound(f"Institution {institution_id} not found")
        return institution
    
    async def get_institution_by_wallet(self, wallet_address: str) -> Optional[Institution]:
        result = await self.session.execute(
            select(Institution).where(func.lower(Institution.wallet_address) == wallet_address.lower())
        )
        return result.scalar_one_or_none()
    
    async def find_institution_conflict(self, email: str, wallet_address: str, registration_number: str) -> Optional[Institution]:
        result = await self.session.execute(
            select(Institution).where(
                or_(
                    Institution.email == email,
                    func.lower(Institution.wallet_address) == wallet_address.lower(),
                    Institution.registration_number == registration_number,
                )
            )
        )
        return result.scalars().first()
    
    async def list_institutions(self, verified_only: bool = False) -> list[Institution]:
        query = select(Institution).order_by(Institution.created_at, Institution.name)
        if verified_only:
            query = query.where(Institution.is_verified.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())
    
    async def add_institution(self, institution: Institution) -> Institution:
        return await self.save(institution)
    
    # =========================================================================
    # CERTIFICATES
    # =========================================================================
    
    async def get_certificate(self, certificate_id: uuid.UUID) -> Optional[Certificate]:
        return await self.session.get(Certificate, certificate_id)
    
    async def require_certificate(self, certificate_id: uuid.UUID) -> Certificate:
        certificate = await self.get_certificate(certificate_id)
        if certificate is None:
            raise StoreNotFound(f"Certificate {certificate_id} not found")
        return certificate
    
    async def get_certificate_by_token(self, token_id: int) -> Optional[Certificate]:
        result = await self.session.execute(
            select(Certificate).where(Certificate.token_id == token_id)
        )
        return result.scalar_one_or_none()
    
    async def get_certificate_by_content_hash(self, content_hash: str) -> Optional[Certificate]:
        result = await self.session.execute(
            select(Certificate).where(Certificate.content_hash == content_hash)
        )
        return result.scalars().first()
    
    async def find_duplicate_certificate(
        self,
        institution_id: uuid.UUID,
        course_name: str,
        student_id: Optional[str] = None,
        student_address: Optional[str] = None,
    ) -> Optional[Certificate]:
        """Existing certificate for the same student, course and institution.
        
        The student is identified by ``student_id`` when given, else by wallet.
        """
        query = select(Certificate).where(
            Certificate.institution_id == institution_id,
            Certificate.course_name == course_name,
        )
        if student_id:
            query = query.where(Certificate.student_id == student_id)
        elif student_address:
            query = query.where(func.lower(Certificate.student_address) == student_address.lower())
        else:
            return None
        result = await self.session.execute(query)
        return result.scalars().first()
    
    async def list_unminted_certificates(self) -> list[Certificate]:
        result = await self.session.execute(
            select(Certificate)
            .where(Certificate.is_minted.is_(False))
            .where(Certificate.is_valid.is_(True))
            .where(Certificate.student_address != "")
            .where(Certificate.content_hash.is_not(None))
            .order_by(Certificate.issued_at)
        )
        return list(result.scalars().all())
    
    async def list_certificates_for_wallet(self, wallet_address: str) -> list[Certificate]:
        result = await self.session.execute(
            select(Certificate)
            .where(func.lower(Certificate.student_address) == wallet_address.lower())
            .order_by(Certificate.issued_at.desc())
        )
        return list(result.scalars().all())
    
    async def list_certificates_for_institution(self, institution_id: uuid.UUID) -> list[Certificate]:
        result = await self.session.execute(
            select(Certificate)
            .where(Certificate.institution_id == institution_id)
            .order_by(Certificate.issued_at.desc())
        )
        return list(result.scalars().all())
    
    async def count_certificates_for_institution(self, institution_id: uuid.UUID) -> list[tuple[str, bool, bool, int]]:
        """Certificate counts grouped by (type, is_valid, is_minted)."""
        result = await self.session.execute(
            select(
                Certificate.certificate_type,
                Certificate.is_valid,
                Certificate.is_minted,
                func.count(Certificate.id),
            )
            .where(Certificate.institution_id == institution_id)
            .group_by(Certificate.certificate_type, Certificate.is_valid, Certificate.is_minted)
        )
        return [tuple(row) for row in result.all()]
    
    async def add_certificate(self, certificate: Certificate) -> Certificate:
        return await self.save(certificate)
    
    # =========================================================================
    # VERIFICATION REQUESTS
    # =========================================================================
    
    async def require_verification_request(self, request_id: uuid.UUID) -> VerificationRequest:
        request = await self.session.get(VerificationRequest, request_id)
        if request is None:
            raise StoreNotFound(f"Verification request {request_id} not found")
        return request
    
    async def latest_verification_request(self, institution_id: uuid.UUID) -> Optional[VerificationRequest]:
        result = await self.session.execute(
            select(VerificationRequest)
            .where(VerificationRequest.institution_id == institution_id)
            .order_by(VerificationRequest.submitted_at.desc())
        )
        return result.scalars().first()
    
    async def list_verification_requests(self, status: Optional[RequestStatus] = None) -> list[VerificationRequest]:
        query = select(VerificationRequest).order_by(VerificationRequest.submitted_at)
        if status is not None:
            query = query.where(VerificationRequest.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())
    
    async def add_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        return await self.save(request)
    
    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================
    
    async def get_active_subscription(self, institution_id: uuid.UUID) -> Optional[Subscription]:
        now = datetime.utcnow()
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.institution_id == institution_id)
            .where(Subscription.status == "active")
            .where(or_(Subscription.expires_at.is_(None), Subscription.expires_at > now))
            .order_by(Subscription.created_at.desc())
        )
        return result.scalars().first()
