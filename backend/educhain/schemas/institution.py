from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from educhain.models import RequestStatus, VerificationStatus
from educhain.schemas.base import CamelModel


class InstitutionCreate(CamelModel):
    """Schema for registering an institution."""
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    wallet_address: str = Field(min_length=3, max_length=42)
    registration_number: str = Field(min_length=1, max_length=100)


class InstitutionResponse(CamelModel):
    """Institution with its ledger-sync fields."""
    id: UUID
    name: str
    email: str
    wallet_address: str
    registration_number: str
    verification_status: VerificationStatus
    is_verified: bool
    blockchain_registered: bool
    blockchain_authorized: bool
    blockchain_tx_hash: Optional[str] = None
    blockchain_auth_tx_hash: Optional[str] = None
    blockchain_registration_date: Optional[datetime] = None
    blockchain_authorization_date: Optional[datetime] = None
    blockchain_error: Optional[str] = None
    created_at: Optional[datetime] = None


class LedgerSyncResponse(CamelModel):
    """Response of a ledger-register or ledger-authorize call."""
    status: str
    message: str
    institution: InstitutionResponse
    blockchain_status: str
    transaction_hash: Optional[str] = None


class VerificationRequestCreate(CamelModel):
    documents: list[str] = Field(default_factory=list)


class VerificationRequestResponse(CamelModel):
    id: UUID
    institution_id: UUID
    documents: list[str]
    status: RequestStatus
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    comments: Optional[str] = None


class ReviewDecision(CamelModel):
    status: RequestStatus
    comments: Optional[str] = None


class ReviewResponse(CamelModel):
    message: str
    request: VerificationRequestResponse
    institution: InstitutionResponse
    blockchain_status: Optional[str] = None
    blockchain_message: Optional[str] = None


class InstitutionLedgerStatus(CamelModel):
    """Store flags next to the live ledger view (or the error reaching it)."""
    institution_id: UUID
    name: str
    wallet_address: str
    is_verified: bool
    blockchain_registered: bool
    blockchain_authorized: bool
    blockchain_error: Optional[str] = None
    ledger: Optional[dict] = None
    in_sync: Optional[bool] = None


class LedgerSummary(CamelModel):
    total: int
    verified: int
    registered: int
    authorized: int
    pending_registration: int
    pending_authorization: int
