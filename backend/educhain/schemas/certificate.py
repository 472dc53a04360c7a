from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from educhain.schemas.base import CamelModel


class VerificationMethod(str, Enum):
    DATABASE_ONLY = "database_only"
    DATABASE_AND_BLOCKCHAIN = "database_and_blockchain"
    IPFS_HASH_AND_BLOCKCHAIN = "ipfs_hash_and_blockchain"
    TOKEN_ID_AND_BLOCKCHAIN = "token_id_and_blockchain"


class CertificateResponse(CamelModel):
    """Certificate with its content reference and ledger-sync fields."""
    id: UUID
    institution_id: UUID
    institution_name: str
    student_id: Optional[str] = None
    student_address: str
    student_name: str
    student_email: Optional[str] = None
    course_name: str
    grade: str
    certificate_type: str
    completion_date: datetime
    issued_at: datetime
    content_hash: Optional[str] = None
    is_valid: bool
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    is_minted: bool
    token_id: Optional[int] = None
    minted_to: Optional[str] = None
    minted_at: Optional[datetime] = None
    blockchain_tx_hash: Optional[str] = None
    blockchain_block_number: Optional[int] = None
    blockchain_revoke_tx_hash: Optional[str] = None
    blockchain_error: Optional[str] = None


class IssueResponse(CamelModel):
    message: str
    certificate: CertificateResponse
    blockchain_status: str
    blockchain_message: str
    content_url: Optional[str] = None


class MintRequest(CamelModel):
    wallet_address: Optional[str] = None


class RevokeRequest(CamelModel):
    reason: str = ""


class CertificateSyncResponse(CamelModel):
    """Response of a mint or revoke call."""
    message: str
    certificate: CertificateResponse
    blockchain_status: str
    transaction_hash: Optional[str] = None


class VerificationResult(CamelModel):
    """Unified store + ledger view of one certificate."""
    valid: bool
    certificate: CertificateResponse
    blockchain_verification: Optional[dict] = None
    verification_method: VerificationMethod
    contract_address: Optional[str] = None
    corrected: bool = False
    verified_at: datetime


class OnchainMintRequest(CamelModel):
    """Token minted by the student's own wallet."""
    token_id: Optional[int] = None
    wallet_address: Optional[str] = None


class CertificateStats(CamelModel):
    total_certificates: int = 0
    active_certificates: int = 0
    revoked_certificates: int = 0
    minted_certificates: int = 0
    certificates_by_type: dict[str, int] = {}
