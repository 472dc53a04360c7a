"""
EduChain - Ledger Bridge

Capability contract for the on-chain certificate registry.
- Named-field result types, validated once at the adapter boundary
- "Confirmed not found" is a result (found=False), a failed query raises
- Every call bounded by a timeout; expiry raises LedgerTimeout
- Writes serialized through a single signer lock per client
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Optional, TypeVar

from educhain.core.config import Settings
from educhain.core.errors import LedgerUnavailable, LedgerTimeout
from educhain.schemas.base import CamelModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =========================================================================
# RESULT TYPES
# =========================================================================

class WriterHandle(CamelModel):
    """Signer the client submits transactions from."""
    address: str
    chain_id: int


class InstitutionLedgerState(CamelModel):
    """On-chain view of an institution address."""
    found: bool
    registered: bool = False
    authorized: bool = False
    registration_date: int = 0
    certificate_count: int = 0


class RegistrationReceipt(CamelModel):
    tx_hash: Optional[str] = None
    already_registered: bool = False


class TransactionReceipt(CamelModel):
    tx_hash: str
    block_number: Optional[int] = None


class MintReceipt(CamelModel):
    token_id: int
    tx_hash: str
    block_number: Optional[int] = None


class LedgerCertificate(CamelModel):
    """On-chain certificate record; ``exists=False`` when unknown."""
    exists: bool
    token_id: Optional[int] = None
    is_valid: Optional[bool] = None
    student_name: Optional[str] = None
    course_name: Optional[str] = None
    institution_name: Optional[str] = None
    issue_date: Optional[datetime] = None
    grade: Optional[str] = None
    content_hash: Optional[str] = None


class IssueCertificateRequest(CamelModel):
    student_address: str
    student_name: str
    course_name: str
    grade: str
    content_hash: str
    completion_timestamp: int
    certificate_type: str


# =========================================================================
# CAPABILITY
# =========================================================================

class LedgerClient(ABC):
    """
    Adapter over the external certificate registry.
    
    Instances are constructed once at startup and injected into the
    reconciliation engine and verification resolver.
    """
    
    mode: str = "abstract"
    
    def __init__(self, call_timeout: float = 30.0) -> None:
        self.call_timeout = call_timeout
        self._write_lock = asyncio.Lock()
    
    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the adapter has what it needs to reach the ledger."""
    
    async def bounded(self, operation: str, call: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await a ledger call under the client's time bound."""
        limit = timeout if timeout is not None else self.call_timeout
        try:
            return await asyncio.wait_for(call, timeout=limit)
        except asyncio.TimeoutError:
            logger.warning(f"[LEDGER] {operation} timed out after {limit}s")
            raise LedgerTimeout(f"ledger {operation} timed out after {limit}s")
    
    @abstractmethod
    async def connect(self) -> WriterHandle:
        """Load the signer. Raises LedgerUnavailable without a credential."""
    
    @abstractmethod
    async def query_institution(self, address: str) -> InstitutionLedgerState:
        ...
    
    @abstractmethod
    async def register_institution(self, name: str, email: str, wallet_address: str) -> RegistrationReceipt:
        ...
    
    @abstractmethod
    async def authorize_institution(self, address: str) -> TransactionReceipt:
        ...
    
    @abstractmethod
    async def issue_certificate(self, request: IssueCertificateRequest) -> MintReceipt:
        ...
    
    @abstractmethod
    async def verify_certificate(self, token_id: int) -> LedgerCertificate:
        ...
    
    @abstractmethod
    async def verify_certificate_by_content_hash(self, content_hash: str) -> LedgerCertificate:
        ...
    
    @abstractmethod
    async def revoke_certificate(self, token_id: int, reason: str = "") -> TransactionReceipt:
        ...
    
    async def close(self) -> None:
        """Release network resources."""
        return None


class DisabledLedgerClient(LedgerClient):
    """Ledger switched off by configuration. Every call is unavailable."""
    
    mode = "disabled"
    
    @property
    def is_configured(self) -> bool:
        return False
    
    def _unavailable(self) -> LedgerUnavailable:
        return LedgerUnavailable("ledger not configured")
    
    async def connect(self) -> WriterHandle:
        raise self._unavailable()
    
    async def query_institution(self, address: str) -> InstitutionLedgerState:
        raise self._unavailable()
    
    async def register_institution(self, name: str, email: str, wallet_address: str) -> RegistrationReceipt:
        raise self._unavailable()
    
    async def authorize_institution(self, address: str) -> TransactionReceipt:
        raise self._unavailable()
    
    async def issue_certificate(self, request: IssueCertificateRequest) -> MintReceipt:
        raise self._unavailable()
    
    async def verify_certificate(self, token_id: int) -> LedgerCertificate:
        raise self._unavailable()
    
    async def verify_certificate_by_content_hash(self, content_hash: str) -> LedgerCertificate:
        raise self._unavailable()
    
    async def revoke_certificate(self, token_id: int, reason: str = "") -> TransactionReceipt:
        raise self._unavailable()


def build_ledger_client(settings: Settings) -> LedgerClient:
    """Select the ledger implementation named by LEDGER_MODE."""
    if settings.LEDGER_MODE == "fake":
        from educhain.services.mocks.ledger import FakeLedgerClient
        
        client: LedgerClient = FakeLedgerClient(call_timeout=settings.LEDGER_CALL_TIMEOUT_SECONDS)
    elif settings.LEDGER_MODE == "web3":
        from educhain.bridges.web3_ledger import Web3LedgerClient
        
        client = Web3LedgerClient(
            rpc_url=settings.LEDGER_RPC_URL,
            contract_address=settings.LEDGER_CONTRACT_ADDRESS,
            private_key=settings.LEDGER_PRIVATE_KEY,
            chain_id=settings.LEDGER_CHAIN_ID,
            call_timeout=settings.LEDGER_CALL_TIMEOUT_SECONDS,
            receipt_timeout=settings.LEDGER_RECEIPT_TIMEOUT_SECONDS,
        )
    else:
        client = DisabledLedgerClient(call_timeout=settings.LEDGER_CALL_TIMEOUT_SECONDS)
    
    logger.info(f"[LEDGER] Using {client.mode} ledger client (configured={client.is_configured})")
    return client
