"""
EduChain - Reconciliation Engine

Keeps the record store's ledger-sync fields in agreement with the on-chain
registry for every state-changing operation:

- Institution registration (idempotent, query before register)
- Institution authorization (gated on registration)
- Certificate minting (at-most-once, adopts an existing on-chain token)
- Certificate revocation (local first, ledger second)

Ledger failures never propagate: each call ends in a recorded
``blockchain_error`` plus a SyncOutcome. The ledger is authoritative for
registration, authorization and validity; the store is authoritative for
workflow status.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from educhain.bridges.ledger import IssueCertificateRequest, LedgerClient
from educhain.core.errors import (
    AuthorizationMismatch,
    InvalidRequest,
    LedgerConflict,
    LedgerError,
    LedgerTimeout,
    LedgerUnavailable,
    PreconditionFailed,
)
from educhain.models import Certificate, Institution, VerificationStatus
from educhain.services.records import RecordStore

logger = logging.getLogger(__name__)

LEDGER_UNAVAILABLE = "ledger unavailable"


class SyncOutcome(str, Enum):
    """Classification of one reconciliation attempt."""
    ALREADY_SYNCED = "already_synced"
    NEWLY_SYNCED = "newly_synced"
    DEGRADED_NO_LEDGER = "degraded_no_ledger"
    FAILED = "failed"
    SKIPPED = "skipped"
    
    @property
    def succeeded(self) -> bool:
        return self in (SyncOutcome.ALREADY_SYNCED, SyncOutcome.NEWLY_SYNCED)


class ReconcileResult(BaseModel):
    """Outcome plus the caller-visible message for one reconciliation."""
    outcome: SyncOutcome
    message: str
    tx_hash: Optional[str] = None
    wrote_ledger: bool = False


class ReconciliationEngine:
    """
    Drives institutions and certificates through the ledger.
    
    One engine per unit of work: it holds the request's RecordStore and the
    application's injected LedgerClient. The ledger client serializes the
    actual transactions, so concurrent engines are safe.
    """
    
    def __init__(self, store: RecordStore, ledger: LedgerClient) -> None:
        self.store = store
        self.ledger = ledger
    
    async def _connect_ledger(self) -> None:
        if not self.ledger.is_configured:
            raise LedgerUnavailable("ledger not configured")
        await self.ledger.connect()
    
    # =========================================================================
    # INSTITUTION REGISTRATION
    # =========================================================================
    
    async def reconcile_institution(self, institution: Institution) -> ReconcileResult:
        """
        Ensure an approved institution is registered on the ledger.
        
        Registers only after the ledger confirms the address is unknown; a
        failed query degrades instead, so a transient error can never cause
        a duplicate registration.
        """
        if institution.verification_status != VerificationStatus.APPROVED:
            raise PreconditionFailed(
                f"Institution {institution.name} is not approved "
                f"(status: {institution.verification_status.value})"
            )
        
        try:
            await self._connect_ledger()
            state = await self.ledger.query_institution(institution.wallet_address)
        except LedgerUnavailable as e:
            return await self._degrade_institution(institution, e)
        except LedgerError as e:
            return await self._fail_institution(institution, e)
        
        if state.found and state.authorized:
            institution.blockchain_registered = True
            institution.blockchain_authorized = True
            institution.blockchain_error = None
            self._adopt_registration_date(institution, state.registration_date)
            await self.store.save(institution)
            return ReconcileResult(
                outcome=SyncOutcome.ALREADY_SYNCED,
                message="Institution already registered and authorized on blockchain",
            )
        
        if state.found:
            return await self._adopt_registration(institution, state.registration_date)
        
        try:
            receipt = await self.ledger.register_institution(
                institution.name, institution.email, institution.wallet_address
            )
        except LedgerConflict:
            return await self._adopt_registration(institution)
        except LedgerTimeout as e:
            return await self._fail_institution(institution, e, wrote=True)
        except LedgerUnavailable as e:
            return await self._degrade_institution(institution, e)
        except LedgerError as e:
            return await self._fail_institution(institution, e, wrote=True)
        
        if receipt.already_registered:
            return await self._adopt_registration(institution)
        
        institution.blockchain_registered = True
        institution.blockchain_tx_hash = receipt.tx_hash
        institution.blockchain_registration_date = datetime.utcnow()
        institution.blockchain_error = None
        await self.store.save(institution)
        
        logger.info(f"[RECONCILE] Institution {institution.id} registered on-chain: {receipt.tx_hash}")
        return ReconcileResult(
            outcome=SyncOutcome.NEWLY_SYNCED,
            message="Institution registered on blockchain",
            tx_hash=receipt.tx_hash,
            wrote_ledger=True,
        )
    
    async def _adopt_registration(self, institution: Institution, registration_date: int = 0) -> ReconcileResult:
        institution.blockchain_registered = True
        institution.blockchain_error = None
        self._adopt_registration_date(institution, registration_date)
        await self.store.save(institution)
        return ReconcileResult(
            outcome=SyncOutcome.ALREADY_SYNCED,
            message="Institution already registered on blockchain",
        )
    
    @staticmethod
    def _adopt_registration_date(institution: Institution, registration_date: int) -> None:
        if institution.blockchain_registration_date is None and registration_date:
            institution.blockchain_registration_date = datetime.utcfromtimestamp(registration_date)
    
    async def _degrade_institution(self, institution: Institution, error: LedgerError) -> ReconcileResult:
        logger.warning(f"[RECONCILE] Institution {institution.id} degraded: {error.message}")
        institution.blockchain_registered = False
        institution.blockchain_authorized = False
        institution.blockchain_error = LEDGER_UNAVAILABLE
        await self.store.save(institution)
        return ReconcileResult(
            outcome=SyncOutcome.DEGRADED_NO_LEDGER,
            message=f"Blockchain unavailable: {error.message}",
        )
    
    async def _fail_institution(self, institution: Institution, error: LedgerError, wrote: bool = False) -> ReconcileResult:
        logger.warning(f"[RECONCILE] Institution {institution.id} registration failed: {error.message}")
        institution.blockchain_registered = False
        institution.blockchain_authorized = False
        institution.blockchain_error = error.message
        await self.store.save(institution)
        return ReconcileResult(
            outcome=SyncOutcome.FAILED,
            message=f"Blockchain registration failed: {error.message}",
            wrote_ledger=wrote,
        )
    
    # =========================================================================
    # INSTITUTION AUTHORIZATION
    # =========================================================================
    
    async def authorize_institution(self, institution: Institution) -> ReconcileResult:
        """Authorize a registered institution to issue on-chain."""
        if not institution.is_verified:
            raise PreconditionFailed("Institution must be verified before authorization")
        if not institution.blockchain_registered:
            raise PreconditionFailed("Institution must be registered on blockchain before authorization")
        
        try:
            await self._connect_ledger()
            state = await self.ledger.query_institution(institution.wallet_address)
        except LedgerUnavailable as e:
            return await self._record_institution_error(institution, e, SyncOutcome.DEGRADED_NO_LEDGER)
        except LedgerError as e:
            return await self._record_institution_error(institution, e, SyncOutcome.FAILED)
        
        if not state.found:
            # Store drift: cached flag said registered, ledger disagrees
            institution.blockchain_registered = False
            institution.blockchain_authorized = False
            institution.blockchain_error = "institution not registered on ledger"
            await self.store.save(institution)
            logger.warning(f"[RECONCILE] Institution {institution.id} registration flag was stale")
            return ReconcileResult(
                outcome=SyncOutcome.FAILED,
                message="Institution is not registered on blockchain; re-run registration",
            )
        
        if state.authorized:
            return await self._adopt_authorization(institution)
        
        try:
            receipt = await self.ledger.authorize_institution(institution.wallet_address)
        except LedgerConflict:
            return await self._adopt_authorization(institution)
        except LedgerTimeout as e:
            return await self._record_institution_error(institution, e, SyncOutcome.FAILED, wrote=True)
        except LedgerUnavailable as e:
            return await self._record_institution_error(institution, e, SyncOutcome.DEGRADED_NO_LEDGER)
        except LedgerError as e:
            return await self._record_institution_error(institution, e, SyncOutcome.FAILED, wrote=True)
        
        institution.blockchain_authorized = True
        institution.blockchain_auth_tx_hash = receipt.tx_hash
        institution.blockchain_authorization_date = datetime.utcnow()
        institution.blockchain_error = None
        await self.store.save(institution)
        
        logger.info(f"[RECONCILE] Institution {institution.id} authorized on-chain: {receipt.tx_hash}")
        return ReconcileResult(
            outcome=SyncOutcome.NEWLY_SYNCED,
            message="Institution authorized on blockchain",
            tx_hash=receipt.tx_hash,
            wrote_ledger=True,
        )
    
    async def _adopt_authorization(self, institution: Institution) -> ReconcileResult:
        institution.blockchain_authorized = True
        institution.blockchain_error = None
        await self.store.save(institution)
        return ReconcileResult(
            outcome=SyncOutcome.ALREADY_SYNCED,
            message="Institution already authorized on blockchain",
        )
    
    async def _record_institution_error(
        self,
        institution: Institution,
        error: LedgerError,
        outcome: SyncOutcome,
        wrote: bool = False,
    ) -> ReconcileResult:
        logger.warning(f"[RECONCILE] Institution {institution.id} authorization {outcome.value}: {error.message}")
        institution.blockchain_error = (
            LEDGER_UNAVAILABLE if outcome == SyncOutcome.DEGRADED_NO_LEDGER else error.message
        )
        await self.store.save(institution)
        return ReconcileResult(
            outcome=outcome,
            message=f"Blockchain authorization not completed: {error.message}",
            wrote_ledger=wrote,
        )
    
    # =========================================================================
    # CERTIFICATE MINTING
    # =========================================================================
    
    async def reconcile_certificate(
        self,
        certificate: Certificate,
        student_address: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Mint a certificate on the ledger at most once.
        
        Without a student address the certificate stays store-only. Before
        issuing, the ledger is asked for the content hash so a token minted by
        an earlier, partially recorded attempt is adopted instead of duplicated.
        """
        address = (student_address if student_address is not None else certificate.student_address) or ""
        address = address.strip()
        
        if not address:
            return ReconcileResult(
                outcome=SyncOutcome.SKIPPED,
                message="No student wallet address; certificate stored without minting",
            )
        if certificate.is_minted:
            return ReconcileResult(
                outcome=SyncOutcome.ALREADY_SYNCED,
                message=f"Certificate already minted as token {certificate.token_id}",
            )
        if not certificate.content_hash:
            return ReconcileResult(
                outcome=SyncOutcome.SKIPPED,
                message="Certificate has no content reference; minting not attempted",
            )
        if not certificate.is_valid:
            return ReconcileResult(
                outcome=SyncOutcome.SKIPPED,
                message="Certificate is revoked; minting not attempted",
            )
        
        try:
            await self._connect_ledger()
            existing = await self.ledger.verify_certificate_by_content_hash(certificate.content_hash)
        except LedgerUnavailable as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.DEGRADED_NO_LEDGER)
        except LedgerError as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.FAILED)
        
        if existing.exists and existing.token_id is not None:
            return await self._adopt_token(certificate, existing.token_id, address)
        
        request = IssueCertificateRequest(
            student_address=address,
            student_name=certificate.student_name,
            course_name=certificate.course_name,
            grade=certificate.grade,
            content_hash=certificate.content_hash,
            completion_timestamp=int(certificate.completion_date.replace(tzinfo=timezone.utc).timestamp()),
            certificate_type=certificate.certificate_type,
        )
        
        try:
            receipt = await self.ledger.issue_certificate(request)
        except LedgerConflict as e:
            return await self._resolve_mint_conflict(certificate, address, e)
        except LedgerTimeout as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.FAILED, wrote=True)
        except LedgerUnavailable as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.DEGRADED_NO_LEDGER)
        except LedgerError as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.FAILED, wrote=True)
        
        self._mark_minted(certificate, receipt.token_id, address)
        certificate.blockchain_tx_hash = receipt.tx_hash
        certificate.blockchain_block_number = receipt.block_number
        await self.store.save(certificate)
        
        logger.info(f"[RECONCILE] Certificate {certificate.id} minted as token {receipt.token_id}: {receipt.tx_hash}")
        return ReconcileResult(
            outcome=SyncOutcome.NEWLY_SYNCED,
            message=f"Certificate minted as token {receipt.token_id}",
            tx_hash=receipt.tx_hash,
            wrote_ledger=True,
        )
    
    async def mint_for_student(self, certificate_id: uuid.UUID, wallet_address: Optional[str]) -> tuple[Certificate, ReconcileResult]:
        """
        Student-initiated mint.
        
        The wallet must match the recorded student address (case-insensitive);
        the check runs before any ledger interaction.
        """
        certificate, wallet = await self._require_owner(certificate_id, wallet_address)
        return certificate, await self.reconcile_certificate(certificate, wallet)
    
    async def record_onchain_mint(
        self,
        certificate_id: uuid.UUID,
        wallet_address: Optional[str],
        token_id: Optional[int],
    ) -> tuple[Certificate, ReconcileResult]:
        """
        Record a token the student minted from their own wallet.
        
        The reported token is accepted only after the ledger confirms it
        exists and carries this certificate's content hash.
        """
        if token_id is None or token_id < 0:
            raise InvalidRequest("tokenId is required")
        certificate, wallet = await self._require_owner(certificate_id, wallet_address)
        
        if certificate.is_minted:
            if certificate.token_id != token_id:
                raise PreconditionFailed(f"Certificate already minted as token {certificate.token_id}")
            return certificate, ReconcileResult(
                outcome=SyncOutcome.ALREADY_SYNCED,
                message=f"Certificate already minted as token {token_id}",
            )
        
        try:
            if not self.ledger.is_configured:
                raise LedgerUnavailable("ledger not configured")
            on_chain = await self.ledger.verify_certificate(token_id)
        except LedgerUnavailable as e:
            return certificate, await self._record_certificate_error(certificate, e, SyncOutcome.DEGRADED_NO_LEDGER)
        except LedgerError as e:
            return certificate, await self._record_certificate_error(certificate, e, SyncOutcome.FAILED)
        
        if not on_chain.exists:
            raise InvalidRequest(f"Token {token_id} does not exist on the ledger")
        if certificate.content_hash and on_chain.content_hash != certificate.content_hash:
            raise InvalidRequest(f"Token {token_id} does not belong to this certificate")
        
        return certificate, await self._adopt_token(certificate, token_id, wallet)
    
    async def _require_owner(self, certificate_id: uuid.UUID, wallet_address: Optional[str]) -> tuple[Certificate, str]:
        wallet = (wallet_address or "").strip()
        if not wallet:
            raise InvalidRequest("walletAddress is required")
        
        certificate = await self.store.require_certificate(certificate_id)
        
        recorded = (certificate.student_address or "").strip()
        if not recorded or recorded.lower() != wallet.lower():
            raise AuthorizationMismatch("Wallet address does not match certificate owner")
        if not certificate.is_valid:
            raise PreconditionFailed("Certificate has been revoked")
        return certificate, wallet
    
    async def adopt_token(self, certificate: Certificate, token_id: int) -> ReconcileResult:
        """Record a token found on the ledger for an unminted certificate."""
        return await self._adopt_token(certificate, token_id, certificate.student_address)
    
    async def _adopt_token(self, certificate: Certificate, token_id: int, address: str) -> ReconcileResult:
        owner = await self.store.get_certificate_by_token(token_id)
        if owner is not None and owner.id != certificate.id:
            error = LedgerConflict(f"token {token_id} already linked to certificate {owner.id}")
            return await self._record_certificate_error(certificate, error, SyncOutcome.FAILED)
        
        self._mark_minted(certificate, token_id, address)
        await self.store.save(certificate)
        logger.info(f"[RECONCILE] Certificate {certificate.id} adopted existing token {token_id}")
        return ReconcileResult(
            outcome=SyncOutcome.ALREADY_SYNCED,
            message=f"Certificate already on blockchain as token {token_id}",
        )
    
    async def _resolve_mint_conflict(self, certificate: Certificate, address: str, error: LedgerConflict) -> ReconcileResult:
        try:
            existing = await self.ledger.verify_certificate_by_content_hash(certificate.content_hash)
        except LedgerError:
            existing = None
        if existing is not None and existing.exists and existing.token_id is not None:
            return await self._adopt_token(certificate, existing.token_id, address)
        return await self._record_certificate_error(certificate, error, SyncOutcome.FAILED, wrote=True)
    
    @staticmethod
    def _mark_minted(certificate: Certificate, token_id: int, address: str) -> None:
        certificate.is_minted = True
        certificate.token_id = token_id
        certificate.minted_to = address
        certificate.minted_at = datetime.utcnow()
        certificate.blockchain_error = None
    
    async def _record_certificate_error(
        self,
        certificate: Certificate,
        error: LedgerError,
        outcome: SyncOutcome,
        wrote: bool = False,
    ) -> ReconcileResult:
        logger.warning(f"[RECONCILE] Certificate {certificate.id} {outcome.value}: {error.message}")
        certificate.blockchain_error = (
            LEDGER_UNAVAILABLE if outcome == SyncOutcome.DEGRADED_NO_LEDGER else error.message
        )
        await self.store.save(certificate)
        return ReconcileResult(
            outcome=outcome,
            message=f"Blockchain operation not completed: {error.message}",
            wrote_ledger=wrote,
        )
    
    # =========================================================================
    # CERTIFICATE REVOCATION
    # =========================================================================
    
    async def revoke_certificate(
        self,
        certificate: Certificate,
        reason: str = "",
        revoked_by: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Invalidate locally, then revoke on the ledger if minted.
        
        A ledger failure is recorded without rolling back the local revocation.
        """
        already_revoked = not certificate.is_valid and certificate.revoked_at is not None
        if already_revoked and (not certificate.is_minted or certificate.blockchain_revoke_tx_hash):
            return ReconcileResult(
                outcome=SyncOutcome.ALREADY_SYNCED,
                message="Certificate already revoked",
            )
        
        if not already_revoked:
            certificate.is_valid = False
            certificate.revoked_at = datetime.utcnow()
            certificate.revoked_by = revoked_by
            certificate.revoke_reason = reason or None
            await self.store.save(certificate)
            logger.info(f"[RECONCILE] Certificate {certificate.id} revoked locally")
        
        if not certificate.is_minted:
            return ReconcileResult(
                outcome=SyncOutcome.SKIPPED,
                message="Certificate revoked; not minted on blockchain",
            )
        
        try:
            await self._connect_ledger()
            receipt = await self.ledger.revoke_certificate(certificate.token_id, reason)
        except LedgerConflict:
            certificate.blockchain_error = None
            await self.store.save(certificate)
            return ReconcileResult(
                outcome=SyncOutcome.ALREADY_SYNCED,
                message="Certificate already revoked on blockchain",
            )
        except LedgerTimeout as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.FAILED, wrote=True)
        except LedgerUnavailable as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.DEGRADED_NO_LEDGER)
        except LedgerError as e:
            return await self._record_certificate_error(certificate, e, SyncOutcome.FAILED, wrote=True)
        
        certificate.blockchain_revoke_tx_hash = receipt.tx_hash
        certificate.blockchain_revoke_block_number = receipt.block_number
        certificate.blockchain_error = None
        await self.store.save(certificate)
        
        logger.info(f"[RECONCILE] Certificate {certificate.id} revoked on-chain: {receipt.tx_hash}")
        return ReconcileResult(
            outcome=SyncOutcome.NEWLY_SYNCED,
            message="Certificate revoked on blockchain",
            tx_hash=receipt.tx_hash,
            wrote_ledger=True,
        )
