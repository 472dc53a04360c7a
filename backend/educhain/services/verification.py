"""
EduChain - Verification Resolver

Resolves a certificate identifier to one verification result:
- store-native UUID  -> lookup by id
- all digits         -> lookup by ledger token id
- anything else      -> lookup by content hash

The store answers first. The ledger cross-check degrades to an embedded
error note instead of failing the verification, and a validity mismatch
is corrected in the store before responding.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from educhain.bridges.ledger import LedgerCertificate, LedgerClient
from educhain.core.errors import LedgerError, StoreNotFound
from educhain.models import Certificate
from educhain.schemas.certificate import CertificateResponse, VerificationMethod, VerificationResult
from educhain.services.reconciliation import ReconciliationEngine
from educhain.services.records import RecordStore

logger = logging.getLogger(__name__)

# token_id is a BigInteger column
MAX_STORED_TOKEN_ID = 2**63 - 1


class VerificationResolver:
    """Answers "is this certificate genuine?" from the store, cross-checked against the ledger."""
    
    def __init__(
        self,
        store: RecordStore,
        ledger: LedgerClient,
        contract_address: Optional[str] = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.contract_address = contract_address
        self.engine = ReconciliationEngine(store, ledger)
    
    async def _lookup(self, identifier: str) -> tuple[str, Optional[Certificate]]:
        try:
            certificate_id = uuid.UUID(identifier)
        except ValueError:
            certificate_id = None
        
        if certificate_id is not None:
            return "id", await self.store.get_certificate(certificate_id)
        if identifier.isascii() and identifier.isdigit():
            token_id = int(identifier)
            if token_id > MAX_STORED_TOKEN_ID:
                return "token", None
            return "token", await self.store.get_certificate_by_token(token_id)
        return "hash", await self.store.get_certificate_by_content_hash(identifier)
    
    async def verify(self, identifier: str) -> VerificationResult:
        identifier = identifier.strip()
        kind, certificate = await self._lookup(identifier)
        if certificate is None:
            raise StoreNotFound("Certificate not found")
        
        ledger_view: Optional[dict] = None
        corrected = False
        
        if kind == "hash" or certificate.is_minted:
            try:
                if kind == "hash":
                    on_chain = await self.ledger.verify_certificate_by_content_hash(identifier)
                else:
                    on_chain = await self.ledger.verify_certificate(certificate.token_id)
            except LedgerError as e:
                logger.warning(f"[VERIFY] Ledger check for {certificate.id} failed: {e.message}")
                ledger_view = {"error": e.message}
            else:
                ledger_view = on_chain.model_dump(by_alias=True, mode="json")
                if on_chain.exists:
                    if not certificate.is_minted and on_chain.token_id is not None:
                        await self.engine.adopt_token(certificate, on_chain.token_id)
                    corrected = await self._apply_ledger_validity(certificate, on_chain)
                elif certificate.is_minted:
                    logger.warning(
                        f"[VERIFY] Certificate {certificate.id} minted as token "
                        f"{certificate.token_id} but not found on ledger"
                    )
        
        if kind == "hash":
            method = VerificationMethod.IPFS_HASH_AND_BLOCKCHAIN
        elif kind == "token":
            method = VerificationMethod.TOKEN_ID_AND_BLOCKCHAIN
        elif certificate.is_minted:
            method = VerificationMethod.DATABASE_AND_BLOCKCHAIN
        else:
            method = VerificationMethod.DATABASE_ONLY
        
        return VerificationResult(
            valid=certificate.is_valid,
            certificate=CertificateResponse.model_validate(certificate),
            blockchain_verification=ledger_view,
            verification_method=method,
            contract_address=self.contract_address if certificate.is_minted else None,
            corrected=corrected,
            verified_at=datetime.utcnow(),
        )
    
    async def _apply_ledger_validity(self, certificate: Certificate, on_chain: LedgerCertificate) -> bool:
        """Overwrite store validity with the ledger's. Returns True if changed."""
        if on_chain.is_valid is None or on_chain.is_valid == certificate.is_valid:
            return False
        
        if on_chain.is_valid and certificate.revoked_at is not None:
            # Local revocation whose ledger leg has not landed yet
            logger.info(f"[VERIFY] Certificate {certificate.id} revocation pending on ledger")
            return False
        
        certificate.is_valid = on_chain.is_valid
        if not on_chain.is_valid:
            certificate.revoked_at = datetime.utcnow()
            certificate.revoke_reason = certificate.revoke_reason or "revoked on blockchain"
        await self.store.save(certificate)
        
        logger.warning(
            f"[VERIFY] Certificate {certificate.id} validity corrected from ledger: "
            f"is_valid={certificate.is_valid}"
        )
        return True
