"""
EduChain - Verification Resolver Tests

Identifier dispatch, ledger cross-check and store self-healing.
"""

import uuid

import pytest
import pytest_asyncio

from educhain.bridges.ledger import IssueCertificateRequest
from educhain.core.errors import StoreNotFound
from educhain.schemas.certificate import VerificationMethod
from educhain.services.verification import VerificationResolver

CONTRACT = "0xBD4226De4D5f3A10A2B3c7E1e3a3b7CbBf442068"


@pytest.fixture
def resolver(store, ledger):
    return VerificationResolver(store, ledger, contract_address=CONTRACT)


@pytest_asyncio.fixture
async def minted_certificate(engine, make_institution, make_certificate):
    certificate = await make_certificate(await make_institution())
    await engine.reconcile_certificate(certificate)
    return certificate


class TestIdentifierDispatch:
    
    async def test_unminted_by_id_is_database_only(self, resolver, ledger, make_institution, make_certificate):
        certificate = await make_certificate(await make_institution(), student_address="")
        
        result = await resolver.verify(str(certificate.id))
        
        assert result.valid
        assert result.verification_method == VerificationMethod.DATABASE_ONLY
        assert result.blockchain_verification is None
        assert result.contract_address is None
        assert ledger.call_count() == 0
    
    async def test_minted_by_id(self, resolver, minted_certificate):
        result = await resolver.verify(str(minted_certificate.id))
        
        assert result.verification_method == VerificationMethod.DATABASE_AND_BLOCKCHAIN
        assert result.blockchain_verification["exists"] is True
        assert result.contract_address == CONTRACT
    
    async def test_by_token_id(self, resolver, minted_certificate):
        result = await resolver.verify(str(minted_certificate.token_id))
        
        assert result.verification_method == VerificationMethod.TOKEN_ID_AND_BLOCKCHAIN
        assert result.certificate.id == minted_certificate.id
    
    async def test_by_content_hash(self, resolver, minted_certificate):
        result = await resolver.verify(minted_certificate.content_hash)
        
        assert result.verification_method == VerificationMethod.IPFS_HASH_AND_BLOCKCHAIN
        assert result.valid
    
    async def test_unknown_identifiers(self, resolver):
        """Unknown ids, out-of-range token ids and non-ASCII digits are not found."""
        for identifier in (
            str(uuid.uuid4()),
            "424242",
            "QmNothingHere",
            "123456789012345678901234567890",
            "²",
        ):
            with pytest.raises(StoreNotFound):
                await resolver.verify(identifier)


class TestLedgerCrossCheck:
    
    async def test_ledger_revocation_corrects_store(self, resolver, ledger, store, minted_certificate):
        """Revoked on-chain, valid in the store: the ledger wins."""
        ledger.set_certificate_validity(minted_certificate.token_id, False)
        
        result = await resolver.verify(str(minted_certificate.id))
        
        assert result.valid is False
        assert result.corrected is True
        stored = await store.refresh(minted_certificate)
        assert stored.is_valid is False
        assert stored.revoked_at is not None
    
    async def test_matching_validity_not_corrected(self, resolver, minted_certificate):
        result = await resolver.verify(str(minted_certificate.id))
        
        assert result.valid
        assert result.corrected is False
    
    async def test_unreachable_ledger_embeds_error(self, resolver, ledger, minted_certificate):
        ledger.set_available(False)
        
        result = await resolver.verify(str(minted_certificate.id))
        
        assert result.valid
        assert result.blockchain_verification == {"error": "ledger node unreachable"}
        assert result.corrected is False
    
    async def test_hash_lookup_adopts_ledger_token(self, resolver, ledger, make_institution, make_certificate):
        """A certificate minted on-chain but recorded as unminted is healed."""
        certificate = await make_certificate(await make_institution())
        token_id = ledger.seed_certificate(IssueCertificateRequest(
            student_address=certificate.student_address,
            student_name=certificate.student_name,
            course_name=certificate.course_name,
            grade=certificate.grade,
            content_hash=certificate.content_hash,
            completion_timestamp=1719705600,
            certificate_type=certificate.certificate_type,
        ))
        
        result = await resolver.verify(certificate.content_hash)
        
        assert certificate.is_minted
        assert certificate.token_id == token_id
        assert result.certificate.token_id == token_id
        assert result.contract_address == CONTRACT
    
    async def test_pending_local_revocation_kept(self, resolver, engine, ledger, minted_certificate):
        """Revoked locally while the ledger was down: not reverted to valid."""
        ledger.set_available(False)
        await engine.revoke_certificate(minted_certificate, "Fraud")
        ledger.set_available(True)
        
        result = await resolver.verify(str(minted_certificate.id))
        
        assert result.valid is False
        assert result.corrected is False
