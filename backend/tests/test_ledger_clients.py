"""
EduChain - Ledger Client Tests

Fake registry contract behavior, error classification for the web3
adapter, the Pinata content store, and client selection from settings.
"""

import asyncio
from datetime import datetime

import httpx
import pytest
from web3.exceptions import ContractLogicError, TimeExhausted

from educhain.bridges.content import PinataContentStore, build_content_store
from educhain.bridges.ledger import DisabledLedgerClient, IssueCertificateRequest, build_ledger_client
from educhain.bridges.web3_ledger import Web3LedgerClient, classify_error
from educhain.core.config import Settings
from educhain.core.errors import (
    ContentUploadFailure,
    LedgerConflict,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
)
from educhain.services.mocks import FakeContentStore, FakeLedgerClient


def certificate_request(**overrides) -> IssueCertificateRequest:
    fields = {
        "student_address": "0xDEF",
        "student_name": "Jane Doe",
        "course_name": "BSc Computer Science",
        "grade": "A",
        "content_hash": "QmTestHash",
        "completion_timestamp": int(datetime(2024, 6, 30).timestamp()),
        "certificate_type": "Academic",
    }
    fields.update(overrides)
    return IssueCertificateRequest(**fields)


class TestFakeLedger:
    
    async def test_register_then_query(self, ledger):
        receipt = await ledger.register_institution("Acme U", "a@acme.edu", "0xABC")
        state = await ledger.query_institution("0xabc")
        
        assert receipt.tx_hash.startswith("0x")
        assert state.found and state.registered
        assert not state.authorized
    
    async def test_register_twice_reports_already_registered(self, ledger):
        await ledger.register_institution("Acme U", "a@acme.edu", "0xABC")
        
        receipt = await ledger.register_institution("Acme U", "a@acme.edu", "0xABC")
        
        assert receipt.already_registered
        assert ledger.write_count() == 1
    
    async def test_authorize_requires_registration(self, ledger):
        with pytest.raises(LedgerRejected):
            await ledger.authorize_institution("0xABC")
    
    async def test_reauthorize_conflicts(self, ledger):
        ledger.seed_institution("0xABC", authorized=True)
        
        with pytest.raises(LedgerConflict):
            await ledger.authorize_institution("0xABC")
    
    async def test_issue_and_verify(self, ledger):
        receipt = await ledger.issue_certificate(certificate_request())
        
        by_token = await ledger.verify_certificate(receipt.token_id)
        by_hash = await ledger.verify_certificate_by_content_hash("QmTestHash")
        
        assert by_token.exists and by_token.is_valid
        assert by_hash.token_id == receipt.token_id
        assert by_token.course_name == "BSc Computer Science"
    
    async def test_unknown_token_does_not_exist(self, ledger):
        result = await ledger.verify_certificate(999)
        
        assert not result.exists
        assert result.token_id is None
    
    async def test_future_graduation_date_rejected(self, ledger):
        future = int(datetime(2999, 1, 1).timestamp())
        
        with pytest.raises(LedgerRejected, match="Invalid graduation date"):
            await ledger.issue_certificate(certificate_request(completion_timestamp=future))
    
    async def test_duplicate_student_course_conflicts(self, ledger):
        await ledger.issue_certificate(certificate_request())
        
        with pytest.raises(LedgerConflict):
            await ledger.issue_certificate(certificate_request(content_hash="QmOther", student_address="0xdef"))
    
    async def test_revoke_twice_conflicts(self, ledger):
        receipt = await ledger.issue_certificate(certificate_request())
        await ledger.revoke_certificate(receipt.token_id, "Fraud")
        
        with pytest.raises(LedgerConflict, match="already revoked"):
            await ledger.revoke_certificate(receipt.token_id, "Fraud")
    
    async def test_unavailable_and_queued_failures(self, ledger):
        ledger.fail_next("query_institution", LedgerRejected("boom"))
        with pytest.raises(LedgerRejected):
            await ledger.query_institution("0xABC")
        
        # Queued failure is consumed
        state = await ledger.query_institution("0xABC")
        assert not state.found
        
        ledger.set_available(False)
        with pytest.raises(LedgerUnavailable):
            await ledger.connect()
        assert ledger.call_count("query_institution") == 2
    
    async def test_latency_beyond_bound_times_out(self):
        ledger = FakeLedgerClient(call_timeout=0.05)
        ledger.set_latency(0.5)
        
        with pytest.raises(LedgerTimeout):
            await ledger.query_institution("0xABC")
    
    async def test_writes_are_serialized(self, ledger):
        ledger.set_latency(0.01)
        
        receipts = await asyncio.gather(*[
            ledger.issue_certificate(certificate_request(
                student_address=f"0x{n}", content_hash=f"QmHash{n}"
            ))
            for n in range(5)
        ])
        
        assert sorted(r.token_id for r in receipts) == [1, 2, 3, 4, 5]
        assert ledger.write_count() == 5
    
    async def test_reset(self, ledger):
        ledger.seed_institution("0xABC")
        ledger.set_available(False)
        
        ledger.reset()
        
        assert ledger.institution("0xABC") is None
        assert ledger.call_count() == 0
        assert (await ledger.query_institution("0xABC")).found is False


class TestDisabledLedger:
    
    async def test_every_call_unavailable(self):
        ledger = DisabledLedgerClient()
        
        assert not ledger.is_configured
        with pytest.raises(LedgerUnavailable):
            await ledger.connect()
        with pytest.raises(LedgerUnavailable):
            await ledger.verify_certificate(1)


class TestErrorClassification:
    
    def test_already_registered_revert_is_conflict(self):
        error = classify_error("register_institution", ContractLogicError("execution reverted: Institution already registered"))
        assert isinstance(error, LedgerConflict)
    
    def test_other_revert_is_rejected(self):
        error = classify_error("issue_certificate", ContractLogicError("execution reverted: Pausable: paused"))
        assert isinstance(error, LedgerRejected)
    
    def test_receipt_timeout(self):
        assert isinstance(classify_error("issue_certificate", TimeExhausted("no receipt")), LedgerTimeout)
    
    def test_transport_error_is_unavailable(self):
        assert isinstance(classify_error("connect", ConnectionError("refused")), LedgerUnavailable)
    
    def test_bad_argument_is_rejected(self):
        assert isinstance(classify_error("authorize_institution", ValueError("bad address")), LedgerRejected)
    
    def test_ledger_errors_pass_through(self):
        original = LedgerConflict("already revoked")
        assert classify_error("revoke_certificate", original) is original


class TestWeb3Client:
    
    async def test_connect_without_key_unavailable(self):
        client = Web3LedgerClient(rpc_url="http://localhost:8545", contract_address="0xBD4228241dc6BC14C027bF8B6A24f97bc9872068")
        
        assert client.is_configured
        with pytest.raises(LedgerUnavailable, match="signing credential"):
            await client.connect()
    
    async def test_missing_contract_unconfigured(self):
        client = Web3LedgerClient(rpc_url="http://localhost:8545", contract_address=None, private_key="0x01")
        
        assert not client.is_configured
        with pytest.raises(LedgerUnavailable):
            await client.query_institution("0xABC")
    
    def test_invalid_address_rejected(self):
        with pytest.raises(LedgerRejected):
            Web3LedgerClient._checksum("0x999")
    
    def test_certificate_tuple_decoding(self):
        missing = Web3LedgerClient._certificate((False, False, "", "", "", 0, "", ""), None)
        found = Web3LedgerClient._certificate(
            (True, False, "Jane Doe", "BSc", "Acme U", 1719705600, "A", "QmHash"), 7
        )
        
        assert not missing.exists
        assert found.token_id == 7
        assert found.is_valid is False
        assert found.issue_date == datetime(2024, 6, 30)


class TestClientSelection:
    
    def test_fake_mode(self):
        settings = Settings(LEDGER_MODE="fake", LEDGER_CALL_TIMEOUT_SECONDS=5)
        client = build_ledger_client(settings)
        
        assert isinstance(client, FakeLedgerClient)
        assert client.call_timeout == 5
    
    def test_web3_mode(self):
        client = build_ledger_client(Settings(LEDGER_MODE="web3"))
        
        assert isinstance(client, Web3LedgerClient)
        assert client.chain_id == 8453
    
    def test_disabled_mode(self):
        assert isinstance(build_ledger_client(Settings(LEDGER_MODE="disabled")), DisabledLedgerClient)
    
    def test_content_store_modes(self):
        assert isinstance(build_content_store(Settings(CONTENT_STORE_MODE="fake")), FakeContentStore)
        assert isinstance(build_content_store(Settings(CONTENT_STORE_MODE="pinata")), PinataContentStore)


class TestPinataContentStore:
    
    @staticmethod
    def store_with(handler, jwt="test-jwt") -> PinataContentStore:
        store = PinataContentStore(jwt=jwt)
        store.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return store
    
    async def test_upload_returns_reference(self):
        seen = {}
        
        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"IpfsHash": "QmPinned", "PinSize": 20})
        
        store = self.store_with(handler)
        reference = await store.upload(b"%PDF", "cert.pdf", "application/pdf")
        await store.close()
        
        assert reference.hash == "QmPinned"
        assert reference.url == "https://gateway.pinata.cloud/ipfs/QmPinned"
        assert seen["url"] == "https://api.pinata.cloud/pinning/pinFileToIPFS"
        assert seen["auth"] == "Bearer test-jwt"
    
    async def test_error_status_raises(self):
        store = self.store_with(lambda request: httpx.Response(401, json={"error": "unauthorized"}))
        
        with pytest.raises(ContentUploadFailure, match="401"):
            await store.upload(b"%PDF", "cert.pdf")
        await store.close()
    
    async def test_non_json_body_raises(self):
        """A gateway page with a 2xx status is an upload failure."""
        store = self.store_with(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        
        with pytest.raises(ContentUploadFailure, match="invalid JSON"):
            await store.upload(b"%PDF", "cert.pdf")
        await store.close()
    
    async def test_missing_credential_raises(self):
        store = self.store_with(lambda request: httpx.Response(200), jwt=None)
        
        with pytest.raises(ContentUploadFailure, match="credential"):
            await store.upload(b"%PDF", "cert.pdf")
        await store.close()
