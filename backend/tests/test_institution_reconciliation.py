"""
EduChain - Institution Reconciliation Tests

Registration and authorization legs against the fake ledger:
- Idempotence (never two registration transactions)
- Degradation when the ledger is unreachable
- Query failure never leads to registration
- Races and drift resolved in the ledger's favor
"""

import pytest

from educhain.core.errors import (
    LedgerConflict,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
    PreconditionFailed,
)
from educhain.models import VerificationStatus
from educhain.services.mocks import FakeLedgerClient
from educhain.services.reconciliation import LEDGER_UNAVAILABLE, ReconciliationEngine, SyncOutcome


class TestRegistration:
    """reconcile_institution happy paths and idempotency."""
    
    async def test_registers_unknown_institution(self, engine, ledger, make_institution):
        """A confirmed not-found institution is registered."""
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.NEWLY_SYNCED
        assert result.wrote_ledger
        assert institution.blockchain_registered
        assert institution.blockchain_tx_hash == result.tx_hash
        assert institution.blockchain_registration_date is not None
        assert institution.blockchain_error is None
        assert ledger.institution("0xabc") is not None
    
    async def test_second_call_is_already_synced(self, engine, ledger, make_institution):
        """Reconciling twice never produces two registration transactions."""
        institution = await make_institution()
        
        first = await engine.reconcile_institution(institution)
        second = await engine.reconcile_institution(institution)
        
        assert first.outcome == SyncOutcome.NEWLY_SYNCED
        assert second.outcome == SyncOutcome.ALREADY_SYNCED
        assert ledger.call_count("register_institution") == 1
        assert ledger.write_count() == 1
    
    async def test_already_authorized_on_ledger(self, engine, ledger, make_institution):
        """Existing authorization is adopted without a write."""
        ledger.seed_institution("0xABC", authorized=True)
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.ALREADY_SYNCED
        assert institution.blockchain_registered
        assert institution.blockchain_authorized
        assert ledger.call_count("register_institution") == 0
    
    async def test_registered_but_not_authorized(self, engine, ledger, make_institution):
        """Registered-only leaves authorization untouched."""
        ledger.seed_institution("0xABC", authorized=False)
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.ALREADY_SYNCED
        assert institution.blockchain_registered
        assert not institution.blockchain_authorized
        assert institution.blockchain_registration_date is not None
        assert ledger.call_count("register_institution") == 0
    
    async def test_concurrent_registration_conflict_is_success(self, engine, ledger, make_institution):
        """'Already registered' from the register call is treated as synced."""
        ledger.fail_next("register_institution", LedgerConflict("Institution already registered"))
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.ALREADY_SYNCED
        assert institution.blockchain_registered
        assert institution.blockchain_error is None
    
    async def test_requires_approved_status(self, engine, ledger, make_institution):
        """Pending institutions are rejected before touching the ledger."""
        institution = await make_institution(status=VerificationStatus.PENDING)
        
        with pytest.raises(PreconditionFailed) as exc:
            await engine.reconcile_institution(institution)
        
        assert "not approved" in str(exc.value)
        assert ledger.call_count() == 0


class TestRegistrationFailures:
    """Ledger failures become a recorded error plus an outcome."""
    
    async def test_unreachable_ledger_degrades(self, engine, ledger, store, make_institution):
        """Approval stands in the store when the ledger is down."""
        ledger.set_available(False)
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.DEGRADED_NO_LEDGER
        stored = await store.refresh(institution)
        assert stored.verification_status == VerificationStatus.APPROVED
        assert stored.is_verified
        assert not stored.blockchain_registered
        assert stored.blockchain_error == LEDGER_UNAVAILABLE
    
    async def test_unconfigured_ledger_degrades(self, engine, ledger, make_institution):
        ledger.set_configured(False)
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.DEGRADED_NO_LEDGER
        assert ledger.call_count("register_institution") == 0
    
    async def test_failed_query_never_registers(self, engine, ledger, make_institution):
        """A failed query is not a not-found."""
        ledger.fail_next("query_institution", LedgerUnavailable("rpc error"))
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.DEGRADED_NO_LEDGER
        assert ledger.call_count("register_institution") == 0
    
    async def test_rejected_registration_fails(self, engine, ledger, make_institution):
        ledger.fail_next("register_institution", LedgerRejected("Pausable: paused"))
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.FAILED
        assert not institution.blockchain_registered
        assert "paused" in institution.blockchain_error
    
    async def test_write_timeout_fails(self, engine, ledger, make_institution):
        """A timed-out write may still land, so it is a failure, not a degrade."""
        ledger.fail_next("register_institution", LedgerTimeout("ledger register_institution timed out"))
        institution = await make_institution()
        
        result = await engine.reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.FAILED
        assert "timed out" in institution.blockchain_error
    
    async def test_slow_ledger_degrades(self, store, make_institution):
        """A stalled ledger call is cut off by the client's time bound."""
        slow = FakeLedgerClient(call_timeout=0.05)
        slow.set_latency(0.5)
        institution = await make_institution()
        
        result = await ReconciliationEngine(store, slow).reconcile_institution(institution)
        
        assert result.outcome == SyncOutcome.DEGRADED_NO_LEDGER
        assert institution.blockchain_error == LEDGER_UNAVAILABLE
    
    async def test_degrade_clears_cached_flags(self, engine, ledger, make_institution):
        """authorized implies registered, even after a degrade."""
        institution = await make_institution(blockchain_registered=True, blockchain_authorized=True)
        ledger.set_available(False)
        
        await engine.reconcile_institution(institution)
        
        assert not institution.blockchain_registered
        assert not institution.blockchain_authorized


class TestAuthorization:
    """authorize_institution gating and idempotency."""
    
    async def test_unregistered_fails_fast(self, engine, ledger, make_institution):
        institution = await make_institution()
        
        with pytest.raises(PreconditionFailed):
            await engine.authorize_institution(institution)
        
        assert ledger.call_count() == 0
    
    async def test_unverified_fails_fast(self, engine, ledger, make_institution):
        institution = await make_institution(status=VerificationStatus.REJECTED, blockchain_registered=True)
        
        with pytest.raises(PreconditionFailed):
            await engine.authorize_institution(institution)
    
    async def test_authorizes_registered_institution(self, engine, ledger, make_institution):
        institution = await make_institution()
        await engine.reconcile_institution(institution)
        
        result = await engine.authorize_institution(institution)
        
        assert result.outcome == SyncOutcome.NEWLY_SYNCED
        assert institution.blockchain_authorized
        assert institution.blockchain_auth_tx_hash == result.tx_hash
        assert institution.blockchain_authorization_date is not None
        assert ledger.institution("0xABC")["authorized"]
    
    async def test_authorize_is_idempotent(self, engine, ledger, make_institution):
        institution = await make_institution()
        await engine.reconcile_institution(institution)
        await engine.authorize_institution(institution)
        
        result = await engine.authorize_institution(institution)
        
        assert result.outcome == SyncOutcome.ALREADY_SYNCED
        assert ledger.call_count("authorize_institution") == 1
    
    async def test_stale_registration_flag_detected(self, engine, ledger, make_institution):
        """Store says registered, ledger does not: the flag is corrected."""
        institution = await make_institution(blockchain_registered=True)
        
        result = await engine.authorize_institution(institution)
        
        assert result.outcome == SyncOutcome.FAILED
        assert not institution.blockchain_registered
        assert ledger.call_count("authorize_institution") == 0
    
    async def test_ledger_down_degrades(self, engine, ledger, make_institution):
        institution = await make_institution()
        await engine.reconcile_institution(institution)
        ledger.set_available(False)
        
        result = await engine.authorize_institution(institution)
        
        assert result.outcome == SyncOutcome.DEGRADED_NO_LEDGER
        assert institution.blockchain_registered
        assert not institution.blockchain_authorized
