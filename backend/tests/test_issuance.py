"""
EduChain - Certificate Issuance Tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from educhain.core.errors import DuplicateCertificate, InvalidRequest, IssuanceForbidden
from educhain.models import FREE_TRIAL_PLAN, Subscription, VerificationStatus
from educhain.services.issuance import CertificateDraft, IssuanceService
from educhain.services.reconciliation import SyncOutcome

ARTIFACT = b"%PDF-1.4 certificate"


@pytest.fixture
def issuance(store, engine, content_store):
    return IssuanceService(store, engine, content_store)


def draft(**overrides) -> CertificateDraft:
    fields = {
        "student_name": "Jane Doe",
        "course_name": "BSc Computer Science",
        "student_address": "0xDEF",
        "student_id": "STU001",
        "completion_date": datetime(2024, 6, 30),
    }
    fields.update(overrides)
    return CertificateDraft(**fields)


class TestIssue:
    
    async def test_issues_and_mints(self, issuance, ledger, content_store, make_institution):
        institution = await make_institution()
        
        outcome = await issuance.issue(institution.id, draft(), ARTIFACT)
        
        assert outcome.ledger.outcome == SyncOutcome.NEWLY_SYNCED
        assert outcome.certificate.is_minted
        assert outcome.certificate.content_hash == outcome.content.hash
        assert content_store.get(outcome.content.hash) == ARTIFACT
        assert outcome.certificate.institution_name == institution.name
    
    async def test_without_address_stores_only(self, issuance, ledger, make_institution):
        institution = await make_institution()
        
        outcome = await issuance.issue(institution.id, draft(student_address=""), ARTIFACT)
        
        assert outcome.ledger.outcome == SyncOutcome.SKIPPED
        assert not outcome.certificate.is_minted
        assert outcome.certificate.content_hash is not None
        assert ledger.call_count() == 0
    
    async def test_duplicate_rejected_before_upload_and_ledger(
        self, issuance, ledger, content_store, make_institution
    ):
        institution = await make_institution()
        await issuance.issue(institution.id, draft(), ARTIFACT)
        uploads = content_store.upload_count
        ledger_calls = ledger.call_count()
        
        with pytest.raises(DuplicateCertificate):
            await issuance.issue(institution.id, draft(), b"another file")
        
        assert content_store.upload_count == uploads
        assert ledger.call_count() == ledger_calls
    
    async def test_duplicate_by_wallet_when_no_student_id(self, issuance, make_institution):
        institution = await make_institution()
        await issuance.issue(institution.id, draft(student_id=None), ARTIFACT)
        
        with pytest.raises(DuplicateCertificate):
            await issuance.issue(institution.id, draft(student_id=None, student_address="0xdef"), ARTIFACT)
    
    async def test_upload_failure_keeps_record(self, issuance, ledger, content_store, make_institution):
        institution = await make_institution()
        content_store.set_failing(True)
        
        outcome = await issuance.issue(institution.id, draft(), ARTIFACT)
        
        assert outcome.ledger.outcome == SyncOutcome.SKIPPED
        assert outcome.content is None
        assert outcome.certificate.content_hash is None
        assert outcome.certificate.blockchain_error == "content upload failed: content store unavailable"
        assert ledger.call_count() == 0
    
    async def test_ledger_down_keeps_record(self, issuance, ledger, make_institution):
        institution = await make_institution()
        ledger.set_available(False)
        
        outcome = await issuance.issue(institution.id, draft(), ARTIFACT)
        
        assert outcome.ledger.outcome == SyncOutcome.DEGRADED_NO_LEDGER
        assert not outcome.certificate.is_minted
        assert outcome.certificate.id is not None
    
    async def test_empty_artifact_rejected(self, issuance, make_institution):
        institution = await make_institution()
        
        with pytest.raises(InvalidRequest):
            await issuance.issue(institution.id, draft(), b"")
    
    async def test_aware_completion_date_normalized(self, issuance, make_institution):
        institution = await make_institution()
        aware = datetime(2024, 6, 30, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        
        outcome = await issuance.issue(institution.id, draft(completion_date=aware), ARTIFACT)
        
        assert outcome.certificate.completion_date == datetime(2024, 6, 30, 10, 0)


class TestIssuanceGate:
    
    async def test_unverified_institution_forbidden(self, issuance, content_store, make_institution):
        institution = await make_institution(status=VerificationStatus.PENDING)
        
        with pytest.raises(IssuanceForbidden):
            await issuance.issue(institution.id, draft(), ARTIFACT)
        assert content_store.upload_count == 0
    
    async def test_free_trial_may_issue(self, issuance, store, make_institution):
        institution = await make_institution(status=VerificationStatus.PENDING)
        await store.save(Subscription(institution_id=institution.id, plan_id=FREE_TRIAL_PLAN))
        
        outcome = await issuance.issue(institution.id, draft(), ARTIFACT)
        
        assert outcome.certificate.id is not None
    
    async def test_expired_trial_forbidden(self, issuance, store, make_institution):
        institution = await make_institution(status=VerificationStatus.PENDING)
        await store.save(Subscription(
            institution_id=institution.id,
            plan_id=FREE_TRIAL_PLAN,
            expires_at=datetime.utcnow() - timedelta(days=1),
        ))
        
        with pytest.raises(IssuanceForbidden):
            await issuance.issue(institution.id, draft(), ARTIFACT)
