"""Ledger status reporting: store flags next to live ledger state."""

import logging
import uuid

from educhain.bridges.ledger import LedgerClient
from educhain.core.errors import LedgerError
from educhain.models import Institution
from educhain.schemas.institution import InstitutionLedgerStatus, LedgerSummary
from educhain.services.records import RecordStore

logger = logging.getLogger(__name__)


class LedgerStatusService:
    
    def __init__(self, store: RecordStore, ledger: LedgerClient) -> None:
        self.store = store
        self.ledger = ledger
    
    async def _status(self, institution: Institution) -> InstitutionLedgerStatus:
        status = InstitutionLedgerStatus(
            institution_id=institution.id,
            name=institution.name,
            wallet_address=institution.wallet_address,
            is_verified=institution.is_verified,
            blockchain_registered=institution.blockchain_registered,
            blockchain_authorized=institution.blockchain_authorized,
            blockchain_error=institution.blockchain_error,
        )
        try:
            state = await self.ledger.query_institution(institution.wallet_address)
        except LedgerError as e:
            logger.warning(f"[LEDGER] Status query for {institution.id} failed: {e.message}")
            status.ledger = {"error": e.message}
            return status
        
        status.ledger = state.model_dump(by_alias=True)
        status.in_sync = (
            state.registered == institution.blockchain_registered
            and state.authorized == institution.blockchain_authorized
        )
        return status
    
    async def institution_status(self, institution_id: uuid.UUID) -> InstitutionLedgerStatus:
        institution = await self.store.require_institution(institution_id)
        return await self._status(institution)
    
    async def all_statuses(self) -> list[InstitutionLedgerStatus]:
        """Live status of every verified institution, queried one at a time."""
        statuses = []
        for institution in await self.store.list_institutions(verified_only=True):
            statuses.append(await self._status(institution))
        return statuses
    
    async def summary(self) -> LedgerSummary:
        institutions = await self.store.list_institutions()
        verified = [i for i in institutions if i.is_verified]
        return LedgerSummary(
            total=len(institutions),
            verified=len(verified),
            registered=sum(1 for i in institutions if i.blockchain_registered),
            authorized=sum(1 for i in institutions if i.blockchain_authorized),
            pending_registration=sum(1 for i in verified if not i.blockchain_registered),
            pending_authorization=sum(
                1 for i in institutions if i.blockchain_registered and not i.blockchain_authorized
            ),
        )
