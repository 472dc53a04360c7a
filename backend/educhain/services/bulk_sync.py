"""
EduChain - Bulk Synchronizer

Repairs drift between the record store and the ledger in batch:
- verified institutions not yet registered on-chain
- valid certificates with a wallet and content hash that are not minted

Items are processed strictly one after another. The ledger enforces a
single sender nonce sequence, so this must stay sequential even though the
runtime could run items concurrently. After each ledger write the run
pauses for the settle interval before the next item.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from educhain.models import Institution
from educhain.schemas.sync import SummaryReport, SyncItemResult
from educhain.services.reconciliation import ReconcileResult, ReconciliationEngine, SyncOutcome
from educhain.services.records import RecordStore

logger = logging.getLogger(__name__)

InstitutionPredicate = Callable[[Institution], bool]


def needs_registration(institution: Institution) -> bool:
    """Default selection: verified but not ledger-registered."""
    return institution.is_verified and not institution.blockchain_registered


class BulkSynchronizer:
    """
    Sequential batch driver over the reconciliation engine.
    
    One failing item never aborts the batch; it is recorded and the run
    moves on.
    """
    
    def __init__(
        self,
        store: RecordStore,
        engine: ReconciliationEngine,
        settle_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.engine = engine
        self.settle_seconds = settle_seconds
        self._sleep = sleep
    
    async def sync_all(self, predicate: Optional[InstitutionPredicate] = None) -> SummaryReport:
        """Register every selected institution on the ledger."""
        predicate = predicate or needs_registration
        institutions = [i for i in await self.store.list_institutions() if predicate(i)]
        logger.info(f"[BULK_SYNC] Registering {len(institutions)} institutions")
        
        report = await self._run(institutions, self.engine.reconcile_institution, lambda i: i.name)
        logger.info(
            f"[BULK_SYNC] Institutions done: total={report.total} "
            f"successful={report.successful} errors={report.errors}"
        )
        return report
    
    async def sync_unminted_certificates(self) -> SummaryReport:
        """Mint every valid certificate that has a wallet and content hash."""
        certificates = await self.store.list_unminted_certificates()
        logger.info(f"[BULK_SYNC] Minting {len(certificates)} certificates")
        
        report = await self._run(
            certificates,
            self.engine.reconcile_certificate,
            lambda c: f"{c.student_name} - {c.course_name}",
        )
        logger.info(
            f"[BULK_SYNC] Certificates done: total={report.total} "
            f"successful={report.successful} errors={report.errors}"
        )
        return report
    
    async def _run(
        self,
        items: list,
        reconcile: Callable[..., Awaitable[ReconcileResult]],
        label: Callable[[object], str],
    ) -> SummaryReport:
        report = SummaryReport(total=len(items))
        names = [label(item) for item in items]
        stale = False
        
        for index, (item, name) in enumerate(zip(items, names)):
            try:
                if stale:
                    # Rollback expired everything loaded in the session
                    await self.store.refresh(item)
                result = await reconcile(item)
            except Exception as e:
                logger.exception(f"[BULK_SYNC] {name} raised: {e}")
                await self.store.rollback()
                stale = True
                report.errors += 1
                report.per_item_results.append(SyncItemResult(
                    name=name,
                    outcome=SyncOutcome.FAILED.value,
                    detail=str(e),
                ))
                continue
            
            if result.outcome.succeeded:
                report.successful += 1
            else:
                report.errors += 1
            report.per_item_results.append(SyncItemResult(
                name=name,
                outcome=result.outcome.value,
                detail=result.message,
                transaction_hash=result.tx_hash,
            ))
            
            if result.wrote_ledger and index < len(items) - 1:
                await self._sleep(self.settle_seconds)
        
        return report
