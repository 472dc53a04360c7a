from typing import Optional

from educhain.schemas.base import CamelModel


class SyncItemResult(CamelModel):
    name: str
    outcome: str
    detail: str
    transaction_hash: Optional[str] = None


class SummaryReport(CamelModel):
    """Aggregate result of a bulk synchronization run."""
    total: int = 0
    successful: int = 0
    errors: int = 0
    per_item_results: list[SyncItemResult] = []
