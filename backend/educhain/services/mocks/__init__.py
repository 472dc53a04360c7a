"""Deterministic in-memory stand-ins for the external ledger and content store."""

from educhain.services.mocks.ledger import FakeLedgerClient
from educhain.services.mocks.content import FakeContentStore

__all__ = ["FakeLedgerClient", "FakeContentStore"]
