"""
EduChain - External Bridges

- Ledger: on-chain certificate registry (web3 adapter, disabled client)
- Content: content-addressed artifact storage (IPFS pinning)
"""

from .ledger import (
    DisabledLedgerClient,
    InstitutionLedgerState,
    IssueCertificateRequest,
    LedgerCertificate,
    LedgerClient,
    MintReceipt,
    RegistrationReceipt,
    TransactionReceipt,
    WriterHandle,
    build_ledger_client,
)
from .content import ContentReference, ContentStore, build_content_store

__all__ = [
    "LedgerClient",
    "DisabledLedgerClient",
    "build_ledger_client",
    "WriterHandle",
    "InstitutionLedgerState",
    "RegistrationReceipt",
    "TransactionReceipt",
    "MintReceipt",
    "LedgerCertificate",
    "IssueCertificateRequest",
    "ContentStore",
    "ContentReference",
    "build_content_store",
]
