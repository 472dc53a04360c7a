"""
EduChain - Fake Ledger Client
Deterministic in-memory certificate registry

Selected with LEDGER_MODE=fake and used by the test suite.

Contract (mirrors the registry contract's observable behavior):
    - Registering a known address reports alreadyRegistered
    - Authorizing requires registration; re-authorizing conflicts
    - One certificate per (student address, course)
    - Revoking twice conflicts
    - Unknown token ids / hashes verify as exists=False
"""

import asyncio
import hashlib
from datetime import datetime
from typing import Optional

from educhain.bridges.ledger import (
    InstitutionLedgerState,
    IssueCertificateRequest,
    LedgerCertificate,
    LedgerClient,
    MintReceipt,
    RegistrationReceipt,
    TransactionReceipt,
    WriterHandle,
)
from educhain.core.errors import LedgerConflict, LedgerRejected, LedgerUnavailable

FAKE_SIGNER = "0x00000000000000000000000000000000000fa4e0"


class FakeLedgerClient(LedgerClient):
    """
    In-memory ledger with failure injection.
    
    Tests flip availability, add latency, or queue an error for the next
    call of a given operation, then inspect the call log.
    """
    
    mode = "fake"
    
    def __init__(self, call_timeout: float = 30.0, chain_id: int = 31337) -> None:
        super().__init__(call_timeout=call_timeout)
        self.chain_id = chain_id
        self._available = True
        self._configured = True
        self._latency = 0.0
        self._institutions: dict[str, dict] = {}
        self._certificates: dict[int, dict] = {}
        self._token_by_hash: dict[str, int] = {}
        self._next_token_id = 1
        self._block_number = 100
        self._tx_counter = 0
        self._failures: dict[str, list[Exception]] = {}
        self._call_log: list[dict] = []
    
    @property
    def is_configured(self) -> bool:
        return self._configured
    
    # =========================================================================
    # TEST CONTROLS
    # =========================================================================
    
    def set_available(self, available: bool) -> None:
        """Simulate the node going up or down."""
        self._available = available
    
    def set_configured(self, configured: bool) -> None:
        self._configured = configured
    
    def set_latency(self, seconds: float) -> None:
        self._latency = seconds
    
    def fail_next(self, operation: str, error: Exception) -> None:
        """Raise ``error`` on the next call of ``operation``."""
        self._failures.setdefault(operation, []).append(error)
    
    def seed_institution(self, address: str, name: str = "Seeded", authorized: bool = False) -> None:
        self._institutions[address.lower()] = {
            "name": name,
            "email": "",
            "registration_date": int(datetime.utcnow().timestamp()),
            "authorized": authorized,
            "certificate_count": 0,
        }
    
    def seed_certificate(self, request: IssueCertificateRequest, is_valid: bool = True) -> int:
        token_id = self._mint(request, "Seeded")
        self._certificates[token_id]["is_valid"] = is_valid
        return token_id
    
    def set_certificate_validity(self, token_id: int, is_valid: bool) -> None:
        self._certificates[token_id]["is_valid"] = is_valid
    
    def institution(self, address: str) -> Optional[dict]:
        return self._institutions.get(address.lower())
    
    def certificate(self, token_id: int) -> Optional[dict]:
        return self._certificates.get(token_id)
    
    def call_count(self, operation: Optional[str] = None) -> int:
        """Number of calls made, optionally for one operation."""
        if operation is None:
            return len(self._call_log)
        return sum(1 for entry in self._call_log if entry["operation"] == operation)
    
    def write_count(self) -> int:
        return self._tx_counter
    
    def get_call_log(self) -> list[dict]:
        """Return ledger call audit log."""
        return self._call_log.copy()
    
    def reset(self) -> None:
        """Reset fake state."""
        self._available = True
        self._configured = True
        self._latency = 0.0
        self._institutions = {}
        self._certificates = {}
        self._token_by_hash = {}
        self._next_token_id = 1
        self._block_number = 100
        self._tx_counter = 0
        self._failures = {}
        self._call_log = []
    
    # =========================================================================
    # INTERNALS
    # =========================================================================
    
    async def _enter(self, operation: str, **details) -> None:
        self._call_log.append({
            "operation": operation,
            "details": details,
            "called_at": datetime.utcnow().isoformat(),
        })
        if self._latency:
            await asyncio.sleep(self._latency)
        if not self._configured:
            raise LedgerUnavailable("ledger not configured")
        if not self._available:
            raise LedgerUnavailable("ledger node unreachable")
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)
    
    def _next_tx(self, operation: str) -> tuple[str, int]:
        self._tx_counter += 1
        self._block_number += 1
        digest = hashlib.sha256(f"{operation}:{self._tx_counter}".encode()).hexdigest()
        return f"0x{digest}", self._block_number
    
    def _mint(self, request: IssueCertificateRequest, institution_name: str) -> int:
        token_id = self._next_token_id
        self._next_token_id += 1
        self._certificates[token_id] = {
            "student_address": request.student_address.lower(),
            "student_name": request.student_name,
            "course_name": request.course_name,
            "institution_name": institution_name,
            "grade": request.grade,
            "content_hash": request.content_hash,
            "issue_date": datetime.utcnow().replace(microsecond=0),
            "is_valid": True,
        }
        self._token_by_hash[request.content_hash] = token_id
        return token_id
    
    def _view(self, token_id: Optional[int]) -> LedgerCertificate:
        record = self._certificates.get(token_id) if token_id is not None else None
        if record is None:
            return LedgerCertificate(exists=False)
        return LedgerCertificate(
            exists=True,
            token_id=token_id,
            is_valid=record["is_valid"],
            student_name=record["student_name"],
            course_name=record["course_name"],
            institution_name=record["institution_name"],
            issue_date=record["issue_date"],
            grade=record["grade"],
            content_hash=record["content_hash"],
        )
    
    # =========================================================================
    # CAPABILITY
    # =========================================================================
    
    async def connect(self) -> WriterHandle:
        await self.bounded("connect", self._enter("connect"))
        return WriterHandle(address=FAKE_SIGNER, chain_id=self.chain_id)
    
    async def query_institution(self, address: str) -> InstitutionLedgerState:
        async def _query() -> InstitutionLedgerState:
            await self._enter("query_institution", address=address)
            record = self._institutions.get(address.lower())
            if record is None:
                return InstitutionLedgerState(found=False)
            return InstitutionLedgerState(
                found=True,
                registered=True,
                authorized=record["authorized"],
                registration_date=record["registration_date"],
                certificate_count=record["certificate_count"],
            )
        
        return await self.bounded("query_institution", _query())
    
    async def register_institution(self, name: str, email: str, wallet_address: str) -> RegistrationReceipt:
        async def _register() -> RegistrationReceipt:
            async with self._write_lock:
                await self._enter("register_institution", name=name, wallet_address=wallet_address)
                if wallet_address.lower() in self._institutions:
                    return RegistrationReceipt(already_registered=True)
                tx_hash, _ = self._next_tx("register_institution")
                self._institutions[wallet_address.lower()] = {
                    "name": name,
                    "email": email,
                    "registration_date": int(datetime.utcnow().timestamp()),
                    "authorized": False,
                    "certificate_count": 0,
                }
                return RegistrationReceipt(tx_hash=tx_hash)
        
        return await self.bounded("register_institution", _register())
    
    async def authorize_institution(self, address: str) -> TransactionReceipt:
        async def _authorize() -> TransactionReceipt:
            async with self._write_lock:
                await self._enter("authorize_institution", address=address)
                record = self._institutions.get(address.lower())
                if record is None:
                    raise LedgerRejected("Institution not registered")
                if record["authorized"]:
                    raise LedgerConflict("Institution already authorized")
                record["authorized"] = True
                tx_hash, block = self._next_tx("authorize_institution")
                return TransactionReceipt(tx_hash=tx_hash, block_number=block)
        
        return await self.bounded("authorize_institution", _authorize())
    
    async def issue_certificate(self, request: IssueCertificateRequest) -> MintReceipt:
        async def _issue() -> MintReceipt:
            async with self._write_lock:
                await self._enter(
                    "issue_certificate",
                    student_address=request.student_address,
                    content_hash=request.content_hash,
                )
                if request.completion_timestamp > int(datetime.utcnow().timestamp()) + 86400:
                    raise LedgerRejected("Invalid graduation date")
                for record in self._certificates.values():
                    if (
                        record["student_address"] == request.student_address.lower()
                        and record["course_name"] == request.course_name
                    ):
                        raise LedgerConflict("Certificate already exists for this student and course")
                token_id = self._mint(request, "EduChain Fake Registry")
                tx_hash, block = self._next_tx("issue_certificate")
                return MintReceipt(token_id=token_id, tx_hash=tx_hash, block_number=block)
        
        return await self.bounded("issue_certificate", _issue())
    
    async def verify_certificate(self, token_id: int) -> LedgerCertificate:
        async def _verify() -> LedgerCertificate:
            await self._enter("verify_certificate", token_id=token_id)
            return self._view(token_id)
        
        return await self.bounded("verify_certificate", _verify())
    
    async def verify_certificate_by_content_hash(self, content_hash: str) -> LedgerCertificate:
        async def _verify() -> LedgerCertificate:
            await self._enter("verify_certificate_by_content_hash", content_hash=content_hash)
            return self._view(self._token_by_hash.get(content_hash))
        
        return await self.bounded("verify_certificate_by_content_hash", _verify())
    
    async def revoke_certificate(self, token_id: int, reason: str = "") -> TransactionReceipt:
        async def _revoke() -> TransactionReceipt:
            async with self._write_lock:
                await self._enter("revoke_certificate", token_id=token_id, reason=reason)
                record = self._certificates.get(token_id)
                if record is None:
                    raise LedgerRejected("Certificate does not exist")
                if not record["is_valid"]:
                    raise LedgerConflict("Certificate already revoked")
                record["is_valid"] = False
                tx_hash, block = self._next_tx("revoke_certificate")
                return TransactionReceipt(tx_hash=tx_hash, block_number=block)
        
        return await self.bounded("revoke_certificate", _revoke())
