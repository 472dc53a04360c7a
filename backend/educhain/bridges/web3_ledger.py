"""
EduChain - Web3 Ledger Adapter

Talks to the certificate registry contract over JSON-RPC with web3.py.

Lifecycle: construct -> connect() -> use -> close().
Reads need only the RPC URL and contract address. Writes need the operator
key; they are signed locally and submitted one at a time under the
client's write lock, with the nonce taken from the pending count.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from educhain.bridges.abi import CERTIFICATE_REGISTRY_ABI
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
from educhain.core.errors import (
    LedgerConflict,
    LedgerError,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
)

logger = logging.getLogger(__name__)

# Revert reasons that mean "already done on-chain"
CONFLICT_MARKERS = ("already registered", "already revoked", "already exists", "already authorized")


def classify_error(operation: str, exc: Exception) -> LedgerError:
    """Map a web3/transport exception onto the ledger error taxonomy."""
    if isinstance(exc, LedgerError):
        return exc
    if isinstance(exc, TimeExhausted):
        return LedgerTimeout(f"ledger {operation} timed out waiting for receipt: {exc}")
    if isinstance(exc, ContractLogicError):
        reason = str(exc)
        if any(marker in reason.lower() for marker in CONFLICT_MARKERS):
            return LedgerConflict(f"ledger {operation}: {reason}")
        return LedgerRejected(f"ledger {operation} reverted: {reason}")
    if isinstance(exc, (ValueError, TypeError)):
        return LedgerRejected(f"ledger {operation} invalid argument: {exc}")
    if isinstance(exc, (OSError, ConnectionError)):
        return LedgerUnavailable(f"ledger {operation} unreachable: {exc}")
    if isinstance(exc, Web3Exception):
        return LedgerRejected(f"ledger {operation} rejected: {exc}")
    return LedgerUnavailable(f"ledger {operation} failed: {exc}")


class Web3LedgerClient(LedgerClient):
    """Ledger client backed by an EVM JSON-RPC node."""
    
    mode = "web3"
    
    def __init__(
        self,
        rpc_url: str,
        contract_address: Optional[str],
        private_key: Optional[str] = None,
        chain_id: int = 8453,
        call_timeout: float = 30.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        super().__init__(call_timeout=call_timeout)
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self._private_key = private_key
        self._w3: Optional[AsyncWeb3] = None
        self._contract: Any = None
        self._account: Any = None
    
    @property
    def is_configured(self) -> bool:
        return bool(self.rpc_url and self.contract_address)
    
    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    
    def _require_contract(self) -> Any:
        if not self.is_configured:
            raise LedgerUnavailable("ledger not configured")
        if self._contract is None:
            self._w3 = AsyncWeb3(
                AsyncHTTPProvider(self.rpc_url, request_kwargs={"timeout": self.call_timeout})
            )
            self._contract = self._w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(self.contract_address),
                abi=CERTIFICATE_REGISTRY_ABI,
            )
        return self._contract
    
    @staticmethod
    def _checksum(address: str) -> str:
        try:
            return AsyncWeb3.to_checksum_address(address)
        except (ValueError, TypeError) as e:
            raise LedgerRejected(f"invalid wallet address {address!r}: {e}") from e
    
    def _require_account(self) -> Any:
        if self._account is None:
            raise LedgerUnavailable("ledger writer not connected")
        return self._account
    
    async def connect(self) -> WriterHandle:
        if not self._private_key:
            raise LedgerUnavailable("no ledger signing credential configured")
        self._require_contract()
        
        if self._account is None:
            try:
                reachable = await self.bounded("connect", self._w3.is_connected())
            except LedgerError:
                raise
            except Exception as e:
                raise classify_error("connect", e) from e
            if not reachable:
                raise LedgerUnavailable(f"ledger node unreachable at {self.rpc_url}")
            
            self._account = self._w3.eth.account.from_key(self._private_key)
            logger.info(f"[LEDGER] Connected signer {self._account.address} on chain {self.chain_id}")
        
        return WriterHandle(address=self._account.address, chain_id=self.chain_id)
    
    async def close(self) -> None:
        if self._w3 is not None:
            try:
                await self._w3.provider.disconnect()
            except Exception as e:
                logger.warning(f"[LEDGER] Provider close error: {e}")
        self._w3 = None
        self._contract = None
        self._account = None
    
    # =========================================================================
    # CALL PLUMBING
    # =========================================================================
    
    async def _read(self, operation: str, function: Any) -> Any:
        try:
            return await self.bounded(operation, function.call())
        except LedgerError:
            raise
        except Exception as e:
            raise classify_error(operation, e) from e
    
    async def _transact(self, operation: str, function: Any) -> Any:
        """Build, sign, send and await one transaction under the write lock."""
        await self.connect()
        account = self._require_account()
        
        async with self._write_lock:
            try:
                nonce = await self.bounded(
                    operation, self._w3.eth.get_transaction_count(account.address, "pending")
                )
                tx = await self.bounded(
                    operation,
                    function.build_transaction({
                        "from": account.address,
                        "nonce": nonce,
                        "chainId": self.chain_id,
                    }),
                )
                signed = account.sign_transaction(tx)
                tx_hash = await self.bounded(
                    operation, self._w3.eth.send_raw_transaction(signed.raw_transaction)
                )
                receipt = await self.bounded(
                    operation,
                    self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout),
                    timeout=self.receipt_timeout + self.call_timeout,
                )
            except LedgerError:
                raise
            except Exception as e:
                raise classify_error(operation, e) from e
        
        tx_hex = AsyncWeb3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            raise LedgerRejected(f"ledger {operation} transaction {tx_hex} reverted")
        
        logger.info(f"[LEDGER] {operation} mined in block {receipt['blockNumber']}: {tx_hex}")
        return receipt
    
    @staticmethod
    def _tx_receipt(receipt: Any) -> TransactionReceipt:
        return TransactionReceipt(
            tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
        )
    
    @staticmethod
    def _certificate(values: Any, token_id: Optional[int]) -> LedgerCertificate:
        exists, is_valid, student, course, institution, issued, grade, ipfs_hash = values
        if not exists:
            return LedgerCertificate(exists=False)
        return LedgerCertificate(
            exists=True,
            token_id=token_id,
            is_valid=is_valid,
            student_name=student,
            course_name=course,
            institution_name=institution,
            issue_date=datetime.utcfromtimestamp(issued) if issued else None,
            grade=grade,
            content_hash=ipfs_hash,
        )
    
    # =========================================================================
    # INSTITUTIONS
    # =========================================================================
    
    async def query_institution(self, address: str) -> InstitutionLedgerState:
        contract = self._require_contract()
        is_authorized, registration_date, certificate_count = await self._read(
            "query_institution",
            contract.functions.getInstitutionStats(self._checksum(address)),
        )
        if registration_date == 0:
            return InstitutionLedgerState(found=False)
        return InstitutionLedgerState(
            found=True,
            registered=True,
            authorized=is_authorized,
            registration_date=registration_date,
            certificate_count=certificate_count,
        )
    
    async def register_institution(self, name: str, email: str, wallet_address: str) -> RegistrationReceipt:
        contract = self._require_contract()
        try:
            receipt = await self._transact(
                "register_institution",
                contract.functions.registerInstitution(name, email),
            )
        except LedgerConflict:
            logger.info(f"[LEDGER] {wallet_address} already registered on-chain")
            return RegistrationReceipt(already_registered=True)
        return RegistrationReceipt(tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]))
    
    async def authorize_institution(self, address: str) -> TransactionReceipt:
        contract = self._require_contract()
        receipt = await self._transact(
            "authorize_institution",
            contract.functions.authorizeInstitution(self._checksum(address)),
        )
        return self._tx_receipt(receipt)
    
    # =========================================================================
    # CERTIFICATES
    # =========================================================================
    
    async def issue_certificate(self, request: IssueCertificateRequest) -> MintReceipt:
        contract = self._require_contract()
        receipt = await self._transact(
            "issue_certificate",
            contract.functions.issueCertificate(
                self._checksum(request.student_address),
                request.student_name,
                request.course_name,
                request.grade,
                request.content_hash,
                request.completion_timestamp,
                request.certificate_type,
            ),
        )
        events = contract.events.CertificateIssued().process_receipt(receipt, errors=DISCARD)
        if not events:
            raise LedgerRejected("ledger issue_certificate: no CertificateIssued event in receipt")
        
        return MintReceipt(
            token_id=events[0]["args"]["tokenId"],
            tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
        )
    
    async def verify_certificate(self, token_id: int) -> LedgerCertificate:
        contract = self._require_contract()
        values = await self._read("verify_certificate", contract.functions.verifyCertificate(token_id))
        return self._certificate(values, token_id)
    
    async def verify_certificate_by_content_hash(self, content_hash: str) -> LedgerCertificate:
        contract = self._require_contract()
        token_id, *values = await self._read(
            "verify_certificate_by_content_hash",
            contract.functions.verifyCertificateByIPFS(content_hash),
        )
        return self._certificate(values, token_id)
    
    async def revoke_certificate(self, token_id: int, reason: str = "") -> TransactionReceipt:
        contract = self._require_contract()
        receipt = await self._transact(
            "revoke_certificate",
            contract.functions.revokeCertificate(token_id, reason),
        )
        return self._tx_receipt(receipt)
