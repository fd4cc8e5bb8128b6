"""
Record Verification Protocol

Intake -> Pin -> Fingerprint -> Attest -> Cross-check -> Persist

The server never trusts a client-reported ledger success: the fingerprint is
recomputed from (text, content_id, timestamp), and in live mode the
transaction receipt is fetched and every event field is compared against the
submission before a record is written.

Modes:
- live: cross-check against the configured contract is mandatory
- offline_test: no ledger interaction; records are flagged offline_test and
  carry a placeholder transaction reference
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from truthchain.core.config import Settings
from truthchain.core.exceptions import (
    CidMismatchError,
    EventNotFoundError,
    HashMismatchError,
    HashVerificationFailedError,
    LedgerTxFailedError,
    LedgerTxNotFoundError,
    ServerSubmitDisabledError,
    SubmissionValidationError,
    SubmitterMismatchError,
    UpstreamUnavailableError,
    WrongContractError,
)
from truthchain.models.record import NewsRecord, VerificationMode
from truthchain.services.content_store import ContentStore
from truthchain.services.fingerprint import (
    compute_fingerprint,
    current_timestamp,
    fingerprint_to_bytes32,
    normalize_fingerprint,
)
from truthchain.services.ledger import DecodedEvent, LedgerClient, Receipt, same_address
from truthchain.services.repository import RecordRepository

logger = logging.getLogger(__name__)

TX_REF_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
TIMESTAMP_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,9})?(Z|[+-]\d{2}:\d{2})$"
)

# Column widths of news_records
MAX_TIMESTAMP_LENGTH = 64
MAX_TX_REF_LENGTH = 128
MAX_FILE_TYPE_LENGTH = 255

DEFAULT_FILE_NAME = "unknown"
DEFAULT_FILE_TYPE = "application/octet-stream"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class VerificationConfig:
    """Explicit protocol configuration, built once at the API boundary"""
    mode: VerificationMode = VerificationMode.LIVE
    contract_address: Optional[str] = None
    allowed_mime_types: frozenset[str] = frozenset()
    max_upload_bytes: int = 50 * 1024 * 1024
    server_submit_enabled: bool = False
    receipt_timeout_seconds: float = 120.0
    explorer_tx_url: str = ""

    @classmethod
    def from_settings(cls, settings: Settings, contract_address: Optional[str]) -> "VerificationConfig":
        try:
            mode = VerificationMode(settings.VERIFICATION_MODE.strip().lower())
        except ValueError as e:
            raise ValueError(f"Unknown VERIFICATION_MODE: {settings.VERIFICATION_MODE}") from e

        return cls(
            mode=mode,
            contract_address=contract_address,
            allowed_mime_types=settings.allowed_mime_types,
            max_upload_bytes=settings.MAX_UPLOAD_BYTES,
            server_submit_enabled=settings.LEDGER_SERVER_SUBMIT,
            receipt_timeout_seconds=settings.LEDGER_RECEIPT_TIMEOUT_SECONDS,
            explorer_tx_url=settings.LEDGER_EXPLORER_TX_URL,
        )

    def explorer_url(self, record: NewsRecord) -> Optional[str]:
        if record.verification_mode != VerificationMode.LIVE or not record.ledger_tx_ref:
            return None
        if not self.explorer_tx_url:
            return None
        return f"{self.explorer_tx_url}{record.ledger_tx_ref}"


# =============================================================================
# Protocol data
# =============================================================================


@dataclass
class PreparedSubmission:
    """Result of intake + pin + fingerprint, returned to the client for signing"""
    content_id: str
    fingerprint: str
    timestamp: str
    file_name: str
    file_type: str
    storage_mode: str
    verification_mode: VerificationMode


@dataclass
class SubmissionClaim:
    """What the client asserts when finalizing a split-flow submission"""
    text: str
    content_id: str
    fingerprint: str
    timestamp: str
    tx_ref: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    submitter_address: Optional[str] = None


# =============================================================================
# Protocol
# =============================================================================


class VerificationProtocol:
    """
    Orchestrates a single submission. Holds no mutable state between calls.
    """

    def __init__(
        self,
        config: VerificationConfig,
        content_store: ContentStore,
        repository: RecordRepository,
        ledger: Optional[LedgerClient] = None,
    ):
        self.config = config
        self.content_store = content_store
        self.repository = repository
        self.ledger = ledger

    # -------------------------------------------------------------------------
    # Intake / prepare
    # -------------------------------------------------------------------------

    def validate_intake(
        self,
        text: Optional[str],
        data: Optional[bytes],
        filename: Optional[str],
        content_type: Optional[str],
    ) -> None:
        """Reject missing text/file, disallowed MIME types and oversized files."""
        if not text or not text.strip():
            raise SubmissionValidationError("Text is required")
        if data is None or len(data) == 0:
            raise SubmissionValidationError("File is required")

        mime = (content_type or "").split(";")[0].strip().lower()
        if self.config.allowed_mime_types and mime not in self.config.allowed_mime_types:
            allowed = ", ".join(sorted(self.config.allowed_mime_types))
            raise SubmissionValidationError(
                f"Unsupported file type '{mime or 'unknown'}'. Allowed types: {allowed}"
            )

        self.check_upload_size(len(data))

    def check_upload_size(self, size: Optional[int]) -> None:
        """Reject uploads above max_upload_bytes. Unknown size passes."""
        if size is not None and size > self.config.max_upload_bytes:
            raise SubmissionValidationError(
                f"File too large. Maximum size: {self.config.max_upload_bytes // (1024 * 1024)}MB"
            )

    async def prepare(
        self,
        text: Optional[str],
        data: Optional[bytes],
        filename: Optional[str],
        content_type: Optional[str],
    ) -> PreparedSubmission:
        """Intake, pin and fingerprint. Nothing is persisted."""
        self.validate_intake(text, data, filename, content_type)

        content_id = await self.content_store.upload(data, filename or DEFAULT_FILE_NAME)

        timestamp = current_timestamp()
        fingerprint = compute_fingerprint(text, content_id, timestamp)
        logger.info(f"[Verify] Prepared {content_id} -> fingerprint {fingerprint[:16]}...")

        return PreparedSubmission(
            content_id=content_id,
            fingerprint=fingerprint,
            timestamp=timestamp,
            file_name=filename or DEFAULT_FILE_NAME,
            file_type=content_type or DEFAULT_FILE_TYPE,
            storage_mode=self.content_store.mode,
            verification_mode=self.config.mode,
        )

    # -------------------------------------------------------------------------
    # Cross-check
    # -------------------------------------------------------------------------

    def _require_ledger(self) -> tuple[LedgerClient, str]:
        if not self.config.contract_address:
            raise UpstreamUnavailableError(
                "Ledger contract address is not configured",
                service="ledger",
                hint="Set CONTRACT_ADDRESS or provide contract-config.json, "
                     "or run with VERIFICATION_MODE=offline_test.",
            )
        if self.ledger is None:
            raise UpstreamUnavailableError("Ledger client is not configured", service="ledger")
        return self.ledger, self.config.contract_address

    def check_receipt(
        self,
        receipt: Receipt,
        fingerprint: str,
        content_id: str,
        submitter_address: Optional[str] = None,
    ) -> DecodedEvent:
        """
        Compare a receipt against the expected submission.

        Only logs emitted by the configured contract are decoded; the first
        RecordStored event found is the one compared.
        """
        ledger, contract_address = self._require_ledger()
        tx_ref = receipt.tx_ref

        if not receipt.succeeded:
            raise LedgerTxFailedError("Transaction failed on blockchain", tx_ref=tx_ref)

        if not same_address(receipt.to, contract_address):
            raise WrongContractError(
                "Transaction was not sent to the TruthChain contract",
                tx_ref=tx_ref,
            )

        event = None
        for log in receipt.logs:
            event = ledger.decode_event(log)
            if event is not None:
                break

        if event is None:
            raise EventNotFoundError("RecordStored event not found in transaction", tx_ref=tx_ref)

        if event.hash_field != fingerprint_to_bytes32(fingerprint):
            raise HashMismatchError("The hash in the blockchain event does not match", tx_ref=tx_ref)

        if event.cid_field != content_id:
            raise CidMismatchError("The CID in the blockchain event does not match", tx_ref=tx_ref)

        if submitter_address and not same_address(event.submitter_field, submitter_address):
            raise SubmitterMismatchError(
                "The transaction was not submitted by the provided wallet",
                tx_ref=tx_ref,
            )

        return event

    async def cross_check(
        self,
        tx_ref: str,
        fingerprint: str,
        content_id: str,
        submitter_address: Optional[str] = None,
    ) -> DecodedEvent:
        """Fetch the receipt for tx_ref and run check_receipt on it."""
        ledger, _ = self._require_ledger()

        receipt = await ledger.get_receipt(tx_ref)
        if receipt is None:
            raise LedgerTxNotFoundError("Transaction not found on blockchain", tx_ref=tx_ref)

        try:
            event = self.check_receipt(receipt, fingerprint, content_id, submitter_address)
        except (LedgerTxFailedError, WrongContractError, EventNotFoundError,
                HashMismatchError, CidMismatchError, SubmitterMismatchError) as e:
            logger.warning(f"[Verify] Cross-check rejected {tx_ref}: {e.kind} - {e.message}")
            raise

        logger.info(f"[Verify] Transaction and event verified on-chain: {tx_ref}")
        return event

    # -------------------------------------------------------------------------
    # Finalize / persist
    # -------------------------------------------------------------------------

    def verify_fingerprint(self, text: str, content_id: str, timestamp: str, claimed: str) -> str:
        """Recompute the fingerprint and return it if it matches the claim."""
        expected = compute_fingerprint(text, content_id, timestamp)
        try:
            matches = normalize_fingerprint(claimed) == expected
        except ValueError:
            matches = False

        if not matches:
            logger.warning(f"[Verify] Fingerprint mismatch for content {content_id}")
            raise HashVerificationFailedError("The provided hash does not match the content")
        return expected

    def _validate_claim(self, claim: SubmissionClaim) -> None:
        missing = [
            name for name in ("text", "content_id", "fingerprint", "timestamp")
            if not getattr(claim, name)
        ]
        if self.config.mode == VerificationMode.LIVE and not claim.tx_ref:
            missing.append("tx_ref")
        if missing:
            raise SubmissionValidationError(f"Missing required fields: {', '.join(missing)}")

        if self.config.mode == VerificationMode.LIVE and not TX_REF_PATTERN.match(claim.tx_ref):
            raise SubmissionValidationError("tx_ref must be a 0x-prefixed 32-byte transaction hash")

        if claim.submitter_address and not ADDRESS_PATTERN.match(claim.submitter_address):
            raise SubmissionValidationError("wallet_address must be a 0x-prefixed 20-byte address")

        if len(claim.timestamp) > MAX_TIMESTAMP_LENGTH or not TIMESTAMP_PATTERN.match(claim.timestamp):
            raise SubmissionValidationError("timestamp must be the ISO-8601 string returned by /records/prepare")

        if claim.tx_ref and len(claim.tx_ref) > MAX_TX_REF_LENGTH:
            raise SubmissionValidationError(f"tx_ref must be at most {MAX_TX_REF_LENGTH} characters")

        if claim.file_type and len(claim.file_type) > MAX_FILE_TYPE_LENGTH:
            raise SubmissionValidationError(f"file_type must be at most {MAX_FILE_TYPE_LENGTH} characters")

    async def _persist(
        self,
        text: str,
        content_id: str,
        fingerprint: str,
        timestamp: str,
        tx_ref: Optional[str],
        file_name: Optional[str],
        file_type: Optional[str],
        submitter_address: Optional[str],
    ) -> NewsRecord:
        record = NewsRecord(
            text=text,
            content_id=content_id,
            fingerprint=fingerprint,
            ledger_tx_ref=tx_ref,
            file_name=file_name or DEFAULT_FILE_NAME,
            file_type=file_type or DEFAULT_FILE_TYPE,
            timestamp_string=timestamp,
            submitter_address=submitter_address,
            verification_mode=self.config.mode,
        )
        return await self.repository.create(record)

    @staticmethod
    def placeholder_tx_ref(fingerprint: str) -> str:
        return f"offline-{fingerprint[:16]}"

    async def finalize(self, claim: SubmissionClaim) -> NewsRecord:
        """
        Verify a client-attested submission and persist it.

        Raises the cross-check, HashVerificationFailedError or
        DuplicateRecordError exceptions described in the module docstring.
        """
        self._validate_claim(claim)

        fingerprint = self.verify_fingerprint(
            claim.text, claim.content_id, claim.timestamp, claim.fingerprint
        )

        tx_ref = claim.tx_ref
        if self.config.mode == VerificationMode.LIVE:
            await self.cross_check(tx_ref, fingerprint, claim.content_id, claim.submitter_address)
        else:
            tx_ref = tx_ref or self.placeholder_tx_ref(fingerprint)
            logger.info(f"[Verify] Offline test mode, ledger cross-check skipped for {fingerprint[:16]}...")

        return await self._persist(
            text=claim.text,
            content_id=claim.content_id,
            fingerprint=fingerprint,
            timestamp=claim.timestamp,
            tx_ref=tx_ref,
            file_name=claim.file_name,
            file_type=claim.file_type,
            submitter_address=claim.submitter_address,
        )

    async def submit_and_persist(
        self,
        text: Optional[str],
        data: Optional[bytes],
        filename: Optional[str],
        content_type: Optional[str],
    ) -> NewsRecord:
        """
        Server-submit flow: the server signs storeRecord itself and waits for
        confirmation. Only enabled by LEDGER_SERVER_SUBMIT (or offline_test).
        """
        live = self.config.mode == VerificationMode.LIVE
        if live and not self.config.server_submit_enabled:
            raise ServerSubmitDisabledError("Server-side ledger submission is disabled")

        prepared = await self.prepare(text, data, filename, content_type)

        submitter = None
        if live:
            ledger, _ = self._require_ledger()
            tx_ref = await ledger.submit(fingerprint_to_bytes32(prepared.fingerprint), prepared.content_id)
            receipt = await ledger.wait_for_receipt(tx_ref, self.config.receipt_timeout_seconds)
            submitter = ledger.signer_address
            self.check_receipt(receipt, prepared.fingerprint, prepared.content_id, submitter)
            logger.info(f"[Verify] Server-submitted transaction confirmed: {tx_ref}")
        else:
            tx_ref = self.placeholder_tx_ref(prepared.fingerprint)

        return await self._persist(
            text=text,
            content_id=prepared.content_id,
            fingerprint=prepared.fingerprint,
            timestamp=prepared.timestamp,
            tx_ref=tx_ref,
            file_name=prepared.file_name,
            file_type=prepared.file_type,
            submitter_address=submitter,
        )
