"""
TruthChain Exception Classes
Error taxonomy for the record verification protocol

Every failure a submission can hit maps to exactly one exception class with a
stable ``kind`` string, so API clients can tell a rejection-for-fraud
(cross-check failures) from a rejection-for-infrastructure (upstream failures).
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Error category for taxonomy"""
    VALIDATION = "validation"         # Bad or missing intake fields
    UPSTREAM = "upstream"             # Content store / ledger unreachable or misconfigured
    CROSS_CHECK = "cross_check"       # On-chain evidence disagrees with the submission
    INTEGRITY = "integrity"           # Fingerprint recomputation failed
    CONFLICT = "conflict"             # Already recorded
    CONFIGURATION = "configuration"   # Feature disabled by configuration


class ErrorCode(str, Enum):
    """Standardized error codes"""
    # Validation errors (1xxx)
    VALIDATION_FAILED = "TC1001"

    # Upstream errors (2xxx)
    UPSTREAM_UNAVAILABLE = "TC2001"

    # Cross-check errors (3xxx)
    LEDGER_TX_NOT_FOUND = "TC3001"
    LEDGER_TX_FAILED = "TC3002"
    WRONG_CONTRACT = "TC3003"
    EVENT_NOT_FOUND = "TC3004"
    HASH_MISMATCH = "TC3005"
    CID_MISMATCH = "TC3006"
    SUBMITTER_MISMATCH = "TC3007"

    # Integrity errors (4xxx)
    HASH_VERIFICATION_FAILED = "TC4001"

    # Conflict errors (5xxx)
    DUPLICATE_RECORD = "TC5001"

    # Configuration errors (6xxx)
    SERVER_SUBMIT_DISABLED = "TC6001"


class TruthChainError(Exception):
    """
    Base exception for verification protocol errors

    Subclasses set the taxonomy attributes as class defaults.
    """

    kind: str = "TruthChainError"
    category: ErrorCategory = ErrorCategory.VALIDATION
    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    http_status: int = 400
    retryable: bool = False
    default_hint: Optional[str] = None

    def __init__(self, message: str, hint: Optional[str] = None):
        self.message = message
        self.hint = hint or self.default_hint
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/API response"""
        result = {
            "kind": self.kind,
            "message": self.message,
            "code": self.code.value,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.hint:
            result["hint"] = self.hint
        return result


class SubmissionValidationError(TruthChainError):
    """Raised when intake fields are missing or invalid. The user must resubmit."""

    kind = "ValidationError"


class UpstreamUnavailableError(TruthChainError):
    """Raised when the content store or ledger is unreachable or misconfigured"""

    kind = "UpstreamUnavailable"
    category = ErrorCategory.UPSTREAM
    code = ErrorCode.UPSTREAM_UNAVAILABLE
    http_status = 503

    def __init__(self, message: str, service: str, hint: Optional[str] = None):
        super().__init__(message, hint)
        self.service = service

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["service"] = self.service
        return result


# =============================================================================
# Cross-check failures
# =============================================================================


class CrossCheckError(TruthChainError):
    """Base class for on-chain cross-check rejections"""

    category = ErrorCategory.CROSS_CHECK

    def __init__(self, message: str, tx_ref: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message, hint)
        self.tx_ref = tx_ref

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["tx_ref"] = self.tx_ref
        return result


class LedgerTxNotFoundError(CrossCheckError):
    """Transaction receipt is absent (unknown or still pending)"""

    kind = "LedgerTxNotFound"
    code = ErrorCode.LEDGER_TX_NOT_FOUND
    retryable = True
    default_hint = "The transaction may still be pending. Wait for confirmation and retry."


class LedgerTxFailedError(CrossCheckError):
    """Transaction was mined but reverted"""

    kind = "LedgerTxFailed"
    code = ErrorCode.LEDGER_TX_FAILED


class WrongContractError(CrossCheckError):
    """Transaction was not sent to the configured contract"""

    kind = "WrongContract"
    code = ErrorCode.WRONG_CONTRACT


class EventNotFoundError(CrossCheckError):
    """No RecordStored event from the configured contract in the receipt"""

    kind = "EventNotFound"
    code = ErrorCode.EVENT_NOT_FOUND


class HashMismatchError(CrossCheckError):
    kind = "HashMismatch"
    code = ErrorCode.HASH_MISMATCH


class CidMismatchError(CrossCheckError):
    kind = "CidMismatch"
    code = ErrorCode.CID_MISMATCH


class SubmitterMismatchError(CrossCheckError):
    kind = "SubmitterMismatch"
    code = ErrorCode.SUBMITTER_MISMATCH


# =============================================================================
# Persistence failures
# =============================================================================


class HashVerificationFailedError(TruthChainError):
    """Claimed fingerprint does not match (text, content_id, timestamp)"""

    kind = "HashVerificationFailed"
    category = ErrorCategory.INTEGRITY
    code = ErrorCode.HASH_VERIFICATION_FAILED


class DuplicateRecordError(TruthChainError):
    """Fingerprint already recorded. Non-fatal: the content is already verified."""

    kind = "DuplicateRecord"
    category = ErrorCategory.CONFLICT
    code = ErrorCode.DUPLICATE_RECORD
    http_status = 409

    def __init__(self, fingerprint: str, message: str = "This content has already been verified"):
        super().__init__(message)
        self.fingerprint = fingerprint

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["fingerprint"] = self.fingerprint
        return result


class ServerSubmitDisabledError(TruthChainError):
    kind = "ServerSubmitDisabled"
    category = ErrorCategory.CONFIGURATION
    code = ErrorCode.SERVER_SUBMIT_DISABLED
    http_status = 403
    default_hint = "Sign the storeRecord transaction with your wallet and call /records/finalize."
