# Business Logic Services

from truthchain.services.fingerprint import (
    compute_fingerprint,
    current_timestamp,
    normalize_fingerprint,
    fingerprint_to_bytes32,
)
from truthchain.services.content_store import (
    ContentStore,
    PinataContentStore,
    Web3StorageContentStore,
    LocalContentStore,
    build_content_store,
)
from truthchain.services.ledger import (
    LedgerClient,
    Web3LedgerClient,
    Receipt,
    LogEntry,
    DecodedEvent,
    decode_record_stored,
    resolve_contract_address,
    build_ledger_client,
)
from truthchain.services.repository import RecordRepository
from truthchain.services.verification import (
    VerificationConfig,
    VerificationProtocol,
    PreparedSubmission,
    SubmissionClaim,
)

__all__ = [
    # Fingerprint
    "compute_fingerprint",
    "current_timestamp",
    "normalize_fingerprint",
    "fingerprint_to_bytes32",
    # Content store
    "ContentStore",
    "PinataContentStore",
    "Web3StorageContentStore",
    "LocalContentStore",
    "build_content_store",
    # Ledger
    "LedgerClient",
    "Web3LedgerClient",
    "Receipt",
    "LogEntry",
    "DecodedEvent",
    "decode_record_stored",
    "resolve_contract_address",
    "build_ledger_client",
    # Protocol
    "RecordRepository",
    "VerificationConfig",
    "VerificationProtocol",
    "PreparedSubmission",
    "SubmissionClaim",
]
