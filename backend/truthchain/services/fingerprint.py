"""
Content Fingerprint

fingerprint = sha256(text || content_id || timestamp), lowercase hex.

The timestamp string is part of the hashed bytes, so callers must persist and
reuse the exact string returned by current_timestamp(); re-serializing a
parsed datetime produces a different fingerprint.
"""

import hashlib
from datetime import datetime, UTC
from typing import Union

FINGERPRINT_BYTES = 32


def compute_fingerprint(text: str, content_id: str, timestamp: str) -> str:
    """Compute the record fingerprint from its three inputs."""
    data = f"{text}{content_id}{timestamp}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def current_timestamp() -> str:
    """UTC now as ISO-8601 with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_fingerprint(value: Union[str, bytes]) -> str:
    """
    Canonical form for comparison: 64 lowercase hex chars, no 0x prefix.

    Raises:
        ValueError: value is not a 32-byte digest
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        hex_str = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(hex_str)
        except ValueError as e:
            raise ValueError(f"Fingerprint is not valid hex: {value!r}") from e

    if len(raw) != FINGERPRINT_BYTES:
        raise ValueError(f"Fingerprint must be {FINGERPRINT_BYTES} bytes, got {len(raw)}")
    return raw.hex()


def fingerprint_to_bytes32(value: Union[str, bytes]) -> bytes:
    """Fingerprint as the raw bytes32 argument of storeRecord."""
    return bytes.fromhex(normalize_fingerprint(value))
