"""
Ledger Adapter (EVM)

Talks to the TruthChain contract over JSON-RPC:
- submit storeRecord(bytes32 hash, string cid) transactions (server-submit mode)
- fetch transaction receipts
- decode RecordStored events from receipt logs

Event:
    RecordStored(bytes32 indexed hash, string cid, address indexed submitter, uint256 timestamp)

Indexed fields live in topics[1] (hash) and topics[2] (submitter, left-padded
to 32 bytes); cid and timestamp are ABI-encoded in the log data.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address
from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import TransactionNotFound, TimeExhausted

from truthchain.core.config import Settings
from truthchain.core.exceptions import LedgerTxNotFoundError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


# ============================================================================
# Contract ABI
# ============================================================================

RECORD_STORED_SIGNATURE = "RecordStored(bytes32,string,address,uint256)"
RECORD_STORED_TOPIC = keccak(text=RECORD_STORED_SIGNATURE)

TRUTHCHAIN_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "bytes32", "name": "hash", "type": "bytes32"},
            {"indexed": False, "internalType": "string", "name": "cid", "type": "string"},
            {"indexed": True, "internalType": "address", "name": "submitter", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "timestamp", "type": "uint256"},
        ],
        "name": "RecordStored",
        "type": "event",
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "hash", "type": "bytes32"},
            {"internalType": "string", "name": "cid", "type": "string"},
        ],
        "name": "storeRecord",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


# ============================================================================
# Data classes
# ============================================================================


@dataclass
class LogEntry:
    """Raw log emitted by a transaction"""
    address: str
    topics: list[bytes] = field(default_factory=list)
    data: bytes = b""


@dataclass
class Receipt:
    """Transaction receipt reduced to what the cross-check needs"""
    tx_ref: str
    to: Optional[str]
    status: int
    logs: list[LogEntry] = field(default_factory=list)
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass
class DecodedEvent:
    """Decoded RecordStored event"""
    hash_field: bytes
    cid_field: str
    submitter_field: str
    timestamp: int


# ============================================================================
# Decoding
# ============================================================================


def _as_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    hex_str = value[2:] if value[:2].lower() == "0x" else value
    return bytes.fromhex(hex_str)


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address comparison"""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def decode_record_stored(log: LogEntry, contract_address: str) -> Optional[DecodedEvent]:
    """
    Decode a RecordStored event from a log.

    Returns None when the log was not emitted by contract_address or does not
    have the RecordStored shape.
    """
    if not same_address(log.address, contract_address):
        return None

    try:
        topics = [_as_bytes(t) for t in log.topics]
        if len(topics) != 3 or topics[0] != RECORD_STORED_TOPIC:
            return None
        if len(topics[1]) != 32 or len(topics[2]) != 32:
            return None

        cid, timestamp = abi_decode(["string", "uint256"], _as_bytes(log.data))
    except (ValueError, DecodingError):
        return None

    return DecodedEvent(
        hash_field=topics[1],
        cid_field=cid,
        submitter_field=to_checksum_address(topics[2][-20:]),
        timestamp=timestamp,
    )


# ============================================================================
# Client
# ============================================================================


class LedgerClient(ABC):
    """Ledger adapter interface"""

    contract_address: str

    @abstractmethod
    async def submit(self, fingerprint_bytes32: bytes, content_id: str) -> str:
        """Send storeRecord and return the transaction reference."""

    @abstractmethod
    async def get_receipt(self, tx_ref: str) -> Optional[Receipt]:
        """Receipt for tx_ref, or None if the transaction is unknown or pending."""

    @abstractmethod
    async def wait_for_receipt(self, tx_ref: str, timeout: float) -> Receipt:
        """Block until tx_ref is mined. Raises LedgerTxNotFoundError on timeout."""

    @property
    def signer_address(self) -> Optional[str]:
        return None

    def decode_event(self, log: LogEntry) -> Optional[DecodedEvent]:
        return decode_record_stored(log, self.contract_address)


def _submit_error_hint(message: str) -> Optional[str]:
    """Map common node errors to an actionable hint."""
    lowered = message.lower()
    if "insufficient funds" in lowered:
        return "Insufficient balance for gas. Fund the server signer account."
    if "nonce" in lowered:
        return "Transaction nonce error. Wait a moment and try again."
    if "gas" in lowered or "execution reverted" in lowered:
        return "Contract interaction failed. Verify CONTRACT_ADDRESS points to the deployed TruthChain contract."
    return None


class Web3LedgerClient(LedgerClient):
    """JSON-RPC ledger client backed by web3.py"""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str = "",
        chain_id: Optional[int] = None,
        gas_limit: int = 200_000,
        request_timeout: float = 30.0,
    ):
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self._account = self.w3.eth.account.from_key(private_key) if private_key else None

    @property
    def signer_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    def _to_receipt(self, tx_ref: str, raw: Any) -> Receipt:
        return Receipt(
            tx_ref=tx_ref,
            to=raw.get("to"),
            status=int(raw.get("status", 0)),
            logs=[
                LogEntry(
                    address=entry["address"],
                    topics=[bytes(t) for t in entry.get("topics", [])],
                    data=bytes(entry.get("data", b"")),
                )
                for entry in raw.get("logs", [])
            ],
            block_number=raw.get("blockNumber"),
        )

    async def get_receipt(self, tx_ref: str) -> Optional[Receipt]:
        try:
            raw = await self.w3.eth.get_transaction_receipt(tx_ref)
        except TransactionNotFound:
            logger.info(f"[Ledger] Receipt not found for {tx_ref}")
            return None
        except Exception as e:
            logger.error(f"[Ledger] Receipt lookup failed for {tx_ref}: {e}")
            raise UpstreamUnavailableError(
                f"Ledger RPC request failed: {e}",
                service="ledger",
                hint="Check LEDGER_RPC_URL and network connectivity.",
            ) from e

        return self._to_receipt(tx_ref, raw)

    async def wait_for_receipt(self, tx_ref: str, timeout: float) -> Receipt:
        try:
            raw = await self.w3.eth.wait_for_transaction_receipt(tx_ref, timeout=timeout)
        except TimeExhausted as e:
            raise LedgerTxNotFoundError(
                f"Transaction not confirmed within {timeout:.0f}s",
                tx_ref=tx_ref,
            ) from e
        except Exception as e:
            logger.error(f"[Ledger] Waiting for {tx_ref} failed: {e}")
            raise UpstreamUnavailableError(
                f"Ledger RPC request failed: {e}",
                service="ledger",
            ) from e

        logger.info(f"[Ledger] Confirmed {tx_ref} in block {raw.get('blockNumber')}")
        return self._to_receipt(tx_ref, raw)

    async def submit(self, fingerprint_bytes32: bytes, content_id: str) -> str:
        if self._account is None:
            raise UpstreamUnavailableError(
                "LEDGER_PRIVATE_KEY not configured",
                service="ledger",
                hint="Set LEDGER_PRIVATE_KEY to enable server-side submission.",
            )

        contract = self.w3.eth.contract(
            address=to_checksum_address(self.contract_address),
            abi=TRUTHCHAIN_ABI,
        )

        try:
            nonce = await self.w3.eth.get_transaction_count(self._account.address, "pending")
            tx_params = {
                "from": self._account.address,
                "nonce": nonce,
                "gas": self.gas_limit,
            }
            if self.chain_id is not None:
                tx_params["chainId"] = self.chain_id

            tx = await contract.functions.storeRecord(fingerprint_bytes32, content_id).build_transaction(tx_params)
            signed = self._account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            logger.error(f"[Ledger] storeRecord submission failed: {e}")
            raise UpstreamUnavailableError(
                f"Ledger transaction failed: {e}",
                service="ledger",
                hint=_submit_error_hint(str(e)),
            ) from e

        tx_ref = self.w3.to_hex(tx_hash)
        logger.info(f"[Ledger] Transaction sent: {tx_ref} (signer {self._account.address})")
        return tx_ref


# ============================================================================
# Configuration helpers
# ============================================================================


def resolve_contract_address(settings: Settings) -> Optional[str]:
    """
    Contract address from CONTRACT_ADDRESS, falling back to the
    {"address": ...} file written by deployment (CONTRACT_CONFIG_PATH).
    """
    if settings.CONTRACT_ADDRESS:
        return settings.CONTRACT_ADDRESS

    config_path = Path(settings.CONTRACT_CONFIG_PATH)
    if not config_path.exists():
        return None

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            address = json.load(f).get("address")
    except (OSError, ValueError, AttributeError) as e:
        logger.warning(f"[Ledger] Could not read {config_path}: {e}")
        return None

    return address or None


def build_ledger_client(settings: Settings, contract_address: str) -> Web3LedgerClient:
    return Web3LedgerClient(
        rpc_url=settings.LEDGER_RPC_URL,
        contract_address=contract_address,
        private_key=settings.LEDGER_PRIVATE_KEY,
        chain_id=settings.LEDGER_CHAIN_ID,
        gas_limit=settings.LEDGER_GAS_LIMIT,
        request_timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
    )
