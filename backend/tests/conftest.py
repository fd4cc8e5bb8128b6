"""
Shared test doubles for the verification protocol

Fakes stand in for the content store, ledger and repository so the protocol
can be exercised without IPFS, an RPC node or PostgreSQL. Repository tests
use a real RecordRepository over in-memory SQLite.
"""

import asyncio
from datetime import datetime, UTC
from typing import Optional
from uuid import uuid4

import pytest
from eth_abi import encode as abi_encode
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

from truthchain.core.database import Base
from truthchain.core.exceptions import DuplicateRecordError, LedgerTxNotFoundError
from truthchain.models.record import NewsRecord, VerificationMode
from truthchain.services.content_store import ContentStore
from truthchain.services.ledger import LedgerClient, LogEntry, Receipt, RECORD_STORED_TOPIC
from truthchain.services.repository import RecordRepository
from truthchain.services.verification import VerificationConfig

CONTRACT_ADDRESS = "0x" + "ab" * 20
OTHER_CONTRACT_ADDRESS = "0x" + "cd" * 20
WALLET_ADDRESS = "0x" + "12" * 20
TX_REF = "0x" + "77" * 32
ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "video/mp4", "video/webm"})


# =============================================================================
# Receipt builders
# =============================================================================


def make_record_stored_log(
    fingerprint_bytes: bytes,
    cid: str,
    submitter: str = WALLET_ADDRESS,
    address: str = CONTRACT_ADDRESS,
    timestamp: int = 1704067200,
) -> LogEntry:
    """RecordStored log as emitted by the contract"""
    submitter_topic = b"\x00" * 12 + bytes.fromhex(submitter[2:])
    return LogEntry(
        address=address,
        topics=[RECORD_STORED_TOPIC, fingerprint_bytes, submitter_topic],
        data=abi_encode(["string", "uint256"], [cid, timestamp]),
    )


def make_receipt(
    fingerprint: str,
    cid: str,
    submitter: str = WALLET_ADDRESS,
    to: Optional[str] = CONTRACT_ADDRESS,
    status: int = 1,
    log_address: str = CONTRACT_ADDRESS,
    tx_ref: str = TX_REF,
) -> Receipt:
    return Receipt(
        tx_ref=tx_ref,
        to=to,
        status=status,
        logs=[make_record_stored_log(bytes.fromhex(fingerprint), cid, submitter, log_address)],
        block_number=1,
    )


# =============================================================================
# Fakes
# =============================================================================


class FakeContentStore(ContentStore):
    mode = "fake"

    def __init__(self, cid: str = "bafy123", error: Optional[Exception] = None):
        self.cid = cid
        self.error = error
        self.uploads: list[tuple[bytes, str]] = []

    async def upload(self, data: bytes, filename: str) -> str:
        if self.error is not None:
            raise self.error
        self.uploads.append((data, filename))
        return self.cid


class FakeLedger(LedgerClient):
    """In-memory ledger keyed by transaction reference"""

    def __init__(self, contract_address: str = CONTRACT_ADDRESS, signer: Optional[str] = WALLET_ADDRESS):
        self.contract_address = contract_address
        self.receipts: dict[str, Receipt] = {}
        self.submitted: list[tuple[bytes, str]] = []
        self._signer = signer

    @property
    def signer_address(self) -> Optional[str]:
        return self._signer

    async def submit(self, fingerprint_bytes32: bytes, content_id: str) -> str:
        self.submitted.append((fingerprint_bytes32, content_id))
        tx_ref = "0x" + f"{len(self.submitted):064x}"
        self.receipts[tx_ref] = make_receipt(
            fingerprint_bytes32.hex(), content_id, submitter=self._signer, tx_ref=tx_ref,
        )
        return tx_ref

    async def get_receipt(self, tx_ref: str) -> Optional[Receipt]:
        return self.receipts.get(tx_ref)

    async def wait_for_receipt(self, tx_ref: str, timeout: float) -> Receipt:
        receipt = self.receipts.get(tx_ref)
        if receipt is None:
            raise LedgerTxNotFoundError("Transaction not confirmed", tx_ref=tx_ref)
        return receipt


class FakeRepository:
    """List-backed stand-in for RecordRepository"""

    def __init__(self):
        self.records: list[NewsRecord] = []

    async def list_all(self, limit: Optional[int] = None, offset: int = 0):
        # insertion order breaks created_at ties
        indexed = sorted(enumerate(self.records), key=lambda p: (p[1].created_at, p[0]), reverse=True)
        ordered = [record for _, record in indexed]
        end = None if limit is None else offset + limit
        return ordered[offset:end]

    async def count(self) -> int:
        return len(self.records)

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[NewsRecord]:
        return next((r for r in self.records if r.fingerprint == fingerprint), None)

    async def create(self, record: NewsRecord) -> NewsRecord:
        if await self.get_by_fingerprint(record.fingerprint) is not None:
            raise DuplicateRecordError(record.fingerprint)
        record.id = record.id or str(uuid4())
        record.created_at = record.created_at or datetime.now(UTC)
        self.records.append(record)
        return record


def make_config(
    mode: VerificationMode = VerificationMode.LIVE,
    contract_address: Optional[str] = CONTRACT_ADDRESS,
    **overrides,
) -> VerificationConfig:
    values = dict(
        mode=mode,
        contract_address=contract_address,
        allowed_mime_types=ALLOWED_MIME_TYPES,
        max_upload_bytes=1024,
        server_submit_enabled=False,
        receipt_timeout_seconds=1.0,
        explorer_tx_url="https://amoy.polygonscan.com/tx/",
    )
    values.update(overrides)
    return VerificationConfig(**values)


# =============================================================================
# SQLite repository
# =============================================================================


async def _with_sqlite_session(scenario):
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            return await scenario(RecordRepository(session))
    finally:
        await engine.dispose()


@pytest.fixture
def run_with_repository():
    """
    Run an async scenario(repository) against a fresh in-memory database.

    Usage:
        result = run_with_repository(scenario)
    """
    def _run(scenario):
        return asyncio.run(_with_sqlite_session(scenario))
    return _run
