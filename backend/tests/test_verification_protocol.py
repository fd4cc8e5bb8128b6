"""
Verification Protocol Tests

Intake -> Pin -> Fingerprint -> Cross-check -> Persist, with fake content
store / ledger / repository. Each cross-check failure must surface as its own
error kind.
"""

import asyncio
from dataclasses import replace

import pytest

from truthchain.core.exceptions import (
    CidMismatchError,
    DuplicateRecordError,
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
from truthchain.models.record import VerificationMode
from truthchain.services.fingerprint import compute_fingerprint
from truthchain.services.verification import SubmissionClaim, VerificationProtocol

from conftest import (
    CONTRACT_ADDRESS,
    OTHER_CONTRACT_ADDRESS,
    TX_REF,
    WALLET_ADDRESS,
    FakeContentStore,
    FakeLedger,
    FakeRepository,
    make_config,
    make_receipt,
)

TEXT = "Breaking news"
CID = "bafy123"
TIMESTAMP = "2024-01-01T00:00:00.000Z"
FINGERPRINT = compute_fingerprint(TEXT, CID, TIMESTAMP)


def _claim(**overrides) -> SubmissionClaim:
    values = dict(
        text=TEXT,
        content_id=CID,
        fingerprint=FINGERPRINT,
        timestamp=TIMESTAMP,
        tx_ref=TX_REF,
        file_name="photo.png",
        file_type="image/png",
        submitter_address=WALLET_ADDRESS,
    )
    values.update(overrides)
    return SubmissionClaim(**values)


class ProtocolTestBase:
    """Builds a live-mode protocol over fakes"""

    def setup_method(self):
        self.store = FakeContentStore(cid=CID)
        self.ledger = FakeLedger()
        self.repository = FakeRepository()
        self.config = make_config()
        self.protocol = VerificationProtocol(
            config=self.config,
            content_store=self.store,
            repository=self.repository,
            ledger=self.ledger,
        )

    def use_config(self, **overrides):
        self.config = replace(self.config, **overrides)
        self.protocol.config = self.config


# =============================================================================
# Intake / prepare
# =============================================================================


class TestPrepare(ProtocolTestBase):

    def test_prepare_pins_and_fingerprints(self):
        prepared = asyncio.run(self.protocol.prepare(TEXT, b"img", "photo.png", "image/png"))

        assert prepared.content_id == CID
        assert prepared.fingerprint == compute_fingerprint(TEXT, CID, prepared.timestamp)
        assert prepared.storage_mode == "fake"
        assert prepared.verification_mode == VerificationMode.LIVE
        assert self.store.uploads == [(b"img", "photo.png")]

    def test_prepare_persists_nothing(self):
        asyncio.run(self.protocol.prepare(TEXT, b"img", "photo.png", "image/png"))
        assert self.repository.records == []

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_missing_text_rejected(self, text):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.prepare(text, b"img", "photo.png", "image/png"))
        assert self.store.uploads == []

    @pytest.mark.parametrize("data", [None, b""])
    def test_missing_file_rejected(self, data):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.prepare(TEXT, data, "photo.png", "image/png"))

    def test_unsupported_mime_type_rejected(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            asyncio.run(self.protocol.prepare(TEXT, b"%PDF", "doc.pdf", "application/pdf"))
        assert exc_info.value.kind == "ValidationError"

    def test_oversized_file_rejected(self):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.prepare(TEXT, b"x" * 2048, "photo.png", "image/png"))

    def test_pin_failure_is_terminal(self):
        self.protocol.content_store = FakeContentStore(
            error=UpstreamUnavailableError("PINATA_JWT not configured", service="pinata")
        )

        with pytest.raises(UpstreamUnavailableError):
            asyncio.run(self.protocol.prepare(TEXT, b"img", "photo.png", "image/png"))
        assert self.repository.records == []


# =============================================================================
# Cross-check
# =============================================================================


class TestCrossCheck(ProtocolTestBase):

    def _finalize(self, receipt=None, **claim_overrides):
        if receipt is not None:
            self.ledger.receipts[receipt.tx_ref] = receipt
        return asyncio.run(self.protocol.finalize(_claim(**claim_overrides)))

    def test_valid_transaction_persists_record(self):
        record = self._finalize(make_receipt(FINGERPRINT, CID))

        assert record.fingerprint == FINGERPRINT
        assert record.ledger_tx_ref == TX_REF
        assert record.verification_mode == VerificationMode.LIVE
        assert record.timestamp_string == TIMESTAMP
        assert record.submitter_address == WALLET_ADDRESS
        assert len(self.repository.records) == 1

    def test_persisted_fingerprint_recomputes(self):
        record = self._finalize(make_receipt(FINGERPRINT, CID))
        assert compute_fingerprint(record.text, record.content_id, record.timestamp_string) == record.fingerprint

    def test_missing_receipt(self):
        with pytest.raises(LedgerTxNotFoundError) as exc_info:
            self._finalize()
        assert exc_info.value.retryable is True
        assert self.repository.records == []

    def test_reverted_transaction(self):
        with pytest.raises(LedgerTxFailedError):
            self._finalize(make_receipt(FINGERPRINT, CID, status=0))

    def test_wrong_contract_even_if_event_log_exists(self):
        """Receipt.to points elsewhere while a valid-looking log comes from our contract"""
        receipt = make_receipt(FINGERPRINT, CID, to=OTHER_CONTRACT_ADDRESS, log_address=CONTRACT_ADDRESS)

        with pytest.raises(WrongContractError):
            self._finalize(receipt)
        assert self.repository.records == []

    def test_contract_address_compared_case_insensitively(self):
        receipt = make_receipt(FINGERPRINT, CID, to=CONTRACT_ADDRESS.upper().replace("0X", "0x"))
        record = self._finalize(receipt)
        assert record.fingerprint == FINGERPRINT

    def test_event_from_other_contract_is_ignored(self):
        receipt = make_receipt(FINGERPRINT, CID, log_address=OTHER_CONTRACT_ADDRESS)

        with pytest.raises(EventNotFoundError):
            self._finalize(receipt)

    def test_single_bit_hash_difference(self):
        flipped = bytearray.fromhex(FINGERPRINT)
        flipped[-1] ^= 0x01
        receipt = make_receipt(bytes(flipped).hex(), CID)

        with pytest.raises(HashMismatchError):
            self._finalize(receipt)

    def test_cid_mismatch_scenario(self):
        """Event carries bafy999 for a bafy123 submission"""
        with pytest.raises(CidMismatchError) as exc_info:
            self._finalize(make_receipt(FINGERPRINT, "bafy999"))

        assert exc_info.value.kind == "CidMismatch"
        assert exc_info.value.tx_ref == TX_REF

    def test_submitter_mismatch(self):
        receipt = make_receipt(FINGERPRINT, CID, submitter="0x" + "99" * 20)

        with pytest.raises(SubmitterMismatchError):
            self._finalize(receipt)

    def test_submitter_compared_case_insensitively(self):
        mixed_wallet = "0x" + "aB" * 20
        receipt = make_receipt(FINGERPRINT, CID, submitter=mixed_wallet.lower())

        record = self._finalize(receipt, submitter_address=mixed_wallet)
        assert record is not None

    def test_submitter_check_skipped_without_wallet(self):
        receipt = make_receipt(FINGERPRINT, CID, submitter="0x" + "99" * 20)
        record = self._finalize(receipt, submitter_address=None)
        assert record.submitter_address is None

    def test_hash_claim_with_0x_prefix_accepted(self):
        record = self._finalize(make_receipt(FINGERPRINT, CID), fingerprint="0x" + FINGERPRINT)
        assert record.fingerprint == FINGERPRINT

    def test_live_mode_requires_contract_address(self):
        self.use_config(contract_address=None)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            self._finalize(make_receipt(FINGERPRINT, CID))
        assert exc_info.value.service == "ledger"


# =============================================================================
# Persist
# =============================================================================


class TestPersist(ProtocolTestBase):

    def test_forged_fingerprint_rejected_before_ledger_lookup(self):
        forged = compute_fingerprint("Different text", CID, TIMESTAMP)
        self.ledger.receipts[TX_REF] = make_receipt(forged, CID)

        with pytest.raises(HashVerificationFailedError):
            asyncio.run(self.protocol.finalize(_claim(fingerprint=forged)))
        assert self.repository.records == []

    def test_reformatted_timestamp_rejected(self):
        with pytest.raises(HashVerificationFailedError):
            asyncio.run(self.protocol.finalize(_claim(timestamp="2024-01-01T00:00:00Z")))

    def test_malformed_fingerprint_rejected(self):
        with pytest.raises(HashVerificationFailedError):
            asyncio.run(self.protocol.finalize(_claim(fingerprint="not-a-hash")))

    def test_duplicate_submission(self):
        self.ledger.receipts[TX_REF] = make_receipt(FINGERPRINT, CID)
        asyncio.run(self.protocol.finalize(_claim()))

        with pytest.raises(DuplicateRecordError) as exc_info:
            asyncio.run(self.protocol.finalize(_claim()))

        assert exc_info.value.http_status == 409
        assert len(self.repository.records) == 1

    @pytest.mark.parametrize("field_name", ["text", "content_id", "fingerprint", "timestamp", "tx_ref"])
    def test_required_fields(self, field_name):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.finalize(_claim(**{field_name: ""})))

    def test_malformed_tx_ref(self):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.finalize(_claim(tx_ref="0x1234")))

    def test_malformed_wallet_address(self):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.finalize(_claim(submitter_address="wallet")))

    def test_file_metadata_defaults(self):
        self.ledger.receipts[TX_REF] = make_receipt(FINGERPRINT, CID)
        record = asyncio.run(self.protocol.finalize(_claim(file_name=None, file_type=None)))

        assert record.file_name == "unknown"
        assert record.file_type == "application/octet-stream"

    @pytest.mark.parametrize("timestamp", [
        "2024-01-01T00:00:00.000Z" + "0" * 50,
        "yesterday",
        "2024-01-01 00:00:00",
    ])
    def test_timestamp_must_be_iso8601_within_column_width(self, timestamp):
        """Rejected before persisting even when the fingerprint matches"""
        fingerprint = compute_fingerprint(TEXT, CID, timestamp)
        self.ledger.receipts[TX_REF] = make_receipt(fingerprint, CID)

        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.finalize(_claim(fingerprint=fingerprint, timestamp=timestamp)))
        assert self.repository.records == []

    def test_timestamp_with_offset_accepted(self):
        timestamp = "2024-01-01T09:00:00.000+09:00"
        fingerprint = compute_fingerprint(TEXT, CID, timestamp)
        self.ledger.receipts[TX_REF] = make_receipt(fingerprint, CID)

        record = asyncio.run(self.protocol.finalize(_claim(fingerprint=fingerprint, timestamp=timestamp)))
        assert record.timestamp_string == timestamp

    def test_file_type_too_long(self):
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.finalize(_claim(file_type="image/" + "x" * 300)))

    def test_upload_size_check(self):
        self.protocol.check_upload_size(None)
        self.protocol.check_upload_size(1024)
        with pytest.raises(SubmissionValidationError):
            self.protocol.check_upload_size(1025)


# =============================================================================
# Offline test mode
# =============================================================================


class TestOfflineMode(ProtocolTestBase):

    def setup_method(self):
        super().setup_method()
        self.use_config(mode=VerificationMode.OFFLINE_TEST, contract_address=None)
        self.protocol.ledger = None

    def test_finalize_without_ledger(self):
        record = asyncio.run(self.protocol.finalize(_claim(tx_ref=None)))

        assert record.verification_mode == VerificationMode.OFFLINE_TEST
        assert record.ledger_tx_ref == f"offline-{FINGERPRINT[:16]}"

    def test_client_tx_ref_kept_but_flagged(self):
        record = asyncio.run(self.protocol.finalize(_claim()))

        assert record.ledger_tx_ref == TX_REF
        assert record.verification_mode == VerificationMode.OFFLINE_TEST

    def test_fingerprint_still_verified(self):
        with pytest.raises(HashVerificationFailedError):
            asyncio.run(self.protocol.finalize(_claim(text="Edited text")))

    def test_upload_without_ledger(self):
        record = asyncio.run(self.protocol.submit_and_persist(TEXT, b"img", "photo.png", "image/png"))

        assert record.verification_mode == VerificationMode.OFFLINE_TEST
        assert record.ledger_tx_ref.startswith("offline-")

    def test_offline_record_has_no_explorer_url(self):
        record = asyncio.run(self.protocol.finalize(_claim()))
        assert self.config.explorer_url(record) is None

    def test_client_tx_ref_length_limited(self):
        """Free-form offline tx refs must still fit the ledger_tx_ref column"""
        with pytest.raises(SubmissionValidationError):
            asyncio.run(self.protocol.finalize(_claim(tx_ref="x" * 129)))
        assert self.repository.records == []


# =============================================================================
# Server-submit mode
# =============================================================================


class TestServerSubmit(ProtocolTestBase):

    def test_disabled_by_default(self):
        with pytest.raises(ServerSubmitDisabledError) as exc_info:
            asyncio.run(self.protocol.submit_and_persist(TEXT, b"img", "photo.png", "image/png"))

        assert exc_info.value.http_status == 403
        assert self.store.uploads == []

    def test_submits_waits_and_persists(self):
        self.use_config(server_submit_enabled=True)

        record = asyncio.run(self.protocol.submit_and_persist(TEXT, b"img", "photo.png", "image/png"))

        assert len(self.ledger.submitted) == 1
        fp_bytes, cid = self.ledger.submitted[0]
        assert fp_bytes.hex() == record.fingerprint
        assert cid == CID
        assert record.verification_mode == VerificationMode.LIVE
        assert record.submitter_address == WALLET_ADDRESS
        assert self.config.explorer_url(record) == f"https://amoy.polygonscan.com/tx/{record.ledger_tx_ref}"

    def test_reverted_submission_not_persisted(self):
        self.use_config(server_submit_enabled=True)
        original_submit = self.ledger.submit

        async def reverting_submit(fp, cid):
            tx_ref = await original_submit(fp, cid)
            self.ledger.receipts[tx_ref].status = 0
            return tx_ref

        self.ledger.submit = reverting_submit

        with pytest.raises(LedgerTxFailedError):
            asyncio.run(self.protocol.submit_and_persist(TEXT, b"img", "photo.png", "image/png"))
        assert self.repository.records == []
