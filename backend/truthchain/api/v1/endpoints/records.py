"""
TruthChain Records API Endpoints

Endpoints:
- GET    /records                 - verified records, newest first
- GET    /records/{fingerprint}   - lookup a verified record
- POST   /records/prepare         - pin file + compute fingerprint (client signs next)
- POST   /records/finalize        - cross-check client transaction and persist
- POST   /records/upload          - server-submit flow (LEDGER_SERVER_SUBMIT only)
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from truthchain.api.deps import (
    get_record_repository,
    get_verification_config,
    get_verification_protocol,
)
from truthchain.models.record import NewsRecord
from truthchain.schemas.record import (
    ErrorResponse,
    FinalizeRecordRequest,
    PrepareUploadResponse,
    RecordListResponse,
    RecordResponse,
    RecordSavedResponse,
)
from truthchain.services.fingerprint import normalize_fingerprint
from truthchain.services.repository import RecordRepository
from truthchain.services.verification import (
    SubmissionClaim,
    VerificationConfig,
    VerificationProtocol,
)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation or cross-check failure"},
    409: {"model": ErrorResponse, "description": "Duplicate record"},
    503: {"model": ErrorResponse, "description": "Content store or ledger unavailable"},
}


def _to_response(record: NewsRecord, config: VerificationConfig) -> RecordResponse:
    response = RecordResponse.model_validate(record)
    return response.model_copy(update={"explorer_url": config.explorer_url(record)})


async def _read_upload(
    file: Optional[UploadFile],
    protocol: VerificationProtocol,
) -> tuple[Optional[bytes], Optional[str], Optional[str]]:
    """Read at most max_upload_bytes + 1 so oversized files fail intake without being buffered."""
    if file is None:
        return None, None, None
    protocol.check_upload_size(file.size)
    data = await file.read(protocol.config.max_upload_bytes + 1)
    return data, file.filename, file.content_type


@router.get("", response_model=RecordListResponse)
async def list_records(
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    repository: RecordRepository = Depends(get_record_repository),
    config: VerificationConfig = Depends(get_verification_config),
):
    """Verified records, newest first"""
    total = await repository.count()
    records = await repository.list_all(limit=limit, offset=offset)
    return RecordListResponse(
        total=total,
        items=[_to_response(r, config) for r in records],
    )


@router.get("/{fingerprint}", response_model=RecordResponse)
async def get_record(
    fingerprint: str,
    repository: RecordRepository = Depends(get_record_repository),
    config: VerificationConfig = Depends(get_verification_config),
):
    """Lookup a verified record by fingerprint (with or without 0x prefix)"""
    try:
        canonical = normalize_fingerprint(fingerprint)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid fingerprint")

    record = await repository.get_by_fingerprint(canonical)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")

    return _to_response(record, config)


@router.post(
    "/prepare",
    response_model=PrepareUploadResponse,
    responses=ERROR_RESPONSES,
    summary="Pin file and compute fingerprint",
)
async def prepare_upload(
    text: Optional[str] = Form(None, description="Statement text"),
    file: Optional[UploadFile] = File(None, description="Media file (jpg, png, gif, mp4, webm)"),
    protocol: VerificationProtocol = Depends(get_verification_protocol),
):
    """
    Split flow, step 1.

    The client signs storeRecord(fingerprint, content_id) with its wallet and
    then calls /records/finalize with the transaction hash and the exact
    timestamp returned here.
    """
    data, filename, content_type = await _read_upload(file, protocol)
    prepared = await protocol.prepare(text, data, filename, content_type)

    return PrepareUploadResponse(
        content_id=prepared.content_id,
        fingerprint=prepared.fingerprint,
        timestamp=prepared.timestamp,
        file_name=prepared.file_name,
        file_type=prepared.file_type,
        storage_mode=prepared.storage_mode,
        verification_mode=prepared.verification_mode,
    )


@router.post(
    "/finalize",
    response_model=RecordSavedResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED,
    summary="Verify ledger transaction and save record",
)
async def finalize_record(
    request: FinalizeRecordRequest,
    protocol: VerificationProtocol = Depends(get_verification_protocol),
):
    """Split flow, step 2. The transaction is re-verified on-chain before saving."""
    record = await protocol.finalize(
        SubmissionClaim(
            text=request.text,
            content_id=request.content_id,
            fingerprint=request.fingerprint,
            timestamp=request.timestamp,
            tx_ref=request.tx_ref,
            file_name=request.file_name,
            file_type=request.file_type,
            submitter_address=request.wallet_address,
        )
    )
    return RecordSavedResponse(record=_to_response(record, protocol.config))


@router.post(
    "/upload",
    response_model=RecordSavedResponse,
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse, "description": "Server submit disabled"}},
    status_code=status.HTTP_201_CREATED,
    summary="[Test] Server-submitted ledger transaction",
)
async def upload_record(
    text: Optional[str] = Form(None, description="Statement text"),
    file: Optional[UploadFile] = File(None, description="Media file (jpg, png, gif, mp4, webm)"),
    protocol: VerificationProtocol = Depends(get_verification_protocol),
):
    """
    Single-shot flow where the server signs storeRecord itself.

    Disabled unless LEDGER_SERVER_SUBMIT=true (or VERIFICATION_MODE=offline_test).
    """
    data, filename, content_type = await _read_upload(file, protocol)
    record = await protocol.submit_and_persist(text, data, filename, content_type)
    return RecordSavedResponse(record=_to_response(record, protocol.config))
