"""
Record Schemas
Pydantic schemas for record-related API endpoints
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from truthchain.models.record import VerificationMode


# =============================================================================
# Record Schemas
# =============================================================================

class RecordResponse(BaseModel):
    """Schema for a persisted record"""
    id: str
    text: str
    content_id: str
    fingerprint: str
    ledger_tx_ref: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    timestamp: str = Field(..., validation_alias="timestamp_string")
    submitter_address: Optional[str] = None
    verification_mode: VerificationMode
    created_at: datetime
    explorer_url: Optional[str] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class RecordListResponse(BaseModel):
    """Records newest first, with pagination"""
    total: int
    items: list[RecordResponse]


# =============================================================================
# Split-flow Schemas
# =============================================================================

class PrepareUploadResponse(BaseModel):
    """Returned by /records/prepare for client-side signing"""
    success: bool = True
    content_id: str
    fingerprint: str
    timestamp: str
    file_name: str
    file_type: str
    storage_mode: str
    verification_mode: VerificationMode


class FinalizeRecordRequest(BaseModel):
    """Client claim after signing the storeRecord transaction"""
    text: str = Field("", description="Submitted statement")
    content_id: str = Field("", description="CID returned by /records/prepare")
    fingerprint: str = Field("", description="Fingerprint returned by /records/prepare")
    timestamp: str = Field("", description="Timestamp returned by /records/prepare, verbatim")
    tx_ref: Optional[str] = Field(None, description="storeRecord transaction hash")
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    wallet_address: Optional[str] = Field(None, description="Wallet that signed the transaction")


class RecordSavedResponse(BaseModel):
    success: bool = True
    record: RecordResponse


# =============================================================================
# System Schemas
# =============================================================================

class ErrorResponse(BaseModel):
    """Structured error body"""
    kind: str
    message: str
    code: Optional[str] = None
    category: Optional[str] = None
    retryable: bool = False
    hint: Optional[str] = None


class ServiceStatusResponse(BaseModel):
    verification_mode: VerificationMode
    storage_mode: str
    has_pinata_jwt: bool
    has_web3_storage_token: bool
    has_ledger_key: bool
    has_contract_address: bool
    server_submit_enabled: bool


class ContractAddressResponse(BaseModel):
    address: Optional[str] = None
    chain_id: int
    rpc_url: str
