"""
TruthChain System Endpoints
Service configuration visible to the client (wallet setup, backend status)
"""

from fastapi import APIRouter, Depends

from truthchain.api.deps import get_verification_config
from truthchain.core.config import settings
from truthchain.schemas.record import ContractAddressResponse, ServiceStatusResponse
from truthchain.services.content_store import resolve_backend
from truthchain.services.verification import VerificationConfig

router = APIRouter()


@router.get("/status", response_model=ServiceStatusResponse)
async def get_status(config: VerificationConfig = Depends(get_verification_config)):
    """Which content store and ledger settings are active (no secrets)"""
    return ServiceStatusResponse(
        verification_mode=config.mode,
        storage_mode=resolve_backend(settings),
        has_pinata_jwt=bool(settings.PINATA_JWT),
        has_web3_storage_token=bool(settings.WEB3_STORAGE_TOKEN),
        has_ledger_key=bool(settings.LEDGER_PRIVATE_KEY),
        has_contract_address=bool(config.contract_address),
        server_submit_enabled=config.server_submit_enabled,
    )


@router.get("/contract-address", response_model=ContractAddressResponse)
async def get_contract_address(config: VerificationConfig = Depends(get_verification_config)):
    """Deployed contract address for the client wallet"""
    return ContractAddressResponse(
        address=config.contract_address,
        chain_id=settings.LEDGER_CHAIN_ID,
        rpc_url=settings.LEDGER_RPC_URL,
    )
