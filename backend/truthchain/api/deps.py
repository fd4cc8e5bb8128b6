"""
API Dependencies
Builds the verification protocol for a request from the global settings
"""

import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from truthchain.core.config import settings
from truthchain.core.database import get_db
from truthchain.models.record import VerificationMode
from truthchain.services.content_store import ContentStore, build_content_store
from truthchain.services.ledger import LedgerClient, build_ledger_client, resolve_contract_address
from truthchain.services.repository import RecordRepository
from truthchain.services.verification import VerificationConfig, VerificationProtocol

logger = logging.getLogger(__name__)

_content_store_instance: Optional[ContentStore] = None
_ledger_instance: Optional[LedgerClient] = None


def get_verification_config() -> VerificationConfig:
    return VerificationConfig.from_settings(settings, resolve_contract_address(settings))


def get_content_store() -> ContentStore:
    """Get singleton content store for the configured backend"""
    global _content_store_instance
    if _content_store_instance is None:
        _content_store_instance = build_content_store(settings)
        logger.info(f"[API] Content store backend: {_content_store_instance.mode}")
    return _content_store_instance


def get_ledger_client(
    config: VerificationConfig = Depends(get_verification_config),
) -> Optional[LedgerClient]:
    """Ledger client, or None when the ledger is not in use"""
    global _ledger_instance
    if config.mode != VerificationMode.LIVE or not config.contract_address:
        return None
    if _ledger_instance is None or _ledger_instance.contract_address != config.contract_address:
        _ledger_instance = build_ledger_client(settings, config.contract_address)
    return _ledger_instance


def reset_dependencies() -> None:
    """Reset singleton instances (for testing)"""
    global _content_store_instance, _ledger_instance
    _content_store_instance = None
    _ledger_instance = None


def get_record_repository(db: AsyncSession = Depends(get_db)) -> RecordRepository:
    return RecordRepository(db)


def get_verification_protocol(
    config: VerificationConfig = Depends(get_verification_config),
    content_store: ContentStore = Depends(get_content_store),
    repository: RecordRepository = Depends(get_record_repository),
    ledger: Optional[LedgerClient] = Depends(get_ledger_client),
) -> VerificationProtocol:
    return VerificationProtocol(
        config=config,
        content_store=content_store,
        repository=repository,
        ledger=ledger,
    )
