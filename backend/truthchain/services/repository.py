"""
Record Repository
Append-only persistence for verified records
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from truthchain.core.exceptions import DuplicateRecordError
from truthchain.models.record import NewsRecord

logger = logging.getLogger(__name__)


class RecordRepository:
    """
    Reads and inserts NewsRecord rows. No update or delete operations.

    Duplicate detection relies on the unique index on fingerprint, so two
    concurrent inserts of the same fingerprint are serialized by the database.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_all(self, limit: Optional[int] = None, offset: int = 0) -> Sequence[NewsRecord]:
        """Records newest first."""
        query = select(NewsRecord).order_by(NewsRecord.created_at.desc(), NewsRecord.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(NewsRecord))
        return result.scalar_one()

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[NewsRecord]:
        result = await self.db.execute(
            select(NewsRecord).where(NewsRecord.fingerprint == fingerprint)
        )
        return result.scalar_one_or_none()

    async def create(self, record: NewsRecord) -> NewsRecord:
        """
        Insert a record and return it with id/created_at populated.

        Raises:
            DuplicateRecordError: fingerprint already stored
        """
        fingerprint = record.fingerprint
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if await self.get_by_fingerprint(fingerprint) is not None:
                logger.info(f"[Records] Duplicate fingerprint rejected: {fingerprint[:16]}...")
                raise DuplicateRecordError(fingerprint) from e
            raise

        await self.db.refresh(record)
        logger.info(f"[Records] Saved record {record.id}")
        return record
