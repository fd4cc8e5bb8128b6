"""
TruthChain Record Models
SQLAlchemy model for the news_records table
"""

import enum
from datetime import datetime, UTC
from uuid import uuid4

from sqlalchemy import Column, String, Text, DateTime, Index, Enum as SQLEnum

from truthchain.core.database import Base


class VerificationMode(str, enum.Enum):
    """How a record's ledger attestation was established"""

    LIVE = "live"                  # Receipt fetched and cross-checked on-chain
    OFFLINE_TEST = "offline_test"  # No ledger interaction, placeholder tx reference


def _new_record_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NewsRecord(Base):
    """
    news_records table model
    One verified submission. Append-only: rows are never updated or deleted.
    """
    __tablename__ = "news_records"

    id = Column(String(36), primary_key=True, default=_new_record_id)
    text = Column(Text, nullable=False)
    content_id = Column(Text, nullable=False)
    fingerprint = Column(String(64), nullable=False, unique=True)
    ledger_tx_ref = Column(String(128))
    file_name = Column(Text, default="unknown")
    file_type = Column(String(255), default="application/octet-stream")
    # Exact fingerprint input, never reformatted
    timestamp_string = Column(String(64), nullable=False)
    submitter_address = Column(String(42))
    verification_mode = Column(
        SQLEnum(
            VerificationMode,
            name="verification_mode_enum",
            values_callable=lambda modes: [m.value for m in modes],
        ),
        nullable=False,
        default=VerificationMode.LIVE,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_news_records_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<NewsRecord(id={self.id}, fingerprint={(self.fingerprint or '')[:12]}..., mode={self.verification_mode})>"
