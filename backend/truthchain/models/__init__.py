# SQLAlchemy Models

from truthchain.models.record import NewsRecord, VerificationMode

__all__ = [
    "NewsRecord",
    # Enums
    "VerificationMode",
]
