"""
Token Ledger Model
"""

from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from shortsfusion.models import Base


class LedgerEntryModel(Base):
    """
    Append-only record of every balance-affecting event

    Rows are never updated or deleted. The idempotency key is unique so a
    retried write lands at most once.
    """

    __tablename__ = "token_ledger"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    delta = Column(Integer, nullable=False)  # negative for debits
    reason = Column(String, nullable=False)
    video_id = Column(String, nullable=True, index=True)
    idempotency_key = Column(String, nullable=False, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_ledger_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "delta": self.delta,
            "reason": self.reason,
            "video_id": self.video_id,
            "idempotency_key": self.idempotency_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
