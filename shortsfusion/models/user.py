"""
User Model
"""

import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from shortsfusion.models import Base


class UserModel(Base):
    """
    User account with a materialized token balance

    `tokens` is a cache of the sum of the user's ledger entries and is only
    changed by the ledger service.
    """

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)

    tokens = Column(Integer, default=0, nullable=False)
    plan = Column(String, default="free", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("tokens >= 0", name="ck_users_tokens_non_negative"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "tokens": self.tokens,
            "plan": self.plan,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @staticmethod
    def generate_user_id() -> str:
        """Generate a unique user ID"""
        return str(uuid.uuid4())
