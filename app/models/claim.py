import uuid
from enum import Enum

from sqlalchemy import BigInteger, Column, ForeignKey, Index, Numeric, String, text

from app.db.base import Base


class ClaimStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not ClaimStatus.PENDING


class ClaimTransaction(Base):
    """Model for claim_transactions table
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "address": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
        "amount": "2.40000000",
        "status": "confirmed",
        "earned_at": 1697123456000,
        "expires_at": 1697124056000,
        "claimed_at": 1697123500000,
        "settlement_ref": "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnb...",
        "created_at": 1697123456000,
        "updated_at": 1697123500000
    }
    """

    __tablename__ = "claim_transactions"
    __table_args__ = (
        # at most one pending claim per account
        Index(
            "uq_claim_transactions_one_pending",
            "address",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    address = Column(
        String(64), ForeignKey("accounts.address", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(20, 8), nullable=False)
    status = Column(String(16), nullable=False, default=ClaimStatus.PENDING.value, index=True)
    earned_at = Column(BigInteger, nullable=False)  # epoch millis
    expires_at = Column(BigInteger, nullable=False)
    claimed_at = Column(BigInteger, nullable=True)
    settlement_ref = Column(String(128), nullable=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
