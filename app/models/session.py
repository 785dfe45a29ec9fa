import uuid

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, String, Text

from app.db.base import Base


class WalletSession(Base):
    """Model for sessions table
    The token column rotates on every refresh, so rows are keyed by a stable id.
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "token": "eyJhbGciOiJIUzI1NiIs...",
        "address": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
        "issued_at": 1697123456000,
        "expires_at": 1697728256000,
        "last_activity_at": 1697123456000,
        "is_active": true
    }
    """

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    token = Column(Text, nullable=False, unique=True)
    address = Column(
        String(64), ForeignKey("accounts.address", ondelete="CASCADE"), nullable=False, index=True
    )
    issued_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)
    last_activity_at = Column(BigInteger, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
