from sqlalchemy import BigInteger, Column, Numeric, String

from app.db.base import Base


class Account(Base):
    """Model for accounts table, one row per wallet address
    Example:
    {
        "address": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
        "display_name": "user_7xKXtg2C",
        "email": null,
        "total_earned": "2.40000000",
        "last_claim_at": 1697123456000,
        "created_at": 1697037056000,
        "updated_at": 1697123456000,
        "last_login_at": 1697123456000
    }
    """

    __tablename__ = "accounts"

    address = Column(String(64), primary_key=True)
    display_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    total_earned = Column(Numeric(20, 8), nullable=False, default=0)
    last_claim_at = Column(BigInteger, nullable=False)  # epoch millis
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
    last_login_at = Column(BigInteger, nullable=True)
