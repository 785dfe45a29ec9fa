from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.core.timeutils import iso_from_millis
from app.models.account import Account
from app.schemas.my_base_model import CustomBaseModel
from app.services.accrual import quantize_amount


class NonceResponse(CustomBaseModel):
    """Response model for challenge generation - output"""

    message: str
    nonce: str
    timestamp: int


class ConnectRequest(BaseModel):
    """Request model for wallet connection - input validation"""

    address: str = Field(..., description="Wallet address (base58 public key)")
    signature: str = Field(..., description="Signature of the challenge message")
    message: str = Field(..., description="Challenge message exactly as signed")


class AccountView(CustomBaseModel):
    """Public view of an account"""

    address: str
    display_name: str
    email: Optional[str] = None
    total_earned: Decimal = Decimal("0.00")
    last_claim_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_login_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountView":
        return cls(
            address=account.address,
            display_name=account.display_name,
            email=account.email,
            total_earned=quantize_amount(account.total_earned or 0),
            last_claim_at=iso_from_millis(account.last_claim_at),
            created_at=iso_from_millis(account.created_at),
            updated_at=iso_from_millis(account.updated_at),
            last_login_at=iso_from_millis(account.last_login_at),
        )


class SessionResponse(CustomBaseModel):
    """Response model for connect / refresh - output"""

    session_token: str
    expires_at: Optional[str] = None
    account: AccountView


class VerifyResponse(CustomBaseModel):
    account: AccountView
