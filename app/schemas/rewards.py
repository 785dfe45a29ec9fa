from decimal import Decimal
from typing import List, Optional, Union

from pydantic import Field

from app.core.timeutils import iso_from_millis
from app.models.claim import ClaimTransaction
from app.schemas.my_base_model import CustomBaseModel
from app.services.accrual import quantize_amount


class AvailableRewardsResponse(CustomBaseModel):
    """Claimable amount right now, from the shared accrual function"""

    amount: Decimal
    hours_since_last_claim: int
    next_eligible_in_hours: int
    can_claim: bool
    rate_per_hour: Decimal
    max_daily_reward: Decimal


class ClaimRequest(CustomBaseModel):
    """Request model for opening a claim - input validation"""

    expected_amount: Union[str, float, int] = Field(..., description="Amount the client expects to receive")


class ClaimResponse(CustomBaseModel):
    transaction_id: str
    amount: Decimal
    expires_at: str
    message: str = "Reward claim initiated. Submit the settlement reference to complete the claim."


class ConfirmRequest(CustomBaseModel):
    transaction_id: str = Field(..., min_length=1)
    settlement_reference: str = Field(..., min_length=1, max_length=128)


class FailRequest(CustomBaseModel):
    transaction_id: str = Field(..., min_length=1)


class TransactionView(CustomBaseModel):
    """Claim transaction entry"""

    id: str
    address: str
    amount: Decimal
    status: str
    earned_at: str
    expires_at: str
    claimed_at: Optional[str] = None
    settlement_reference: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_transaction(cls, transaction: ClaimTransaction) -> "TransactionView":
        return cls(
            id=transaction.id,
            address=transaction.address,
            amount=quantize_amount(transaction.amount),
            status=transaction.status,
            earned_at=iso_from_millis(transaction.earned_at),
            expires_at=iso_from_millis(transaction.expires_at),
            claimed_at=iso_from_millis(transaction.claimed_at),
            settlement_reference=transaction.settlement_ref,
            created_at=iso_from_millis(transaction.created_at),
            updated_at=iso_from_millis(transaction.updated_at),
        )


class Pagination(CustomBaseModel):
    page: int = 1
    limit: int = 20
    total: int = 0
    pages: int = 0


class TransactionListResponse(CustomBaseModel):
    transactions: List[TransactionView] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class RewardStatsResponse(CustomBaseModel):
    total_earned: Decimal = Decimal("0.00")
    total_claims: int = 0
    success_rate: float = 0.0
    average_claim_amount: Decimal = Decimal("0.00")
    first_claim_date: Optional[str] = None
    last_claim_date: Optional[str] = None


class TransactionStatusResponse(CustomBaseModel):
    transaction_id: str
    status: str
    settlement_reference: Optional[str] = None
    settled: Optional[bool] = None
    slot: Optional[int] = None
    last_checked: str
