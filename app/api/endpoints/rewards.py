from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

import app.schemas.rewards as schemas
from app.core.dependencies import get_clock, get_current_account
from app.core.errors import unwrap
from app.core.rate_limit import claim_limit
from app.core.timeutils import Clock, iso_from_millis
from app.db.session import get_db
from app.models.account import Account
from app.models.claim import ClaimStatus
from app.services.accrual import quantize_amount
from app.services.claims import ClaimPage, ClaimStateMachine

router = APIRouter()
group_tags: List[str | Enum] = ["Rewards"]


def get_claim_machine(db: Session = Depends(get_db)) -> ClaimStateMachine:
    return ClaimStateMachine(db)


def transaction_page(page: ClaimPage) -> schemas.TransactionListResponse:
    return schemas.TransactionListResponse(
        transactions=[schemas.TransactionView.from_transaction(t) for t in page.transactions],
        pagination=schemas.Pagination(page=page.page, limit=page.limit, total=page.total, pages=page.pages),
    )


@router.get(
    "/available",
    tags=group_tags,
    response_model=schemas.AvailableRewardsResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def get_available_rewards(
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
    clock: Clock = Depends(get_clock),
) -> schemas.AvailableRewardsResponse:
    """
    Amount the caller could claim right now.

    Computed by the same accrual function the claim itself uses, so the
    preview and the claimed amount never drift apart.
    """
    accrual = machine.preview(account, clock())
    return schemas.AvailableRewardsResponse(
        amount=accrual.amount,
        hours_since_last_claim=accrual.hours_elapsed,
        next_eligible_in_hours=accrual.next_eligible_in_hours,
        can_claim=accrual.can_claim,
        rate_per_hour=machine.policy.rate_per_hour,
        max_daily_reward=machine.policy.cap_per_window,
    )


@router.post(
    "/claim",
    tags=group_tags,
    response_model=schemas.ClaimResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
@claim_limit
def claim_rewards(
    request: Request,
    body: schemas.ClaimRequest,
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
    clock: Clock = Depends(get_clock),
) -> schemas.ClaimResponse:
    """Open a pending claim for the server-computed amount."""
    transaction = unwrap(machine.open(account.address, body.expected_amount, clock()))
    return schemas.ClaimResponse(
        transaction_id=transaction.id,
        amount=quantize_amount(transaction.amount),
        expires_at=iso_from_millis(transaction.expires_at),
    )


@router.post(
    "/confirm",
    tags=group_tags,
    response_model=schemas.TransactionView,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def confirm_claim(
    body: schemas.ConfirmRequest,
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
    clock: Clock = Depends(get_clock),
) -> schemas.TransactionView:
    """Record the settlement reference and credit the account."""
    transaction = unwrap(
        machine.confirm(body.transaction_id, account.address, body.settlement_reference, clock())
    )
    return schemas.TransactionView.from_transaction(transaction)


@router.post(
    "/fail",
    tags=group_tags,
    response_model=schemas.TransactionView,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def fail_claim(
    body: schemas.FailRequest,
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
    clock: Clock = Depends(get_clock),
) -> schemas.TransactionView:
    transaction = unwrap(machine.fail(body.transaction_id, account.address, clock()))
    return schemas.TransactionView.from_transaction(transaction)


@router.get(
    "/history",
    tags=group_tags,
    response_model=schemas.TransactionListResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def get_reward_history(
    page: int = Query(default=1, ge=1, description="Page number, default: 1"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size, default: 20, max: 100"),
    status_filter: Optional[ClaimStatus] = Query(default=None, alias="status", description="Filter by status"),
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
) -> schemas.TransactionListResponse:
    """Claim transactions of the caller, newest first."""
    result = machine.history(
        account.address, page, limit, status_filter.value if status_filter else None
    )
    return transaction_page(unwrap(result))


@router.get(
    "/stats",
    tags=group_tags,
    response_model=schemas.RewardStatsResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def get_reward_stats(
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
) -> schemas.RewardStatsResponse:
    return schemas.RewardStatsResponse(**unwrap(machine.stats(account.address)))
