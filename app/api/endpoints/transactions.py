import logging
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

import app.schemas.rewards as schemas
from app.api.endpoints.rewards import get_claim_machine, transaction_page
from app.core.dependencies import get_clock, get_current_account
from app.core.errors import unwrap
from app.core.timeutils import Clock
from app.models.account import Account
from app.models.claim import ClaimStatus
from app.services.claims import ClaimStateMachine
from app.services.settlement import SettlementClient, SettlementError, get_settlement_client

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str | Enum] = ["Transactions"]


@router.get(
    "",
    tags=group_tags,
    response_model=schemas.TransactionListResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def list_transactions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status_filter: Optional[ClaimStatus] = Query(default=None, alias="status"),
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
) -> schemas.TransactionListResponse:
    result = machine.history(
        account.address, page, limit, status_filter.value if status_filter else None
    )
    return transaction_page(unwrap(result))


@router.get(
    "/{transaction_id}",
    tags=group_tags,
    response_model=schemas.TransactionView,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def get_transaction(
    transaction_id: str,
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
    clock: Clock = Depends(get_clock),
) -> schemas.TransactionView:
    transaction = unwrap(machine.status(transaction_id, account.address, clock()))
    return schemas.TransactionView.from_transaction(transaction)


@router.get(
    "/{transaction_id}/status",
    tags=group_tags,
    response_model=schemas.TransactionStatusResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def get_transaction_status(
    transaction_id: str,
    account: Account = Depends(get_current_account),
    machine: ClaimStateMachine = Depends(get_claim_machine),
    settlement: Optional[SettlementClient] = Depends(get_settlement_client),
    clock: Clock = Depends(get_clock),
) -> schemas.TransactionStatusResponse:
    """
    Status of one claim transaction.

    When the transaction carries a settlement reference and a ledger RPC is
    configured, the ledger is asked whether it settled. A ledger outage is
    reported as settled = null, not as an error.
    """
    now = clock()
    transaction = unwrap(machine.status(transaction_id, account.address, now))

    settled: Optional[bool] = None
    slot: Optional[int] = None
    if settlement is not None and transaction.settlement_ref:
        try:
            checked = settlement.check(transaction.settlement_ref)
            settled = checked.settled
            slot = checked.slot
        except SettlementError as e:
            logger.warning("settlement check failed for %s: %s", transaction_id, e)

    return schemas.TransactionStatusResponse(
        transaction_id=transaction.id,
        status=transaction.status,
        settlement_reference=transaction.settlement_ref,
        settled=settled,
        slot=slot,
        last_checked=now.isoformat(),
    )
