from enum import Enum
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_clock, get_current_account
from app.core.errors import unwrap
from app.core.timeutils import Clock
from app.db.session import get_db
from app.models.account import Account
from app.schemas.auth import AccountView
from app.schemas.my_base_model import Message
from app.schemas.user import ProfileUpdateRequest
from app.services.accounts import erase_account, update_profile

router = APIRouter()
group_tags: List[str | Enum] = ["user"]


@router.get(
    "/profile",
    tags=group_tags,
    response_model=AccountView,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def get_profile(account: Account = Depends(get_current_account)) -> AccountView:
    return AccountView.from_account(account)


@router.put(
    "/profile",
    tags=group_tags,
    response_model=AccountView,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def update_user_profile(
    body: ProfileUpdateRequest,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AccountView:
    """
    Update display name and/or email.

    Body:
    - displayName: 3-50 chars of letters, digits, "_", "." or "-"
    - email: a valid email address

    Errors:
    - 400 NO_UPDATES when neither field is supplied
    - 400 USERNAME_TAKEN / EMAIL_TAKEN when another account uses the value
    """
    updated = update_profile(
        db,
        account.address,
        clock(),
        display_name=body.display_name,
        email=body.email,
    )
    return AccountView.from_account(unwrap(updated))


@router.delete(
    "/account",
    tags=group_tags,
    response_model=Message,
    status_code=status.HTTP_200_OK,
)
def delete_account(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> Message:
    """Erase the caller's account with all its sessions and claim transactions."""
    unwrap(erase_account(db, account.address))
    return Message(message="Account deleted successfully")
