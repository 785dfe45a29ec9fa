from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

import app.schemas.auth as schemas
from app.core.dependencies import get_clock, get_current_account, get_current_token, get_session_manager
from app.core.errors import unwrap
from app.core.rate_limit import auth_limit
from app.core.timeutils import Clock, iso_from_millis
from app.models.account import Account
from app.schemas.my_base_model import Message
from app.services.session_manager import AuthResult, SessionManager

router = APIRouter()
group_tags: List[str | Enum] = ["Auth"]


def _session_response(result: AuthResult) -> schemas.SessionResponse:
    return schemas.SessionResponse(
        session_token=result.session_token,
        expires_at=iso_from_millis(result.session.expires_at),
        account=schemas.AccountView.from_account(result.account),
    )


@router.get(
    "/nonce",
    tags=group_tags,
    response_model=schemas.NonceResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
@auth_limit
def get_nonce(
    request: Request,
    address: Optional[str] = Query(default=None, description="Wallet address to build the challenge for"),
    manager: SessionManager = Depends(get_session_manager),
    clock: Clock = Depends(get_clock),
) -> schemas.NonceResponse:
    """
    Build a signable challenge for a wallet.

    Nothing is stored server side: the challenge is checked by its timestamp
    freshness when it comes back signed.
    """
    challenge = unwrap(manager.issue_challenge(address, clock()))
    return schemas.NonceResponse(
        message=challenge.message,
        nonce=challenge.nonce,
        timestamp=challenge.issued_at,
    )


@router.post(
    "/connect",
    tags=group_tags,
    response_model=schemas.SessionResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
@auth_limit
def connect_wallet(
    request: Request,
    body: schemas.ConnectRequest,
    manager: SessionManager = Depends(get_session_manager),
    clock: Clock = Depends(get_clock),
) -> schemas.SessionResponse:
    """Verify the signed challenge, create the account on first login and open a session."""
    result = unwrap(manager.authenticate(body.address, body.message, body.signature, clock()))
    return _session_response(result)


@router.post(
    "/disconnect",
    tags=group_tags,
    response_model=Message,
    status_code=status.HTTP_200_OK,
)
def disconnect_wallet(
    account: Account = Depends(get_current_account),
    manager: SessionManager = Depends(get_session_manager),
) -> Message:
    """Close every session of the caller's account."""
    unwrap(manager.invalidate(account.address))
    return Message(message="Wallet disconnected successfully")


@router.post(
    "/refresh",
    tags=group_tags,
    response_model=schemas.SessionResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
@auth_limit
def refresh_session(
    request: Request,
    token: str = Depends(get_current_token),
    manager: SessionManager = Depends(get_session_manager),
    clock: Clock = Depends(get_clock),
) -> schemas.SessionResponse:
    """Rotate the session token and extend its expiry, no new signature needed."""
    result = unwrap(manager.refresh(token, clock()))
    return _session_response(result)


@router.get(
    "/verify",
    tags=group_tags,
    response_model=schemas.VerifyResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def verify_session(account: Account = Depends(get_current_account)) -> schemas.VerifyResponse:
    return schemas.VerifyResponse(account=schemas.AccountView.from_account(account))
