"""
Error taxonomy shared by the session and claim services.

Services never raise for expected business outcomes. They return either the
success value or a ``Failure`` carrying one ``ErrorKind``; the HTTP layer maps
the kind to its status code and stable wire code.

Categories:
- validation: malformed address / message / amount, never retried
- authentication: signature, timestamp or address mismatch, never retried
- conflict: claim already pending, transaction expired / not found
- dependency: persistence or settlement unavailable, retry with backoff
- circuit_open: client-side refresh breaker exhausted, re-authenticate
- rate_limited: too many requests from one client, retry after the window
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, TypeVar, Union

from fastapi import HTTPException, status


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    CONFLICT = "conflict"
    DEPENDENCY = "dependency"
    CIRCUIT_OPEN = "circuit_open"
    RATE_LIMITED = "rate_limited"


class ErrorKind(Enum):
    # (wire code, category, http status)
    MISSING_ADDRESS = ("MISSING_ADDRESS", ErrorCategory.VALIDATION, status.HTTP_400_BAD_REQUEST)
    INVALID_ADDRESS = ("INVALID_ADDRESS", ErrorCategory.VALIDATION, status.HTTP_400_BAD_REQUEST)
    INVALID_MESSAGE_FORMAT = ("INVALID_MESSAGE_FORMAT", ErrorCategory.VALIDATION, status.HTTP_400_BAD_REQUEST)
    INVALID_AMOUNT = ("INVALID_AMOUNT", ErrorCategory.VALIDATION, status.HTTP_400_BAD_REQUEST)
    NO_UPDATES = ("NO_UPDATES", ErrorCategory.VALIDATION, status.HTTP_400_BAD_REQUEST)

    ADDRESS_MISMATCH = ("ADDRESS_MISMATCH", ErrorCategory.AUTHENTICATION, status.HTTP_400_BAD_REQUEST)
    EXPIRED_CHALLENGE = ("INVALID_TIMESTAMP", ErrorCategory.AUTHENTICATION, status.HTTP_400_BAD_REQUEST)
    INVALID_SIGNATURE = ("INVALID_SIGNATURE", ErrorCategory.AUTHENTICATION, status.HTTP_401_UNAUTHORIZED)
    NONCE_REUSED = ("NONCE_REUSED", ErrorCategory.AUTHENTICATION, status.HTTP_401_UNAUTHORIZED)
    MISSING_TOKEN = ("MISSING_TOKEN", ErrorCategory.AUTHENTICATION, status.HTTP_401_UNAUTHORIZED)
    UNAUTHENTICATED = ("INVALID_TOKEN", ErrorCategory.AUTHENTICATION, status.HTTP_401_UNAUTHORIZED)

    AMOUNT_MISMATCH = ("AMOUNT_MISMATCH", ErrorCategory.CONFLICT, status.HTTP_400_BAD_REQUEST)
    CLAIM_TOO_SOON = ("CLAIM_TOO_SOON", ErrorCategory.CONFLICT, status.HTTP_400_BAD_REQUEST)
    CLAIM_ALREADY_IN_PROGRESS = ("CLAIM_ALREADY_IN_PROGRESS", ErrorCategory.CONFLICT, status.HTTP_409_CONFLICT)
    TRANSACTION_NOT_FOUND = ("TRANSACTION_NOT_FOUND", ErrorCategory.CONFLICT, status.HTTP_404_NOT_FOUND)
    TRANSACTION_EXPIRED = ("TRANSACTION_EXPIRED", ErrorCategory.CONFLICT, status.HTTP_400_BAD_REQUEST)
    USERNAME_TAKEN = ("USERNAME_TAKEN", ErrorCategory.CONFLICT, status.HTTP_400_BAD_REQUEST)
    EMAIL_TAKEN = ("EMAIL_TAKEN", ErrorCategory.CONFLICT, status.HTTP_400_BAD_REQUEST)

    DATABASE_ERROR = ("DATABASE_ERROR", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    USER_CREATION_FAILED = ("USER_CREATION_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    SESSION_CREATION_FAILED = ("SESSION_CREATION_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    REFRESH_FAILED = ("REFRESH_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    DISCONNECT_FAILED = ("DISCONNECT_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    TRANSACTION_CREATION_FAILED = ("TRANSACTION_CREATION_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    CONFIRMATION_FAILED = ("CONFIRMATION_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)
    UPDATE_FAILED = ("UPDATE_FAILED", ErrorCategory.DEPENDENCY, status.HTTP_500_INTERNAL_SERVER_ERROR)

    REFRESH_CIRCUIT_OPEN = ("REFRESH_CIRCUIT_OPEN", ErrorCategory.CIRCUIT_OPEN, status.HTTP_401_UNAUTHORIZED)
    RATE_LIMIT_EXCEEDED = ("RATE_LIMIT_EXCEEDED", ErrorCategory.RATE_LIMITED, status.HTTP_429_TOO_MANY_REQUESTS)

    def __init__(self, code: str, category: ErrorCategory, status_code: int):
        self.code = code
        self.category = category
        self.status_code = status_code


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str = ""

    @property
    def code(self) -> str:
        return self.kind.code

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.kind.code, "message": self.message or self.kind.code}


T = TypeVar("T")
Result = Union[T, Failure]


def is_failure(result: Any) -> bool:
    return isinstance(result, Failure)


def http_error(kind: ErrorKind, message: str = "") -> HTTPException:
    return HTTPException(status_code=kind.status_code, detail=Failure(kind, message).to_detail())


def unwrap(result: "Result[T]") -> T:
    """Return the success value or raise the matching HTTPException."""
    if isinstance(result, Failure):
        raise HTTPException(status_code=result.kind.status_code, detail=result.to_detail())
    return result
