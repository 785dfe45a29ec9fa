"""
Reward accrual.

`available()` is the only place the claimable amount is computed. The
/rewards/available preview and ClaimStateMachine.open both call it, so the
amount a user sees and the amount committed are computed identically.

Algorithm:
1. hours_elapsed = floor((now - last_claim) / 1h), partial hours never count
2. can_claim = hours_elapsed >= min_interval_hours
3. not eligible -> amount 0, next_eligible_in_hours = min_interval - hours_elapsed
4. eligible -> amount = min(min(hours_elapsed, max_accrual_hours) * rate, cap)

Arithmetic is Decimal throughout, rounded to 2 places only at the final step.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from app.core.config import settings
from app.core.timeutils import MILLIS_PER_HOUR, to_millis

Number = Union[Decimal, int, float, str]

AMOUNT_QUANTUM = Decimal("0.01")
DEFAULT_MAX_ACCRUAL_HOURS = 24


def to_decimal(value: Number) -> Decimal:
    # floats go through str() so 0.1 stays 0.1
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_amount(value: Number) -> Decimal:
    return to_decimal(value).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RewardPolicy:
    rate_per_hour: Decimal
    cap_per_window: Decimal
    min_interval_hours: int
    max_accrual_hours: int = DEFAULT_MAX_ACCRUAL_HOURS

    @classmethod
    def from_settings(cls) -> "RewardPolicy":
        return cls(
            rate_per_hour=to_decimal(settings.REWARD_RATE_PER_HOUR),
            cap_per_window=to_decimal(settings.MAX_DAILY_REWARD),
            min_interval_hours=settings.MIN_CLAIM_INTERVAL_HOURS,
            max_accrual_hours=settings.MAX_ACCRUAL_HOURS,
        )


@dataclass(frozen=True)
class Accrual:
    amount: Decimal
    hours_elapsed: int
    can_claim: bool
    next_eligible_in_hours: int


def hours_between(start: datetime, end: datetime) -> int:
    """Whole hours from start to end, floored."""
    return (to_millis(end) - to_millis(start)) // MILLIS_PER_HOUR


def available(
    last_claim: datetime,
    now: datetime,
    rate_per_hour: Number,
    cap_per_window: Number,
    min_interval_hours: int,
    max_accrual_hours: int = DEFAULT_MAX_ACCRUAL_HOURS,
) -> Accrual:
    hours_elapsed = hours_between(last_claim, now)
    can_claim = hours_elapsed >= min_interval_hours

    if not can_claim:
        return Accrual(
            amount=quantize_amount(0),
            hours_elapsed=hours_elapsed,
            can_claim=False,
            next_eligible_in_hours=max(0, min_interval_hours - hours_elapsed),
        )

    capped_hours = min(hours_elapsed, max_accrual_hours)
    amount = min(capped_hours * to_decimal(rate_per_hour), to_decimal(cap_per_window))
    return Accrual(
        amount=quantize_amount(amount),
        hours_elapsed=hours_elapsed,
        can_claim=True,
        next_eligible_in_hours=0,
    )


def available_for_policy(last_claim: datetime, now: datetime, policy: RewardPolicy) -> Accrual:
    return available(
        last_claim,
        now,
        policy.rate_per_hour,
        policy.cap_per_window,
        policy.min_interval_hours,
        policy.max_accrual_hours,
    )
