"""
Write-path rules for bookings and payments.

Everything here is a pure function over plain documents. Handlers call these
before every insert or update so that derived fields are never persisted out of
sync with the values they come from.

Amounts are integer cents. The platform keeps 10% of a payment, rounded half-up
to a whole cent; the coach earns the rest.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from database import utcnow
from schemas import SESSION_DURATIONS

PLATFORM_FEE_RATE = Decimal("0.10")

BOOKING_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "cancelled": set(),
    "completed": set(),
}

SETTLED_PAYMENT_STATUSES = ("completed", "refunded")

CREDIT_PRICE_CENTS = 1000
MAX_CREDITS_PER_PURCHASE = 1000


class TransitionError(ValueError):
    """A status change or edit that the lifecycle does not allow."""


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def platform_fee(amount: int) -> int:
    return _round_cents(Decimal(amount) * PLATFORM_FEE_RATE)


def booking_amount(hourly_rate: float, duration: int) -> int:
    """Price of a session in cents for a coach charging `hourly_rate` per hour."""
    if duration not in SESSION_DURATIONS:
        raise ValueError(f"duration must be one of {SESSION_DURATIONS}")
    return _round_cents(Decimal(str(hourly_rate)) * 100 * duration / 60)


def derive_payment(payment: Dict[str, Any], previous: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Return a copy of `payment` with platformFee, coachEarnings and processedAt applied.

    `previous` is the stored document for an update, None for a new payment.
    processedAt is stamped the first time the payment is completed and is carried
    over from `previous` on every later write.
    """
    result = dict(payment)
    amount = int(result["amount"])
    if amount < 0:
        raise ValueError("amount must be >= 0")
    fee = platform_fee(amount)
    result["amount"] = amount
    result["platformFee"] = fee
    result["coachEarnings"] = amount - fee

    processed_at = (previous or {}).get("processedAt") or result.get("processedAt")
    if processed_at is None and result.get("status") == "completed":
        processed_at = now or utcnow()
    result["processedAt"] = processed_at
    return result


def check_payment_amount_edit(previous: Dict[str, Any], new_amount: int):
    if new_amount != previous.get("amount") and previous.get("status") in SETTLED_PAYMENT_STATUSES:
        raise TransitionError(f"Cannot change the amount of a {previous['status']} payment")


def check_booking_transition(current: str, new: str) -> bool:
    """Validate a booking status change. Returns False when nothing changes."""
    if current == new:
        return False
    if new not in BOOKING_TRANSITIONS.get(current, set()):
        raise TransitionError(f"Cannot move booking from {current} to {new}")
    return True


def derive_credits(credits: Dict[str, Any]) -> Dict[str, Any]:
    total = int(credits.get("total", 0))
    used = int(credits.get("used", 0))
    return {"total": total, "used": used, "remaining": max(0, total - used)}


def check_credit_purchase(amount: int):
    if amount <= 0:
        raise ValueError("Invalid credit amount")
    if amount > MAX_CREDITS_PER_PURCHASE:
        raise ValueError(f"Maximum {MAX_CREDITS_PER_PURCHASE} credits can be added at once")


def credit_cost(amount: int) -> int:
    """Price in cents of `amount` corporate credits."""
    return amount * CREDIT_PRICE_CENTS
