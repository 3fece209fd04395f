"""
Payment state machine.

The student balance effect belongs to the transition edge, not to the service
that drives it: pending -> completed applies the payment whether the parent
confirmed it or an admin accepted it directly, and completed -> failed reverses
it. Every other edge leaves fee_paid / balance alone.

    pending   --confirm-->  completed   apply
    pending   --accept-->   completed   apply
    pending   --reject-->   failed      -
    pending   --cancel-->   cancelled   -
    completed --accept-->   completed   -       (stamps the verifier once)
    completed --reject-->   failed      reverse
    failed    --accept-->   completed   apply   (admin re-verification)
    failed    --reject-->   failed      -       (no-op)
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy import case

from app.core.enums import PaymentStatus
from app.core.exceptions import ConflictError
from app.core.models import Student


class LedgerAction(str, Enum):
    CONFIRM = "confirm"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"


class BalanceEffect(str, Enum):
    NONE = "none"
    APPLY = "apply"
    REVERSE = "reverse"


@dataclass(frozen=True)
class Transition:
    source: PaymentStatus
    target: PaymentStatus
    action: LedgerAction
    effect: BalanceEffect


_TRANSITIONS: Dict[Tuple[PaymentStatus, LedgerAction], Tuple[PaymentStatus, BalanceEffect]] = {
    (PaymentStatus.pending, LedgerAction.CONFIRM): (PaymentStatus.completed, BalanceEffect.APPLY),
    (PaymentStatus.pending, LedgerAction.ACCEPT): (PaymentStatus.completed, BalanceEffect.APPLY),
    (PaymentStatus.pending, LedgerAction.REJECT): (PaymentStatus.failed, BalanceEffect.NONE),
    (PaymentStatus.pending, LedgerAction.CANCEL): (PaymentStatus.cancelled, BalanceEffect.NONE),
    (PaymentStatus.completed, LedgerAction.ACCEPT): (PaymentStatus.completed, BalanceEffect.NONE),
    (PaymentStatus.completed, LedgerAction.REJECT): (PaymentStatus.failed, BalanceEffect.REVERSE),
    (PaymentStatus.failed, LedgerAction.ACCEPT): (PaymentStatus.completed, BalanceEffect.APPLY),
}


def _lookup(current: PaymentStatus, action: LedgerAction) -> Optional[Transition]:
    edge = _TRANSITIONS.get((current, action))
    if edge is None:
        return None
    target, effect = edge
    return Transition(source=current, target=target, action=action, effect=effect)


def plan_confirmation(current: PaymentStatus) -> Optional[Transition]:
    """Only a pending payment can be confirmed; anything else is returned unchanged."""
    return _lookup(current, LedgerAction.CONFIRM)


def plan_verification(current: PaymentStatus, verified: bool, already_verified: bool) -> Optional[Transition]:
    """
    Return the edge for an admin decision, or None when the call is a no-op.

    Raises ConflictError for cancelled payments, which accept no decision.
    """
    if current == PaymentStatus.cancelled:
        raise ConflictError("Cancelled payments cannot be verified")
    action = LedgerAction.ACCEPT if verified else LedgerAction.REJECT
    transition = _lookup(current, action)
    if transition is None:
        # failed + reject
        return None
    if transition.source == transition.target and already_verified:
        return None
    return transition


def plan_cancellation(current: PaymentStatus) -> Transition:
    transition = _lookup(current, LedgerAction.CANCEL)
    if transition is None:
        raise ConflictError(f"Only pending payments can be cancelled (current status: {current.value})")
    return transition


def balance_update_values(effect: BalanceEffect, amount: Decimal) -> dict:
    """
    SET clause for UPDATE students carrying the balance effect.

    APPLY adds the amount to fee_paid and lowers balance, clamped at zero.
    REVERSE lowers fee_paid, clamped at zero, and restores the amount to balance.
    Both are evaluated by the database against the current row, so concurrent
    payments for the same student never overwrite each other's increments.
    """
    if effect == BalanceEffect.APPLY:
        return {
            "fee_paid": Student.fee_paid + amount,
            "balance": case((Student.balance - amount < 0, 0), else_=Student.balance - amount),
        }
    if effect == BalanceEffect.REVERSE:
        return {
            "fee_paid": case((Student.fee_paid - amount < 0, 0), else_=Student.fee_paid - amount),
            "balance": Student.balance + amount,
        }
    return {}
