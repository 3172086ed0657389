"""
Negotiation state machine for interests and offer-bearing replies.

Interest:  Pending -> Contacted -> Resolved. Managers may also set any status
directly (manual override); the only forbidden move is leaving Resolved.

Reply offer: pending -> accepted | declined. Both outcomes are terminal.

These functions are wired into the model layer through SQLAlchemy validators,
so every write path goes through them.
"""
import enum
from typing import Optional, Union

from .errors import InvalidTransition


class InterestStatus(str, enum.Enum):
    pending = "Pending"
    contacted = "Contacted"
    resolved = "Resolved"


class OfferStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


TERMINAL_INTEREST_STATUSES = {InterestStatus.resolved}
TERMINAL_OFFER_STATUSES = {OfferStatus.accepted, OfferStatus.declined}


def _coerce(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidTransition(f"Unknown status '{value}'")


def transition_interest(
    current: Optional[Union[str, InterestStatus]],
    target: Union[str, InterestStatus],
) -> InterestStatus:
    """Return the validated target status for an interest."""
    current_status = _coerce(InterestStatus, current)
    target_status = _coerce(InterestStatus, target)
    if target_status is None:
        raise InvalidTransition("Interest status cannot be cleared")
    if current_status in TERMINAL_INTEREST_STATUSES and target_status != current_status:
        raise InvalidTransition(
            f"Interest is {current_status.value} and cannot move to {target_status.value}"
        )
    return target_status


def transition_offer(
    current: Optional[Union[str, OfferStatus]],
    target: Optional[Union[str, OfferStatus]],
) -> Optional[OfferStatus]:
    """Return the validated target offer status for a reply."""
    current_status = _coerce(OfferStatus, current)
    target_status = _coerce(OfferStatus, target)
    if current_status == target_status:
        return target_status
    if current_status in TERMINAL_OFFER_STATUSES:
        raise InvalidTransition(
            f"Offer is already {current_status.value} and cannot become "
            f"{target_status.value if target_status else 'empty'}"
        )
    if current_status is None and target_status != OfferStatus.pending:
        # a reply only gets an outcome after it has been offered
        raise InvalidTransition("Offer must be pending before it can be decided")
    if current_status == OfferStatus.pending and target_status is None:
        raise InvalidTransition("A pending offer cannot be withdrawn")
    return target_status


def first_reply_status(current: Union[str, InterestStatus]) -> InterestStatus:
    """Status an interest takes when a manager reply is submitted."""
    current_status = _coerce(InterestStatus, current)
    if current_status == InterestStatus.pending:
        return InterestStatus.contacted
    return current_status
