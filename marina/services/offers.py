"""
Offer composer: which berths a manager may offer, and replies carrying offers.

Offering a berth does not reserve it. The same berth can sit in several
pending offers until one acceptance commits; later acceptances then fail.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..models.models import Account, Dock, Interest, InterestReply, Resource, RESOURCE_AVAILABLE
from .errors import ConflictError, LedgerValidationError, NotFoundError, PermissionDenied
from .interests import ensure_owner_or_visible, is_manager, managed_dock_ids
from .lookup import parse_id
from .occupancy import current_year, resolve_default_price
from .state_machine import InterestStatus, OfferStatus, first_reply_status


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OfferedBerth:
    berth_id: str
    berth_code: str
    dock_name: str
    price: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "berth_id": self.berth_id,
            "berth_code": self.berth_code,
            "dock_name": self.dock_name,
            "price": self.price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfferedBerth":
        return cls(
            berth_id=str(data.get("berth_id") or data.get("berthId")),
            berth_code=data.get("berth_code") or data.get("berthCode") or "",
            dock_name=data.get("dock_name") or data.get("dockName") or "",
            price=data.get("price"),
        )


# Stored reply shapes: new replies carry a list, old ones the single-offer columns.
@dataclass(frozen=True)
class NoOffer:
    pass


@dataclass(frozen=True)
class SingleOffer:
    offer: OfferedBerth


@dataclass(frozen=True)
class MultiOffer:
    offers: Sequence[OfferedBerth]


ReplyOffers = Union[NoOffer, SingleOffer, MultiOffer]


def classify_offers(reply: InterestReply) -> ReplyOffers:
    if reply.offered_berths:
        return MultiOffer(tuple(OfferedBerth.from_dict(o) for o in reply.offered_berths))
    if reply.offered_berth_id:
        return SingleOffer(OfferedBerth(
            berth_id=str(reply.offered_berth_id),
            berth_code=reply.offered_berth_code or "",
            dock_name=reply.offered_dock_name or "",
            price=reply.offered_price,
        ))
    return NoOffer()


def read_offers(reply: InterestReply) -> List[OfferedBerth]:
    """Offers of a reply as one list, whatever shape it was stored in."""
    shape = classify_offers(reply)
    if isinstance(shape, MultiOffer):
        return list(shape.offers)
    if isinstance(shape, SingleOffer):
        return [shape.offer]
    return []


def offerable_berths(db: Session, actor: Account) -> List[Resource]:
    if not is_manager(actor):
        return []
    query = db.query(Resource).filter(
        Resource.type == "Berth",
        Resource.status == RESOURCE_AVAILABLE,
        Resource.dock_id.isnot(None),
    )
    dock_ids = managed_dock_ids(db, actor)
    if dock_ids is not None:
        if not dock_ids:
            return []
        query = query.filter(Resource.dock_id.in_(dock_ids))
    return query.order_by(Resource.marking_code).all()


def _build_offers(db: Session, actor: Account, requested: Sequence[Dict[str, Any]]) -> List[OfferedBerth]:
    allowed = {r.id: r for r in offerable_berths(db, actor)}
    offers: List[OfferedBerth] = []
    seen = set()
    year = current_year()
    for item in requested:
        berth_id = parse_id(item.get("berth_id"), "Berth")
        if berth_id in seen:
            raise LedgerValidationError("A berth can only be offered once per reply")
        seen.add(berth_id)
        berth = allowed.get(berth_id)
        if berth is None:
            raise PermissionDenied("Berth is not available for you to offer")
        dock = db.get(Dock, berth.dock_id)
        price = item.get("price")
        if price is None:
            price = resolve_default_price(berth, year)
        offers.append(OfferedBerth(
            berth_id=str(berth.id),
            berth_code=berth.marking_code,
            dock_name=dock.name if dock else "",
            price=price,
        ))
    return offers


def _store_reply(
    db: Session,
    actor: Account,
    interest_id,
    text: str,
    built: List[OfferedBerth],
) -> InterestReply:
    # re-read so a status written by a concurrent reply is seen
    interest: Optional[Interest] = (
        db.query(Interest).filter(Interest.id == interest_id).populate_existing().first()
    )
    if interest is None:
        raise NotFoundError("Interest not found")
    if built and interest.status == InterestStatus.resolved.value:
        raise ConflictError("Interest is already resolved")

    reply = InterestReply(
        interest_id=interest.id,
        author_id=actor.id,
        author_name=actor.name or "",
        author_email=actor.email or "",
        author_phone=actor.phone or "",
        message=text,
    )
    if built:
        reply.offered_berths = [o.as_dict() for o in built]
        reply.offer_status = OfferStatus.pending.value
    db.add(reply)

    if is_manager(actor) and interest.user_id != actor.id:
        next_status = first_reply_status(interest.status).value
        if next_status != interest.status:
            interest.status = next_status

    db.commit()
    db.refresh(reply)
    return reply


def compose_reply(
    db: Session,
    actor: Account,
    interest_id: Any,
    message: str,
    offers: Optional[Sequence[Dict[str, Any]]] = None,
    max_attempts: Optional[int] = None,
) -> InterestReply:
    """
    Persist a reply on an interest.

    Managers may attach offers of berths they manage. The interest owner may
    answer with plain messages. A manager reply on a Pending interest moves it
    to Contacted. Replies from several managers may land at the same time; a
    lost version race on the interest row is retried, so every reply is kept.
    """
    interest: Interest = ensure_owner_or_visible(db, actor, interest_id)
    offers = offers or []
    text = (message or "").strip()
    if not text:
        raise LedgerValidationError("Message is required")

    if offers:
        if not is_manager(actor):
            raise PermissionDenied("Only dock managers can make offers")
        if interest.status == InterestStatus.resolved.value:
            raise ConflictError("Interest is already resolved")
    built = _build_offers(db, actor, offers) if offers else []

    attempts = max_attempts or settings.reply_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            return _store_reply(db, actor, interest.id, text, built)
        except StaleDataError as e:
            db.rollback()
            logger.warning("reply_write_conflict", interest_id=str(interest.id), attempt=attempt, error=str(e))
        except Exception:
            db.rollback()
            raise
    raise ConflictError("The interest was changed by someone else, please try again")


def list_replies(db: Session, actor: Account, interest_id: Any) -> List[InterestReply]:
    interest = ensure_owner_or_visible(db, actor, interest_id)
    return (
        db.query(InterestReply)
        .filter(InterestReply.interest_id == interest.id)
        .order_by(InterestReply.created_at.asc())
        .all()
    )
