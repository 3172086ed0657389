"""
Acceptance transaction.

The tenant picks one offered berth from one pending reply. Within a single
commit we re-check that the berth is still Available and the interest is not
Resolved, then write the occupancy, resolve the interest and decline every
sibling offer. Resource and Interest rows carry a version counter, so a
concurrent writer makes our flush fail with StaleDataError; the whole
read-check-write is then retried and the re-check turns the loser into a
conflict.

Notifications run only after the commit and cannot undo it.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..models.models import Account, Interest, InterestReply, Resource, RESOURCE_AVAILABLE
from .audit import create_audit_log
from .errors import ConflictError, NotFoundError, PermissionDenied
from .lookup import parse_id
from .notifications import NotificationOutcome, notify_acceptance
from .occupancy import current_year, ledger_snapshot, record_tenant
from .offers import read_offers
from .sms_client import SmsGateway
from .state_machine import InterestStatus, OfferStatus


logger = structlog.get_logger(__name__)


@dataclass
class AcceptanceResult:
    interest_id: str
    reply_id: str
    berth_id: str
    berth_code: str
    declined_reply_ids: List[str] = field(default_factory=list)
    notifications: NotificationOutcome = field(default_factory=NotificationOutcome)
    notification_error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return True

    @property
    def notification_warning(self) -> bool:
        return self.notification_error is not None or not self.notifications.all_delivered

    def as_dict(self) -> Dict[str, Any]:
        return {
            "committed": self.committed,
            "interest_id": self.interest_id,
            "reply_id": self.reply_id,
            "berth_id": self.berth_id,
            "berth_code": self.berth_code,
            "declined_reply_ids": list(self.declined_reply_ids),
            "notifications": self.notifications.as_dict(),
            "notification_warning": self.notification_warning,
        }


def _locked(db: Session, model, object_id):
    # row locks on backends that support them; SQLite ignores FOR UPDATE
    return db.query(model).filter(model.id == object_id).with_for_update().populate_existing().first()


def _commit_acceptance(
    db: Session,
    tenant: Account,
    interest_id,
    reply_id,
    berth_id,
) -> AcceptanceResult:
    interest: Optional[Interest] = _locked(db, Interest, interest_id)
    if interest is None:
        raise NotFoundError("Interest not found")
    if interest.status == InterestStatus.resolved.value:
        raise ConflictError("Interest is already resolved")
    if interest.user_id != tenant.id:
        raise PermissionDenied("Only the interest owner can accept an offer")

    replies: List[InterestReply] = (
        db.query(InterestReply)
        .filter(InterestReply.interest_id == interest.id)
        .populate_existing()
        .all()
    )
    chosen = next((r for r in replies if r.id == reply_id), None)
    if chosen is None:
        raise NotFoundError("Reply not found")
    if chosen.offer_status != OfferStatus.pending.value:
        raise ConflictError("Offer is no longer pending")
    offer = next((o for o in read_offers(chosen) if o.berth_id == str(berth_id)), None)
    if offer is None:
        raise NotFoundError("Berth is not part of this offer")

    resource: Optional[Resource] = _locked(db, Resource, berth_id)
    if resource is None:
        raise NotFoundError("Resource not found")
    if resource.status != RESOURCE_AVAILABLE:
        raise ConflictError(f"Berth {resource.marking_code} is no longer available")

    before = ledger_snapshot(resource)

    # occupancy
    record_tenant(resource, tenant, price=offer.price, year=current_year())

    # interest resolution
    interest.status = InterestStatus.resolved.value
    interest.accepted_offer_id = chosen.id
    interest.accepted_berth_id = resource.id
    interest.accepted_berth_code = resource.marking_code

    # decline cascade
    declined: List[str] = []
    chosen.offer_status = OfferStatus.accepted.value
    for reply in replies:
        if reply.id == chosen.id:
            continue
        if reply.offer_status == OfferStatus.pending.value:
            reply.offer_status = OfferStatus.declined.value
            declined.append(str(reply.id))

    create_audit_log(
        db,
        entity_type="interest",
        entity_id=interest.id,
        action="ACCEPT",
        actor=tenant,
        changes_json={"resource": {"before": before, "after": ledger_snapshot(resource)}},
        context={
            "reply_id": str(chosen.id),
            "berth_id": str(resource.id),
            "berth_code": resource.marking_code,
            "declined_reply_ids": declined,
        },
        commit=False,
    )

    db.commit()
    return AcceptanceResult(
        interest_id=str(interest.id),
        reply_id=str(chosen.id),
        berth_id=str(resource.id),
        berth_code=resource.marking_code,
        declined_reply_ids=declined,
    )


def accept_offer(
    db: Session,
    tenant: Account,
    interest_id: Any,
    reply_id: Any,
    berth_id: Any,
    gateway: Optional[SmsGateway] = None,
    max_attempts: Optional[int] = None,
) -> AcceptanceResult:
    """
    Accept one offered berth for the tenant's own interest.

    Raises:
        ConflictError: berth no longer available, interest already resolved,
            offer no longer pending, or the version race was lost on every attempt
        NotFoundError / PermissionDenied: bad ids or not the interest owner
    """
    interest_uuid = parse_id(interest_id, "Interest")
    reply_uuid = parse_id(reply_id, "Reply")
    berth_uuid = parse_id(berth_id, "Berth")
    attempts = max_attempts or settings.acceptance_max_attempts

    result: Optional[AcceptanceResult] = None
    for attempt in range(1, attempts + 1):
        try:
            result = _commit_acceptance(db, tenant, interest_uuid, reply_uuid, berth_uuid)
            break
        except StaleDataError as e:
            db.rollback()
            logger.warning("acceptance_write_conflict", interest_id=str(interest_uuid), attempt=attempt, error=str(e))
        except Exception:
            db.rollback()
            raise
    if result is None:
        raise ConflictError("The offer was changed by someone else, please reload and try again")

    logger.info(
        "offer_accepted",
        interest_id=result.interest_id,
        reply_id=result.reply_id,
        berth_code=result.berth_code,
        declined=len(result.declined_reply_ids),
    )

    try:
        winning = db.get(InterestReply, reply_uuid)
        losing = [db.get(InterestReply, parse_id(rid)) for rid in result.declined_reply_ids]
        result.notifications = notify_acceptance(
            db,
            gateway,
            winning,
            [r for r in losing if r is not None],
            result.berth_code,
            tenant.name or "Hyresgästen",
        )
    except Exception as e:
        db.rollback()
        result.notification_error = str(e)
        logger.error("acceptance_notification_failed", interest_id=result.interest_id, error=str(e))
    return result
