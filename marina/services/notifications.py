"""
Notification service for SMS.
Respects account preferences; every send is best effort and recorded.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Account, Interest, InterestReply, Notification, ROLE_SUPERADMIN
from .phone import is_mobile_number, normalize_phone
from .sms_client import SmsGateway


logger = structlog.get_logger(__name__)


@dataclass
class NotificationOutcome:
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def all_delivered(self) -> bool:
        return self.failed == 0

    def add(self, status: str) -> None:
        if status == "sent":
            self.sent += 1
        elif status == "failed":
            self.failed += 1
        else:
            self.skipped += 1

    def as_dict(self) -> Dict[str, int]:
        return {"sent": self.sent, "failed": self.failed, "skipped": self.skipped}


def sms_destination(account: Optional[Account], fallback_phone: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    """
    Phone number to message, or the reason nobody is messaged.

    Returns:
        (destination, None) when eligible, (None, reason) otherwise
    """
    if not settings.enable_sms:
        return None, "sms_disabled"
    if account is None:
        return None, "no_account"
    if not account.allow_map_sms:
        return None, "opted_out"
    phone = account.phone or fallback_phone
    if not is_mobile_number(phone):
        return None, "not_mobile"
    return normalize_phone(phone), None


def send_sms_notification(
    db: Session,
    gateway: Optional[SmsGateway],
    account: Optional[Account],
    template_key: str,
    message: str,
    payload: Optional[Dict] = None,
    fallback_phone: Optional[str] = None,
) -> str:
    """
    Send one SMS and record the attempt. Never raises.

    Returns:
        "sent", "failed" or "skipped"
    """
    destination, reason = sms_destination(account, fallback_phone)
    if destination and gateway is None:
        destination, reason = None, "gateway_unavailable"

    status = "skipped"
    error_message = reason
    if destination:
        try:
            results = gateway.send(destination, message)
            failures = [r for r in results if not r.success]
            if results and not failures:
                status = "sent"
                error_message = None
            else:
                status = "failed"
                error_message = "; ".join(r.error or "unknown error" for r in failures) or "no result"
        except Exception as e:
            status = "failed"
            error_message = str(e)

    if status == "failed":
        logger.warning("sms_send_failed", template=template_key, to=destination, error=error_message)
    elif status == "skipped":
        logger.info("sms_skipped", template=template_key, reason=reason)

    _record(db, account, destination, template_key, payload, status, error_message)
    return status


def _record(
    db: Session,
    account: Optional[Account],
    destination: Optional[str],
    template_key: str,
    payload: Optional[Dict],
    status: str,
    error_message: Optional[str],
) -> None:
    try:
        db.add(Notification(
            account_id=account.id if account is not None else None,
            channel="sms",
            destination=destination,
            template_key=template_key,
            payload_json=payload,
            status=status,
            error_message=error_message,
            sent_at=datetime.utcnow() if status == "sent" else None,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("notification_record_failed", template=template_key, error=str(e))


def _offer_codes(reply: InterestReply) -> str:
    from .offers import read_offers

    return ", ".join(o.berth_code for o in read_offers(reply)) or "?"


def notify_acceptance(
    db: Session,
    gateway: Optional[SmsGateway],
    winning_reply: InterestReply,
    losing_replies: Iterable[InterestReply],
    accepted_berth_code: str,
    tenant_name: str,
) -> NotificationOutcome:
    """Confirmation to the winning author, 'no longer available' to every other offer author."""
    outcome = NotificationOutcome()
    winner = db.get(Account, winning_reply.author_id) if winning_reply.author_id else None
    outcome.add(send_sms_notification(
        db,
        gateway,
        winner,
        "offer_accepted",
        f"{tenant_name} har accepterat ert anbud på plats {accepted_berth_code}.",
        payload={"reply_id": str(winning_reply.id), "berth_code": accepted_berth_code},
        fallback_phone=winning_reply.author_phone,
    ))

    notified = {winning_reply.author_id}
    for reply in losing_replies:
        if reply.author_id in notified:
            continue
        notified.add(reply.author_id)
        author = db.get(Account, reply.author_id) if reply.author_id else None
        outcome.add(send_sms_notification(
            db,
            gateway,
            author,
            "offer_declined",
            f"Ert anbud ({_offer_codes(reply)}) är inte längre aktuellt. "
            f"Intresseanmälan har avslutats med plats {accepted_berth_code}.",
            payload={"reply_id": str(reply.id)},
            fallback_phone=reply.author_phone,
        ))
    return outcome


def notify_interest_reply(
    db: Session,
    gateway: Optional[SmsGateway],
    interest: Interest,
    reply: InterestReply,
) -> Optional[str]:
    """Tell the interest owner that a reply has arrived (not when they wrote it themselves)."""
    if reply.author_id == interest.user_id:
        return None
    owner = db.get(Account, interest.user_id)
    author_name = reply.author_name or "Hamnförvaltningen"
    return send_sms_notification(
        db,
        gateway,
        owner,
        "interest_reply",
        f"Hej! Du har fått ett svar på din intresseanmälan från {author_name}. "
        f"Logga in på {settings.public_base_url}/dashboard för att läsa.",
        payload={"interest_id": str(interest.id), "reply_id": str(reply.id)},
        fallback_phone=interest.phone,
    )


def notify_interest_created(
    db: Session,
    gateway: Optional[SmsGateway],
    interest: Interest,
) -> NotificationOutcome:
    """Alert every superadmin about a new interest registration."""
    outcome = NotificationOutcome()
    message = f"Ny intresseanmälan från {interest.user_name or 'Okänd'}: {interest.boat_width}×{interest.boat_length}m."
    if interest.image_url:
        message += " Bild bifogad."
    if interest.message:
        message += f' "{interest.message}"'
    message += f"\n{settings.public_base_url}/admin"

    admins: List[Account] = db.query(Account).filter(Account.role == ROLE_SUPERADMIN, Account.is_active.is_(True)).all()
    for admin in admins:
        outcome.add(send_sms_notification(
            db,
            gateway,
            admin,
            "interest_created",
            message,
            payload={"interest_id": str(interest.id)},
        ))
    return outcome
