from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import Account, InterestReply, ROLE_DOCK_MANAGER, ROLE_SUPERADMIN
from ..schemas.interests import (
    AcceptOfferRequest,
    AcceptOfferResponse,
    InterestCreate,
    InterestResponse,
    InterestStatusUpdate,
    OfferableBerthResponse,
    OwnInterestResponse,
    ReplyCreate,
    ReplyResponse,
)
from ..services import interests as intake
from ..services.acceptance import accept_offer
from ..services.notifications import notify_interest_created, notify_interest_reply
from ..services.occupancy import current_year, resolve_default_price
from ..services.offers import compose_reply, list_replies, offerable_berths, read_offers
from ..services.sms_client import SmsGateway, get_sms_gateway


router = APIRouter(prefix="/interests", tags=["interests"])

managers_only = require_roles(ROLE_DOCK_MANAGER, ROLE_SUPERADMIN)


def _serialize_reply(reply: InterestReply) -> Dict[str, Any]:
    return {
        "id": reply.id,
        "interest_id": reply.interest_id,
        "author_id": reply.author_id,
        "author_name": reply.author_name,
        "author_email": reply.author_email,
        "author_phone": reply.author_phone,
        "message": reply.message,
        "created_at": reply.created_at,
        "offered_berths": [o.as_dict() for o in read_offers(reply)],
        "offer_status": reply.offer_status,
    }


@router.get("", response_model=List[InterestResponse])
def list_interests(db: Session = Depends(get_db), me: Account = Depends(managers_only)):
    return intake.list_visible(db, me)


@router.post("", response_model=InterestResponse, status_code=201)
def create_interest(
    payload: InterestCreate,
    db: Session = Depends(get_db),
    me: Account = Depends(get_current_user),
    gateway: Optional[SmsGateway] = Depends(get_sms_gateway),
):
    interest = intake.create_interest(db, me, payload.model_dump())
    notify_interest_created(db, gateway, interest)
    return interest


@router.get("/mine", response_model=List[OwnInterestResponse])
def list_my_interests(db: Session = Depends(get_db), me: Account = Depends(get_current_user)):
    result = []
    for interest in intake.list_own(db, me):
        data = InterestResponse.model_validate(interest).model_dump()
        data["unread_replies"] = intake.unread_reply_count(db, interest)
        result.append(data)
    return result


@router.get("/offerable-berths", response_model=List[OfferableBerthResponse])
def get_offerable_berths(db: Session = Depends(get_db), me: Account = Depends(managers_only)):
    year = current_year()
    return [
        {
            "id": berth.id,
            "marking_code": berth.marking_code,
            "dock_id": berth.dock_id,
            "default_price": resolve_default_price(berth, year),
        }
        for berth in offerable_berths(db, me)
    ]


@router.get("/{interest_id}", response_model=InterestResponse)
def get_interest(interest_id: str, db: Session = Depends(get_db), me: Account = Depends(get_current_user)):
    return intake.ensure_owner_or_visible(db, me, interest_id)


@router.delete("/{interest_id}")
def delete_interest(interest_id: str, db: Session = Depends(get_db), me: Account = Depends(require_roles(ROLE_SUPERADMIN))):
    intake.delete_interest(db, me, interest_id)
    return {"deleted": True}


@router.patch("/{interest_id}/status", response_model=InterestResponse)
def update_interest_status(
    interest_id: str,
    body: InterestStatusUpdate,
    db: Session = Depends(get_db),
    me: Account = Depends(managers_only),
):
    return intake.set_interest_status(db, me, interest_id, body.status)


@router.post("/{interest_id}/seen", response_model=InterestResponse)
def mark_seen(interest_id: str, db: Session = Depends(get_db), me: Account = Depends(get_current_user)):
    return intake.mark_replies_seen(db, me, interest_id)


@router.get("/{interest_id}/replies", response_model=List[ReplyResponse])
def get_replies(interest_id: str, db: Session = Depends(get_db), me: Account = Depends(get_current_user)):
    return [_serialize_reply(r) for r in list_replies(db, me, interest_id)]


@router.post("/{interest_id}/replies", response_model=ReplyResponse, status_code=201)
def post_reply(
    interest_id: str,
    body: ReplyCreate,
    db: Session = Depends(get_db),
    me: Account = Depends(get_current_user),
    gateway: Optional[SmsGateway] = Depends(get_sms_gateway),
):
    reply = compose_reply(
        db,
        me,
        interest_id,
        body.message,
        [o.model_dump() for o in body.offers],
    )
    notify_interest_reply(db, gateway, reply.interest, reply)
    return _serialize_reply(reply)


@router.post("/{interest_id}/replies/{reply_id}/accept", response_model=AcceptOfferResponse)
def accept(
    interest_id: str,
    reply_id: str,
    body: AcceptOfferRequest,
    db: Session = Depends(get_db),
    me: Account = Depends(get_current_user),
    gateway: Optional[SmsGateway] = Depends(get_sms_gateway),
):
    result = accept_offer(db, me, interest_id, reply_id, body.berth_id, gateway=gateway)
    return result.as_dict()
