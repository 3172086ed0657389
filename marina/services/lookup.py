import uuid
from typing import Any

from sqlalchemy.orm import Session

from ..models.models import Account, Resource, Interest, InterestReply, LandStorageEntry
from .errors import NotFoundError


def parse_id(value: Any, label: str = "Object") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise NotFoundError(f"{label} not found")


def get_account(db: Session, account_id: Any) -> Account:
    account = db.get(Account, parse_id(account_id, "Account"))
    if account is None:
        raise NotFoundError("Account not found")
    return account


def get_resource(db: Session, resource_id: Any) -> Resource:
    resource = db.get(Resource, parse_id(resource_id, "Resource"))
    if resource is None:
        raise NotFoundError("Resource not found")
    return resource


def get_interest(db: Session, interest_id: Any) -> Interest:
    interest = db.get(Interest, parse_id(interest_id, "Interest"))
    if interest is None:
        raise NotFoundError("Interest not found")
    return interest


def get_reply(db: Session, interest: Interest, reply_id: Any) -> InterestReply:
    reply = db.get(InterestReply, parse_id(reply_id, "Reply"))
    if reply is None or reply.interest_id != interest.id:
        raise NotFoundError("Reply not found")
    return reply


def get_land_storage(db: Session, code: str) -> LandStorageEntry:
    entry = db.query(LandStorageEntry).filter(LandStorageEntry.code == code).first()
    if entry is None:
        raise NotFoundError("Land storage entry not found")
    return entry
