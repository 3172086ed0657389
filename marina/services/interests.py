"""
Interest intake: creation, dock-scoped visibility and manual status changes.

Visibility here is an access filter applied by this service; every route that
touches a single interest re-checks it with ensure_visible.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..models.models import (
    Account,
    Dock,
    Interest,
    InterestReply,
    Resource,
    dock_managers,
    ROLE_DOCK_MANAGER,
    ROLE_SUPERADMIN,
)
from .audit import create_audit_log
from .errors import NotFoundError, PermissionDenied
from .lookup import get_interest, parse_id
from .state_machine import InterestStatus


def is_superadmin(account: Account) -> bool:
    return account.role == ROLE_SUPERADMIN


def is_manager(account: Account) -> bool:
    return account.role in (ROLE_DOCK_MANAGER, ROLE_SUPERADMIN)


def managed_dock_ids(db: Session, actor: Account) -> Optional[Set[uuid.UUID]]:
    """Dock ids the actor may act on; None means every dock."""
    if is_superadmin(actor):
        return None
    if actor.role != ROLE_DOCK_MANAGER:
        return set()
    rows = db.query(dock_managers.c.dock_id).filter(dock_managers.c.account_id == actor.id).all()
    return {row[0] for row in rows}


def can_see(db: Session, actor: Account, interest: Interest, dock_ids: Optional[Set[uuid.UUID]] = None) -> bool:
    if is_superadmin(actor):
        return True
    if actor.role != ROLE_DOCK_MANAGER:
        return False
    if interest.preferred_dock_id is None:
        return True
    if dock_ids is None:
        dock_ids = managed_dock_ids(db, actor)
    return interest.preferred_dock_id in dock_ids


def ensure_visible(db: Session, actor: Account, interest_id: Any) -> Interest:
    """Load an interest for a manager, hiding ones outside their docks."""
    interest = get_interest(db, interest_id)
    if not can_see(db, actor, interest):
        # indistinguishable from a missing interest for out-of-scope managers
        raise NotFoundError("Interest not found")
    return interest


def ensure_owner_or_visible(db: Session, actor: Account, interest_id: Any) -> Interest:
    interest = get_interest(db, interest_id)
    if interest.user_id == actor.id or can_see(db, actor, interest):
        return interest
    raise NotFoundError("Interest not found")


def list_visible(db: Session, actor: Account) -> List[Interest]:
    query = db.query(Interest)
    if not is_superadmin(actor):
        if actor.role != ROLE_DOCK_MANAGER:
            return []
        dock_ids = managed_dock_ids(db, actor)
        filters = [Interest.preferred_dock_id.is_(None)]
        if dock_ids:
            filters.append(Interest.preferred_dock_id.in_(dock_ids))
        query = query.filter(or_(*filters))
    return query.order_by(Interest.created_at.desc()).all()


def list_own(db: Session, actor: Account) -> List[Interest]:
    return (
        db.query(Interest)
        .filter(Interest.user_id == actor.id)
        .order_by(Interest.created_at.desc())
        .all()
    )


def unread_reply_count(db: Session, interest: Interest) -> int:
    query = db.query(func.count(InterestReply.id)).filter(
        InterestReply.interest_id == interest.id,
        or_(InterestReply.author_id.is_(None), InterestReply.author_id != interest.user_id),
    )
    if interest.last_seen_replies_at is not None:
        query = query.filter(InterestReply.created_at > interest.last_seen_replies_at)
    return query.scalar() or 0


def create_interest(db: Session, actor: Account, payload: Dict[str, Any]) -> Interest:
    """Register a new interest for the acting account. Always starts Pending."""
    if not actor.is_active:
        raise PermissionDenied("Account is not active")

    preferred_dock_id = payload.get("preferred_dock_id")
    if preferred_dock_id is not None:
        preferred_dock_id = parse_id(preferred_dock_id, "Dock")
        if db.get(Dock, preferred_dock_id) is None:
            raise NotFoundError("Dock not found")

    preferred_berth_id = payload.get("preferred_berth_id")
    if preferred_berth_id is not None:
        preferred_berth_id = parse_id(preferred_berth_id, "Resource")
        if db.get(Resource, preferred_berth_id) is None:
            raise NotFoundError("Resource not found")

    interest = Interest(
        user_id=actor.id,
        user_name=payload.get("user_name") or actor.name or "",
        email=payload.get("email") or actor.email,
        phone=payload.get("phone") or actor.phone,
        boat_width=payload["boat_width"],
        boat_length=payload["boat_length"],
        preferred_dock_id=preferred_dock_id,
        preferred_berth_id=preferred_berth_id,
        message=(payload.get("message") or "").strip() or None,
        image_url=payload.get("image_url"),
        status=InterestStatus.pending.value,
    )
    db.add(interest)
    db.commit()
    db.refresh(interest)
    return interest


def set_interest_status(db: Session, actor: Account, interest_id: Any, status: str) -> Interest:
    """Manual override by a manager. Leaving Resolved is still refused by the model."""
    if not is_manager(actor):
        raise PermissionDenied("Only dock managers can change interest status")
    interest = ensure_visible(db, actor, interest_id)
    before = interest.status
    interest.status = status
    if before != interest.status:
        create_audit_log(
            db,
            entity_type="interest",
            entity_id=interest.id,
            action="STATUS_OVERRIDE",
            actor=actor,
            changes_json={"status": {"before": before, "after": interest.status}},
            commit=False,
        )
    db.commit()
    db.refresh(interest)
    return interest


def mark_replies_seen(db: Session, actor: Account, interest_id: Any) -> Interest:
    interest = get_interest(db, interest_id)
    if interest.user_id != actor.id:
        raise NotFoundError("Interest not found")
    interest.last_seen_replies_at = datetime.utcnow()
    db.commit()
    db.refresh(interest)
    return interest


def delete_interest(db: Session, actor: Account, interest_id: Any) -> None:
    if not is_superadmin(actor):
        raise PermissionDenied("Only superadmins can delete interests")
    interest = get_interest(db, interest_id)
    create_audit_log(
        db,
        entity_type="interest",
        entity_id=interest.id,
        action="DELETE",
        actor=actor,
        context={"status": interest.status, "user_id": str(interest.user_id)},
        commit=False,
    )
    db.delete(interest)
    db.commit()
