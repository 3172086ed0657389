"""
Occupancy ledger: who occupies a resource, who is billed, and
whether a second-hand tenancy exists.

Every public operation leaves the resource satisfying:
  - status is Occupied exactly when occupant_ids is non-empty
  - invoice_responsible_id points into tenants whenever tenants is non-empty
  - second_hand_tenant_id is never one of occupant_ids
  - with allow_second_hand off, both second-hand fields are cleared
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pytz
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import (
    Account,
    LandStorageEntry,
    Resource,
    RESOURCE_AVAILABLE,
    RESOURCE_OCCUPIED,
)
from .audit import compute_diff, create_audit_log
from .errors import LedgerValidationError
from .lookup import get_land_storage, get_resource, parse_id


def current_year() -> int:
    return datetime.now(pytz.timezone(settings.tz_default)).year


def _account_key(account_id: Any) -> str:
    return str(parse_id(account_id, "Account"))


def sync_status(resource: Resource) -> None:
    resource.status = RESOURCE_OCCUPIED if resource.occupant_ids else RESOURCE_AVAILABLE


def _repair_invoice_responsible(resource: Resource) -> None:
    tenant_ids = [t["uid"] for t in (resource.tenants or [])]
    if resource.invoice_responsible_id in tenant_ids:
        return
    resource.invoice_responsible_id = tenant_ids[0] if tenant_ids else None


def ledger_snapshot(resource: Resource) -> Dict[str, Any]:
    return {
        "status": resource.status,
        "occupant_ids": list(resource.occupant_ids or []),
        "tenant_ids": [t["uid"] for t in (resource.tenants or [])],
        "invoice_responsible_id": resource.invoice_responsible_id,
        "allow_second_hand": bool(resource.allow_second_hand),
        "second_hand_tenant_id": resource.second_hand_tenant_id,
        "invoice_second_hand_tenant_directly": bool(resource.invoice_second_hand_tenant_directly),
    }


def link_occupant(resource: Resource, account_id: Any) -> bool:
    """Append an occupant without touching existing links. Returns False if already linked."""
    key = _account_key(account_id)
    occupants = list(resource.occupant_ids or [])
    if key in occupants:
        return False
    if resource.second_hand_tenant_id == key:
        raise LedgerValidationError("Second-hand tenant cannot also be an occupant")
    resource.occupant_ids = occupants + [key]
    sync_status(resource)
    return True


def record_tenant(resource: Resource, account: Account, price: Optional[float] = None, year: Optional[int] = None) -> None:
    """Occupancy side of an accepted offer: occupant, tenant snapshot, invoice and price."""
    key = str(account.id)
    link_occupant(resource, key)
    tenants = [t for t in (resource.tenants or []) if t.get("uid") != key]
    tenants.append({
        "uid": key,
        "name": account.name or "",
        "phone": account.phone or "",
        "email": account.email or "",
    })
    resource.tenants = tenants
    resource.invoice_responsible_id = key
    if price is not None:
        prices = dict(resource.prices or {})
        prices[str(year or current_year())] = price
        resource.prices = prices


def assign_tenants(db: Session, resource_id: Any, account_ids: Iterable[Any], actor: Optional[Account] = None) -> Resource:
    resource = get_resource(db, resource_id)
    before = ledger_snapshot(resource)

    occupants: List[str] = []
    for account_id in account_ids:
        key = _account_key(account_id)
        if key not in occupants:
            occupants.append(key)
    if resource.second_hand_tenant_id and resource.second_hand_tenant_id in occupants:
        raise LedgerValidationError("Second-hand tenant cannot also be an occupant")

    resource.occupant_ids = occupants
    resource.tenants = [t for t in (resource.tenants or []) if t.get("uid") in occupants]
    _repair_invoice_responsible(resource)
    sync_status(resource)

    _audit(db, resource, "ASSIGN_TENANTS", actor, before)
    db.commit()
    db.refresh(resource)
    return resource


def set_invoice_responsible(db: Session, resource_id: Any, account_id: Any, actor: Optional[Account] = None) -> Resource:
    resource = get_resource(db, resource_id)
    key = _account_key(account_id)
    if key not in [t["uid"] for t in (resource.tenants or [])]:
        raise LedgerValidationError("Invoice responsible must be one of the tenants")
    before = ledger_snapshot(resource)
    resource.invoice_responsible_id = key
    _audit(db, resource, "SET_INVOICE_RESPONSIBLE", actor, before)
    db.commit()
    db.refresh(resource)
    return resource


def remove_tenant(db: Session, resource_id: Any, account_id: Any, actor: Optional[Account] = None) -> Resource:
    resource = get_resource(db, resource_id)
    key = _account_key(account_id)
    before = ledger_snapshot(resource)

    resource.tenants = [t for t in (resource.tenants or []) if t.get("uid") != key]
    resource.occupant_ids = [uid for uid in (resource.occupant_ids or []) if uid != key]
    if resource.invoice_responsible_id == key:
        resource.invoice_responsible_id = None
    _repair_invoice_responsible(resource)
    sync_status(resource)

    _audit(db, resource, "REMOVE_TENANT", actor, before)
    db.commit()
    db.refresh(resource)
    return resource


def toggle_second_hand(db: Session, resource_id: Any, enabled: bool, actor: Optional[Account] = None) -> Resource:
    resource = get_resource(db, resource_id)
    before = ledger_snapshot(resource)
    resource.allow_second_hand = bool(enabled)
    if not enabled:
        resource.second_hand_tenant_id = None
        resource.invoice_second_hand_tenant_directly = False
    _audit(db, resource, "TOGGLE_SECOND_HAND", actor, before)
    db.commit()
    db.refresh(resource)
    return resource


def set_second_hand_tenant(
    db: Session,
    resource_id: Any,
    account_id: Optional[Any],
    invoice_directly: bool = False,
    actor: Optional[Account] = None,
) -> Resource:
    resource = get_resource(db, resource_id)
    if not resource.allow_second_hand:
        raise LedgerValidationError("Second-hand tenancy is not allowed on this resource")
    before = ledger_snapshot(resource)
    if account_id is None:
        resource.second_hand_tenant_id = None
        resource.invoice_second_hand_tenant_directly = False
    else:
        key = _account_key(account_id)
        if key in (resource.occupant_ids or []):
            raise LedgerValidationError("Second-hand tenant cannot also be an occupant")
        resource.second_hand_tenant_id = key
        resource.invoice_second_hand_tenant_directly = bool(invoice_directly)
    _audit(db, resource, "SET_SECOND_HAND_TENANT", actor, before)
    db.commit()
    db.refresh(resource)
    return resource


def resolve_default_price(resource: Resource, year: Optional[int] = None) -> Optional[float]:
    """Price to pre-fill an offer with. Never invents a number."""
    year = year or current_year()
    prices = resource.prices or {}
    for candidate in (prices.get(str(year)), prices.get(str(year - 1)), resource.price_2026, resource.price_2025):
        if candidate is not None:
            return candidate
    return None


def assign_land_storage(db: Session, code: str, account_id: Optional[Any], actor: Optional[Account] = None) -> LandStorageEntry:
    entry = get_land_storage(db, code)
    before = {"occupant_id": entry.occupant_id, "status": entry.status}
    entry.occupant_id = _account_key(account_id) if account_id is not None else None
    entry.status = RESOURCE_OCCUPIED if entry.occupant_id else RESOURCE_AVAILABLE
    create_audit_log(
        db,
        entity_type="land_storage",
        entity_id=entry.id,
        action="ASSIGN_OCCUPANT",
        actor=actor,
        changes_json={"before": before, "after": {"occupant_id": entry.occupant_id, "status": entry.status}},
        commit=False,
    )
    db.commit()
    db.refresh(entry)
    return entry


def _audit(db: Session, resource: Resource, action: str, actor: Optional[Account], before: Dict[str, Any]) -> None:
    create_audit_log(
        db,
        entity_type="resource",
        entity_id=resource.id,
        action=action,
        actor=actor,
        changes_json=compute_diff(before, ledger_snapshot(resource)),
        context={"marking_code": resource.marking_code},
        commit=False,
    )
