from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import require_roles
from ..db import get_db
from ..models.models import Account, Resource, ROLE_DOCK_MANAGER, ROLE_SUPERADMIN
from ..schemas.resources import (
    DefaultPriceResponse,
    InvoiceResponsibleUpdate,
    LandStorageOccupantUpdate,
    LandStorageResponse,
    OccupantsUpdate,
    ResourceResponse,
    SecondHandUpdate,
)
from ..services import occupancy
from ..services.errors import NotFoundError
from ..services.interests import managed_dock_ids
from ..services.lookup import get_resource


router = APIRouter(tags=["resources"])

managers_only = require_roles(ROLE_DOCK_MANAGER, ROLE_SUPERADMIN)


def _resource_in_scope(db: Session, me: Account, resource_id: str) -> Resource:
    resource = get_resource(db, resource_id)
    dock_ids = managed_dock_ids(db, me)
    if dock_ids is not None and resource.dock_id not in dock_ids:
        raise NotFoundError("Resource not found")
    return resource


@router.get("/resources", response_model=List[ResourceResponse])
def list_resources(
    type: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    me: Account = Depends(managers_only),
):
    query = db.query(Resource)
    dock_ids = managed_dock_ids(db, me)
    if dock_ids is not None:
        if not dock_ids:
            return []
        query = query.filter(Resource.dock_id.in_(dock_ids))
    if type:
        query = query.filter(Resource.type == type)
    if status:
        query = query.filter(Resource.status == status)
    return query.order_by(Resource.marking_code).all()


@router.put("/resources/{resource_id}/occupants", response_model=ResourceResponse)
def put_occupants(resource_id: str, body: OccupantsUpdate, db: Session = Depends(get_db), me: Account = Depends(managers_only)):
    _resource_in_scope(db, me, resource_id)
    return occupancy.assign_tenants(db, resource_id, body.account_ids, actor=me)


@router.put("/resources/{resource_id}/invoice-responsible", response_model=ResourceResponse)
def put_invoice_responsible(
    resource_id: str,
    body: InvoiceResponsibleUpdate,
    db: Session = Depends(get_db),
    me: Account = Depends(managers_only),
):
    _resource_in_scope(db, me, resource_id)
    return occupancy.set_invoice_responsible(db, resource_id, body.account_id, actor=me)


@router.delete("/resources/{resource_id}/tenants/{account_id}", response_model=ResourceResponse)
def delete_tenant(resource_id: str, account_id: str, db: Session = Depends(get_db), me: Account = Depends(managers_only)):
    _resource_in_scope(db, me, resource_id)
    return occupancy.remove_tenant(db, resource_id, account_id, actor=me)


@router.put("/resources/{resource_id}/second-hand", response_model=ResourceResponse)
def put_second_hand(resource_id: str, body: SecondHandUpdate, db: Session = Depends(get_db), me: Account = Depends(managers_only)):
    _resource_in_scope(db, me, resource_id)
    resource = occupancy.toggle_second_hand(db, resource_id, body.enabled, actor=me)
    if body.enabled and body.tenant_id is not None:
        resource = occupancy.set_second_hand_tenant(
            db, resource_id, body.tenant_id, invoice_directly=body.invoice_directly, actor=me
        )
    return resource


@router.get("/resources/{resource_id}/default-price", response_model=DefaultPriceResponse)
def get_default_price(
    resource_id: str,
    year: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    me: Account = Depends(managers_only),
):
    resource = _resource_in_scope(db, me, resource_id)
    year = year or occupancy.current_year()
    return {"year": year, "price": occupancy.resolve_default_price(resource, year)}


@router.put("/land-storage/{code}/occupant", response_model=LandStorageResponse)
def put_land_storage_occupant(
    code: str,
    body: LandStorageOccupantUpdate,
    db: Session = Depends(get_db),
    me: Account = Depends(require_roles(ROLE_SUPERADMIN)),
):
    return occupancy.assign_land_storage(db, code, body.account_id, actor=me)
