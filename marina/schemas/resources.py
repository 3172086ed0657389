import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel


class TenantEntry(BaseModel):
    uid: str
    name: str = ""
    phone: str = ""
    email: str = ""


class ResourceResponse(BaseModel):
    id: uuid.UUID
    type: str
    marking_code: str
    dock_id: Optional[uuid.UUID] = None
    status: str
    occupant_ids: List[str] = []
    tenants: List[TenantEntry] = []
    invoice_responsible_id: Optional[str] = None
    allow_second_hand: bool = False
    second_hand_tenant_id: Optional[str] = None
    invoice_second_hand_tenant_directly: bool = False
    prices: Dict[str, float] = {}

    class Config:
        from_attributes = True


class OccupantsUpdate(BaseModel):
    account_ids: List[uuid.UUID]


class InvoiceResponsibleUpdate(BaseModel):
    account_id: uuid.UUID


class SecondHandUpdate(BaseModel):
    enabled: bool
    tenant_id: Optional[uuid.UUID] = None
    invoice_directly: bool = False


class DefaultPriceResponse(BaseModel):
    year: int
    price: Optional[float] = None


class LandStorageOccupantUpdate(BaseModel):
    account_id: Optional[uuid.UUID] = None


class LandStorageResponse(BaseModel):
    id: uuid.UUID
    code: str
    status: str
    occupant_id: Optional[str] = None
    season: Optional[str] = None

    class Config:
        from_attributes = True


class ReconcileRunResponse(BaseModel):
    id: uuid.UUID
    status: str
    accounts_scanned: int = 0
    links_created: int = 0
    failures: Optional[List[dict]] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
