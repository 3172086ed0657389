import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class InterestCreate(BaseModel):
    boat_width: float = Field(gt=0)  # meters
    boat_length: float = Field(gt=0)  # meters
    preferred_dock_id: Optional[uuid.UUID] = None
    preferred_berth_id: Optional[uuid.UUID] = None
    message: Optional[str] = None
    image_url: Optional[str] = None
    # Contact snapshot; defaults to the account profile
    user_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class InterestStatusUpdate(BaseModel):
    status: Literal["Pending", "Contacted", "Resolved"]


class InterestResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    user_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    boat_width: float
    boat_length: float
    preferred_dock_id: Optional[uuid.UUID] = None
    preferred_berth_id: Optional[uuid.UUID] = None
    message: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    created_at: datetime
    last_seen_replies_at: Optional[datetime] = None
    accepted_offer_id: Optional[uuid.UUID] = None
    accepted_berth_id: Optional[uuid.UUID] = None
    accepted_berth_code: Optional[str] = None

    class Config:
        from_attributes = True


class OwnInterestResponse(InterestResponse):
    unread_replies: int = 0


class OfferedBerthIn(BaseModel):
    berth_id: uuid.UUID
    price: Optional[float] = Field(default=None, ge=0)


class OfferedBerthOut(BaseModel):
    berth_id: str
    berth_code: str
    dock_name: str
    price: Optional[float] = None


class ReplyCreate(BaseModel):
    message: str = Field(min_length=1)
    offers: List[OfferedBerthIn] = []


class ReplyResponse(BaseModel):
    id: uuid.UUID
    interest_id: uuid.UUID
    author_id: Optional[uuid.UUID] = None
    author_name: str
    author_email: Optional[str] = None
    author_phone: Optional[str] = None
    message: str
    created_at: datetime
    offered_berths: List[OfferedBerthOut] = []
    offer_status: Optional[str] = None


class AcceptOfferRequest(BaseModel):
    berth_id: uuid.UUID


class NotificationSummary(BaseModel):
    sent: int
    failed: int
    skipped: int


class AcceptOfferResponse(BaseModel):
    committed: bool
    interest_id: str
    reply_id: str
    berth_id: str
    berth_code: str
    declined_reply_ids: List[str]
    notifications: NotificationSummary
    notification_warning: bool


class OfferableBerthResponse(BaseModel):
    id: uuid.UUID
    marking_code: str
    dock_id: Optional[uuid.UUID] = None
    default_price: Optional[float] = None
