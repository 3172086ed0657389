import uuid
from datetime import datetime
from pydantic import BaseModel
from typing import Optional, List


class MeResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_public: bool = True
    allow_map_sms: bool = True
    approved: Optional[bool] = None
    last_login_at: Optional[datetime] = None
    managed_dock_ids: List[uuid.UUID] = []

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    account: MeResponse
    new_links: int


class SetPasswordRequest(BaseModel):
    new_password: str


class AccountActionResponse(BaseModel):
    success: bool
    error: Optional[str] = None
