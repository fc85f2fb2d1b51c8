from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from flowgroups.models.enums import Lifespan
from flowgroups.services.groups import MAX_INACTIVITY_DAYS, MAX_MESSAGE_LIMIT


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)

    # lifespan predefinido o expires_at ("custom"); ninguno = sin caducidad absoluta
    lifespan: Optional[Lifespan] = None
    expires_at: Optional[datetime] = None
    inactivity_threshold_days: Optional[int] = Field(default=None, gt=0, le=MAX_INACTIVITY_DAYS)
    message_limit: Optional[int] = Field(default=None, gt=0, le=MAX_MESSAGE_LIMIT)


class GroupPublic(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_by: str
    status: str

    created_at: datetime
    last_activity_at: datetime
    absolute_expiry: Optional[datetime] = None
    inactivity_threshold_days: Optional[int] = None
    message_limit: Optional[int] = None
    message_count: int

    archived_at: Optional[datetime] = None
    archive_reason: Optional[str] = None
    archive_retention_until: Optional[datetime] = None

    invite_code: Optional[str] = None
    invite_code_expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupLists(BaseModel):
    active: List[GroupPublic] = []
    archived: List[GroupPublic] = []


class MemberPublic(BaseModel):
    user_id: str
    role: str
    unread_count: int
    joined_at: datetime

    class Config:
        from_attributes = True
