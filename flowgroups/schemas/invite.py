from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class InvitePublic(BaseModel):
    code: str
    group_id: str
    expires_at: datetime


class InviteValidation(BaseModel):
    valid: bool
    group_id: Optional[str] = None
