from datetime import datetime
from typing import List

from pydantic import BaseModel


class GroupErrorPublic(BaseModel):
    group_id: str
    error: str

    class Config:
        from_attributes = True


class SweepReportPublic(BaseModel):
    evaluated: int
    transitioned: int
    expiring: int
    archived: int
    conflicts: int
    errors: List[GroupErrorPublic] = []
    cancelled: bool = False

    class Config:
        from_attributes = True


class ReapReportPublic(BaseModel):
    scanned: int
    purged: int
    purged_group_ids: List[str] = []
    errors: List[GroupErrorPublic] = []

    class Config:
        from_attributes = True


class DisbandPublic(BaseModel):
    group_id: str
    archived_at: datetime
    archive_retention_until: datetime
