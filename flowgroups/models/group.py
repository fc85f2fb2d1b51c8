from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flowgroups.core.database import Base
from flowgroups.models.enums import GroupStatus


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (
        Index("ix_groups_status_retention", "status", "archive_retention_until"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), default=GroupStatus.ACTIVE.value, nullable=False, index=True
    )  # active/expiring/archived
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # política de expiración (todas opcionales)
    absolute_expiry: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    inactivity_threshold_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # solo con status == archived
    archived_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    archive_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    archive_retention_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    invite_code: Mapped[str | None] = mapped_column(String(16), unique=True, nullable=True, index=True)
    invite_code_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
