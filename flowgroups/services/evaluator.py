"""
Lifecycle evaluator: decide el siguiente estado de un grupo.

Función pura, sin efectos: recibe una foto del grupo y la hora actual.
Prioridad (gana la primera que aplique, un grupo no se archiva por dos
motivos a la vez):

1. absolute_expiry alcanzado            -> archived / time_expired
2. inactividad >= umbral en días         -> archived / inactive
3. message_count >= message_limit        -> archived / message_limit
4. active y queda < 10% de la vida útil  -> expiring
5. sin cambios
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from flowgroups.models.enums import ArchiveReason, GroupStatus

DEFAULT_EXPIRING_THRESHOLD = 0.10


@dataclass(frozen=True)
class GroupSnapshot:
    id: str
    status: GroupStatus
    version: int
    created_at: datetime
    last_activity_at: datetime
    message_count: int
    absolute_expiry: Optional[datetime] = None
    inactivity_threshold_days: Optional[int] = None
    message_limit: Optional[int] = None

    @classmethod
    def from_row(cls, group) -> "GroupSnapshot":
        return cls(
            id=group.id,
            status=GroupStatus(group.status),
            version=group.version,
            created_at=group.created_at,
            last_activity_at=group.last_activity_at,
            message_count=group.message_count,
            absolute_expiry=group.absolute_expiry,
            inactivity_threshold_days=group.inactivity_threshold_days,
            message_limit=group.message_limit,
        )


@dataclass(frozen=True)
class NoChange:
    pass


@dataclass(frozen=True)
class TransitionTo:
    status: GroupStatus
    reason: Optional[ArchiveReason] = None


Decision = Union[NoChange, TransitionTo]

NO_CHANGE = NoChange()


def lifetime_remaining(created_at: datetime, absolute_expiry: datetime, now: datetime) -> float:
    """Fracción de vida restante, acotada a [0, 1]."""
    total = absolute_expiry - created_at
    if total <= timedelta(0):
        return 0.0
    remaining = (absolute_expiry - now) / total
    return min(1.0, max(0.0, remaining))


def evaluate(
    group: GroupSnapshot,
    now: datetime,
    expiring_threshold: float = DEFAULT_EXPIRING_THRESHOLD,
) -> Decision:
    if group.status == GroupStatus.ARCHIVED:
        return NO_CHANGE

    if group.absolute_expiry is not None and now >= group.absolute_expiry:
        return TransitionTo(GroupStatus.ARCHIVED, ArchiveReason.TIME_EXPIRED)

    if group.inactivity_threshold_days is not None:
        if now - group.last_activity_at >= timedelta(days=group.inactivity_threshold_days):
            return TransitionTo(GroupStatus.ARCHIVED, ArchiveReason.INACTIVE)

    if group.message_limit is not None and group.message_count >= group.message_limit:
        return TransitionTo(GroupStatus.ARCHIVED, ArchiveReason.MESSAGE_LIMIT)

    if group.status == GroupStatus.ACTIVE and group.absolute_expiry is not None:
        remaining = lifetime_remaining(group.created_at, group.absolute_expiry, now)
        if remaining < expiring_threshold:
            return TransitionTo(GroupStatus.EXPIRING)

    return NO_CHANGE
