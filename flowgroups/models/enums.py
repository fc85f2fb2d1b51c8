from enum import Enum


class GroupStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING = "expiring"
    ARCHIVED = "archived"


# orden permitido: active -> expiring -> archived (archived es terminal)
STATUS_RANK = {
    GroupStatus.ACTIVE: 0,
    GroupStatus.EXPIRING: 1,
    GroupStatus.ARCHIVED: 2,
}

LIVE_STATUSES = (GroupStatus.ACTIVE.value, GroupStatus.EXPIRING.value)


class ArchiveReason(str, Enum):
    TIME_EXPIRED = "time_expired"
    INACTIVE = "inactive"
    MESSAGE_LIMIT = "message_limit"
    MANUAL = "manual"


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Lifespan(str, Enum):
    ONE_HOUR = "1_hour"
    TWENTY_FOUR_HOURS = "24_hours"
    THREE_DAYS = "3_days"
    SEVEN_DAYS = "7_days"
    CUSTOM = "custom"


LIFESPAN_HOURS = {
    Lifespan.ONE_HOUR: 1,
    Lifespan.TWENTY_FOUR_HOURS: 24,
    Lifespan.THREE_DAYS: 72,
    Lifespan.SEVEN_DAYS: 168,
}
