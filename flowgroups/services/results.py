"""
Resultados explícitos (éxito / rechazo) de las operaciones de usuario.

Los rechazos esperados nunca se lanzan como excepción: el llamador
(UI, flujo de unión) necesita un código de motivo para mostrar el mensaje
adecuado.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union


class JoinRejection(str, Enum):
    INVALID_OR_EXPIRED_CODE = "invalid_or_expired_code"
    ALREADY_MEMBER = "already_member"
    GROUP_NOT_ACTIVE = "group_not_active"


class RemoveRejection(str, Enum):
    GROUP_NOT_FOUND = "group_not_found"
    GROUP_NOT_ACTIVE = "group_not_active"
    NOT_ADMIN = "not_admin"
    CANNOT_REMOVE_CREATOR = "cannot_remove_creator"
    NOT_A_MEMBER = "not_a_member"


class PostRejection(str, Enum):
    GROUP_NOT_FOUND = "group_not_found"
    GROUP_NOT_ACTIVE = "group_not_active"
    NOT_A_MEMBER = "not_a_member"
    MESSAGE_LIMIT_REACHED = "message_limit_reached"


class DisbandRejection(str, Enum):
    GROUP_NOT_FOUND = "group_not_found"
    GROUP_NOT_ACTIVE = "group_not_active"
    NOT_ADMIN = "not_admin"
    CONCURRENT_UPDATE = "concurrent_update"


@dataclass(frozen=True)
class Rejected:
    reason: Enum
    ok: ClassVar[bool] = False


@dataclass(frozen=True)
class Accepted:
    group_id: str
    user_id: str
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Removed:
    group_id: str
    user_id: str
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Posted:
    message_id: str
    group_id: str
    message_count: int
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Disbanded:
    group_id: str
    archived_at: datetime
    archive_retention_until: datetime
    ok: ClassVar[bool] = True


JoinResult = Union[Accepted, Rejected]
RemoveResult = Union[Removed, Rejected]
PostResult = Union[Posted, Rejected]
DisbandResult = Union[Disbanded, Rejected]


@dataclass
class GroupError:
    """Fallo de un grupo concreto dentro de un sweep o reap."""

    group_id: str
    error: str
