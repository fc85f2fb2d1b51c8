import logging
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

GROUP_EXPIRING = "group.expiring"
GROUP_ARCHIVED = "group.archived"
GROUP_PURGED = "group.purged"
MEMBER_JOINED = "member.joined"
MEMBER_REMOVED = "member.removed"
MESSAGE_CREATED = "message.created"
INVITE_REGENERATED = "invite.regenerated"

Emit = Callable[[str, Dict[str, Any]], None]


def discard(event_type: str, payload: Dict[str, Any]) -> None:
    logger.debug("Evento %s descartado (sin canal)", event_type)


def safe_emit(emit: Emit, event_type: str, payload: Dict[str, Any]) -> None:
    # fire-and-forget: el cambio ya está confirmado en la DB
    try:
        emit(event_type, payload)
    except Exception:
        logger.exception("Fallo al emitir %s", event_type)
