from enum import Enum

from fastapi import HTTPException, Request

from flowgroups.services.container import Lifecycle
from flowgroups.services.results import Rejected


def get_lifecycle(request: Request) -> Lifecycle:
    return request.app.state.lifecycle


# código de motivo -> (status HTTP, mensaje para la UI)
_REJECTIONS = {
    "group_not_found": (404, "Grupo no encontrado"),
    "group_not_active": (410, "El grupo ya no está activo"),
    "invalid_or_expired_code": (410, "Código de invitación no válido o expirado"),
    "already_member": (409, "Ya eres miembro"),
    "not_a_member": (409, "Usuario no es miembro"),
    "not_admin": (403, "Solo un admin puede hacer esto"),
    "cannot_remove_creator": (403, "No puedes expulsar al creador del grupo"),
    "message_limit_reached": (410, "El grupo alcanzó su límite de mensajes"),
    "concurrent_update": (409, "El grupo cambió a la vez; inténtalo de nuevo"),
}


def reject(result: Rejected) -> HTTPException:
    reason = result.reason.value if isinstance(result.reason, Enum) else str(result.reason)
    status, message = _REJECTIONS.get(reason, (400, "Operación rechazada"))
    return HTTPException(status_code=status, detail={"reason": reason, "message": message})
