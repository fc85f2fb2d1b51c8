class LifecycleError(Exception):
    """Base de los errores del motor de ciclo de vida."""


class PolicyError(LifecycleError, ValueError):
    """Política de expiración inválida; se rechaza al crear el grupo."""


class InviteCapacityError(LifecycleError):
    """No se encontró un código libre dentro del presupuesto de reintentos (reintentable)."""

    def __init__(self, attempts: int):
        super().__init__(f"No se pudo generar un código de invitación único tras {attempts} intentos")
        self.attempts = attempts


class GroupNotFoundError(LifecycleError):
    def __init__(self, group_id: str):
        super().__init__(f"Grupo {group_id} no encontrado")
        self.group_id = group_id


class GroupNotActiveError(LifecycleError):
    def __init__(self, group_id: str, status: str):
        super().__init__(f"Grupo {group_id} no está activo ({status})")
        self.group_id = group_id
        self.status = status


class ConcurrentUpdateError(LifecycleError):
    """Otro escritor cambió el grupo en cada reintento; reintentable por el llamador."""

    def __init__(self, group_id: str, attempts: int):
        super().__init__(f"Grupo {group_id} modificado a la vez en {attempts} intentos")
        self.group_id = group_id
        self.attempts = attempts
