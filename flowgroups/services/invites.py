import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from flowgroups.core.clock import Clock, SystemClock, iso_z
from flowgroups.core.config import settings
from flowgroups.models.enums import GroupStatus
from flowgroups.models.group import Group
from flowgroups.services import events
from flowgroups.services.errors import (
    ConcurrentUpdateError,
    GroupNotActiveError,
    GroupNotFoundError,
    InviteCapacityError,
)

logger = logging.getLogger(__name__)

# sin 0/O ni 1/I/L: se dicta y se teclea a mano
INVITE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


@dataclass(frozen=True)
class InviteCode:
    value: str
    group_id: str
    expires_at: datetime


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class InviteCodeIssuer:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Optional[Clock] = None,
        emit: events.Emit = events.discard,
        length: Optional[int] = None,
        ttl_days: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        self._sessions = session_factory
        self._clock = clock or SystemClock()
        self._emit = emit
        self.length = length or settings.INVITE_CODE_LENGTH
        self.ttl_days = ttl_days or settings.INVITE_CODE_TTL_DAYS
        self.max_attempts = max_attempts or settings.INVITE_CODE_MAX_ATTEMPTS

    def generate(self) -> str:
        return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(self.length))

    def expiry_for(self, absolute_expiry: Optional[datetime], now: datetime) -> datetime:
        if absolute_expiry is not None:
            return absolute_expiry
        return now + timedelta(days=self.ttl_days)

    def pick_free_code(self, db: Session) -> str:
        """Candidato que no choca con ningún código guardado (la columna es UNIQUE)."""
        for _ in range(self.max_attempts):
            candidate = self.generate()
            taken = db.execute(select(Group.id).where(Group.invite_code == candidate)).first()
            if taken is None:
                return candidate
        logger.warning("Sin códigos libres tras %d intentos", self.max_attempts)
        raise InviteCapacityError(self.max_attempts)

    def issue(self, group_id: str, now: Optional[datetime] = None) -> InviteCode:
        """Devuelve el código vigente o, si no hay, emite uno nuevo."""
        now = now or self._clock.now()
        with self._sessions() as db:
            group = self._live_group(db, group_id)
            if group.invite_code and group.invite_code_expires_at and group.invite_code_expires_at > now:
                return InviteCode(group.invite_code, group.id, group.invite_code_expires_at)
        return self._replace(group_id, now, announce=False)

    def regenerate(self, group_id: str, now: Optional[datetime] = None) -> InviteCode:
        """Sustituye el código: el viejo deja de valer en la misma escritura en que vale el nuevo."""
        return self._replace(group_id, now or self._clock.now(), announce=True)

    def validate(self, code: str, now: Optional[datetime] = None) -> Optional[str]:
        """id del grupo si el código es válido ahora; None (inválido) en otro caso."""
        now = now or self._clock.now()
        value = normalize_code(code)
        if not value:
            return None
        with self._sessions() as db:
            row = db.execute(
                select(Group.id, Group.status, Group.invite_code_expires_at).where(Group.invite_code == value)
            ).first()
        if row is None:
            return None
        if row.status != GroupStatus.ACTIVE.value:
            return None
        if row.invite_code_expires_at is None or row.invite_code_expires_at <= now:
            return None
        return row.id

    def _live_group(self, db: Session, group_id: str) -> Group:
        group = db.get(Group, group_id)
        if not group:
            raise GroupNotFoundError(group_id)
        if group.status != GroupStatus.ACTIVE.value:
            raise GroupNotActiveError(group_id, group.status)
        return group

    def _replace(self, group_id: str, now: datetime, announce: bool) -> InviteCode:
        # colisiones de código y CAS perdidos tienen presupuestos separados
        collisions = conflicts = 0
        while True:
            if collisions >= self.max_attempts:
                raise InviteCapacityError(collisions)
            if conflicts >= self.max_attempts:
                raise ConcurrentUpdateError(group_id, conflicts)

            with self._sessions() as db:
                group = self._live_group(db, group_id)
                version = group.version
                expires_at = self.expiry_for(group.absolute_expiry, now)
                candidate = self.pick_free_code(db)

                try:
                    res = db.execute(
                        update(Group)
                        .where(
                            Group.id == group_id,
                            Group.version == version,
                            Group.status == GroupStatus.ACTIVE.value,
                        )
                        .values(
                            invite_code=candidate,
                            invite_code_expires_at=expires_at,
                            version=Group.version + 1,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if res.rowcount != 1:
                        # cambió el grupo entre lectura y escritura; releer
                        db.rollback()
                        conflicts += 1
                        continue
                    db.commit()
                except IntegrityError:
                    # otro emisor se quedó el mismo código a la vez
                    db.rollback()
                    collisions += 1
                    continue

            logger.info("Código de invitación nuevo para grupo %s", group_id)
            if announce:
                events.safe_emit(
                    self._emit,
                    events.INVITE_REGENERATED,
                    {"group_id": group_id, "expires_at": iso_z(expires_at)},
                )
            return InviteCode(candidate, group_id, expires_at)
