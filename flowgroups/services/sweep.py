"""
Sweep coordinator.

Recorre los grupos active/expiring, evalúa cada uno y aplica la transición
con escritura condicional. Seguro frente a varios sweeps concurrentes
(varios clientes o un job programado): uno gana, los demás pierden el CAS
y no emiten efectos. Un fallo en un grupo no aborta el resto.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import anyio
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from flowgroups.core.clock import Clock, SystemClock
from flowgroups.core.config import settings
from flowgroups.models.enums import LIVE_STATUSES, ArchiveReason, GroupStatus, MemberRole
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.services import events
from flowgroups.services.evaluator import GroupSnapshot, NoChange, TransitionTo, evaluate
from flowgroups.services.results import (
    DisbandRejection,
    DisbandResult,
    Disbanded,
    GroupError,
    Rejected,
)
from flowgroups.services.transitions import apply_transition, member_ids, transition_payload

logger = logging.getLogger(__name__)

_UNCHANGED = "unchanged"
_TRANSITIONED = "transitioned"
_CONFLICT = "conflict"

DISBAND_ATTEMPTS = 3

# motivo en SweepReport.errors cuando otro escritor gana el CAS
CONFLICT_ERROR = "conflict"


@dataclass
class SweepReport:
    evaluated: int = 0
    transitioned: int = 0
    expiring: int = 0
    archived: int = 0
    conflicts: int = 0
    errors: list[GroupError] = field(default_factory=list)
    cancelled: bool = False


class SweepCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Optional[Clock] = None,
        emit: events.Emit = events.discard,
        retention_days: Optional[int] = None,
        expiring_threshold: Optional[float] = None,
        concurrency: Optional[int] = None,
    ):
        self._sessions = session_factory
        self._clock = clock or SystemClock()
        self._emit = emit
        self.retention_days = retention_days if retention_days is not None else settings.ARCHIVE_RETENTION_DAYS
        self.expiring_threshold = (
            expiring_threshold if expiring_threshold is not None else settings.EXPIRING_THRESHOLD
        )
        self.concurrency = max(1, concurrency if concurrency is not None else settings.SWEEP_CONCURRENCY)

    async def sweep(
        self,
        now: Optional[datetime] = None,
        deadline: Optional[float] = None,
    ) -> SweepReport:
        """
        Un pase completo. `deadline` (segundos) corta el pase de forma
        cooperativa: los grupos pendientes se quedan para el siguiente;
        una transición ya empezada siempre termina entera.
        """
        now = now or self._clock.now()
        report = SweepReport()

        candidates = await anyio.to_thread.run_sync(self._load_candidates)
        if not candidates:
            return report

        gate = anyio.Semaphore(self.concurrency)
        threads = anyio.CapacityLimiter(self.concurrency)

        with anyio.move_on_after(deadline) as scope:
            async with anyio.create_task_group() as tg:
                for snap in candidates:
                    tg.start_soon(self._run_one, snap, now, report, gate, threads)

        report.cancelled = scope.cancelled_caught
        logger.info(
            "Sweep: evaluados=%d transiciones=%d conflictos=%d errores=%d%s",
            report.evaluated,
            report.transitioned,
            report.conflicts,
            len(report.errors),
            " (cortado por deadline)" if report.cancelled else "",
        )
        return report

    def _load_candidates(self) -> list[GroupSnapshot]:
        # siempre se relee la DB: nada en memoria es autoritativo entre sweeps
        with self._sessions() as db:
            groups = db.execute(select(Group).where(Group.status.in_(LIVE_STATUSES))).scalars().all()
            return [GroupSnapshot.from_row(g) for g in groups]

    async def _run_one(self, snap, now, report, gate, threads) -> None:
        async with gate:
            # una vez en el hilo, la transición termina aunque se cancele el sweep
            with anyio.CancelScope(shield=True):
                try:
                    outcome, decision = await anyio.to_thread.run_sync(
                        self._process_one, snap, now, limiter=threads
                    )
                except SQLAlchemyError as exc:
                    logger.warning("Sweep: error en grupo %s: %s", snap.id, exc)
                    report.errors.append(GroupError(group_id=snap.id, error=str(exc)))
                    return
                except Exception as exc:
                    # p.ej. un umbral guardado fuera de rango; el resto del lote sigue
                    logger.warning("Sweep: fallo evaluando grupo %s: %r", snap.id, exc)
                    report.errors.append(GroupError(group_id=snap.id, error=repr(exc)))
                    return

                report.evaluated += 1
                if outcome == _CONFLICT:
                    report.conflicts += 1
                    report.errors.append(GroupError(group_id=snap.id, error=CONFLICT_ERROR))
                elif outcome == _TRANSITIONED:
                    report.transitioned += 1
                    if decision.status == GroupStatus.ARCHIVED:
                        report.archived += 1
                    else:
                        report.expiring += 1

    def _process_one(self, snap: GroupSnapshot, now: datetime):
        decision = evaluate(snap, now, self.expiring_threshold)
        if isinstance(decision, NoChange):
            return _UNCHANGED, decision

        with self._sessions() as db:
            try:
                written = apply_transition(db, snap, decision, now, self.retention_days)
                if written is None:
                    db.rollback()
                    return _CONFLICT, decision
                members = member_ids(db, snap.id)
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise

        self._announce(snap.id, written, members)
        return _TRANSITIONED, decision

    def _announce(self, group_id: str, written: dict, members: list[str]) -> None:
        if written["status"] == GroupStatus.ARCHIVED.value:
            logger.info("Grupo %s archivado (%s)", group_id, written["archive_reason"])
            events.safe_emit(self._emit, events.GROUP_ARCHIVED, transition_payload(group_id, written, members))
        else:
            logger.info("Grupo %s pasa a expiring", group_id)
            events.safe_emit(self._emit, events.GROUP_EXPIRING, transition_payload(group_id, written, members))

    def disband_manually(
        self,
        group_id: str,
        acting_user_id: str,
        now: Optional[datetime] = None,
    ) -> DisbandResult:
        """Disolución manual por un admin: transición única fuera del sweep."""
        now = now or self._clock.now()
        decision = TransitionTo(GroupStatus.ARCHIVED, ArchiveReason.MANUAL)

        for _ in range(DISBAND_ATTEMPTS):
            with self._sessions() as db:
                group = db.get(Group, group_id)
                if not group:
                    return Rejected(DisbandRejection.GROUP_NOT_FOUND)
                if group.status not in LIVE_STATUSES:
                    return Rejected(DisbandRejection.GROUP_NOT_ACTIVE)

                role = db.execute(
                    select(GroupMember.role).where(
                        GroupMember.group_id == group_id,
                        GroupMember.user_id == acting_user_id,
                    )
                ).scalar_one_or_none()
                if role != MemberRole.ADMIN.value:
                    return Rejected(DisbandRejection.NOT_ADMIN)

                snap = GroupSnapshot.from_row(group)
                written = apply_transition(db, snap, decision, now, self.retention_days)
                if written is None:
                    # otro escritor se adelantó; releemos y reintentamos
                    db.rollback()
                    continue
                members = member_ids(db, group_id)
                db.commit()

            self._announce(group_id, written, members)
            return Disbanded(
                group_id=group_id,
                archived_at=written["archived_at"],
                archive_retention_until=written["archive_retention_until"],
            )

        return Rejected(DisbandRejection.CONCURRENT_UPDATE)
