"""
Archival reaper: borra definitivamente los grupos archivados cuya
retención ya venció, junto con miembros, mensajes y adjuntos.

Cada grupo se borra en una única transacción (nunca queda un borrado a
medias visible). Varios reapers a la vez son seguros: el primero que
"reclama" el grupo con la escritura condicional se lo queda.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from flowgroups.core.clock import Clock, SystemClock
from flowgroups.models.enums import GroupStatus
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.models.message import Attachment, Message
from flowgroups.services import events
from flowgroups.services.results import GroupError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def delete(self, paths: list[str]) -> None: ...


class NullBlobStore:
    def delete(self, paths: list[str]) -> None:
        if paths:
            logger.debug("Blob store no configurado; %d ficheros sin borrar", len(paths))


@dataclass
class ReapReport:
    scanned: int = 0
    purged: int = 0
    purged_group_ids: list[str] = field(default_factory=list)
    errors: list[GroupError] = field(default_factory=list)


class ArchivalReaper:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Optional[Clock] = None,
        emit: events.Emit = events.discard,
        blob_store: Optional[BlobStore] = None,
    ):
        self._sessions = session_factory
        self._clock = clock or SystemClock()
        self._emit = emit
        self._blobs = blob_store or NullBlobStore()

    def reap(self, now: Optional[datetime] = None) -> ReapReport:
        now = now or self._clock.now()
        report = ReapReport()

        for group_id in self._due(now):
            report.scanned += 1
            try:
                paths = self._purge(group_id, now)
            except SQLAlchemyError as exc:
                logger.warning("Reap: error en grupo %s: %s", group_id, exc)
                report.errors.append(GroupError(group_id=group_id, error=str(exc)))
                continue

            if paths is None:
                # otro reaper llegó antes
                continue

            report.purged += 1
            report.purged_group_ids.append(group_id)
            logger.info("Grupo %s purgado (%d adjuntos)", group_id, len(paths))

            try:
                self._blobs.delete(paths)
            except Exception as exc:
                # el grupo ya no existe; los blobs huérfanos se reintentan fuera
                logger.exception("Reap: fallo borrando blobs de %s", group_id)
                report.errors.append(GroupError(group_id=group_id, error=f"blob_store: {exc}"))

            events.safe_emit(self._emit, events.GROUP_PURGED, {"group_id": group_id})

        if report.scanned:
            logger.info("Reap: purgados=%d errores=%d", report.purged, len(report.errors))
        return report

    def _due(self, now: datetime) -> Iterable[str]:
        with self._sessions() as db:
            return list(
                db.execute(
                    select(Group.id).where(
                        Group.status == GroupStatus.ARCHIVED.value,
                        Group.archive_retention_until <= now,
                    )
                ).scalars()
            )

    def _purge(self, group_id: str, now: datetime) -> Optional[list[str]]:
        with self._sessions() as db:
            try:
                claimed = db.execute(
                    update(Group)
                    .where(
                        Group.id == group_id,
                        Group.status == GroupStatus.ARCHIVED.value,
                        Group.archive_retention_until <= now,
                    )
                    .values(version=Group.version + 1)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount != 1:
                    db.rollback()
                    return None

                message_ids = select(Message.id).where(Message.group_id == group_id)
                paths = list(
                    db.execute(
                        select(Attachment.file_path).where(Attachment.message_id.in_(message_ids))
                    ).scalars()
                )

                db.execute(
                    delete(Attachment)
                    .where(Attachment.message_id.in_(message_ids))
                    .execution_options(synchronize_session=False)
                )
                db.execute(
                    delete(Message)
                    .where(Message.group_id == group_id)
                    .execution_options(synchronize_session=False)
                )
                db.execute(
                    delete(GroupMember)
                    .where(GroupMember.group_id == group_id)
                    .execution_options(synchronize_session=False)
                )
                db.execute(
                    delete(Group)
                    .where(Group.id == group_id)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise
        return paths
