import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from flowgroups.core.clock import iso_z
from flowgroups.models.enums import STATUS_RANK, GroupStatus
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.services.evaluator import GroupSnapshot, TransitionTo

logger = logging.getLogger(__name__)


def apply_transition(
    db: Session,
    snapshot: GroupSnapshot,
    decision: TransitionTo,
    now: datetime,
    retention_days: int,
) -> dict | None:
    """
    Escritura condicional (CAS) de una transición.

    Solo actualiza si el registro sigue en el (status, version) leído al
    evaluar. Devuelve los campos escritos si ganamos la carrera, None si no.
    No hace commit: el llamador confirma o revierte la transacción.
    """
    if STATUS_RANK[decision.status] <= STATUS_RANK[snapshot.status]:
        raise ValueError(
            f"Transición no permitida: {snapshot.status.value} -> {decision.status.value}"
        )

    values: dict = {"status": decision.status.value}
    if decision.status == GroupStatus.ARCHIVED:
        values["archived_at"] = now
        values["archive_reason"] = decision.reason.value
        values["archive_retention_until"] = now + timedelta(days=retention_days)

    res = db.execute(
        update(Group)
        .where(
            Group.id == snapshot.id,
            Group.status == snapshot.status.value,
            Group.version == snapshot.version,
        )
        .values(version=Group.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        logger.debug("CAS perdido para grupo %s (v%s)", snapshot.id, snapshot.version)
        return None

    if decision.status == GroupStatus.ARCHIVED:
        # el grupo ya no recibe mensajes: contadores de no leídos a cero
        db.execute(
            update(GroupMember)
            .where(GroupMember.group_id == snapshot.id)
            .values(unread_count=0)
            .execution_options(synchronize_session=False)
        )

    return values


def member_ids(db: Session, group_id: str) -> list[str]:
    return list(
        db.execute(select(GroupMember.user_id).where(GroupMember.group_id == group_id)).scalars()
    )


def transition_payload(group_id: str, written: dict, members: list[str]) -> dict:
    payload = {"group_id": group_id, "status": written["status"], "members": members}
    if written["status"] == GroupStatus.ARCHIVED.value:
        payload["reason"] = written["archive_reason"]
        payload["archived_at"] = iso_z(written["archived_at"])
        payload["archive_retention_until"] = iso_z(written["archive_retention_until"])
    return payload
