import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, exists, insert, literal, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased, sessionmaker

from flowgroups.core.clock import Clock, SystemClock
from flowgroups.models.enums import LIVE_STATUSES, GroupStatus, MemberRole
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.services import events
from flowgroups.services.invites import normalize_code
from flowgroups.services.results import (
    Accepted,
    JoinRejection,
    JoinResult,
    Rejected,
    RemoveRejection,
    RemoveResult,
    Removed,
)

logger = logging.getLogger(__name__)


class MembershipGate:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Optional[Clock] = None,
        emit: events.Emit = events.discard,
    ):
        self._sessions = session_factory
        self._clock = clock or SystemClock()
        self._emit = emit

    def join(self, code: str, user_id: str, now: Optional[datetime] = None) -> JoinResult:
        """
        Alta por código. La validación del código y el INSERT son una sola
        sentencia: no puede entrar nadie con un código que caducó (o cuyo
        grupo dejó de estar activo) entre la lectura y la escritura.
        """
        now = now or self._clock.now()
        value = normalize_code(code)
        if not value:
            return Rejected(JoinRejection.INVALID_OR_EXPIRED_CODE)

        with self._sessions() as db:
            group_id = db.execute(select(Group.id).where(Group.invite_code == value)).scalar_one_or_none()
            if group_id is None:
                return Rejected(JoinRejection.INVALID_OR_EXPIRED_CODE)

            eligible = select(
                Group.id,
                literal(user_id),
                literal(MemberRole.MEMBER.value),
                literal(0),
                literal(now),
            ).where(
                Group.id == group_id,
                Group.invite_code == value,
                Group.status == GroupStatus.ACTIVE.value,
                Group.invite_code_expires_at > now,
            )
            stmt = insert(GroupMember).from_select(
                ["group_id", "user_id", "role", "unread_count", "joined_at"], eligible
            )

            try:
                res = db.execute(stmt)
                inserted = res.rowcount
                db.commit()
            except IntegrityError:
                # uq_group_user: otra petición (o una anterior) ya lo dio de alta
                db.rollback()
                return Rejected(JoinRejection.ALREADY_MEMBER)

            if inserted != 1:
                status = db.execute(select(Group.status).where(Group.id == group_id)).scalar_one_or_none()
                if status is not None and status != GroupStatus.ACTIVE.value:
                    return Rejected(JoinRejection.GROUP_NOT_ACTIVE)
                return Rejected(JoinRejection.INVALID_OR_EXPIRED_CODE)

        logger.info("Usuario %s entra en grupo %s", user_id, group_id)
        events.safe_emit(self._emit, events.MEMBER_JOINED, {"group_id": group_id, "user_id": user_id})
        return Accepted(group_id=group_id, user_id=user_id)

    def remove(self, group_id: str, target_user_id: str, acting_user_id: str) -> RemoveResult:
        """Expulsión por un admin. El creador nunca puede ser expulsado."""
        with self._sessions() as db:
            group = db.get(Group, group_id)
            if not group:
                return Rejected(RemoveRejection.GROUP_NOT_FOUND)
            if target_user_id == group.created_by:
                return Rejected(RemoveRejection.CANNOT_REMOVE_CREATOR)
            if group.status not in LIVE_STATUSES:
                return Rejected(RemoveRejection.GROUP_NOT_ACTIVE)

            actor = aliased(GroupMember)
            acting_is_admin = (
                exists()
                .where(
                    actor.group_id == group_id,
                    actor.user_id == acting_user_id,
                    actor.role == MemberRole.ADMIN.value,
                )
            )
            if not db.execute(select(acting_is_admin)).scalar():
                return Rejected(RemoveRejection.NOT_ADMIN)

            res = db.execute(
                delete(GroupMember)
                .where(
                    GroupMember.group_id == group_id,
                    GroupMember.user_id == target_user_id,
                    acting_is_admin,
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                db.rollback()
                # el actor pudo perder el rol entre medias
                if not db.execute(select(acting_is_admin)).scalar():
                    return Rejected(RemoveRejection.NOT_ADMIN)
                return Rejected(RemoveRejection.NOT_A_MEMBER)
            db.commit()

        logger.info("Usuario %s expulsado de grupo %s por %s", target_user_id, group_id, acting_user_id)
        events.safe_emit(
            self._emit,
            events.MEMBER_REMOVED,
            {"group_id": group_id, "user_id": target_user_id, "removed_by": acting_user_id},
        )
        return Removed(group_id=group_id, user_id=target_user_id)

    def leave(self, group_id: str, user_id: str) -> RemoveResult:
        with self._sessions() as db:
            group = db.get(Group, group_id)
            if not group:
                return Rejected(RemoveRejection.GROUP_NOT_FOUND)
            if user_id == group.created_by:
                return Rejected(RemoveRejection.CANNOT_REMOVE_CREATOR)
            if group.status not in LIVE_STATUSES:
                return Rejected(RemoveRejection.GROUP_NOT_ACTIVE)

            res = db.execute(
                delete(GroupMember)
                .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                db.rollback()
                return Rejected(RemoveRejection.NOT_A_MEMBER)
            db.commit()

        logger.info("Usuario %s sale de grupo %s", user_id, group_id)
        events.safe_emit(
            self._emit,
            events.MEMBER_REMOVED,
            {"group_id": group_id, "user_id": user_id, "removed_by": user_id},
        )
        return Removed(group_id=group_id, user_id=user_id)

    def role_of(self, group_id: str, user_id: str) -> Optional[MemberRole]:
        with self._sessions() as db:
            role = db.execute(
                select(GroupMember.role).where(
                    GroupMember.group_id == group_id,
                    GroupMember.user_id == user_id,
                )
            ).scalar_one_or_none()
        return MemberRole(role) if role else None
