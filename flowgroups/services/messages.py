import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, exists, or_, select, update
from sqlalchemy.orm import sessionmaker

from flowgroups.core.clock import Clock, SystemClock
from flowgroups.models.enums import LIVE_STATUSES
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.models.message import Attachment, Message
from flowgroups.services import events
from flowgroups.services.results import Posted, PostRejection, PostResult, Rejected

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentIn:
    file_path: str
    file_type: str
    file_size: int


class MessageService:
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

    def post_message(
        self,
        group_id: str,
        user_id: str,
        content: str,
        *,
        message_type: str = "text",
        attachments: Iterable[AttachmentIn] = (),
        now: Optional[datetime] = None,
    ) -> PostResult:
        """
        Inserta el mensaje y sube el contador en la misma transacción.

        El UPDATE del contador es condicional (grupo vivo, autor miembro,
        límite no alcanzado) y sube `version`, así que un sweep que leyó el
        contador anterior pierde su CAS y reevalúa en el siguiente pase.
        """
        now = now or self._clock.now()
        is_member = exists().where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )

        with self._sessions() as db:
            res = db.execute(
                update(Group)
                .where(
                    Group.id == group_id,
                    Group.status.in_(LIVE_STATUSES),
                    or_(Group.message_limit.is_(None), Group.message_count < Group.message_limit),
                    is_member,
                )
                .values(
                    message_count=Group.message_count + 1,
                    last_activity_at=now,
                    version=Group.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                db.rollback()
                return Rejected(self._why_rejected(db, group_id, user_id))

            message = Message(
                id=str(uuid.uuid4()),
                group_id=group_id,
                user_id=user_id,
                content=content,
                message_type=message_type,
                created_at=now,
            )
            db.add(message)
            for a in attachments:
                db.add(
                    Attachment(
                        id=str(uuid.uuid4()),
                        message_id=message.id,
                        file_path=a.file_path,
                        file_type=a.file_type,
                        file_size=a.file_size,
                        created_at=now,
                    )
                )

            # no leídos: +1 para el resto, 0 para el autor
            db.execute(
                update(GroupMember)
                .where(GroupMember.group_id == group_id)
                .values(
                    unread_count=case(
                        (GroupMember.user_id == user_id, 0),
                        else_=GroupMember.unread_count + 1,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            message_count = db.execute(
                select(Group.message_count).where(Group.id == group_id)
            ).scalar_one()
            db.commit()

        events.safe_emit(
            self._emit,
            events.MESSAGE_CREATED,
            {"group_id": group_id, "message_id": message.id, "user_id": user_id},
        )
        return Posted(message_id=message.id, group_id=group_id, message_count=message_count)

    def _why_rejected(self, db, group_id: str, user_id: str) -> PostRejection:
        group = db.get(Group, group_id)
        if not group:
            return PostRejection.GROUP_NOT_FOUND
        if group.status not in LIVE_STATUSES:
            return PostRejection.GROUP_NOT_ACTIVE
        member = db.execute(
            select(GroupMember.id).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        ).first()
        if member is None:
            return PostRejection.NOT_A_MEMBER
        return PostRejection.MESSAGE_LIMIT_REACHED

    def mark_read(self, group_id: str, user_id: str) -> bool:
        with self._sessions() as db:
            res = db.execute(
                update(GroupMember)
                .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
                .values(unread_count=0)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        return res.rowcount == 1
