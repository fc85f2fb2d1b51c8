import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from flowgroups.core.clock import Clock, SystemClock, to_utc_naive
from flowgroups.models.enums import LIFESPAN_HOURS, LIVE_STATUSES, GroupStatus, Lifespan, MemberRole
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.services.errors import InviteCapacityError, PolicyError
from flowgroups.services.invites import InviteCodeIssuer

logger = logging.getLogger(__name__)

CREATE_ATTEMPTS = 3

# topes de la política (timedelta y INTEGER de SQLite)
MAX_INACTIVITY_DAYS = 36500
MAX_MESSAGE_LIMIT = 2**31 - 1


@dataclass(frozen=True)
class ExpirationPolicy:
    absolute_expiry: Optional[datetime] = None
    inactivity_threshold_days: Optional[int] = None
    message_limit: Optional[int] = None


def build_policy(
    now: datetime,
    lifespan: Optional[Lifespan] = None,
    absolute_expiry: Optional[datetime] = None,
    inactivity_threshold_days: Optional[int] = None,
    message_limit: Optional[int] = None,
) -> ExpirationPolicy:
    if lifespan is not None and lifespan != Lifespan.CUSTOM:
        if absolute_expiry is not None:
            raise PolicyError("Usa un lifespan predefinido o una fecha de expiración, no ambos")
        absolute_expiry = now + timedelta(hours=LIFESPAN_HOURS[lifespan])
    elif lifespan == Lifespan.CUSTOM and absolute_expiry is None:
        raise PolicyError("lifespan 'custom' requiere fecha de expiración")

    if absolute_expiry is not None:
        absolute_expiry = to_utc_naive(absolute_expiry)
        if absolute_expiry <= now:
            raise PolicyError("La expiración debe ser posterior a la creación del grupo")

    if inactivity_threshold_days is not None and not 0 < inactivity_threshold_days <= MAX_INACTIVITY_DAYS:
        raise PolicyError(f"inactivity_threshold_days debe estar entre 1 y {MAX_INACTIVITY_DAYS}")
    if message_limit is not None and not 0 < message_limit <= MAX_MESSAGE_LIMIT:
        raise PolicyError(f"message_limit debe estar entre 1 y {MAX_MESSAGE_LIMIT}")

    return ExpirationPolicy(absolute_expiry, inactivity_threshold_days, message_limit)


class GroupService:
    def __init__(
        self,
        session_factory: sessionmaker,
        issuer: InviteCodeIssuer,
        *,
        clock: Optional[Clock] = None,
    ):
        self._sessions = session_factory
        self._issuer = issuer
        self._clock = clock or SystemClock()

    def create_group(
        self,
        creator_id: str,
        name: str,
        *,
        description: Optional[str] = None,
        policy: Optional[ExpirationPolicy] = None,
        now: Optional[datetime] = None,
    ) -> Group:
        now = now or self._clock.now()
        policy = policy or ExpirationPolicy()
        if policy.absolute_expiry is not None and policy.absolute_expiry <= now:
            raise PolicyError("La expiración debe ser posterior a la creación del grupo")

        for _ in range(CREATE_ATTEMPTS):
            with self._sessions() as db:
                group = Group(
                    id=str(uuid.uuid4()),
                    name=name.strip(),
                    description=(description.strip() if description else None),
                    created_by=creator_id,
                    status=GroupStatus.ACTIVE.value,
                    version=1,
                    created_at=now,
                    last_activity_at=now,
                    absolute_expiry=policy.absolute_expiry,
                    inactivity_threshold_days=policy.inactivity_threshold_days,
                    message_limit=policy.message_limit,
                    message_count=0,
                    invite_code=self._issuer.pick_free_code(db),
                    invite_code_expires_at=self._issuer.expiry_for(policy.absolute_expiry, now),
                )
                db.add(group)
                # creador entra como admin en la misma transacción
                db.add(
                    GroupMember(
                        group_id=group.id,
                        user_id=creator_id,
                        role=MemberRole.ADMIN.value,
                        unread_count=0,
                        joined_at=now,
                    )
                )
                try:
                    db.commit()
                except IntegrityError:
                    # colisión de código con otro alta simultánea
                    db.rollback()
                    continue

            logger.info("Grupo %s creado por %s", group.id, creator_id)
            return group

        raise InviteCapacityError(CREATE_ATTEMPTS)

    def get_group(self, group_id: str) -> Optional[Group]:
        with self._sessions() as db:
            return db.get(Group, group_id)

    def list_groups_for_user(self, user_id: str) -> dict[str, list[Group]]:
        with self._sessions() as db:
            groups = db.execute(
                select(Group)
                .join(GroupMember, GroupMember.group_id == Group.id)
                .where(GroupMember.user_id == user_id)
                .order_by(Group.last_activity_at.desc())
            ).scalars().all()

        return {
            "active": [g for g in groups if g.status in LIVE_STATUSES],
            "archived": [g for g in groups if g.status == GroupStatus.ARCHIVED.value],
        }

    def list_members(self, group_id: str) -> list[GroupMember]:
        with self._sessions() as db:
            return list(
                db.execute(
                    select(GroupMember)
                    .where(GroupMember.group_id == group_id)
                    .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
                ).scalars()
            )
