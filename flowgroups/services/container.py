from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from flowgroups.core.clock import Clock, SystemClock
from flowgroups.services import events
from flowgroups.services.groups import GroupService
from flowgroups.services.invites import InviteCodeIssuer
from flowgroups.services.membership import MembershipGate
from flowgroups.services.messages import MessageService
from flowgroups.services.reaper import ArchivalReaper, BlobStore
from flowgroups.services.sweep import SweepCoordinator


@dataclass
class Lifecycle:
    """Todos los servicios del motor, compartiendo sesiones, reloj y canal de eventos."""

    clock: Clock
    groups: GroupService
    invites: InviteCodeIssuer
    membership: MembershipGate
    messages: MessageService
    sweeper: SweepCoordinator
    reaper: ArchivalReaper


def build_lifecycle(
    session_factory: sessionmaker,
    *,
    clock: Optional[Clock] = None,
    emit: events.Emit = events.discard,
    blob_store: Optional[BlobStore] = None,
    retention_days: Optional[int] = None,
    sweep_concurrency: Optional[int] = None,
) -> Lifecycle:
    clock = clock or SystemClock()
    invites = InviteCodeIssuer(session_factory, clock=clock, emit=emit)
    return Lifecycle(
        clock=clock,
        groups=GroupService(session_factory, invites, clock=clock),
        invites=invites,
        membership=MembershipGate(session_factory, clock=clock, emit=emit),
        messages=MessageService(session_factory, clock=clock, emit=emit),
        sweeper=SweepCoordinator(
            session_factory,
            clock=clock,
            emit=emit,
            retention_days=retention_days,
            concurrency=sweep_concurrency,
        ),
        reaper=ArchivalReaper(session_factory, clock=clock, emit=emit, blob_store=blob_store),
    )
