import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from flowgroups.models.enums import ArchiveReason, GroupStatus
from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.services.results import DisbandRejection, Disbanded, GroupError, Rejected
from flowgroups.services.sweep import CONFLICT_ERROR, SweepCoordinator


def _status(session_factory, group_id):
    with session_factory() as db:
        return db.get(Group, group_id).status


@pytest.mark.asyncio
class TestSweep:
    async def test_archives_expired_group(self, lifecycle, make_group, clock, session_factory, recorder):
        g = make_group(absolute_expiry=clock.now() + timedelta(hours=1))
        now = clock.advance(hours=2)

        report = await lifecycle.sweeper.sweep(now)

        assert report.evaluated == 1
        assert report.transitioned == 1
        assert report.archived == 1
        with session_factory() as db:
            row = db.get(Group, g.id)
            assert row.status == GroupStatus.ARCHIVED.value
            assert row.archive_reason == ArchiveReason.TIME_EXPIRED.value
            assert row.archived_at == now
            assert row.archive_retention_until == now + timedelta(days=30)
        [event] = recorder.of("group.archived")
        assert event["group_id"] == g.id
        assert event["members"] == ["alice"]

    async def test_second_sweep_is_a_no_op(self, lifecycle, make_group, clock):
        make_group(absolute_expiry=clock.now() + timedelta(hours=1))
        make_group(message_limit=1)
        make_group(inactivity_threshold_days=1)
        now = clock.advance(hours=30)

        first = await lifecycle.sweeper.sweep(now)
        second = await lifecycle.sweeper.sweep(now)

        assert first.transitioned == 2
        assert second.transitioned == 0
        assert second.conflicts == 0

    async def test_active_expiring_archived(self, lifecycle, make_group, clock, session_factory, recorder):
        start = clock.now()
        g = make_group(absolute_expiry=start + timedelta(seconds=100))
        seen = []

        for offset in (10, 89, 91, 95, 100, 200):
            clock.set(start + timedelta(seconds=offset))
            await lifecycle.sweeper.sweep(clock.now())
            seen.append(_status(session_factory, g.id))

        assert seen == ["active", "active", "expiring", "expiring", "archived", "archived"]
        assert len(recorder.of("group.expiring")) == 1
        assert len(recorder.of("group.archived")) == 1

    async def test_archived_groups_are_not_loaded(self, lifecycle, make_group, clock):
        make_group(message_limit=1)
        g = make_group()
        lifecycle.sweeper.disband_manually(g.id, "alice", now=clock.now())

        report = await lifecycle.sweeper.sweep(clock.now())

        assert report.evaluated == 1

    async def test_concurrent_sweeps_transition_once(self, lifecycle, make_group, clock, session_factory, recorder):
        ids = [make_group(absolute_expiry=clock.now() + timedelta(minutes=5)).id for _ in range(6)]
        now = clock.advance(hours=1)
        other = SweepCoordinator(session_factory, clock=clock, emit=recorder, retention_days=30)

        a, b = await asyncio.gather(lifecycle.sweeper.sweep(now), other.sweep(now))

        assert a.transitioned + b.transitioned == len(ids)
        assert len(recorder.of("group.archived")) == len(ids)
        assert sorted(p["group_id"] for p in recorder.of("group.archived")) == sorted(ids)

    async def test_message_after_read_makes_sweep_lose_cas(self, lifecycle, make_group, clock, session_factory):
        g = make_group(absolute_expiry=clock.now() + timedelta(hours=1))
        candidates = lifecycle.sweeper._load_candidates()
        lifecycle.messages.post_message(g.id, "alice", "hola", now=clock.now())

        outcome, _ = lifecycle.sweeper._process_one(candidates[0], clock.now() + timedelta(hours=2))

        assert outcome == "conflict"
        assert _status(session_factory, g.id) == "active"
        report = await lifecycle.sweeper.sweep(clock.now() + timedelta(hours=2))
        assert report.archived == 1

    async def test_lost_race_is_recorded(self, lifecycle, make_group, clock, session_factory):
        g = make_group(absolute_expiry=clock.now() + timedelta(hours=1))
        sweeper = lifecycle.sweeper
        stale = sweeper._load_candidates()
        lifecycle.messages.post_message(g.id, "alice", "hola", now=clock.now())
        sweeper._load_candidates = lambda: stale

        report = await sweeper.sweep(clock.now() + timedelta(hours=2))

        assert report.conflicts == 1
        assert report.transitioned == 0
        assert report.errors == [GroupError(group_id=g.id, error=CONFLICT_ERROR)]
        assert _status(session_factory, g.id) == "active"

    async def test_out_of_range_threshold_does_not_abort_batch(self, lifecycle, make_group, clock, session_factory):
        # guardado sin pasar por build_policy: timedelta(days=10**9) desborda al evaluar
        broken = make_group(inactivity_threshold_days=10**9)
        good = make_group(absolute_expiry=clock.now() + timedelta(hours=1))

        report = await lifecycle.sweeper.sweep(clock.now() + timedelta(hours=2))

        assert report.archived == 1
        assert [e.group_id for e in report.errors] == [broken.id]
        assert "OverflowError" in report.errors[0].error
        assert _status(session_factory, good.id) == "archived"
        assert _status(session_factory, broken.id) == "active"

        again = await lifecycle.sweeper.sweep(clock.now() + timedelta(hours=3))
        assert [e.group_id for e in again.errors] == [broken.id]

    async def test_store_error_does_not_abort_batch(self, lifecycle, make_group, clock, session_factory):
        bad = make_group(message_limit=1)
        good = make_group(inactivity_threshold_days=1)
        for g in (bad, good):
            lifecycle.messages.post_message(g.id, "alice", "uno", now=clock.now())
        sweeper = lifecycle.sweeper
        original = sweeper._process_one

        def flaky(snap, now):
            if snap.id == bad.id:
                raise OperationalError("UPDATE groups", {}, Exception("database is locked"))
            return original(snap, now)

        sweeper._process_one = flaky
        report = await sweeper.sweep(clock.advance(days=2))

        assert [e.group_id for e in report.errors] == [bad.id]
        assert report.transitioned == 1
        assert _status(session_factory, good.id) == "archived"
        assert _status(session_factory, bad.id) == "active"

    async def test_zero_deadline_leaves_groups_untouched(self, lifecycle, make_group, clock, session_factory):
        ids = [make_group(message_limit=1).id for _ in range(3)]
        for gid in ids:
            lifecycle.messages.post_message(gid, "alice", "x", now=clock.now())

        report = await lifecycle.sweeper.sweep(clock.now(), deadline=0)

        assert report.cancelled is True
        statuses = {_status(session_factory, gid) for gid in ids}
        # cada grupo queda en un estado completo, nunca a medias
        assert statuses <= {"active", "archived"}
        with session_factory() as db:
            for row in db.execute(select(Group).where(Group.id.in_(ids))).scalars():
                if row.status == "archived":
                    assert row.archived_at and row.archive_reason and row.archive_retention_until
                else:
                    assert row.archived_at is None and row.archive_reason is None

    async def test_archive_resets_unread_counts(self, lifecycle, make_group, clock, session_factory):
        g = make_group(message_limit=2)
        code = g.invite_code
        lifecycle.membership.join(code, "bob", now=clock.now())
        lifecycle.messages.post_message(g.id, "alice", "uno", now=clock.now())
        lifecycle.messages.post_message(g.id, "alice", "dos", now=clock.now())

        await lifecycle.sweeper.sweep(clock.now())

        with session_factory() as db:
            counts = db.execute(
                select(GroupMember.unread_count).where(GroupMember.group_id == g.id)
            ).scalars().all()
        assert set(counts) == {0}


class TestManualDisband:
    def test_admin_disbands(self, lifecycle, make_group, clock, session_factory, recorder):
        g = make_group()
        result = lifecycle.sweeper.disband_manually(g.id, "alice", now=clock.now())

        assert isinstance(result, Disbanded)
        assert result.archive_retention_until == clock.now() + timedelta(days=30)
        with session_factory() as db:
            assert db.get(Group, g.id).archive_reason == ArchiveReason.MANUAL.value
        assert recorder.of("group.archived")[0]["reason"] == "manual"

    def test_member_cannot_disband(self, lifecycle, make_group, clock):
        g = make_group()
        lifecycle.membership.join(g.invite_code, "bob", now=clock.now())

        assert lifecycle.sweeper.disband_manually(g.id, "bob") == Rejected(DisbandRejection.NOT_ADMIN)

    def test_disband_is_not_repeatable(self, lifecycle, make_group, clock):
        g = make_group()
        lifecycle.sweeper.disband_manually(g.id, "alice")

        assert lifecycle.sweeper.disband_manually(g.id, "alice") == Rejected(
            DisbandRejection.GROUP_NOT_ACTIVE
        )

    def test_unknown_group(self, lifecycle):
        assert lifecycle.sweeper.disband_manually("nope", "alice") == Rejected(
            DisbandRejection.GROUP_NOT_FOUND
        )
