from datetime import datetime, timedelta

import pytest

from flowgroups.services.scheduler import LifecycleScheduler

NOW = datetime(2026, 1, 10, 12, 0, 0)


class TestShouldRun:
    def test_first_run(self):
        assert LifecycleScheduler.should_run(None, timedelta(minutes=1), NOW)

    def test_interval_not_elapsed(self):
        assert not LifecycleScheduler.should_run(NOW, timedelta(minutes=1), NOW + timedelta(seconds=59))

    def test_interval_elapsed(self):
        assert LifecycleScheduler.should_run(NOW, timedelta(minutes=1), NOW + timedelta(minutes=1))


@pytest.mark.asyncio
class TestTick:
    async def test_runs_sweep_and_reap_on_their_intervals(self, lifecycle, clock):
        scheduler = LifecycleScheduler(lifecycle, sweep_interval_seconds=60, reap_interval_seconds=3600)

        assert await scheduler.tick() == ["sweep", "reap"]
        assert await scheduler.tick() == []
        clock.advance(minutes=1)
        assert await scheduler.tick() == ["sweep"]
        clock.advance(hours=1)
        assert await scheduler.tick() == ["sweep", "reap"]
        assert scheduler.tick_seconds == 60

    async def test_tick_archives_and_purges(self, lifecycle, make_group, clock, session_factory, recorder):
        g = make_group(absolute_expiry=clock.now() + timedelta(hours=1))
        scheduler = LifecycleScheduler(lifecycle, sweep_interval_seconds=60, reap_interval_seconds=60)

        clock.advance(hours=2)
        await scheduler.tick()
        assert [p["group_id"] for p in recorder.of("group.archived")] == [g.id]

        clock.advance(days=30)
        await scheduler.tick()
        assert [p["group_id"] for p in recorder.of("group.purged")] == [g.id]
