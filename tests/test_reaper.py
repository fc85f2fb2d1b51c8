import threading
from datetime import timedelta

from sqlalchemy import func, select

from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.models.message import Attachment, Message
from flowgroups.services.messages import AttachmentIn
from flowgroups.services.reaper import ArchivalReaper


class RecordingBlobStore:
    def __init__(self, fail=False):
        self.deleted = []
        self.fail = fail

    def delete(self, paths):
        if self.fail:
            raise OSError("bucket no disponible")
        self.deleted.extend(paths)


def _count(session_factory, model):
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


def _archived_group_with_content(lifecycle, make_group, clock):
    g = make_group()
    lifecycle.membership.join(g.invite_code, "bob")
    lifecycle.messages.post_message(
        g.id, "bob", "foto", attachments=[AttachmentIn("uploads/x.png", "image/png", 10)]
    )
    lifecycle.messages.post_message(g.id, "alice", "texto")
    lifecycle.sweeper.disband_manually(g.id, "alice", now=clock.now())
    return g


class TestReap:
    def test_keeps_group_until_retention_ends(self, lifecycle, make_group, clock, session_factory):
        g = _archived_group_with_content(lifecycle, make_group, clock)

        report = lifecycle.reaper.reap(clock.now() + timedelta(days=30) - timedelta(seconds=1))

        assert report.purged == 0
        with session_factory() as db:
            assert db.get(Group, g.id) is not None

    def test_purges_group_and_everything_under_it(self, session_factory, clock, lifecycle, make_group, recorder):
        blobs = RecordingBlobStore()
        reaper = ArchivalReaper(session_factory, clock=clock, emit=recorder, blob_store=blobs)
        g = _archived_group_with_content(lifecycle, make_group, clock)
        survivor = make_group(creator="carol")
        lifecycle.messages.post_message(survivor.id, "carol", "hola")

        report = reaper.reap(clock.now() + timedelta(days=30))

        assert report.purged_group_ids == [g.id]
        with session_factory() as db:
            assert db.get(Group, g.id) is None
            assert db.get(Group, survivor.id) is not None
        assert _count(session_factory, GroupMember) == 1
        assert _count(session_factory, Message) == 1
        assert _count(session_factory, Attachment) == 0
        assert blobs.deleted == ["uploads/x.png"]
        assert recorder.of("group.purged") == [{"group_id": g.id}]

    def test_live_groups_are_never_purged(self, lifecycle, make_group, clock, session_factory):
        g = make_group(absolute_expiry=clock.now() + timedelta(hours=1))

        report = lifecycle.reaper.reap(clock.now() + timedelta(days=365))

        assert report.scanned == 0
        with session_factory() as db:
            assert db.get(Group, g.id) is not None

    def test_blob_failure_is_reported(self, session_factory, clock, lifecycle, make_group):
        reaper = ArchivalReaper(session_factory, clock=clock, blob_store=RecordingBlobStore(fail=True))
        g = _archived_group_with_content(lifecycle, make_group, clock)

        report = reaper.reap(clock.now() + timedelta(days=31))

        assert report.purged == 1
        assert report.errors[0].group_id == g.id
        assert "blob_store" in report.errors[0].error

    def test_concurrent_reapers_purge_once(self, session_factory, clock, lifecycle, make_group, recorder):
        ids = [_archived_group_with_content(lifecycle, make_group, clock).id for _ in range(3)]
        later = clock.now() + timedelta(days=30)
        reports = []

        def worker():
            reaper = ArchivalReaper(session_factory, clock=clock, emit=recorder)
            reports.append(reaper.reap(later))

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        purged = [gid for r in reports for gid in r.purged_group_ids]
        assert sorted(purged) == sorted(ids)
        assert len(recorder.of("group.purged")) == len(ids)
        assert _count(session_factory, Group) == 0
