import pytest
from sqlalchemy import select

from flowgroups.models.group import Group
from flowgroups.models.membership import GroupMember
from flowgroups.models.message import Attachment, Message
from flowgroups.services.messages import AttachmentIn
from flowgroups.services.results import PostRejection, Posted, Rejected


def _unread(session_factory, group_id):
    with session_factory() as db:
        rows = db.execute(
            select(GroupMember.user_id, GroupMember.unread_count).where(GroupMember.group_id == group_id)
        ).all()
    return dict(rows)


class TestPostMessage:
    def test_post_updates_counters(self, lifecycle, make_group, clock, session_factory, recorder):
        g = make_group()
        lifecycle.membership.join(g.invite_code, "bob")
        later = clock.advance(minutes=5)

        result = lifecycle.messages.post_message(g.id, "alice", "hola")

        assert isinstance(result, Posted)
        assert result.message_count == 1
        with session_factory() as db:
            row = db.get(Group, g.id)
            assert row.last_activity_at == later
            assert row.version == g.version + 1
        assert _unread(session_factory, g.id) == {"alice": 0, "bob": 1}
        assert recorder.of("message.created")[0]["message_id"] == result.message_id

    def test_reply_resets_author_unread(self, lifecycle, make_group, session_factory):
        g = make_group()
        lifecycle.membership.join(g.invite_code, "bob")
        lifecycle.messages.post_message(g.id, "alice", "uno")
        lifecycle.messages.post_message(g.id, "alice", "dos")
        lifecycle.messages.post_message(g.id, "bob", "tres")

        assert _unread(session_factory, g.id) == {"alice": 1, "bob": 0}

    def test_attachments_are_stored(self, lifecycle, make_group, session_factory):
        g = make_group()
        result = lifecycle.messages.post_message(
            g.id,
            "alice",
            "foto",
            message_type="image",
            attachments=[AttachmentIn("uploads/a.jpg", "image/jpeg", 2048)],
        )

        with session_factory() as db:
            message = db.get(Message, result.message_id)
            assert message.message_type == "image"
            paths = db.execute(
                select(Attachment.file_path).where(Attachment.message_id == result.message_id)
            ).scalars().all()
        assert paths == ["uploads/a.jpg"]

    def test_limit_is_never_exceeded(self, lifecycle, make_group, session_factory):
        g = make_group(message_limit=2)
        results = [lifecycle.messages.post_message(g.id, "alice", str(i)) for i in range(3)]

        assert [r.ok for r in results] == [True, True, False]
        assert results[2] == Rejected(PostRejection.MESSAGE_LIMIT_REACHED)
        with session_factory() as db:
            assert db.get(Group, g.id).message_count == 2

    def test_posting_allowed_while_expiring(self, lifecycle, make_group, session_factory):
        g = make_group()
        with session_factory() as db:
            db.get(Group, g.id).status = "expiring"
            db.commit()
        assert lifecycle.messages.post_message(g.id, "alice", "sigo aquí").ok

    def test_rejections(self, lifecycle, make_group):
        g = make_group()
        assert lifecycle.messages.post_message("nope", "alice", "x") == Rejected(PostRejection.GROUP_NOT_FOUND)
        assert lifecycle.messages.post_message(g.id, "zoe", "x") == Rejected(PostRejection.NOT_A_MEMBER)

        lifecycle.sweeper.disband_manually(g.id, "alice")
        assert lifecycle.messages.post_message(g.id, "alice", "x") == Rejected(PostRejection.GROUP_NOT_ACTIVE)

    @pytest.mark.asyncio
    async def test_activity_postpones_inactivity(self, lifecycle, make_group, clock):
        g = make_group(inactivity_threshold_days=2)
        clock.advance(days=1, hours=23)
        lifecycle.messages.post_message(g.id, "alice", "sigo")
        clock.advance(days=1)

        report = await lifecycle.sweeper.sweep()

        assert report.transitioned == 0
        clock.advance(days=1, seconds=1)
        assert (await lifecycle.sweeper.sweep()).archived == 1


class TestMarkRead:
    def test_mark_read(self, lifecycle, make_group, session_factory):
        g = make_group()
        lifecycle.membership.join(g.invite_code, "bob")
        lifecycle.messages.post_message(g.id, "alice", "hola")

        assert lifecycle.messages.mark_read(g.id, "bob") is True
        assert _unread(session_factory, g.id)["bob"] == 0

    def test_mark_read_outsider(self, lifecycle, make_group):
        g = make_group()
        assert lifecycle.messages.mark_read(g.id, "zoe") is False
