"""
Tests for conversation lifecycle, message delivery and read tracking.
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import DatabaseError, ForbiddenError, NotFoundError, ValidationError
from app.messaging.models.message import Message
from app.messaging.services.conversation_service import ConversationService, truncate
from app.notifications.models.notification import Notification
from tests.utils.factories import (
    create_conversation_factory,
    create_message_factory,
    create_report_factory,
    create_user_factory,
)
from tests.utils.helpers import FailingBroadcaster


@pytest.fixture
def service(db_session, broadcaster):
    return ConversationService(db_session, broadcaster)


def _notifications_for(db_session, user_id):
    return (
        db_session.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.id)
        .all()
    )


class TestCreateOrGetConversation:
    def test_first_request_creates_with_owner_as_user1(self, service, report, owner, requester):
        conversation = service.create_or_get_conversation(report.id, requester.id)

        assert conversation.report_id == report.id
        assert conversation.user1_id == owner.id
        assert conversation.user2_id == requester.id

    def test_repeated_request_returns_same_conversation(
        self, service, db_session, report, owner, requester
    ):
        first = service.create_or_get_conversation(report.id, requester.id)
        second = service.create_or_get_conversation(report.id, requester.id)

        assert first.conversation_id == second.conversation_id
        # Only the creating call notifies the owner
        assert len(_notifications_for(db_session, owner.id)) == 1

    def test_owner_is_notified_with_truncated_report_title(
        self, service, db_session, owner, requester
    ):
        long_title = "Silver laptop with stickers " * 5
        report = create_report_factory(db_session, owner, title=long_title)

        conversation = service.create_or_get_conversation(report.id, requester.id)

        [notification] = _notifications_for(db_session, owner.id)
        assert notification.notification_type == "message"
        assert notification.related_id == conversation.conversation_id
        assert truncate(long_title, 80) in notification.message
        assert notification.message.endswith('..."')

    def test_self_conversation_is_forbidden(self, service, report, owner):
        with pytest.raises(ForbiddenError):
            service.create_or_get_conversation(report.id, owner.id)

    def test_missing_report(self, service, requester):
        with pytest.raises(NotFoundError):
            service.create_or_get_conversation(9999, requester.id)

    def test_distinct_requesters_get_distinct_conversations(
        self, service, db_session, report, requester, outsider
    ):
        first = service.create_or_get_conversation(report.id, requester.id)
        second = service.create_or_get_conversation(report.id, outsider.id)

        assert first.conversation_id != second.conversation_id

    def test_conversation_exists(self, service, report, requester):
        assert service.conversation_exists(report.id, requester.id) is False

        service.create_or_get_conversation(report.id, requester.id)

        assert service.conversation_exists(report.id, requester.id) is True

    def test_conversation_exists_applies_same_checks(self, service, report, owner):
        with pytest.raises(ForbiddenError):
            service.conversation_exists(report.id, owner.id)
        with pytest.raises(NotFoundError):
            service.conversation_exists(9999, owner.id)


class TestParticipantIsolation:
    def test_outsider_cannot_see_or_touch_conversation(self, service, conversation, outsider):
        with pytest.raises(NotFoundError):
            service.get_conversation_messages(conversation.id, outsider.id)
        with pytest.raises(NotFoundError):
            service.send_message(conversation.id, outsider.id, "hello")
        with pytest.raises(NotFoundError):
            service.mark_conversation_as_read(conversation.id, outsider.id)
        with pytest.raises(NotFoundError):
            service.delete_conversation(conversation.id, outsider.id)

    def test_missing_and_foreign_conversations_look_the_same(self, service, conversation, outsider):
        with pytest.raises(NotFoundError) as missing:
            service.get_conversation_messages(9999, outsider.id)
        with pytest.raises(NotFoundError) as foreign:
            service.get_conversation_messages(conversation.id, outsider.id)

        assert missing.value.message == foreign.value.message


class TestSendMessage:
    def test_messages_round_trip_in_order(self, service, conversation, owner, requester):
        texts = [
            "  Is it the black one?  ",
            "Yes, with a wooden handle",
            "Great, where can we meet?",
        ]
        service.send_message(conversation.id, requester.id, texts[0])
        service.send_message(conversation.id, owner.id, texts[1])
        service.send_message(conversation.id, requester.id, texts[2])

        messages = service.get_conversation_messages(conversation.id, owner.id)

        assert [m.message_text for m in messages] == texts
        assert [m.sender_id for m in messages] == [requester.id, owner.id, requester.id]

    def test_result_names_the_recipient(self, service, conversation, owner, requester):
        result = service.send_message(conversation.id, requester.id, "Hello")

        assert result.recipient_id == owner.id
        assert result.conversation.conversation_id == conversation.id
        assert result.message.is_read is False

    def test_touches_conversation(self, service, db_session, report):
        stale = datetime.now(UTC) - timedelta(days=3)
        conversation = create_conversation_factory(
            db_session, report, create_user_factory(db_session), updated_at=stale
        )
        other = conversation.user2_id

        result = service.send_message(conversation.id, other, "Still available?")

        assert result.conversation.updated_at.replace(tzinfo=None) > stale.replace(tzinfo=None)

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_text_is_rejected(self, service, db_session, conversation, requester, text):
        with pytest.raises(ValidationError) as exc_info:
            service.send_message(conversation.id, requester.id, text)

        assert exc_info.value.errors == {"message_text": ["Message cannot be empty"]}
        assert db_session.query(Message).count() == 0

    def test_outsider_with_blank_text_gets_not_found(self, service, conversation, outsider):
        with pytest.raises(NotFoundError):
            service.send_message(conversation.id, outsider.id, "   ")

    def test_length_limit(self, service, conversation, requester):
        service.send_message(conversation.id, requester.id, "x" * 2000)

        with pytest.raises(ValidationError):
            service.send_message(conversation.id, requester.id, "x" * 2001)

    def test_relays_once_to_conversation_and_recipient(
        self, service, broadcaster, conversation, owner, requester
    ):
        result = service.send_message(conversation.id, requester.id, "Hello")

        [relay] = broadcaster.events("message:new")
        assert relay.target == f"conversation:{conversation.id}"
        assert relay.also_users == (owner.id,)
        assert relay.payload["message_id"] == result.message.message_id
        assert relay.payload["message_text"] == "Hello"

    def test_recipient_notification_preview_is_truncated(
        self, service, db_session, broadcaster, conversation, owner, requester
    ):
        text = "a" * 150
        service.send_message(conversation.id, requester.id, text)

        [notification] = _notifications_for(db_session, owner.id)
        assert notification.title == "New message"
        assert notification.message == "a" * 120 + "..."
        assert notification.related_id == conversation.id
        assert _notifications_for(db_session, requester.id) == []

        pushed = broadcaster.events("notification:new")
        assert [call.target for call in pushed] == [f"user:{owner.id}"]
        assert broadcaster.events("notification:message")

    def test_short_preview_is_not_truncated(
        self, service, db_session, conversation, owner, requester
    ):
        service.send_message(conversation.id, requester.id, "a" * 120)

        [notification] = _notifications_for(db_session, owner.id)
        assert notification.message == "a" * 120

    def test_broadcast_failure_does_not_fail_the_send(self, db_session, conversation, requester):
        service = ConversationService(db_session, FailingBroadcaster())

        result = service.send_message(conversation.id, requester.id, "Hello")

        assert result.message.message_text == "Hello"
        assert db_session.query(Message).count() == 1
        # The notification record is still persisted even though the push failed
        assert db_session.query(Notification).count() == 1

    def test_failed_timestamp_update_discards_the_message(
        self, service, db_session, broadcaster, conversation, owner, requester, monkeypatch
    ):
        conversation_id = conversation.id
        conversations = service.conversations

        def locked_touch(conversation_id, *, commit=True):
            with conversations.guard("update conversation", conversation_id=conversation_id):
                raise OperationalError("UPDATE conversations", {}, Exception("database is locked"))

        monkeypatch.setattr(conversations, "touch", locked_touch)

        with pytest.raises(DatabaseError):
            service.send_message(conversation_id, requester.id, "Hello")

        assert db_session.query(Message).count() == 0
        assert service.get_conversation_messages(conversation_id, owner.id) == []
        assert broadcaster.calls == []
        assert db_session.query(Notification).count() == 0


class TestReadTracking:
    def test_unread_count_and_mark_read(self, service, conversation, owner, requester):
        for text in ("one", "two", "three"):
            service.send_message(conversation.id, requester.id, text)

        [owner_view] = service.get_user_conversations(owner.id)
        [requester_view] = service.get_user_conversations(requester.id)
        assert owner_view.unread_count == 3
        assert requester_view.unread_count == 0

        assert service.mark_conversation_as_read(conversation.id, owner.id) == 3

        [owner_view] = service.get_user_conversations(owner.id)
        assert owner_view.unread_count == 0

    def test_unread_count_ignores_own_messages(self, service, conversation, owner, requester):
        for text in ("is this yours?", "black handle", "found near the desk"):
            service.send_message(conversation.id, requester.id, text)
        for text in ("yes!", "on my way"):
            service.send_message(conversation.id, owner.id, text)

        [owner_view] = service.get_user_conversations(owner.id)
        [requester_view] = service.get_user_conversations(requester.id)
        assert owner_view.unread_count == 3
        assert requester_view.unread_count == 2

    def test_mark_read_is_idempotent(self, service, conversation, owner, requester):
        service.send_message(conversation.id, requester.id, "hi")

        assert service.mark_conversation_as_read(conversation.id, owner.id) == 1
        assert service.mark_conversation_as_read(conversation.id, owner.id) == 0

        [message] = service.get_conversation_messages(conversation.id, owner.id)
        assert message.is_read is True

    def test_reader_never_marks_own_messages(self, service, conversation, requester):
        service.send_message(conversation.id, requester.id, "hi")

        assert service.mark_conversation_as_read(conversation.id, requester.id) == 0

        [message] = service.get_conversation_messages(conversation.id, requester.id)
        assert message.is_read is False


class TestConversationList:
    def test_summary_fields(self, service, conversation, report, owner, requester):
        service.send_message(conversation.id, requester.id, "first")
        service.send_message(conversation.id, owner.id, "latest")

        [summary] = service.get_user_conversations(requester.id)

        assert summary.conversation_id == conversation.id
        assert summary.report_title == report.title
        assert summary.other_user_id == owner.id
        assert summary.other_user_name == "Olga Owner"
        assert summary.last_message_text == "latest"
        assert summary.unread_count == 1

    def test_order_latest_message_first_and_empty_last(self, service, db_session, owner):
        now = datetime.now(UTC)
        finders = [create_user_factory(db_session) for _ in range(3)]
        report = create_report_factory(db_session, owner)

        empty = create_conversation_factory(db_session, report, finders[0], updated_at=now)
        older = create_conversation_factory(db_session, report, finders[1])
        newer = create_conversation_factory(db_session, report, finders[2])
        create_message_factory(db_session, older, finders[1], created_at=now - timedelta(hours=2))
        create_message_factory(db_session, newer, finders[2], created_at=now - timedelta(hours=1))

        summaries = service.get_user_conversations(owner.id)

        assert [s.conversation_id for s in summaries] == [newer.id, older.id, empty.id]
        assert summaries[-1].last_message_text is None
        assert summaries[-1].last_message_at is None

    def test_only_own_conversations_are_listed(self, service, conversation, outsider):
        assert service.get_user_conversations(outsider.id) == []


class TestDeleteConversation:
    def test_either_participant_can_delete(
        self, service, db_session, conversation, owner, requester
    ):
        conversation_id = conversation.id
        service.send_message(conversation_id, requester.id, "hi")
        service.send_message(conversation_id, owner.id, "hello")

        service.delete_conversation(conversation_id, requester.id)

        remaining = db_session.query(Message).filter(Message.conversation_id == conversation_id)
        assert remaining.count() == 0
        for user_id in (owner.id, requester.id):
            assert service.get_user_conversations(user_id) == []
            with pytest.raises(NotFoundError):
                service.get_conversation_messages(conversation_id, user_id)
            with pytest.raises(NotFoundError):
                service.send_message(conversation_id, user_id, "anyone there?")

    def test_report_can_be_discussed_again_after_delete(self, service, report, requester):
        first = service.create_or_get_conversation(report.id, requester.id)
        service.delete_conversation(first.conversation_id, requester.id)

        second = service.create_or_get_conversation(report.id, requester.id)

        assert service.get_conversation_messages(second.conversation_id, requester.id) == []
