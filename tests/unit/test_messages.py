import unittest
from datetime import timedelta

from base import CrewDeskTestCase

from crewdesk.errors import NotFound, PermissionDenied, ValidationFailed
from crewdesk.models.models import ActivityLog, Channel, UserRole
from crewdesk.services import channels as channel_service
from crewdesk.services import messages as message_service
from crewdesk.services import users as user_service


class TestSendMessage(CrewDeskTestCase):

    def setUp(self):
        super().setUp()
        self.moderator = self.make_user(UserRole.MODERATOR)
        self.worker = self.make_user(UserRole.WORKER)
        self.direct, _ = channel_service.create_direct_channel(self.db, self.moderator.id, self.worker.id)

    def test_content_is_stripped_and_timestamp_advances(self):
        before = self.direct.last_message_at
        msg = message_service.send_message(self.db, self.direct.id, self.worker, "  on my way  ")
        self.assertEqual(msg.content, "on my way")
        channel = self.db.get(Channel, self.direct.id)
        self.assertEqual(channel.last_message_at, msg.created_at)
        self.assertGreaterEqual(channel.last_message_at, before)

    def test_empty_message_rejected(self):
        with self.assertRaises(ValidationFailed):
            message_service.send_message(self.db, self.direct.id, self.worker, "   ")

    def test_worker_cannot_post_announcements(self):
        channel_service.ensure_system_channels(self.db)
        general = self.db.query(Channel).filter(Channel.system_key == "general").one()
        with self.assertRaises(PermissionDenied):
            message_service.send_message(self.db, general.id, self.worker, "hello all")
        msg = message_service.send_message(self.db, general.id, self.moderator, "hello all")
        self.assertEqual(msg.channel_id, general.id)

    def test_outsider_cannot_read_or_post(self):
        outsider = self.make_user(UserRole.WORKER)
        with self.assertRaises(PermissionDenied):
            message_service.send_message(self.db, self.direct.id, outsider, "hi")
        with self.assertRaises(PermissionDenied):
            message_service.list_messages(self.db, self.direct.id, outsider)

    def test_unknown_channel(self):
        with self.assertRaises(NotFound):
            message_service.send_message(self.db, "00000000-0000-0000-0000-000000000000", self.worker, "hi")

    def test_list_is_chronological_with_sender_info(self):
        message_service.send_message(self.db, self.direct.id, self.moderator, "first")
        message_service.send_message(self.db, self.direct.id, self.worker, "second")
        rows = message_service.list_messages(self.db, self.direct.id, self.worker)
        self.assertEqual([m.content for m in rows], ["first", "second"])
        data = message_service.message_to_dict(rows[0])
        self.assertEqual(data["sender"]["username"], self.moderator.username)
        self.assertEqual(set(data["sender"]), {"id", "first_name", "last_name", "username", "role"})

    def test_sender_is_null_after_user_deletion(self):
        message_service.send_message(self.db, self.direct.id, self.worker, "bye")
        user_service.delete_user(self.db, self.worker.id, self.admin)
        rows = message_service.list_messages(self.db, self.direct.id, self.moderator)
        self.assertEqual(len(rows), 1)
        self.assertIsNone(message_service.message_to_dict(rows[0])["sender"])


class TestDeleteMessage(CrewDeskTestCase):

    def setUp(self):
        super().setUp()
        self.moderator = self.make_user(UserRole.MODERATOR)
        self.worker = self.make_user(UserRole.WORKER)

    def test_last_message_at_recomputed_from_remaining_messages(self):
        group = channel_service.create_group_channel(self.db, "Crew talk", [self.worker.id], self.moderator.id)
        first = message_service.send_message(self.db, group.id, self.moderator, "first")
        second = message_service.send_message(self.db, group.id, self.moderator, "second")
        first.created_at = second.created_at - timedelta(minutes=5)
        self.db.commit()
        expected = first.created_at

        message_service.delete_message(self.db, second.id, self.moderator)
        channel = self.db.get(Channel, group.id)
        self.assertEqual(channel.last_message_at, expected)

    def test_last_message_at_falls_back_to_creation_time(self):
        group = channel_service.create_group_channel(self.db, "Crew talk", [self.worker.id], self.moderator.id)
        created_at = group.created_at
        only = message_service.send_message(self.db, group.id, self.moderator, "only")
        message_service.delete_message(self.db, only.id, self.moderator)
        self.assertEqual(self.db.get(Channel, group.id).last_message_at, created_at)

    def test_moderator_cannot_delete_in_direct_channels(self):
        direct, _ = channel_service.create_direct_channel(self.db, self.moderator.id, self.worker.id)
        msg = message_service.send_message(self.db, direct.id, self.worker, "private")
        with self.assertRaises(PermissionDenied):
            message_service.delete_message(self.db, msg.id, self.moderator)
        message_service.delete_message(self.db, msg.id, self.worker)
        self.assertEqual(message_service.list_messages(self.db, direct.id, self.worker), [])

    def test_moderator_deletes_in_shared_channels(self):
        group = channel_service.create_group_channel(self.db, "Crew talk", [self.worker.id], self.admin.id)
        msg = message_service.send_message(self.db, group.id, self.admin, "from admin")
        msg_id = str(msg.id)
        message_service.delete_message(self.db, msg.id, self.moderator)
        self.assertIsNotNone(
            self.db.query(ActivityLog).filter(ActivityLog.action == f"message-deletion:{msg_id}").first()
        )

    def test_admin_deletes_anywhere(self):
        direct, _ = channel_service.create_direct_channel(self.db, self.moderator.id, self.worker.id)
        msg = message_service.send_message(self.db, direct.id, self.worker, "private")
        message_service.delete_message(self.db, msg.id, self.admin)
        self.assertEqual(message_service.list_messages(self.db, direct.id, self.worker), [])

    def test_unknown_message(self):
        with self.assertRaises(NotFound):
            message_service.delete_message(self.db, "00000000-0000-0000-0000-000000000000", self.admin)


if __name__ == "__main__":
    unittest.main()
