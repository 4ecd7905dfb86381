import sys
import unittest
import uuid
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.append(str(PROJECT_ROOT))

from crewdesk.errors import PermissionDenied
from crewdesk.models.models import User, UserRole, Channel, ChannelMember, ChannelType, Message
from crewdesk.services.permissions import (
    CREW_CREATE,
    CREW_DELETE,
    CREW_UPDATE,
    USER_ASSIGN_ROLE,
    USER_LIST_SCOPED,
    can,
    can_delete_message,
    can_manage_channel,
    can_manage_members,
    can_manage_role,
    can_post,
    can_rename_channel,
    can_view_channel,
    require,
)


def _user(role):
    return User(id=uuid.uuid4(), username=f"{role.value.lower()}", role=role.value)


def _channel(type_, members=(), allowed_roles=None, is_deletable=True):
    channel = Channel(id=uuid.uuid4(), name="c", type=type_.value, allowed_roles=allowed_roles, is_deletable=is_deletable)
    channel.members = [ChannelMember(user_id=u.id) for u in members]
    return channel


class TestChannelPolicy(unittest.TestCase):
    """Access decisions are pure functions of actor, channel and message"""

    def setUp(self):
        self.admin = _user(UserRole.ADMIN)
        self.moderator = _user(UserRole.MODERATOR)
        self.worker = _user(UserRole.WORKER)
        self.other_worker = _user(UserRole.WORKER)
        all_roles = [r.value for r in UserRole]
        self.general = _channel(ChannelType.GENERAL, allowed_roles=all_roles, is_deletable=False)
        self.moderators = _channel(
            ChannelType.ROLE, allowed_roles=[UserRole.ADMIN.value, UserRole.MODERATOR.value], is_deletable=False
        )

    def test_general_visible_to_all_but_workers_cannot_post(self):
        for u in (self.admin, self.moderator, self.worker):
            self.assertTrue(can_view_channel(u, self.general))
        self.assertTrue(can_post(self.admin, self.general))
        self.assertTrue(can_post(self.moderator, self.general))
        self.assertFalse(can_post(self.worker, self.general))

    def test_role_channel_hidden_from_workers(self):
        self.assertTrue(can_view_channel(self.moderator, self.moderators))
        self.assertFalse(can_view_channel(self.worker, self.moderators))
        self.assertFalse(can_post(self.worker, self.moderators))

    def test_worker_posts_only_in_own_direct_and_crew_channels(self):
        direct = _channel(ChannelType.DIRECT, members=[self.worker, self.moderator])
        crew = _channel(ChannelType.CREW, members=[self.worker, self.moderator], is_deletable=False)
        group = _channel(ChannelType.GROUP, members=[self.worker, self.moderator])
        self.assertTrue(can_post(self.worker, direct))
        self.assertTrue(can_post(self.worker, crew))
        self.assertFalse(can_post(self.worker, group))
        self.assertFalse(can_post(self.other_worker, direct))

    def test_members_only_channels_invisible_to_outsiders(self):
        group = _channel(ChannelType.GROUP, members=[self.worker, self.moderator])
        self.assertFalse(can_view_channel(self.admin, group))
        self.assertFalse(can_post(self.admin, group))

    def test_message_deletion(self):
        direct = _channel(ChannelType.DIRECT, members=[self.worker, self.moderator])
        group = _channel(ChannelType.GROUP, members=[self.worker, self.moderator])
        in_direct = Message(sender_id=self.worker.id, content="hi")
        in_group = Message(sender_id=self.worker.id, content="hi")

        self.assertTrue(can_delete_message(self.worker, direct, in_direct))
        self.assertTrue(can_delete_message(self.admin, direct, in_direct))
        self.assertFalse(can_delete_message(self.moderator, direct, in_direct))
        self.assertTrue(can_delete_message(self.moderator, group, in_group))
        self.assertFalse(can_delete_message(self.other_worker, group, in_group))

    def test_message_without_sender_is_not_owned_by_anyone(self):
        group = _channel(ChannelType.GROUP, members=[self.worker])
        orphan = Message(sender_id=None, content="left behind")
        self.assertFalse(can_delete_message(self.worker, group, orphan))

    def test_channel_management_is_admin_only_on_deletable_channels(self):
        group = _channel(ChannelType.GROUP, members=[self.admin, self.worker])
        direct = _channel(ChannelType.DIRECT, members=[self.admin, self.worker])
        self.assertTrue(can_manage_channel(self.admin, group))
        self.assertFalse(can_manage_channel(self.moderator, group))
        self.assertFalse(can_manage_channel(self.admin, self.general))
        self.assertFalse(can_rename_channel(self.admin, direct))
        self.assertTrue(can_manage_members(self.admin, group))
        self.assertFalse(can_manage_members(self.admin, direct))


class TestCapabilities(unittest.TestCase):

    def test_role_management_scope(self):
        self.assertTrue(can_manage_role(UserRole.ADMIN, UserRole.ADMIN))
        self.assertTrue(can_manage_role(UserRole.MODERATOR, UserRole.WORKER))
        self.assertFalse(can_manage_role(UserRole.MODERATOR, UserRole.ADMIN))
        self.assertFalse(can_manage_role(UserRole.MODERATOR, UserRole.MODERATOR))
        self.assertFalse(can_manage_role(UserRole.WORKER, UserRole.WORKER))

    def test_capability_lookup(self):
        self.assertTrue(can("Admin", CREW_CREATE))
        self.assertFalse(can("Moderator", CREW_CREATE))
        self.assertFalse(can("Moderator", USER_ASSIGN_ROLE))
        self.assertFalse(can("Unknown", CREW_CREATE))

    def test_crew_and_listing_capabilities(self):
        self.assertEqual(
            [can("Moderator", a) for a in (CREW_CREATE, CREW_UPDATE, CREW_DELETE)], [False, True, False]
        )
        self.assertTrue(all(can("Admin", a) for a in (CREW_CREATE, CREW_UPDATE, CREW_DELETE)))
        # only moderators get the narrowed default user listing
        self.assertTrue(can("Moderator", USER_LIST_SCOPED))
        self.assertFalse(can("Admin", USER_LIST_SCOPED))
        self.assertFalse(can("Worker", USER_LIST_SCOPED))

    def test_require_raises(self):
        worker = _user(UserRole.WORKER)
        with self.assertRaises(PermissionDenied):
            require(worker, CREW_CREATE)
        with self.assertRaises(PermissionDenied):
            require(None, CREW_CREATE)


if __name__ == "__main__":
    unittest.main()
