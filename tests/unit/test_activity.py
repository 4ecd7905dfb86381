import unittest
from datetime import timedelta
from unittest import mock

from base import CrewDeskTestCase

from crewdesk.models.models import ActivityLog, UserRole, utcnow
from crewdesk.schemas.crews import CrewCreate
from crewdesk.services import crews as crew_service
from crewdesk.services.activity import format_activity, list_recent_activity, log_activity
from crewdesk.services.dashboard import admin_dashboard_stats


class TestActivityLog(CrewDeskTestCase):

    def test_append_and_list_newest_first(self):
        old = log_activity(self.db, "user-creation:old", "root")
        new = log_activity(self.db, "user-creation:new", "root")
        old.created_at = utcnow() - timedelta(hours=1)
        self.db.commit()

        entries = list_recent_activity(self.db)
        self.assertEqual([e.id for e in entries], [new.id, old.id])
        self.assertEqual(len(list_recent_activity(self.db, limit=1)), 1)

    def test_missing_performer_defaults_to_system(self):
        entry = log_activity(self.db, "db-connection", None)
        self.assertEqual(entry.performed_by, "System")

    def test_failures_never_propagate(self):
        db = mock.MagicMock()
        db.commit.side_effect = RuntimeError("disk full")
        self.assertIsNone(log_activity(db, "user-creation:x", "root"))
        db.rollback.assert_called_once()

    def test_failure_against_missing_table_is_swallowed(self):
        ActivityLog.__table__.drop(bind=self.database.engine)
        try:
            self.assertIsNone(log_activity(self.db, "user-creation:x", "root"))
        finally:
            ActivityLog.__table__.create(bind=self.database.engine)


class TestFormatActivity(unittest.TestCase):

    def test_known_kind(self):
        entry = ActivityLog(action="crew-creation:Crew - No. 1", performed_by="root", created_at=utcnow())
        data = format_activity(entry)
        self.assertEqual(data["kind"], "crew-creation")
        self.assertEqual(data["detail"], "Crew - No. 1")
        self.assertEqual(data["icon"], "plus-circle")
        self.assertEqual(data["message"], "Crew created: Crew - No. 1")

    def test_detail_keeps_later_colons(self):
        data = format_activity(ActivityLog(action="channel-creation:direct:jdoe", performed_by="root"))
        self.assertEqual(data["detail"], "direct:jdoe")

    def test_unknown_kind_falls_back_to_raw_action(self):
        data = format_activity(ActivityLog(action="something-new:42", performed_by="root"))
        self.assertEqual(data["icon"], "activity")
        self.assertEqual(data["message"], "something-new:42")


class TestDashboard(CrewDeskTestCase):

    def test_stats(self):
        moderator = self.make_user(UserRole.MODERATOR)
        workers = self.make_workers(4)
        self.make_user(UserRole.WORKER, status="inactive")
        crew_service.create_crew(
            self.db, CrewCreate(moderator_ids=[moderator.id], worker_ids=[w.id for w in workers]), self.admin
        )
        for i in range(7):
            log_activity(self.db, f"user-login:u{i}", f"u{i}")

        stats = admin_dashboard_stats(self.db)
        self.assertEqual(stats["users"], {"total": 7, "active": 6, "inactive": 1})
        roles = {r["role"]: r["count"] for r in stats["roles"]}
        self.assertEqual(roles, {"Admin": 1, "Moderator": 1, "Worker": 5})
        self.assertEqual(stats["crews"], 1)
        self.assertEqual(stats["work_reports"], 0)
        self.assertEqual(len(stats["recent_activity"]), 5)


if __name__ == "__main__":
    unittest.main()
