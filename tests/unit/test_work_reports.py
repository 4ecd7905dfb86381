import unittest
from datetime import timedelta

from base import CrewDeskTestCase

from crewdesk.errors import NotFound, PermissionDenied, ValidationFailed
from crewdesk.models.models import ActivityLog, UserRole
from crewdesk.reports.pdf_work_report import (
    QR_MAX_BYTES,
    build_work_report_pdf,
    generate_qr_code_image,
    report_qr_text,
    tool_reconciliation,
)
from crewdesk.schemas.crews import CrewCreate
from crewdesk.schemas.work_reports import WorkReportCreate, WorkReportUpdate
from crewdesk.services import crews as crew_service
from crewdesk.services import exports
from crewdesk.services import work_reports as report_service
from crewdesk.services.activity import log_activity
from crewdesk.services.work_reports import validate_tool_inventory


def tools(*pairs):
    return [{"name": name, "quantity": qty} for name, qty in pairs]


class TestToolInventory(unittest.TestCase):

    def test_damaged_beyond_used_fails(self):
        with self.assertRaises(ValidationFailed):
            validate_tool_inventory(tools(("Shovel", 2)), tools(("Shovel", 3)), [])

    def test_damaged_plus_lost_is_counted_together(self):
        validate_tool_inventory(tools(("Shovel", 2)), tools(("Shovel", 1)), tools(("Shovel", 1)))
        with self.assertRaises(ValidationFailed):
            validate_tool_inventory(tools(("Shovel", 2)), tools(("Shovel", 1)), tools(("Shovel", 2)))

    def test_tool_missing_from_used_counts_as_zero(self):
        with self.assertRaises(ValidationFailed) as ctx:
            validate_tool_inventory(tools(("Shovel", 2)), [], tools(("Rake", 1)))
        self.assertIn("Rake", ctx.exception.message)

    def test_needs_a_used_tool(self):
        with self.assertRaises(ValidationFailed):
            validate_tool_inventory([], [], [])
        with self.assertRaises(ValidationFailed):
            validate_tool_inventory(tools(("Shovel", 0)), [], [])

    def test_names_match_case_insensitively(self):
        validate_tool_inventory(tools(("Shovel", 1), ("shovel", 1)), tools(("SHOVEL", 2)), [])

    def test_empty_names_and_negative_quantities(self):
        with self.assertRaises(ValidationFailed):
            validate_tool_inventory(tools((" ", 1)), [], [])
        with self.assertRaises(ValidationFailed):
            validate_tool_inventory(tools(("Shovel", -1), ("Rake", 2)), [], [])


class TestWorkReports(CrewDeskTestCase):

    def setUp(self):
        super().setUp()
        self.moderator = self.make_user(UserRole.MODERATOR)
        workers = self.make_workers(4)
        self.crew = crew_service.create_crew(
            self.db, CrewCreate(moderator_ids=[self.moderator.id], worker_ids=[w.id for w in workers]), self.admin
        )

    def _payload(self, **overrides):
        data = dict(
            crew_id=self.crew.id,
            municipality="Springfield",
            distance=1250,
            comments="Cleared the drainage along the main road.",
            tools_used=tools(("Shovel", 2), ("Rake", 1)),
            tools_damaged=tools(("Shovel", 1)),
            tools_lost=[],
        )
        data.update(overrides)
        return WorkReportCreate(**data)

    def test_create_populates_and_logs(self):
        report = report_service.create_work_report(self.db, self._payload(), self.moderator)
        data = report_service.report_to_dict(report)
        self.assertEqual(data["crew"]["name"], self.crew.name)
        self.assertEqual(data["author"]["username"], self.moderator.username)
        self.assertEqual(data["tools_used"], tools(("Shovel", 2), ("Rake", 1)))
        self.assertIsNotNone(
            self.db.query(ActivityLog).filter(ActivityLog.action == f"work-report-creation:{report.id}").first()
        )

    def test_invalid_inventory_is_not_persisted(self):
        with self.assertRaises(ValidationFailed):
            report_service.create_work_report(
                self.db, self._payload(tools_damaged=tools(("Shovel", 3))), self.moderator
            )
        self.assertEqual(report_service.list_work_reports(self.db), [])

    def test_unknown_crew(self):
        with self.assertRaises(NotFound):
            report_service.create_work_report(
                self.db, self._payload(crew_id="00000000-0000-0000-0000-000000000000"), self.moderator
            )

    def test_workers_cannot_file_reports(self):
        worker = self.crew.workers[0]
        with self.assertRaises(PermissionDenied):
            report_service.create_work_report(self.db, self._payload(), worker)

    def test_update_revalidates_merged_report(self):
        report = report_service.create_work_report(self.db, self._payload(), self.moderator)
        with self.assertRaises(ValidationFailed):
            report_service.update_work_report(
                self.db, report.id, WorkReportUpdate(tools_used=tools(("Rake", 1))), self.moderator
            )
        updated = report_service.update_work_report(
            self.db, report.id, WorkReportUpdate(municipality="Shelbyville", tools_lost=tools(("Shovel", 1))), self.admin
        )
        self.assertEqual(updated.municipality, "Shelbyville")
        self.assertEqual(updated.tools_lost, tools(("Shovel", 1)))
        self.assertEqual(updated.tools_used, tools(("Shovel", 2), ("Rake", 1)))

    def test_list_newest_first(self):
        first = report_service.create_work_report(self.db, self._payload(), self.moderator)
        second = report_service.create_work_report(self.db, self._payload(municipality="Ogdenville"), self.moderator)
        first.created_at = second.created_at - timedelta(minutes=1)
        self.db.commit()
        ids = [r.id for r in report_service.list_work_reports(self.db)]
        self.assertEqual(set(ids), {first.id, second.id})
        self.assertEqual(ids[0], second.id)

    def test_pdf(self):
        report = report_service.create_work_report(self.db, self._payload(), self.moderator)
        pdf = build_work_report_pdf(report)
        self.assertTrue(pdf.startswith(b"%PDF"))

        rows = {r["name"]: r for r in tool_reconciliation(report)}
        self.assertEqual(rows["Shovel"]["returned"], 1)
        self.assertEqual(rows["Rake"]["damaged"], 0)

    def test_qr_summary(self):
        report = report_service.create_work_report(self.db, self._payload(), self.moderator)
        text = report_qr_text(report)
        self.assertTrue(text.startswith("=== WORK REPORT ==="))
        self.assertIn(f"Crew: {self.crew.name}", text)
        self.assertIn("Municipality: Springfield", text)
        self.assertIn("--- TOOLS USED ---\nShovel: 2\nRake: 1", text)
        self.assertIn("--- TOOLS DAMAGED ---\nShovel: 1", text)
        self.assertNotIn("TOOLS LOST", text)
        self.assertIn(self.moderator.full_name, text)

        png = generate_qr_code_image(text).getvalue()
        self.assertTrue(png.startswith(b"\x89PNG"))

    def test_qr_summary_fits_long_comments(self):
        report = report_service.create_work_report(
            self.db, self._payload(comments="Trench work " * 600), self.moderator
        )
        text = report_qr_text(report)
        self.assertLessEqual(len(text.encode("utf-8")), QR_MAX_BYTES)
        generate_qr_code_image(text)


class TestExports(CrewDeskTestCase):

    def setUp(self):
        super().setUp()
        self.moderator = self.make_user(UserRole.MODERATOR)
        self.workers = self.make_workers(4)
        self.crew = crew_service.create_crew(
            self.db,
            CrewCreate(moderator_ids=[self.moderator.id], worker_ids=[w.id for w in self.workers]),
            self.admin,
        )

    def _logged(self, action):
        return self.db.query(ActivityLog).filter(ActivityLog.action == action).first()

    def test_work_report_pdf_is_logged(self):
        report = report_service.create_work_report(
            self.db,
            WorkReportCreate(
                crew_id=self.crew.id,
                municipality="Springfield",
                distance=80,
                comments="Painted the crossings downtown.",
                tools_used=tools(("Brush", 4)),
            ),
            self.moderator,
        )
        filename, pdf = exports.export_work_report(self.db, report.id, self.admin)
        self.assertEqual(filename, f"work-report-{report.id}.pdf")
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertIsNotNone(self._logged(f"report-generation:work-report-{report.id}"))

        filename, pdf = exports.export_work_report_history(self.db, self.moderator)
        self.assertEqual(filename, "work-report-history.pdf")
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertIsNotNone(self._logged("report-generation:work-report-history"))

        self.assertTrue(exports.work_report_qr_png(self.db, report.id, self.admin).startswith(b"\x89PNG"))

    def test_rosters(self):
        for kind in ("workers", "moderators", "crews"):
            filename, pdf = exports.export_roster(self.db, kind, self.admin)
            self.assertEqual(filename, f"{kind}-roster.pdf")
            self.assertTrue(pdf.startswith(b"%PDF"))
            self.assertIsNotNone(self._logged(f"report-generation:{kind}-roster"))

        self.assertEqual(
            {u.id for u in exports.users_with_role(self.db, "Worker")}, {w.id for w in self.workers}
        )
        with self.assertRaises(ValidationFailed):
            exports.export_roster(self.db, "admins", self.admin)
        with self.assertRaises(PermissionDenied):
            exports.export_roster(self.db, "workers", self.workers[0])

    def test_activity_log_pdf(self):
        # markup characters in log text must not break rendering
        log_activity(self.db, "channel-rename:R&D <old> -> R&D", self.admin.username)
        filename, pdf = exports.export_activity_log(self.db, self.moderator)
        self.assertEqual(filename, "activity-log.pdf")
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertIsNotNone(self._logged("report-generation:activity-log"))
        with self.assertRaises(PermissionDenied):
            exports.export_activity_log(self.db, self.workers[0])


if __name__ == "__main__":
    unittest.main()
