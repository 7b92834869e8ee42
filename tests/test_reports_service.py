from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from io import BytesIO
from unittest.mock import patch

from openpyxl import load_workbook

from staffcheck.errors import ApiError
from staffcheck.models import Attendance, AttendanceStatus, Profile, UserRole
from staffcheck.services.exports import build_monthly_attendance_xlsx_bytes
from staffcheck.services.reports import build_checklist_report, parse_month, summarize_month


def _employee(profile_id: int, name: str) -> Profile:
    return Profile(
        id=profile_id,
        email=f"{name.lower()}@example.com",
        full_name=name,
        role=UserRole.EMPLOYEE,
        employee_code=f"E{profile_id:03d}",
        department="Ops",
        password_hash="x",
        is_active=True,
    )


def _row(row_id: int, user_id: int, day: int, start_hour: int, end_hour: int | None, status=AttendanceStatus.PRESENT):  # type: ignore[no-untyped-def]
    return Attendance(
        id=row_id,
        user_id=user_id,
        check_in=datetime(2026, 3, day, start_hour, 0, tzinfo=timezone.utc),
        check_out=datetime(2026, 3, day, end_hour, 0, tzinfo=timezone.utc) if end_hour is not None else None,
        check_in_location_valid=True,
        check_out_location_valid=end_hour is not None,
        status=status,
    )


class MonthlySummaryTests(unittest.TestCase):
    def setUp(self) -> None:
        patcher = patch("staffcheck.services.attendance.get_attendance_timezone", return_value=timezone.utc)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_parse_month_accepts_year_month(self) -> None:
        self.assertEqual(parse_month("2026-03"), (2026, 3))

    def test_parse_month_rejects_garbage(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            parse_month("March")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_summary_counts_distinct_days_and_hours(self) -> None:
        employees = [_employee(1, "Ali"), _employee(2, "Banu")]
        rows = [
            _row(1, 1, 2, 9, 17),
            # second visit on the same day counts hours but not another day
            _row(2, 1, 2, 18, 20),
            _row(3, 1, 3, 9, 13, AttendanceStatus.LATE),
            _row(4, 2, 2, 9, None),
        ]

        report = summarize_month(employees, rows, year=2026, month=3)

        self.assertEqual(report.month, "2026-03")
        self.assertEqual(report.days_in_month, 31)
        self.assertEqual(report.total_employees, 2)
        self.assertEqual(report.total_attendance, 4)
        ali, banu = report.rows
        self.assertEqual(ali.days_present, 2)
        self.assertEqual(ali.late_days, 1)
        self.assertEqual(ali.total_hours, 14.0)
        self.assertEqual(ali.avg_hours, 7.0)
        self.assertEqual(banu.days_present, 1)
        self.assertEqual(banu.total_hours, 0.0)
        self.assertEqual(report.total_hours, 14.0)
        self.assertEqual(report.average_attendance_percent, round(4 / 62 * 100, 1))

    def test_summary_without_employees_is_zero(self) -> None:
        report = summarize_month([], [], year=2026, month=2)
        self.assertEqual(report.days_in_month, 28)
        self.assertEqual(report.average_attendance_percent, 0.0)
        self.assertEqual(report.rows, [])

    def test_xlsx_export_has_summary_and_records(self) -> None:
        employees = [_employee(1, "Ali")]
        rows = [_row(1, 1, 2, 9, 17)]
        with patch("staffcheck.services.exports.load_month_rows", return_value=(employees, rows)):
            content, filename = build_monthly_attendance_xlsx_bytes(None, month="2026-03")  # type: ignore[arg-type]

        self.assertEqual(filename, "attendance_2026-03.xlsx")
        workbook = load_workbook(BytesIO(content))
        self.assertEqual(workbook.sheetnames, ["Summary", "Records"])
        self.assertGreaterEqual(workbook["Records"].max_row, 2)


class ChecklistReportTests(unittest.TestCase):
    def test_range_longer_than_cap_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            build_checklist_report(None, location_id=1, start_date=date(2026, 1, 1), end_date=date(2026, 6, 1))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 400)

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError):
            build_checklist_report(None, location_id=1, start_date=date(2026, 3, 5), end_date=date(2026, 3, 1))  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
