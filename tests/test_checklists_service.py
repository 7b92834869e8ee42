from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from unittest.mock import patch

from staffcheck.errors import ApiError
from staffcheck.models import JobChecklist, JobFrequency, JobTemplate, OfficeArea, Profile, UserRole
from staffcheck.services.checklists import (
    checklist_to_read,
    complete_checklist,
    compute_stats,
    generate_checklists,
    template_matches_day,
    uncomplete_checklist,
)
from staffcheck.services.job_templates import validate_frequency_fields

MONDAY = date(2026, 3, 2)
SUNDAY = date(2026, 3, 8)


def _template(template_id: int, frequency: JobFrequency, **kwargs) -> JobTemplate:  # type: ignore[no-untyped-def]
    return JobTemplate(
        id=template_id,
        area_id=3,
        title=f"Task {template_id}",
        frequency=frequency,
        is_active=True,
        **kwargs,
    )


def _profile(profile_id: int, role: UserRole = UserRole.EMPLOYEE) -> Profile:
    return Profile(
        id=profile_id,
        email=f"user{profile_id}@example.com",
        full_name=f"User {profile_id}",
        role=role,
        password_hash="x",
        is_active=True,
    )


class _ScalarRows:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return self._rows


class _FakeChecklistDB:
    """Keeps checklist rows in memory and answers the per-day existence lookup."""

    def __init__(self) -> None:
        self.rows: list[JobChecklist] = []
        self.commits = 0

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        params = statement.compile().params
        template_id = next(value for key, value in params.items() if key.startswith("job_template_id"))
        day_date = next(value for key, value in params.items() if key.startswith("assigned_date"))
        return _ScalarRows(
            [
                row
                for row in self.rows
                if row.job_template_id == template_id and row.assigned_date == day_date and row.is_active
            ]
        )

    def add(self, obj: JobChecklist) -> None:
        self.rows.append(obj)

    def flush(self) -> None:
        return

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        return


class TemplateMatchingTests(unittest.TestCase):
    def test_daily_matches_every_day(self) -> None:
        template = _template(1, JobFrequency.DAILY)
        self.assertTrue(all(template_matches_day(template, date(2026, 3, day)) for day in range(1, 32)))

    def test_weekly_matches_only_its_weekday(self) -> None:
        template = _template(1, JobFrequency.WEEKLY, day_of_week=1)
        self.assertTrue(template_matches_day(template, MONDAY))
        self.assertFalse(template_matches_day(template, SUNDAY))

    def test_monthly_matches_day_of_month(self) -> None:
        template = _template(1, JobFrequency.MONTHLY, day_of_month=15)
        self.assertTrue(template_matches_day(template, date(2026, 3, 15)))
        self.assertFalse(template_matches_day(template, date(2026, 3, 16)))

    def test_monthly_thirty_first_never_matches_in_february(self) -> None:
        template = _template(1, JobFrequency.MONTHLY, day_of_month=31)
        self.assertFalse(any(template_matches_day(template, date(2026, 2, day)) for day in range(1, 29)))

    def test_frequency_fields_are_normalized(self) -> None:
        self.assertEqual(validate_frequency_fields(JobFrequency.DAILY, day_of_week=2, day_of_month=5), (None, None))
        self.assertEqual(validate_frequency_fields(JobFrequency.WEEKLY, day_of_week=2, day_of_month=5), (2, None))
        self.assertEqual(validate_frequency_fields(JobFrequency.MONTHLY, day_of_week=2, day_of_month=5), (None, 5))

    def test_weekly_without_day_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            validate_frequency_fields(JobFrequency.WEEKLY, day_of_week=None, day_of_month=None)
        self.assertEqual(ctx.exception.status_code, 400)


class ChecklistGenerationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.templates = [
            _template(1, JobFrequency.DAILY),
            _template(2, JobFrequency.WEEKLY, day_of_week=1),
            _template(3, JobFrequency.MONTHLY, day_of_month=31),
        ]
        patcher = patch(
            "staffcheck.services.checklists.list_generation_templates",
            return_value=self.templates,
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_generation_is_idempotent(self) -> None:
        fake_db = _FakeChecklistDB()

        first = generate_checklists(fake_db, start_date=MONDAY, end_date=SUNDAY)  # type: ignore[arg-type]
        second = generate_checklists(fake_db, start_date=MONDAY, end_date=SUNDAY)  # type: ignore[arg-type]

        self.assertEqual(first.created, 8)
        self.assertEqual(first.skipped, 0)
        self.assertEqual(second.created, 0)
        self.assertEqual(second.skipped, 8)
        self.assertEqual(len(fake_db.rows), 8)
        self.assertEqual(first.errors, [])

    def test_overwrite_replaces_active_rows(self) -> None:
        fake_db = _FakeChecklistDB()
        generate_checklists(fake_db, start_date=MONDAY, end_date=MONDAY)  # type: ignore[arg-type]

        result = generate_checklists(fake_db, start_date=MONDAY, end_date=MONDAY, overwrite=True)  # type: ignore[arg-type]

        self.assertEqual(result.replaced, 2)
        self.assertEqual(result.created, 0)
        active = [row for row in fake_db.rows if row.is_active]
        self.assertEqual(len(active), 2)
        self.assertEqual(len(fake_db.rows), 4)

    def test_end_date_defaults_to_start_date(self) -> None:
        fake_db = _FakeChecklistDB()
        result = generate_checklists(fake_db, start_date=SUNDAY)  # type: ignore[arg-type]
        self.assertEqual(result.created, 1)
        self.assertEqual(fake_db.rows[0].assigned_date, SUNDAY)

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            generate_checklists(_FakeChecklistDB(), start_date=SUNDAY, end_date=MONDAY)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 400)


class _FakeCommitDB:
    def __init__(self) -> None:
        self.commits = 0

    def commit(self) -> None:
        self.commits += 1


def _checklist(**kwargs) -> JobChecklist:  # type: ignore[no-untyped-def]
    area = OfficeArea(id=3, location_id=1, name="Kitchen", duration_minutes=20, is_active=True)
    template = _template(1, JobFrequency.DAILY)
    item = JobChecklist(id=44, job_template_id=1, area_id=3, assigned_date=MONDAY, is_active=True, **kwargs)
    item.area = area
    item.job_template = template
    return item


class ChecklistWorkflowTests(unittest.TestCase):
    def test_complete_sets_completer_and_notes(self) -> None:
        item = _checklist()
        worker = _profile(8)
        with patch("staffcheck.services.checklists.get_checklist", return_value=item):
            complete_checklist(_FakeCommitDB(), 44, profile=worker, notes="done", photo_url="/media/x.jpg")  # type: ignore[arg-type]

        read = checklist_to_read(item)
        self.assertIsNotNone(read.completed_at)
        self.assertEqual(read.completed_by, 8)
        self.assertEqual(read.completed_by_name, "User 8")
        self.assertEqual(read.end_photo_url, "/media/x.jpg")
        self.assertEqual(read.area_name, "Kitchen")

    def test_complete_twice_is_conflict(self) -> None:
        item = _checklist(completed_at=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc), completed_by=8)
        with patch("staffcheck.services.checklists.get_checklist", return_value=item):
            with self.assertRaises(ApiError) as ctx:
                complete_checklist(_FakeCommitDB(), 44, profile=_profile(9))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 409)

    def test_uncomplete_forbidden_for_other_employee(self) -> None:
        item = _checklist(completed_at=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc), completed_by=8)
        with patch("staffcheck.services.checklists.get_checklist", return_value=item):
            with self.assertRaises(ApiError) as ctx:
                uncomplete_checklist(_FakeCommitDB(), 44, profile=_profile(9))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertIsNotNone(item.completed_at)

    def test_uncomplete_allowed_for_completer_and_admin(self) -> None:
        for actor in (_profile(8), _profile(1, UserRole.ADMIN)):
            item = _checklist(
                completed_at=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc),
                completed_by=8,
                notes="done",
                end_photo_url="/media/x.jpg",
            )
            with patch("staffcheck.services.checklists.get_checklist", return_value=item):
                uncomplete_checklist(_FakeCommitDB(), 44, profile=actor)  # type: ignore[arg-type]
            self.assertIsNone(item.completed_at)
            self.assertIsNone(item.completed_by)
            self.assertIsNone(item.notes)
            self.assertIsNone(item.end_photo_url)

    def test_stats_rate_is_rounded_percent(self) -> None:
        done = _checklist(completed_at=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc))
        stats = compute_stats([done, _checklist(), _checklist()])
        self.assertEqual(stats.total, 3)
        self.assertEqual(stats.completed, 1)
        self.assertEqual(stats.pending, 2)
        self.assertEqual(stats.completion_rate, 33)
        self.assertEqual(compute_stats([]).completion_rate, 0)


if __name__ == "__main__":
    unittest.main()
