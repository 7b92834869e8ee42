from __future__ import annotations

import unittest
from datetime import date, time

from pydantic import ValidationError

from staffcheck.errors import ApiError
from staffcheck.models import EmployeeSchedule, Profile, UserRole, WorkLocation
from staffcheck.schemas import ScheduleCreate, ScheduleGenerateRequest, ScheduleUpdate
from staffcheck.services.schedules import create_schedule, generate_schedules, update_schedule

MONDAY = date(2026, 3, 2)
WEDNESDAY = date(2026, 3, 4)


class _ScalarRows:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return self._rows


def _param(params: dict, prefix: str):  # type: ignore[no-untyped-def]
    return next(value for key, value in params.items() if key.startswith(prefix))


class _FakeScheduleDB:
    """Stores schedules in memory; rows added since the last commit are dropped on rollback."""

    def __init__(self, *, fail_on: date | None = None) -> None:
        self.rows: list[EmployeeSchedule] = []
        self.pending: list[EmployeeSchedule] = []
        self.fail_on = fail_on
        self.commits = 0
        self.rollbacks = 0

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is Profile and pk == 5:
            return Profile(id=5, email="ayse@example.com", full_name="Ayse", role=UserRole.EMPLOYEE, is_active=True)
        if model is WorkLocation and pk == 2:
            return WorkLocation(id=2, name="Depot", latitude=41.0, longitude=29.0, radius_meters=150, is_active=True)
        if model is EmployeeSchedule:
            return next((row for row in self.rows if row.id == pk), None)
        return None

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        params = statement.compile().params
        user_id = _param(params, "user_id")
        location_id = _param(params, "location_id")
        day_date = _param(params, "effective_date")
        return _ScalarRows(
            [
                row
                for row in self.rows
                if row.user_id == user_id
                and row.location_id == location_id
                and row.effective_date == day_date
                and row.is_active
            ]
        )

    def add(self, obj: EmployeeSchedule) -> None:
        self.pending.append(obj)

    def commit(self) -> None:
        if self.fail_on is not None and any(row.effective_date == self.fail_on for row in self.pending):
            raise RuntimeError("deadlock detected")
        for row in self.pending:
            if row.id is None:
                row.id = len(self.rows) + 1
            self.rows.append(row)
        self.pending = []
        self.commits += 1

    def rollback(self) -> None:
        self.pending = []
        self.rollbacks += 1

    def refresh(self, _obj) -> None:  # type: ignore[no-untyped-def]
        return


def _generate_request(**overrides) -> ScheduleGenerateRequest:  # type: ignore[no-untyped-def]
    values = {
        "user_id": 5,
        "location_id": 2,
        "start_date": MONDAY,
        "end_date": WEDNESDAY,
        "shift_start": time(8, 0),
        "shift_end": time(16, 0),
    }
    values.update(overrides)
    return ScheduleGenerateRequest(**values)


class ScheduleGenerationTests(unittest.TestCase):
    def test_one_dated_schedule_per_day(self) -> None:
        fake_db = _FakeScheduleDB()

        result = generate_schedules(fake_db, _generate_request())  # type: ignore[arg-type]

        self.assertEqual((result.created, result.skipped, result.replaced), (3, 0, 0))
        self.assertEqual([row.effective_date for row in fake_db.rows], [date(2026, 3, 2), date(2026, 3, 3), WEDNESDAY])
        self.assertEqual([row.day_of_week for row in fake_db.rows], [1, 2, 3])
        self.assertTrue(all(row.end_date == row.effective_date for row in fake_db.rows))

    def test_existing_days_are_skipped_without_overwrite(self) -> None:
        fake_db = _FakeScheduleDB()
        generate_schedules(fake_db, _generate_request(end_date=MONDAY))  # type: ignore[arg-type]

        result = generate_schedules(fake_db, _generate_request())  # type: ignore[arg-type]

        self.assertEqual((result.created, result.skipped, result.replaced), (2, 1, 0))
        self.assertEqual(len([row for row in fake_db.rows if row.effective_date == MONDAY]), 1)

    def test_overwrite_deactivates_and_replaces(self) -> None:
        fake_db = _FakeScheduleDB()
        generate_schedules(fake_db, _generate_request())  # type: ignore[arg-type]
        originals = list(fake_db.rows)

        result = generate_schedules(  # type: ignore[arg-type]
            fake_db,
            _generate_request(shift_start=time(12, 0), shift_end=time(20, 0), overwrite=True),
        )

        self.assertEqual((result.created, result.skipped, result.replaced), (0, 0, 3))
        self.assertTrue(all(not row.is_active for row in originals))
        active = [row for row in fake_db.rows if row.is_active]
        self.assertEqual(len(active), 3)
        self.assertTrue(all(row.shift_start == time(12, 0) for row in active))

    def test_failed_day_is_reported_and_rest_continue(self) -> None:
        fake_db = _FakeScheduleDB(fail_on=date(2026, 3, 3))

        result = generate_schedules(fake_db, _generate_request())  # type: ignore[arg-type]

        self.assertEqual(result.created, 2)
        self.assertEqual(len(result.errors), 1)
        self.assertTrue(result.errors[0].startswith("2026-03-03"))
        self.assertEqual(fake_db.rollbacks, 1)

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            generate_schedules(_FakeScheduleDB(), _generate_request(start_date=WEDNESDAY, end_date=MONDAY))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 400)

    def test_unknown_employee_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            generate_schedules(_FakeScheduleDB(), _generate_request(user_id=99))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 404)


class ScheduleCrudTests(unittest.TestCase):
    def test_create_rejects_effective_after_end(self) -> None:
        with self.assertRaises(ValidationError):
            ScheduleCreate(
                user_id=5,
                day_of_week=1,
                shift_start=time(9, 0),
                shift_end=time(17, 0),
                effective_date=date(2026, 3, 20),
                end_date=date(2026, 3, 10),
            )

    def test_create_attaches_location(self) -> None:
        fake_db = _FakeScheduleDB()
        payload = ScheduleCreate(user_id=5, day_of_week=1, shift_start=time(9, 0), shift_end=time(17, 0), location_id=2)

        schedule = create_schedule(fake_db, payload)  # type: ignore[arg-type]

        self.assertEqual(schedule.location.name, "Depot")
        self.assertTrue(schedule.is_active)
        self.assertEqual(fake_db.commits, 1)

    def test_create_with_unknown_location_is_not_found(self) -> None:
        payload = ScheduleCreate(user_id=5, day_of_week=1, shift_start=time(9, 0), shift_end=time(17, 0), location_id=8)
        with self.assertRaises(ApiError) as ctx:
            create_schedule(_FakeScheduleDB(), payload)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 404)

    def test_update_rejects_effective_after_end(self) -> None:
        fake_db = _FakeScheduleDB()
        fake_db.rows.append(
            EmployeeSchedule(
                id=1,
                user_id=5,
                day_of_week=1,
                shift_start=time(9, 0),
                shift_end=time(17, 0),
                effective_date=date(2026, 3, 10),
                end_date=date(2026, 3, 20),
                is_active=True,
            )
        )

        with self.assertRaises(ApiError) as ctx:
            update_schedule(fake_db, 1, ScheduleUpdate(end_date=date(2026, 3, 5)))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(fake_db.rollbacks, 1)
        self.assertEqual(fake_db.commits, 0)

    def test_update_ignores_null_for_required_fields(self) -> None:
        fake_db = _FakeScheduleDB()
        row = EmployeeSchedule(
            id=1,
            user_id=5,
            day_of_week=1,
            shift_start=time(9, 0),
            shift_end=time(17, 0),
            is_active=True,
        )
        fake_db.rows.append(row)

        update_schedule(fake_db, 1, ScheduleUpdate(shift_start=None, shift_end=time(18, 0)))  # type: ignore[arg-type]

        self.assertEqual(row.shift_start, time(9, 0))
        self.assertEqual(row.shift_end, time(18, 0))
        self.assertEqual(fake_db.commits, 1)


if __name__ == "__main__":
    unittest.main()
