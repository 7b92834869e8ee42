from __future__ import annotations

import unittest
from datetime import date, time

from staffcheck.models import EmployeeSchedule
from staffcheck.services.schedules import (
    iter_days,
    resolve_schedule_for_day,
    schedule_applies_on,
    to_day_of_week,
)

# 2026-03-02 is a Monday
MONDAY = date(2026, 3, 2)


def _schedule(
    schedule_id: int,
    *,
    day_of_week: int = 1,
    start: time = time(9, 0),
    effective_date: date | None = None,
    end_date: date | None = None,
    is_active: bool = True,
) -> EmployeeSchedule:
    return EmployeeSchedule(
        id=schedule_id,
        user_id=5,
        day_of_week=day_of_week,
        shift_start=start,
        shift_end=time(17, 0),
        effective_date=effective_date,
        end_date=end_date,
        is_active=is_active,
    )


class ScheduleMatchingTests(unittest.TestCase):
    def test_day_of_week_uses_sunday_as_zero(self) -> None:
        self.assertEqual(to_day_of_week(date(2026, 3, 1)), 0)
        self.assertEqual(to_day_of_week(MONDAY), 1)
        self.assertEqual(to_day_of_week(date(2026, 3, 7)), 6)

    def test_recurring_schedule_applies_on_matching_weekday(self) -> None:
        self.assertTrue(schedule_applies_on(_schedule(1), MONDAY))
        self.assertFalse(schedule_applies_on(_schedule(1, day_of_week=2), MONDAY))

    def test_inactive_schedule_never_applies(self) -> None:
        self.assertFalse(schedule_applies_on(_schedule(1, is_active=False), MONDAY))

    def test_date_range_bounds_are_inclusive(self) -> None:
        bounded = _schedule(1, effective_date=MONDAY, end_date=date(2026, 3, 9))
        self.assertTrue(schedule_applies_on(bounded, MONDAY))
        self.assertTrue(schedule_applies_on(bounded, date(2026, 3, 9)))
        self.assertFalse(schedule_applies_on(bounded, date(2026, 3, 16)))
        self.assertFalse(schedule_applies_on(bounded, date(2026, 2, 23)))

    def test_open_ended_date_specific_schedule(self) -> None:
        open_ended = _schedule(1, effective_date=MONDAY)
        self.assertTrue(schedule_applies_on(open_ended, date(2026, 6, 1)))

    def test_date_specific_beats_recurring(self) -> None:
        recurring = _schedule(1, start=time(8, 0))
        specific = _schedule(2, start=time(10, 0), effective_date=MONDAY, end_date=MONDAY)
        chosen = resolve_schedule_for_day([recurring, specific], day_date=MONDAY)
        self.assertIs(chosen, specific)

    def test_latest_effective_date_wins_among_date_specific(self) -> None:
        older = _schedule(1, effective_date=date(2026, 1, 5))
        newer = _schedule(2, effective_date=date(2026, 2, 2))
        chosen = resolve_schedule_for_day([older, newer], day_date=MONDAY)
        self.assertIs(chosen, newer)

    def test_recurring_used_when_specific_out_of_range(self) -> None:
        recurring = _schedule(1)
        expired = _schedule(2, effective_date=date(2026, 2, 2), end_date=date(2026, 2, 23))
        chosen = resolve_schedule_for_day([expired, recurring], day_date=MONDAY)
        self.assertIs(chosen, recurring)

    def test_lowest_id_recurring_wins_on_tie(self) -> None:
        chosen = resolve_schedule_for_day([_schedule(9), _schedule(3)], day_date=MONDAY)
        self.assertEqual(chosen.id, 3)

    def test_no_schedule_for_other_weekday(self) -> None:
        self.assertIsNone(resolve_schedule_for_day([_schedule(1, day_of_week=3)], day_date=MONDAY))

    def test_iter_days_is_inclusive(self) -> None:
        days = list(iter_days(MONDAY, date(2026, 3, 4)))
        self.assertEqual(days, [MONDAY, date(2026, 3, 3), date(2026, 3, 4)])


if __name__ == "__main__":
    unittest.main()
