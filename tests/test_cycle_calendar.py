import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cycle_calendar import (
    CYCLE_DAYS,
    DEFAULT_CYCLE_ANCHOR,
    CycleConfig,
    EventWindowError,
    current_week_bounds,
    cycle_end,
    cycle_start,
    cycle_weeks,
    is_before_anchor,
    parse_date,
    validate_event_date,
    week_number_in_cycle,
    week_start,
)

D = datetime.date
ANCHOR = D(2026, 1, 5)


class WeekStartTest(unittest.TestCase):
    def test_monday_stays(self) -> None:
        self.assertEqual(week_start(D(2026, 1, 5)), D(2026, 1, 5))

    def test_sunday_goes_back_six_days(self) -> None:
        self.assertEqual(week_start(D(2026, 1, 11)), D(2026, 1, 5))

    def test_always_monday_and_idempotent(self) -> None:
        day = D(2025, 12, 20)
        for i in range(30):
            current = day + datetime.timedelta(days=i)
            ws = week_start(current)
            self.assertEqual(ws.isoweekday(), 1)
            self.assertEqual(week_start(ws), ws)
            self.assertLessEqual((current - ws).days, 6)


class CycleTest(unittest.TestCase):
    def test_anchor_starts_week_one(self) -> None:
        self.assertEqual(cycle_start(D(2026, 1, 5), ANCHOR), D(2026, 1, 5))
        self.assertEqual(week_number_in_cycle(D(2026, 1, 5), D(2026, 1, 5)), 1)

    def test_week_twelve(self) -> None:
        start = cycle_start(D(2026, 3, 23), ANCHOR)
        self.assertEqual(start, ANCHOR)
        self.assertEqual(week_number_in_cycle(D(2026, 3, 23), start), 12)

    def test_next_cycle_after_84_days(self) -> None:
        self.assertEqual(cycle_start(D(2026, 3, 30), ANCHOR), D(2026, 3, 30))
        self.assertEqual(week_number_in_cycle(D(2026, 3, 30), D(2026, 3, 30)), 1)

    def test_day_before_anchor_clamps(self) -> None:
        self.assertEqual(cycle_start(D(2026, 1, 4), ANCHOR), ANCHOR)
        self.assertEqual(week_number_in_cycle(D(2026, 1, 4), ANCHOR), 1)
        self.assertTrue(is_before_anchor(D(2026, 1, 4), ANCHOR))
        self.assertFalse(is_before_anchor(D(2026, 1, 11), ANCHOR))

    def test_unaligned_anchor_is_aligned(self) -> None:
        self.assertEqual(cycle_start(D(2026, 1, 20), D(2026, 1, 8)), ANCHOR)

    def test_periodicity(self) -> None:
        day = D(2026, 5, 13)
        later = day + datetime.timedelta(days=CYCLE_DAYS)
        self.assertEqual(
            cycle_start(later, ANCHOR),
            cycle_start(day, ANCHOR) + datetime.timedelta(days=CYCLE_DAYS),
        )
        self.assertEqual(
            week_number_in_cycle(later, cycle_start(later, ANCHOR)),
            week_number_in_cycle(day, cycle_start(day, ANCHOR)),
        )

    def test_week_numbers_in_range_and_contiguous(self) -> None:
        day = ANCHOR
        for _ in range(400):
            start = cycle_start(day, ANCHOR)
            self.assertLessEqual(start, day)
            self.assertLessEqual(day, cycle_end(start))
            self.assertEqual((cycle_end(start) - start).days, 83)
            no = week_number_in_cycle(day, start)
            self.assertTrue(1 <= no <= 12)
            day += datetime.timedelta(days=1)

    def test_cycle_weeks_rows(self) -> None:
        rows = cycle_weeks(ANCHOR)
        self.assertEqual(len(rows), 12)
        self.assertEqual(rows[0], (1, D(2026, 1, 5), D(2026, 1, 11)))
        self.assertEqual(rows[-1], (12, D(2026, 3, 23), D(2026, 3, 29)))

    def test_current_week_bounds(self) -> None:
        self.assertEqual(
            current_week_bounds(D(2026, 1, 14), ANCHOR), (D(2026, 1, 12), D(2026, 1, 18))
        )


class EventWindowTest(unittest.TestCase):
    def test_previous_week_rejected(self) -> None:
        with self.assertRaises(EventWindowError) as ctx:
            validate_event_date(D(2026, 1, 3), D(2026, 1, 10), ANCHOR)
        self.assertEqual(ctx.exception.reason, EventWindowError.NOT_CURRENT_WEEK)

    def test_same_week_accepted(self) -> None:
        self.assertEqual(validate_event_date(D(2026, 1, 5), D(2026, 1, 10), ANCHOR), 1)
        self.assertEqual(validate_event_date(D(2026, 1, 11), D(2026, 1, 10), ANCHOR), 1)

    def test_same_week_number_next_cycle_rejected(self) -> None:
        with self.assertRaises(EventWindowError):
            validate_event_date(D(2026, 3, 30), D(2026, 1, 6), ANCHOR)

    def test_before_anchor_outside_cycle(self) -> None:
        with self.assertRaises(EventWindowError) as ctx:
            validate_event_date(D(2026, 1, 3), D(2026, 1, 4), ANCHOR)
        self.assertEqual(ctx.exception.reason, EventWindowError.OUTSIDE_CYCLE)

    def test_before_anchor_accepts_first_week(self) -> None:
        today = D(2026, 1, 1)
        self.assertEqual(validate_event_date(D(2026, 1, 6), today, ANCHOR), 1)
        self.assertEqual(validate_event_date(D(2026, 1, 11), today, ANCHOR), 1)
        with self.assertRaises(EventWindowError) as ctx:
            validate_event_date(D(2026, 1, 12), today, ANCHOR)
        self.assertEqual(ctx.exception.reason, EventWindowError.NOT_CURRENT_WEEK)
        with self.assertRaises(EventWindowError) as ctx:
            validate_event_date(today, today, ANCHOR)
        self.assertEqual(ctx.exception.reason, EventWindowError.OUTSIDE_CYCLE)

    def test_window_error_is_value_error(self) -> None:
        self.assertTrue(issubclass(EventWindowError, ValueError))


class ParseDateTest(unittest.TestCase):
    def test_valid(self) -> None:
        self.assertEqual(parse_date("2026-01-05"), ANCHOR)
        self.assertEqual(parse_date(" 2026-01-05 "), ANCHOR)
        self.assertEqual(parse_date(ANCHOR), ANCHOR)

    def test_invalid(self) -> None:
        for bad in ["2026-1-5", "05.01.2026", "", "2026-02-30", None]:
            with self.assertRaises(ValueError):
                parse_date(bad)


class CycleConfigTest(unittest.TestCase):
    def test_group_anchor_aligned(self) -> None:
        cfg = CycleConfig.from_group("2026-02-04")
        self.assertEqual(cfg.anchor, D(2026, 2, 2))

    def test_default_used(self) -> None:
        self.assertEqual(CycleConfig.from_group(None).anchor, DEFAULT_CYCLE_ANCHOR)
        self.assertEqual(
            CycleConfig.from_group(None, "2025-06-04").anchor, D(2025, 6, 2)
        )

    def test_describe(self) -> None:
        info = CycleConfig(ANCHOR).describe(D(2026, 1, 14))
        self.assertEqual(info["week_no"], 2)
        self.assertEqual(info["cycle_start"], "2026-01-05")
        self.assertEqual(info["cycle_end"], "2026-03-29")
        self.assertEqual(info["week_start"], "2026-01-12")
        self.assertFalse(info["before_anchor"])


if __name__ == "__main__":
    unittest.main()
