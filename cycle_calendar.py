"""Week and 12-week cycle arithmetic for the potato points game.

All functions operate on calendar days (``datetime.date``). Callers resolve
"today" in the user's local calendar before calling in; nothing here looks
at clocks or timezones.
"""

import datetime
from dataclasses import dataclass

CYCLE_WEEKS = 12
CYCLE_DAYS = CYCLE_WEEKS * 7
DEFAULT_CYCLE_ANCHOR = datetime.date(2026, 1, 5)


class EventWindowError(ValueError):
    """Raised when a point event falls outside the loggable window."""

    OUTSIDE_CYCLE = "outside_cycle"
    NOT_CURRENT_WEEK = "not_current_week"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


def parse_date(text: str | datetime.date) -> datetime.date:
    """Parse a ``YYYY-MM-DD`` string, rejecting anything else."""
    if isinstance(text, datetime.date):
        return text
    try:
        if len(text.strip()) != 10:
            raise ValueError
        return datetime.date.fromisoformat(text.strip())
    except (AttributeError, ValueError):
        raise ValueError("date must be in YYYY-MM-DD format")


def add_days(day: datetime.date, days: int) -> datetime.date:
    return day + datetime.timedelta(days=days)


def diff_days(a: datetime.date, b: datetime.date) -> int:
    """Signed number of days from ``b`` to ``a``."""
    return (a - b).days


def week_start(day: datetime.date) -> datetime.date:
    """Return the Monday on or before ``day``."""
    # isoweekday: Monday=1 .. Sunday=7
    return day - datetime.timedelta(days=day.isoweekday() - 1)


def week_end(day: datetime.date) -> datetime.date:
    return add_days(week_start(day), 6)


def cycle_start(eval_date: datetime.date, anchor: datetime.date) -> datetime.date:
    """Return the Monday starting the 12-week cycle containing ``eval_date``.

    Dates before the anchor's week are clamped into the anchor's own cycle.
    """
    aligned_anchor = week_start(anchor)
    delta = diff_days(week_start(eval_date), aligned_anchor)
    if delta < 0:
        return aligned_anchor
    cycles = (delta // 7) // CYCLE_WEEKS
    return add_days(aligned_anchor, cycles * CYCLE_DAYS)


def cycle_end(cycle_start_date: datetime.date) -> datetime.date:
    """Return the Sunday closing the 12th week of the cycle."""
    return add_days(cycle_start_date, CYCLE_DAYS - 1)


def week_number_in_cycle(
    eval_date: datetime.date, cycle_start_date: datetime.date
) -> int:
    """Return the 1-12 week index of ``eval_date`` within its cycle."""
    delta = diff_days(week_start(eval_date), cycle_start_date)
    if delta < 0:
        return 1
    return (delta // 7) % CYCLE_WEEKS + 1


def is_before_anchor(day: datetime.date, anchor: datetime.date) -> bool:
    """True when ``day`` lies in a week before the anchor's week.

    Such dates are silently clamped by :func:`cycle_start` and
    :func:`week_number_in_cycle`; this makes the condition visible.
    """
    return week_start(day) < week_start(anchor)


def cycle_weeks(
    cycle_start_date: datetime.date,
) -> list[tuple[int, datetime.date, datetime.date]]:
    """Return ``(week_no, monday, sunday)`` for every week of the cycle."""
    rows = []
    for idx in range(CYCLE_WEEKS):
        monday = add_days(cycle_start_date, idx * 7)
        rows.append((idx + 1, monday, add_days(monday, 6)))
    return rows


def current_week_bounds(
    today: datetime.date, anchor: datetime.date
) -> tuple[datetime.date, datetime.date]:
    start = cycle_start(today, anchor)
    week_no = week_number_in_cycle(today, start)
    monday = add_days(start, (week_no - 1) * 7)
    return monday, add_days(monday, 6)


def validate_event_date(
    event_date: datetime.date, today: datetime.date, anchor: datetime.date
) -> int:
    """Check that ``event_date`` may be logged ``today``.

    Accepted dates lie inside the current cycle and share today's week
    number. Before the anchor today counts as week 1, so the anchor's first
    week stays open. A rejected date outside today's Monday-Sunday week is
    reported as ``not_current_week``, anything else as ``outside_cycle``.

    Returns the week number of the accepted date.
    """
    start = cycle_start(today, anchor)
    end = cycle_end(start)
    if start <= event_date <= end:
        week_no = week_number_in_cycle(event_date, start)
        if week_no == week_number_in_cycle(today, start):
            return week_no
    if week_start(event_date) != week_start(today):
        raise EventWindowError(
            EventWindowError.NOT_CURRENT_WEEK,
            "points can only be logged for the current week (Mon-Sun)",
        )
    raise EventWindowError(
        EventWindowError.OUTSIDE_CYCLE,
        "date is not within the current 12-week cycle",
    )


@dataclass(frozen=True)
class CycleConfig:
    """Cycle anchor for one group."""

    anchor: datetime.date = DEFAULT_CYCLE_ANCHOR

    @classmethod
    def from_group(
        cls,
        potato_cycle_start: str | datetime.date | None,
        default_anchor: str | datetime.date = DEFAULT_CYCLE_ANCHOR,
    ) -> "CycleConfig":
        if potato_cycle_start:
            return cls(week_start(parse_date(potato_cycle_start)))
        return cls(week_start(parse_date(default_anchor)))

    def start_for(self, day: datetime.date) -> datetime.date:
        return cycle_start(day, self.anchor)

    def end_for(self, day: datetime.date) -> datetime.date:
        return cycle_end(self.start_for(day))

    def week_no(self, day: datetime.date, today: datetime.date | None = None) -> int:
        """Week number of ``day`` in the cycle containing ``today``."""
        ref = today if today is not None else day
        return week_number_in_cycle(day, self.start_for(ref))

    def describe(self, day: datetime.date) -> dict:
        start = self.start_for(day)
        monday, sunday = current_week_bounds(day, self.anchor)
        return {
            "date": day.isoformat(),
            "anchor": self.anchor.isoformat(),
            "cycle_start": start.isoformat(),
            "cycle_end": cycle_end(start).isoformat(),
            "week_no": week_number_in_cycle(day, start),
            "week_start": monday.isoformat(),
            "week_end": sunday.isoformat(),
            "before_anchor": is_before_anchor(day, self.anchor),
        }
