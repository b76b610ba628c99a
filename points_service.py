import logging
import datetime
from typing import Callable

from db import (
    PotatoRuleRepository,
    PotatoEventRepository,
    GroupMemberRepository,
    SettingsRepository,
)
from cycle_calendar import (
    EventWindowError,
    parse_date,
    cycle_end,
    cycle_weeks,
    week_number_in_cycle,
    current_week_bounds,
    validate_event_date,
)
from group_service import GroupService
from tools import NumberTools

logger = logging.getLogger(__name__)


class PointsService:
    """Rules and point events of the 12-week potato cycle."""

    def __init__(
        self,
        rule_repo: PotatoRuleRepository,
        event_repo: PotatoEventRepository,
        member_repo: GroupMemberRepository,
        group_service: GroupService,
        settings_repo: SettingsRepository | None = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.rules = rule_repo
        self.events = event_repo
        self.members = member_repo
        self.groups = group_service
        self.settings = settings_repo
        self.today = today

    @staticmethod
    def _title(title: str) -> str:
        clean = (title or "").strip()
        if len(clean) < 2:
            raise ValueError("rule title must have at least 2 characters")
        return clean

    def _require_member(self, group_id: int, user_id: str) -> None:
        if not self.members.is_member(group_id, user_id):
            logger.warning("user %s is not a member of group %s", user_id, group_id)
            raise PermissionError("not a member of this group")

    def _rule_for(self, user_id: str, rule_id: int) -> dict:
        rule = self.rules.fetch(rule_id)
        self._require_member(rule["group_id"], user_id)
        return rule

    def _event_limit(self) -> int:
        if self.settings is None:
            return 5000
        return self.settings.get_int("event_limit", 5000)

    # rules

    def create_rule(self, user_id: str, group_id: int, title: str, points) -> int:
        clean = self._title(title)
        pts = NumberTools.require_finite(points, "points")
        self._require_member(group_id, user_id)
        rid = self.rules.add(group_id, clean, pts, True)
        logger.info("rule %s created in group %s", rid, group_id)
        return rid

    def list_rules(self, group_id: int, active_only: bool = False) -> list[dict]:
        return self.rules.fetch_for_group(group_id, active_only)

    def update_title(self, user_id: str, rule_id: int, title: str) -> None:
        clean = self._title(title)
        self._rule_for(user_id, rule_id)
        self.rules.update(rule_id, title=clean)

    def update_points(self, user_id: str, rule_id: int, points) -> None:
        pts = NumberTools.require_finite(points, "points")
        self._rule_for(user_id, rule_id)
        self.rules.update(rule_id, points=pts)

    def toggle_active(self, user_id: str, rule_id: int) -> bool:
        rule = self._rule_for(user_id, rule_id)
        self.rules.update(rule_id, active=not rule["active"])
        return not rule["active"]

    def delete_rule(self, user_id: str, rule_id: int) -> None:
        self._rule_for(user_id, rule_id)
        self.rules.delete(rule_id)
        logger.info("rule %s deleted", rule_id)

    # events

    def _cycle(self, group_id: int):
        group = self.groups.groups.fetch(group_id)
        return self.groups.cycle_config(group)

    def log_event(
        self,
        user_id: str,
        group_id: int,
        rule_id: int | None,
        occurred_on=None,
        note: str | None = None,
    ) -> int:
        """Record a point event for ``user_id`` in the current week.

        Points are copied from the rule so later edits to the rule do not
        rewrite history.
        """
        self._require_member(group_id, user_id)
        if not rule_id:
            raise ValueError("a rule must be chosen")
        rule = self.rules.fetch(rule_id)
        if rule["group_id"] != group_id:
            raise ValueError("rule not found in this group")
        if not rule["active"]:
            raise ValueError("rule is inactive")
        today = self.today()
        day = parse_date(occurred_on) if occurred_on else today
        config = self._cycle(group_id)
        try:
            week_no = validate_event_date(day, today, config.anchor)
        except EventWindowError as e:
            logger.warning(
                "rejected event for %s on %s: %s", user_id, day.isoformat(), e.reason
            )
            raise
        clean_note = (note or "").strip() or None
        eid = self.events.add(
            group_id, user_id, rule_id, day.isoformat(), rule["points"], clean_note
        )
        logger.info(
            "event %s logged for %s in week %s (%s points)",
            eid,
            user_id,
            week_no,
            rule["points"],
        )
        return eid

    def delete_event(self, user_id: str, event_id: int) -> None:
        event = self.events.fetch(event_id)
        if event["user_id"] != user_id:
            raise PermissionError("event belongs to another user")
        config = self._cycle(event["group_id"])
        validate_event_date(parse_date(event["occurred_on"]), self.today(), config.anchor)
        self.events.delete(event_id)
        logger.info("event %s deleted", event_id)

    def events_in_cycle(self, group_id: int, user_id: str | None = None) -> list[dict]:
        config = self._cycle(group_id)
        start = config.start_for(self.today())
        return self.events.fetch_range(
            group_id,
            start.isoformat(),
            cycle_end(start).isoformat(),
            user_id,
            self._event_limit(),
        )

    def member_summary(self, group_id: int, user_id: str) -> dict:
        """Weekly point totals of ``user_id`` over the current cycle."""
        today = self.today()
        config = self._cycle(group_id)
        start = config.start_for(today)
        events = self.events_in_cycle(group_id, user_id)
        by_week: dict[int, float] = {}
        for event in events:
            wno = week_number_in_cycle(parse_date(event["occurred_on"]), start)
            by_week[wno] = by_week.get(wno, 0.0) + event["points"]
        weeks = [
            {
                "week_no": no,
                "week_start": monday.isoformat(),
                "week_end": sunday.isoformat(),
                "points": by_week.get(no, 0.0),
            }
            for no, monday, sunday in cycle_weeks(start)
        ]
        current_no = week_number_in_cycle(today, start)
        monday, sunday = current_week_bounds(today, config.anchor)
        current_events = [
            e
            for e in events
            if monday.isoformat() <= e["occurred_on"] <= sunday.isoformat()
        ]
        return {
            "user_id": user_id,
            "cycle_start": start.isoformat(),
            "cycle_end": cycle_end(start).isoformat(),
            "points_by_week": by_week,
            "weeks": weeks,
            "total": sum(w["points"] for w in weeks),
            "current_week_no": current_no,
            "current_week_start": monday.isoformat(),
            "current_week_end": sunday.isoformat(),
            "current_week_points": by_week.get(current_no, 0.0),
            "current_week_events": current_events,
        }

    def leaderboard(self, group_id: int, members: list[dict]) -> list[dict]:
        """Cycle totals per member, fewest points first."""
        events = self.events_in_cycle(group_id)
        totals: dict[str, float] = {}
        for event in events:
            totals[event["user_id"]] = totals.get(event["user_id"], 0.0) + event["points"]
        board = [
            {
                "user_id": m["user_id"],
                "name": m["display_name"],
                "points": totals.get(m["user_id"], 0.0),
            }
            for m in members
        ]
        board.sort(key=lambda r: (r["points"], r["name"].lower()))
        for idx, row in enumerate(board, start=1):
            row["rank"] = idx
        return board
