import csv
import io
import logging
import datetime
from typing import Callable

from db import WeighInRepository, ProfileRepository
from cycle_calendar import parse_date, add_days, diff_days
from tools import NumberTools

logger = logging.getLogger(__name__)


class WeightService:
    """Record daily weigh-ins and derive the personal dashboard."""

    def __init__(
        self,
        repo: WeighInRepository,
        profiles: ProfileRepository,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.repo = repo
        self.profiles = profiles
        self.today = today

    @staticmethod
    def _weight(value) -> float:
        weight = NumberTools.parse_number_or_none(value)
        if weight is None or weight <= 0:
            raise ValueError("weight must be positive")
        return weight

    def add(self, user_id: str, entry_date, weight_kg) -> int:
        day = parse_date(entry_date) if entry_date else self.today()
        weight = self._weight(weight_kg)
        if self.repo.fetch_for_date(user_id, day.isoformat()) is not None:
            raise ValueError("a weigh-in already exists for this date")
        return self.repo.add(user_id, day.isoformat(), weight)

    def _own(self, user_id: str, entry_id: int) -> None:
        _id, owner, _day, _w = self.repo.fetch_detail(entry_id)
        if owner != user_id:
            raise PermissionError("weigh-in belongs to another user")

    def update(self, user_id: str, entry_id: int, weight_kg) -> None:
        weight = self._weight(weight_kg)
        self._own(user_id, entry_id)
        self.repo.update(entry_id, weight)

    def delete(self, user_id: str, entry_id: int) -> None:
        self._own(user_id, entry_id)
        self.repo.delete(entry_id)

    def history(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        rows = self.repo.fetch_history([user_id], start_date, end_date, limit)
        return [
            {"id": rid, "entry_date": day, "weight_kg": weight}
            for rid, _uid, day, weight in rows
        ]

    @staticmethod
    def previous_week_entry(entries_desc: list[dict]) -> dict | None:
        """First entry dated at least seven days before the latest one."""
        if not entries_desc:
            return None
        latest_day = parse_date(entries_desc[0]["entry_date"])
        target = add_days(latest_day, -7).isoformat()
        for entry in entries_desc:
            if entry["entry_date"] <= target:
                return entry
        return None

    def dashboard(self, user_id: str) -> dict:
        entries = self.history(user_id)
        profile = self.profiles.fetch(user_id) or {}
        target = profile.get("target_weight_kg")
        latest = entries[0] if entries else None
        prev = self.previous_week_entry(entries)
        diff_goal = None
        if latest is not None and target is not None:
            diff_goal = round(latest["weight_kg"] - target, 2)
        diff_prev = None
        gap_days = None
        if latest is not None and prev is not None:
            diff_prev = round(latest["weight_kg"] - prev["weight_kg"], 2)
            gap_days = diff_days(
                parse_date(latest["entry_date"]), parse_date(prev["entry_date"])
            )
        return {
            "latest": latest,
            "previous_week": prev,
            "target_weight_kg": target,
            "diff_to_goal": diff_goal,
            "diff_to_prev_week": diff_prev,
            "prev_week_gap_days": gap_days,
            "count": len(entries),
        }

    def export_csv(self, user_id: str) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(["date", "weight_kg"])
        for entry in reversed(self.history(user_id)):
            writer.writerow([entry["entry_date"], entry["weight_kg"]])
        return buf.getvalue()
