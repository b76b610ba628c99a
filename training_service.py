import logging
import datetime
from typing import Callable

from db import SportTypeRepository, TrainingEntryRepository, GroupMemberRepository, SettingsRepository
from cycle_calendar import parse_date, add_days, week_start
from tools import NumberTools, DisplayTools

logger = logging.getLogger(__name__)


class TrainingService:
    """Sport types and logged training sessions."""

    def __init__(
        self,
        sport_repo: SportTypeRepository,
        entry_repo: TrainingEntryRepository,
        member_repo: GroupMemberRepository,
        settings_repo: SettingsRepository | None = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.sports = sport_repo
        self.entries = entry_repo
        self.members = member_repo
        self.settings = settings_repo
        self.today = today

    def _require_member(self, group_id: int, user_id: str) -> None:
        if not self.members.is_member(group_id, user_id):
            raise PermissionError("not a member of this group")

    def _limit(self) -> int:
        if self.settings is None:
            return 2000
        return self.settings.get_int("training_limit", 2000)

    # sport types

    def add_sport_type(self, user_id: str, group_id: int, name: str) -> int:
        clean = (name or "").strip()
        if not clean:
            raise ValueError("sport type name required")
        self._require_member(group_id, user_id)
        tid = self.sports.add(group_id, clean, user_id)
        logger.info("sport type %s added to group %s", clean, group_id)
        return tid

    def toggle_sport_type(self, user_id: str, type_id: int) -> bool:
        sport = self.sports.fetch(type_id)
        self._require_member(sport["group_id"], user_id)
        self.sports.set_active(type_id, not sport["active"])
        return not sport["active"]

    def list_sport_types(self, group_id: int, active_only: bool = False) -> list[dict]:
        types = self.sports.fetch_for_group(group_id)
        if active_only:
            types = [t for t in types if t["active"]]
        return sorted(types, key=lambda t: (not t["active"], t["name"].lower()))

    # entries

    def _validated(
        self, group_id: int, sport_type_id, occurred_on, duration_min, distance_km, intensity, note
    ) -> dict:
        if not sport_type_id:
            raise ValueError("a sport type must be chosen")
        sport = self.sports.fetch(int(sport_type_id))
        if sport["group_id"] != group_id:
            raise ValueError("sport type not found in this group")
        duration = NumberTools.int_or_none(duration_min)
        if duration is None or duration <= 0:
            raise ValueError("duration must be a number > 0")
        distance = NumberTools.parse_number_or_none(distance_km)
        if distance is not None and distance < 0:
            raise ValueError("distance must be empty or >= 0")
        level = NumberTools.int_or_none(intensity)
        if level is not None and not 1 <= level <= 7:
            raise ValueError("intensity must be 1-7 or empty")
        day = parse_date(occurred_on) if occurred_on else self.today()
        return {
            "sport_type_id": sport["id"],
            "occurred_on": day.isoformat(),
            "duration_min": duration,
            "distance_km": distance,
            "intensity": level,
            "note": (note or "").strip() or None,
        }

    def add_entry(
        self,
        user_id: str,
        group_id: int,
        sport_type_id,
        occurred_on=None,
        duration_min=None,
        distance_km=None,
        intensity=None,
        note: str | None = None,
    ) -> int:
        self._require_member(group_id, user_id)
        data = self._validated(
            group_id, sport_type_id, occurred_on, duration_min, distance_km, intensity, note
        )
        return self.entries.add(group_id, user_id, **data)

    def _own(self, user_id: str, entry_id: int) -> dict:
        entry = self.entries.fetch(entry_id)
        if entry["user_id"] != user_id:
            raise PermissionError("training entry belongs to another user")
        return entry

    def update_entry(
        self,
        user_id: str,
        entry_id: int,
        sport_type_id,
        occurred_on,
        duration_min,
        distance_km=None,
        intensity=None,
        note: str | None = None,
    ) -> None:
        entry = self._own(user_id, entry_id)
        data = self._validated(
            entry["group_id"], sport_type_id, occurred_on, duration_min, distance_km, intensity, note
        )
        self.entries.update(entry_id, **data)

    def delete_entry(self, user_id: str, entry_id: int) -> None:
        self._own(user_id, entry_id)
        self.entries.delete(entry_id)

    @staticmethod
    def week_title(offset: int) -> str:
        if offset == 0:
            return "Diese Woche"
        if offset == 1:
            return "Letzte Woche"
        return f"Woche -{offset}"

    def week(self, user_id: str, group_id: int, offset: int = 0) -> dict:
        """Entries and totals for the Monday-Sunday week ``offset`` weeks back."""
        offset = max(0, int(offset))
        monday = add_days(week_start(self.today()), -7 * offset)
        sunday = add_days(monday, 6)
        entries = self.entries.fetch_for_user(
            group_id, user_id, monday.isoformat(), sunday.isoformat()
        )
        totals = {
            "sessions": len(entries),
            "minutes": sum(e["duration_min"] for e in entries),
            "km": round(sum(e["distance_km"] or 0.0 for e in entries), 2),
        }
        by_sport: dict[str, dict] = {}
        for e in entries:
            name = DisplayTools.safe_name(e["sport_type"])
            row = by_sport.setdefault(name, {"name": name, "sessions": 0, "minutes": 0, "km": 0.0})
            row["sessions"] += 1
            row["minutes"] += e["duration_min"]
            row["km"] = round(row["km"] + (e["distance_km"] or 0.0), 2)
        return {
            "offset": offset,
            "title": self.week_title(offset),
            "week_start": monday.isoformat(),
            "week_end": sunday.isoformat(),
            "entries": entries,
            "totals": totals,
            "by_sport": sorted(by_sport.values(), key=lambda r: r["minutes"], reverse=True),
        }

    def kpis(self, user_id: str, group_id: int) -> dict:
        entries = self.entries.fetch_for_user(group_id, user_id, limit=self._limit())
        since = add_days(self.today(), -6).isoformat()
        last7 = [e for e in entries if e["occurred_on"] >= since]
        return {
            "minutes_7d": sum(e["duration_min"] for e in last7),
            "sessions_7d": len(last7),
            "minutes_all": sum(e["duration_min"] for e in entries),
            "sessions_all": len(entries),
        }
