from __future__ import annotations
import math
import datetime
from typing import List, Optional, Dict, Sequence

import numpy as np

from db import WeighInRepository, GroupMemberRepository, SettingsRepository
from cycle_calendar import parse_date, add_days
from tools import DisplayTools


class ChartPager:
    """Fixed-size pages over a newest-first sequence.

    ``offset`` counts items from the newest one. Offsets are clamped to
    ``[0, max_offset]`` so the oldest page is always full when enough data
    exists.
    """

    def __init__(self, items_desc: Sequence, window: int = 10, key=None) -> None:
        if window < 1:
            raise ValueError("window must be positive")
        self.items = list(items_desc)
        self.window = window
        self._key = key or (lambda item: item)

    @property
    def max_offset(self) -> int:
        return max(0, len(self.items) - self.window)

    @property
    def page_count(self) -> int:
        if not self.items:
            return 0
        return math.ceil(len(self.items) / self.window)

    def clamp(self, offset: int) -> int:
        return max(0, min(int(offset), self.max_offset))

    def page(self, offset: int = 0) -> list:
        """Items of the page starting at ``offset``, newest first."""
        start = self.clamp(offset)
        return self.items[start : start + self.window]

    def older(self, offset: int) -> int:
        return min(offset + self.window, self.max_offset)

    def newer(self, offset: int) -> int:
        return max(offset - self.window, 0)

    def current_page(self, offset: int) -> int:
        """Zero-based page index; the clamped oldest page counts as the last one."""
        start = self.clamp(offset)
        if self.items and start == self.max_offset:
            return self.page_count - 1
        return start // self.window

    def jump(self, page: int) -> int:
        """Offset for page ``page``, clamped like every other offset."""
        p = max(0, min(page, max(0, self.page_count - 1)))
        return self.clamp(p * self.window)

    def range_label(self, offset: int = 0) -> str:
        items = self.page(offset)
        if not items:
            return ""
        newest = self._key(items[0])
        oldest = self._key(items[-1])
        return f"{DisplayTools.fmt_date_de(oldest)} – {DisplayTools.fmt_date_de(newest)}"

    def describe(self, offset: int = 0) -> dict:
        return {
            "offset": self.clamp(offset),
            "max_offset": self.max_offset,
            "page_count": self.page_count,
            "current_page": self.current_page(offset),
            "range_label": self.range_label(offset),
            "has_older": self.clamp(offset) < self.max_offset,
            "has_newer": self.clamp(offset) > 0,
            "older_offset": self.older(self.clamp(offset)),
            "newer_offset": self.newer(self.clamp(offset)),
        }


class StatisticsService:
    """Compute weigh-in charts and statistics."""

    def __init__(
        self,
        weigh_in_repo: WeighInRepository,
        member_repo: GroupMemberRepository | None = None,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.weigh_ins = weigh_in_repo
        self.members = member_repo
        self.settings = settings_repo

    def _window(self) -> int:
        if self.settings is None:
            return 10
        return self.settings.get_int("chart_window", 10)

    def _limit(self) -> int:
        if self.settings is None:
            return 3000
        return self.settings.get_int("weigh_in_limit", 3000)

    def user_chart(self, user_id: str, offset: int = 0) -> Dict:
        """One chart page of ``user_id``'s weigh-ins in ascending order."""
        rows = self.weigh_ins.fetch_history([user_id], limit=self._limit())
        entries = [{"date": r[2], "weight": r[3]} for r in rows]
        pager = ChartPager(entries, self._window(), key=lambda e: e["date"])
        points = list(reversed(pager.page(offset)))
        info = pager.describe(offset)
        info["points"] = points
        return info

    def group_chart(
        self, group_id: int, members: List[Dict], offset: int = 0
    ) -> Dict:
        """Chart page across all members of ``group_id``.

        ``members`` is the ordered member list from the group service. Each
        row carries one value per member and ``None`` where the member has no
        entry on that date.
        """
        ids = [m["user_id"] for m in members]
        rows = self.weigh_ins.fetch_history(ids, limit=self._limit())
        by_date: dict[str, dict[str, float]] = {}
        for _rid, uid, day, weight in rows:
            by_date.setdefault(day, {})[uid] = weight
        dates_desc = sorted(by_date.keys(), reverse=True)
        pager = ChartPager(dates_desc, self._window())
        chart_rows = []
        for day in reversed(pager.page(offset)):
            row = {"date": day}
            for uid in ids:
                row[uid] = by_date[day].get(uid)
            chart_rows.append(row)

        latest: dict[str, tuple[str, float]] = {}
        for _rid, uid, day, weight in rows:
            if uid not in latest:
                latest[uid] = (day, weight)
        latest_rows = [
            {
                "user_id": m["user_id"],
                "name": m["display_name"],
                "date": latest.get(m["user_id"], (None, None))[0],
                "weight": latest.get(m["user_id"], (None, None))[1],
            }
            for m in members
        ]
        latest_rows.sort(key=lambda r: r["name"].lower())

        info = pager.describe(offset)
        info.update(
            {
                "group_id": group_id,
                "series": [
                    {
                        "user_id": m["user_id"],
                        "name": m["display_name"],
                        "color": m.get("color"),
                    }
                    for m in members
                ],
                "rows": chart_rows,
                "latest_by_member": latest_rows,
            }
        )
        return info

    def member_recent(self, user_id: str, n: int = 5) -> List[Dict]:
        rows = self.weigh_ins.fetch_history([user_id], limit=n)
        return [{"id": r[0], "entry_date": r[2], "weight_kg": r[3]} for r in rows]

    def weight_stats(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, float]:
        """Return average, minimum and maximum body weight."""
        rows = self.weigh_ins.fetch_history([user_id], start_date, end_date)
        weights = [r[3] for r in rows]
        if not weights:
            return {"avg": 0.0, "min": 0.0, "max": 0.0, "count": 0}
        return {
            "avg": round(sum(weights) / len(weights), 2),
            "min": round(min(weights), 2),
            "max": round(max(weights), 2),
            "count": len(weights),
        }

    def weight_forecast(self, user_id: str, days: int) -> List[Dict[str, float]]:
        """Project body weight ``days`` ahead from a linear trend."""
        if days < 1:
            raise ValueError("days must be positive")
        rows = self.weigh_ins.fetch_history([user_id])
        if not rows:
            return []
        rows = list(reversed(rows))
        first = parse_date(rows[0][2])
        last = parse_date(rows[-1][2])
        xs = np.array([(parse_date(r[2]) - first).days for r in rows], dtype=float)
        ys = np.array([r[3] for r in rows], dtype=float)
        if len(rows) < 2 or np.ptp(xs) == 0:
            slope, intercept = 0.0, float(ys[-1])
        else:
            slope, intercept = np.polyfit(xs, ys, 1)
        offset = (last - first).days
        result: List[Dict[str, float]] = []
        for d in range(1, days + 1):
            day: datetime.date = add_days(last, d)
            value = intercept + slope * (offset + d)
            result.append(
                {"day": d, "date": day.isoformat(), "weight": round(float(value), 2)}
            )
        return result
