import requests
from typing import Optional


class PlanClient:
    """Simple REST client for the plan API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: str = "",
        api_token: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.api_token = api_token
        self.session = requests.Session()

    def _headers(self) -> dict:
        headers = {"X-User-Id": self.user_id}
        if self.api_token:
            headers["X-Api-Token"] = self.api_token
        return headers

    def _call(self, method: str, path: str, **params):
        clean = {k: v for k, v in params.items() if v is not None}
        resp = self.session.request(
            method,
            f"{self.base_url}{path}",
            params=clean,
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()

    def set_display_name(self, name: str) -> None:
        self._call("PUT", "/profile", display_name=name)

    def add_weigh_in(self, weight_kg: float, entry_date: Optional[str] = None) -> int:
        return self._call("POST", "/weigh_ins", weight_kg=weight_kg, entry_date=entry_date)["id"]

    def list_weigh_ins(self, **params: str):
        return self._call("GET", "/weigh_ins", **params)

    def dashboard(self) -> dict:
        return self._call("GET", "/weigh_ins/dashboard")

    def create_group(self, name: str) -> dict:
        return self._call("POST", "/groups", name=name)

    def join_group(self, code: str) -> dict:
        return self._call("POST", "/groups/join", code=code)

    def leave_group(self) -> None:
        self._call("POST", "/groups/leave")

    def active_group(self) -> dict:
        return self._call("GET", "/groups/active")

    def create_rule(self, title: str, points: float) -> int:
        return self._call("POST", "/potatoes/rules", title=title, points=points)["id"]

    def list_rules(self, active_only: bool = False):
        return self._call("GET", "/potatoes/rules", active_only=active_only)

    def log_event(
        self, rule_id: int, occurred_on: Optional[str] = None, note: Optional[str] = None
    ) -> int:
        return self._call(
            "POST", "/potatoes/events", rule_id=rule_id, occurred_on=occurred_on, note=note
        )["id"]

    def potato_summary(self, member_id: Optional[str] = None) -> dict:
        return self._call("GET", "/potatoes/summary", member_id=member_id)

    def add_sport_type(self, name: str) -> int:
        return self._call("POST", "/sport_types", name=name)["id"]

    def add_training(self, sport_type_id: int, duration_min: int, **params) -> int:
        return self._call(
            "POST",
            "/training",
            sport_type_id=sport_type_id,
            duration_min=duration_min,
            **params,
        )["id"]

    def training_week(self, offset: int = 0) -> dict:
        return self._call("GET", "/training", offset=offset)
