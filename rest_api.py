import datetime
import logging
import secrets
import time
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    APIRouter,
    Request,
    Header,
    Depends,
)
from fastapi.responses import JSONResponse
from db import (
    SettingsRepository,
    ProfileRepository,
    GroupRepository,
    GroupMemberRepository,
    WeighInRepository,
    PotatoRuleRepository,
    PotatoEventRepository,
    SportTypeRepository,
    TrainingEntryRepository,
    AvatarRepository,
)
from profile_service import ProfileService
from group_service import GroupService
from weight_service import WeightService
from stats_service import StatisticsService
from points_service import PointsService
from training_service import TrainingService
from avatar_service import AvatarService
from cycle_calendar import EventWindowError, parse_date
from config import APP_VERSION

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60, clock=time.time) -> None:
        self.limit = limit
        self.window = window
        self.clock = clock
        self.requests: dict[str, list[float]] = {}

    def _prune(self, now: float) -> None:
        """Forget clients without a request inside the window."""
        stale = [
            ip
            for ip, history in self.requests.items()
            if not history or now - history[-1] >= self.window
        ]
        for ip in stale:
            del self.requests[ip]

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = self.clock()
        self._prune(now)
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            self.requests[ip] = history
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


def http_error(e: Exception) -> HTTPException:
    """Translate a service exception into an HTTP error."""
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, EventWindowError):
        return HTTPException(status_code=400, detail={"reason": e.reason, "message": str(e)})
    if "not found" in str(e):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


class PlanAPI:
    """Provides REST endpoints for weigh-ins, groups, potato points and training."""

    def __init__(
        self,
        db_path: str = "plan.db",
        yaml_path: str = "settings.yaml",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
        clock=datetime.date.today,
    ) -> None:
        self.db_path = db_path
        self.clock = clock
        self.settings = SettingsRepository(db_path, yaml_path)
        self.profile_repo = ProfileRepository(db_path)
        self.group_repo = GroupRepository(db_path)
        self.member_repo = GroupMemberRepository(db_path)
        self.weigh_ins = WeighInRepository(db_path)
        self.rules = PotatoRuleRepository(db_path)
        self.events = PotatoEventRepository(db_path)
        self.sport_types = SportTypeRepository(db_path)
        self.training_entries = TrainingEntryRepository(db_path)
        self.avatar_repo = AvatarRepository(db_path)
        self.profiles = ProfileService(self.profile_repo)
        self.groups = GroupService(
            self.group_repo, self.member_repo, self.profile_repo, self.settings
        )
        self.weights = WeightService(self.weigh_ins, self.profile_repo, today=clock)
        self.statistics = StatisticsService(
            self.weigh_ins, self.member_repo, self.settings
        )
        self.points = PointsService(
            self.rules,
            self.events,
            self.member_repo,
            self.groups,
            self.settings,
            today=clock,
        )
        self.training = TrainingService(
            self.sport_types,
            self.training_entries,
            self.member_repo,
            self.settings,
            today=clock,
        )
        self.avatars = AvatarService(self.avatar_repo, self.profile_repo, self.settings)
        self.app = FastAPI(
            title="Der Plan API",
            description="REST API for weigh-ins, group accountability and potato points",
            version=APP_VERSION,
        )
        self.rate_limiter = None
        if rate_limit is not None:
            self.rate_limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(self.rate_limiter)
        self._setup_routes()

    def _require_token(self, x_api_token: str | None = Header(None)) -> None:
        expected = self.settings.get_text("api_token", "")
        if not expected:
            return
        supplied = (x_api_token or "").encode("utf-8")
        if not secrets.compare_digest(supplied, expected.encode("utf-8")):
            logger.warning("request rejected: invalid X-Api-Token")
            raise HTTPException(status_code=401, detail="invalid API token")

    def _current_user(
        self,
        x_user_id: str | None = Header(None),
        x_api_token: str | None = Header(None),
    ) -> str:
        self._require_token(x_api_token)
        if not x_user_id or not x_user_id.strip():
            raise HTTPException(status_code=401, detail="X-User-Id header required")
        uid = x_user_id.strip()
        self.profiles.ensure_profile(uid)
        return uid

    def _active_group(self, user_id: str) -> dict:
        try:
            return self.groups.require_active_group(user_id)
        except ValueError as e:
            raise http_error(e)

    def _setup_routes(self) -> None:
        current_user = Depends(self._current_user)
        groups_router = APIRouter(prefix="/groups", tags=["Groups"])
        weigh_router = APIRouter(prefix="/weigh_ins", tags=["Weigh-ins"])
        potato_router = APIRouter(prefix="/potatoes", tags=["Potato points"])
        training_router = APIRouter(prefix="/training", tags=["Training"])
        sport_router = APIRouter(prefix="/sport_types", tags=["Sport types"])
        avatar_router = APIRouter(prefix="/avatars", tags=["Avatars"])

        @self.app.exception_handler(Exception)
        async def unexpected_error(request: Request, exc: Exception):
            logger.exception("unhandled error on %s", request.url.path)
            return JSONResponse({"detail": "internal error"}, status_code=500)

        @self.app.get("/health")
        def health():
            try:
                self.settings.fetch_all("SELECT 1;")
            except Exception as e:
                logger.exception("health check failed")
                raise HTTPException(status_code=500, detail=str(e))
            return {"status": "ok", "version": APP_VERSION}

        @self.app.get("/cycle")
        def cycle_info(date: str | None = None, user_id: str = current_user):
            try:
                day = parse_date(date) if date else self.clock()
            except ValueError as e:
                raise http_error(e)
            group = self.groups.active_group(user_id)
            if group is None:
                config = self.groups.cycle_config({})
            else:
                config = self.groups.cycle_config(group)
            return config.describe(day)

        # profile

        @self.app.get("/profile")
        def get_profile(user_id: str = current_user):
            return self.profiles.get(user_id)

        @self.app.put("/profile")
        def update_profile(display_name: str, user_id: str = current_user):
            try:
                self.profiles.set_display_name(user_id, display_name)
            except ValueError as e:
                raise http_error(e)
            return {"status": "updated"}

        @self.app.put("/profile/target_weight")
        def set_target_weight(
            target_weight_kg: str | None = None, user_id: str = current_user
        ):
            try:
                self.profiles.set_target_weight(user_id, target_weight_kg)
            except ValueError as e:
                raise http_error(e)
            return {"status": "updated"}

        @self.app.put("/profile/active_group")
        def set_active_group(group_id: int | None = None, user_id: str = current_user):
            try:
                if group_id is not None:
                    self.group_repo.fetch(group_id)
                    self.groups.require_member(group_id, user_id)
                self.profiles.set_active_group(user_id, group_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "updated"}

        # groups

        @groups_router.post("")
        def create_group(name: str, user_id: str = current_user):
            try:
                group = self.groups.create_group(user_id, name)
            except ValueError as e:
                raise http_error(e)
            return group

        @groups_router.post("/join")
        def join_group(code: str, user_id: str = current_user):
            try:
                return self.groups.join_group(user_id, code)
            except ValueError as e:
                raise http_error(e)

        @groups_router.post("/leave")
        def leave_group(user_id: str = current_user):
            try:
                self.groups.leave_group(user_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "left"}

        @groups_router.get("/active")
        def active_group(user_id: str = current_user):
            group = self._active_group(user_id)
            group["members"] = self.groups.members(group["id"])
            group["is_owner"] = group["owner_id"] == user_id
            return group

        @groups_router.put("/active/name")
        def rename_group(name: str, user_id: str = current_user):
            try:
                self.groups.rename_group(user_id, name)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @groups_router.post("/active/code")
        def regenerate_code(user_id: str = current_user):
            try:
                return {"code": self.groups.regenerate_code(user_id)}
            except (ValueError, PermissionError) as e:
                raise http_error(e)

        @groups_router.put("/active/anchor")
        def set_anchor(anchor: str | None = None, user_id: str = current_user):
            try:
                value = self.groups.set_cycle_anchor(user_id, anchor)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"potato_cycle_start": value}

        @groups_router.get("/active/members")
        def list_members(user_id: str = current_user):
            group = self._active_group(user_id)
            return self.groups.members(group["id"])

        @groups_router.delete("/active/members/{target_id}")
        def kick_member(target_id: str, user_id: str = current_user):
            try:
                self.groups.kick_member(user_id, target_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "removed"}

        @groups_router.get("/active/chart")
        def group_chart(offset: int = 0, user_id: str = current_user):
            group = self._active_group(user_id)
            members = self.groups.members(group["id"])
            data = self.statistics.group_chart(group["id"], members, offset)
            data["recent"] = self.statistics.member_recent(user_id)
            return data

        # weigh-ins

        @weigh_router.get("")
        def list_weigh_ins(
            start_date: str | None = None,
            end_date: str | None = None,
            user_id: str = current_user,
        ):
            return self.weights.history(user_id, start_date, end_date)

        @weigh_router.post("")
        def add_weigh_in(
            weight_kg: str, entry_date: str | None = None, user_id: str = current_user
        ):
            try:
                wid = self.weights.add(user_id, entry_date, weight_kg)
            except ValueError as e:
                raise http_error(e)
            return {"id": wid}

        @weigh_router.get("/dashboard")
        def dashboard(user_id: str = current_user):
            return self.weights.dashboard(user_id)

        @weigh_router.get("/chart")
        def weight_chart(offset: int = 0, user_id: str = current_user):
            return self.statistics.user_chart(user_id, offset)

        @weigh_router.get("/export_csv")
        def export_weigh_ins(user_id: str = current_user):
            data = self.weights.export_csv(user_id)
            return Response(
                content=data,
                media_type="text/csv",
                headers={"Content-Disposition": "attachment; filename=weigh_ins.csv"},
            )

        @weigh_router.put("/{entry_id}")
        def update_weigh_in(entry_id: int, weight_kg: str, user_id: str = current_user):
            try:
                self.weights.update(user_id, entry_id, weight_kg)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @weigh_router.delete("/{entry_id}")
        def delete_weigh_in(entry_id: int, user_id: str = current_user):
            try:
                self.weights.delete(user_id, entry_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @self.app.get("/stats/weight_stats")
        def weight_stats(
            start_date: str | None = None,
            end_date: str | None = None,
            user_id: str = current_user,
        ):
            return self.statistics.weight_stats(user_id, start_date, end_date)

        @self.app.get("/stats/weight_forecast")
        def weight_forecast(days: int = 7, user_id: str = current_user):
            try:
                return self.statistics.weight_forecast(user_id, days)
            except ValueError as e:
                raise http_error(e)

        # potato points

        @potato_router.get("/rules")
        def list_rules(active_only: bool = False, user_id: str = current_user):
            group = self._active_group(user_id)
            return self.points.list_rules(group["id"], active_only)

        @potato_router.post("/rules")
        def create_rule(title: str, points: str = "1", user_id: str = current_user):
            group = self._active_group(user_id)
            try:
                rid = self.points.create_rule(user_id, group["id"], title, points)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"id": rid}

        @potato_router.put("/rules/{rule_id}")
        def update_rule(
            rule_id: int,
            title: str | None = None,
            points: str | None = None,
            user_id: str = current_user,
        ):
            try:
                if title is not None:
                    self.points.update_title(user_id, rule_id, title)
                if points is not None:
                    self.points.update_points(user_id, rule_id, points)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @potato_router.post("/rules/{rule_id}/toggle")
        def toggle_rule(rule_id: int, user_id: str = current_user):
            try:
                active = self.points.toggle_active(user_id, rule_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"active": active}

        @potato_router.delete("/rules/{rule_id}")
        def delete_rule(rule_id: int, user_id: str = current_user):
            try:
                self.points.delete_rule(user_id, rule_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @potato_router.get("/events")
        def list_events(member_id: str | None = None, user_id: str = current_user):
            group = self._active_group(user_id)
            return self.points.events_in_cycle(group["id"], member_id)

        @potato_router.post("/events")
        def log_event(
            rule_id: int | None = None,
            occurred_on: str | None = None,
            note: str | None = None,
            user_id: str = current_user,
        ):
            group = self._active_group(user_id)
            try:
                eid = self.points.log_event(
                    user_id, group["id"], rule_id, occurred_on, note
                )
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"id": eid}

        @potato_router.delete("/events/{event_id}")
        def delete_event(event_id: int, user_id: str = current_user):
            try:
                self.points.delete_event(user_id, event_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @potato_router.get("/summary")
        def potato_summary(member_id: str | None = None, user_id: str = current_user):
            group = self._active_group(user_id)
            target = member_id or user_id
            try:
                self.groups.require_member(group["id"], target)
            except PermissionError as e:
                raise http_error(e)
            return self.points.member_summary(group["id"], target)

        @potato_router.get("/leaderboard")
        def potato_leaderboard(user_id: str = current_user):
            group = self._active_group(user_id)
            return self.points.leaderboard(group["id"], self.groups.members(group["id"]))

        # training

        @sport_router.get("")
        def list_sport_types(active_only: bool = False, user_id: str = current_user):
            group = self._active_group(user_id)
            return self.training.list_sport_types(group["id"], active_only)

        @sport_router.post("")
        def add_sport_type(name: str, user_id: str = current_user):
            group = self._active_group(user_id)
            try:
                tid = self.training.add_sport_type(user_id, group["id"], name)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"id": tid}

        @sport_router.post("/{type_id}/toggle")
        def toggle_sport_type(type_id: int, user_id: str = current_user):
            try:
                active = self.training.toggle_sport_type(user_id, type_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"active": active}

        @training_router.get("")
        def training_week(offset: int = 0, user_id: str = current_user):
            group = self._active_group(user_id)
            return self.training.week(user_id, group["id"], offset)

        @training_router.post("")
        def add_training(
            sport_type_id: int,
            duration_min: str,
            occurred_on: str | None = None,
            distance_km: str | None = None,
            intensity: str | None = None,
            note: str | None = None,
            user_id: str = current_user,
        ):
            group = self._active_group(user_id)
            try:
                tid = self.training.add_entry(
                    user_id,
                    group["id"],
                    sport_type_id,
                    occurred_on,
                    duration_min,
                    distance_km,
                    intensity,
                    note,
                )
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"id": tid}

        @training_router.get("/kpis")
        def training_kpis(user_id: str = current_user):
            group = self._active_group(user_id)
            return self.training.kpis(user_id, group["id"])

        @training_router.put("/{entry_id}")
        def update_training(
            entry_id: int,
            sport_type_id: int,
            occurred_on: str,
            duration_min: str,
            distance_km: str | None = None,
            intensity: str | None = None,
            note: str | None = None,
            user_id: str = current_user,
        ):
            try:
                self.training.update_entry(
                    user_id,
                    entry_id,
                    sport_type_id,
                    occurred_on,
                    duration_min,
                    distance_km,
                    intensity,
                    note,
                )
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @training_router.delete("/{entry_id}")
        def delete_training(entry_id: int, user_id: str = current_user):
            try:
                self.training.delete_entry(user_id, entry_id)
            except (ValueError, PermissionError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        # avatars

        @avatar_router.post("")
        async def upload_avatar(request: Request, user_id: str = current_user):
            data = await request.body()
            ctype = request.headers.get("content-type", "").split(";")[0].strip()
            try:
                url = self.avatars.upload(user_id, data, ctype)
            except ValueError as e:
                raise http_error(e)
            return {"avatar_url": url}

        @avatar_router.delete("")
        def delete_avatar(user_id: str = current_user):
            try:
                self.avatars.delete(user_id)
            except ValueError as e:
                raise http_error(e)
            return {"status": "deleted"}

        @avatar_router.get("/default/{member_id}")
        def default_avatar(member_id: str, index: int = 0):
            profile = self.profile_repo.fetch(member_id) or {}
            data = self.avatars.default_avatar(profile.get("display_name"), index)
            return Response(content=data, media_type="image/png")

        @avatar_router.get("/{path:path}")
        def get_avatar(path: str):
            try:
                ctype, data = self.avatars.fetch(path)
            except ValueError as e:
                raise http_error(e)
            return Response(content=data, media_type=ctype)

        @self.app.get(
            "/settings/backup", dependencies=[Depends(self._require_token)]
        )
        def backup_db():
            with open(self.db_path, "rb") as f:
                data = f.read()
            return Response(
                content=data,
                media_type="application/octet-stream",
                headers={"Content-Disposition": "attachment; filename=backup.db"},
            )

        self.app.include_router(groups_router)
        self.app.include_router(weigh_router)
        self.app.include_router(potato_router)
        self.app.include_router(sport_router)
        self.app.include_router(training_router)
        self.app.include_router(avatar_router)


api = PlanAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app)
