import datetime
import os
import warnings
import pandas as pd
import streamlit as st
import altair as alt
from altair.utils.deprecation import AltairDeprecationWarning

warnings.filterwarnings("ignore", category=AltairDeprecationWarning)
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
from tools import DisplayTools
from localization import translator

_ = translator.gettext


class PlanApp:
    """Streamlit application for weigh-ins, groups and potato points."""

    def __init__(
        self, db_path: str = "plan.db", yaml_path: str = "settings.yaml"
    ) -> None:
        self.settings_repo = SettingsRepository(db_path, yaml_path)
        self.profile_repo = ProfileRepository(db_path)
        self.group_repo = GroupRepository(db_path)
        self.member_repo = GroupMemberRepository(db_path)
        self.weigh_ins = WeighInRepository(db_path)
        self.profiles = ProfileService(self.profile_repo)
        self.groups = GroupService(
            self.group_repo, self.member_repo, self.profile_repo, self.settings_repo
        )
        self.weights = WeightService(self.weigh_ins, self.profile_repo)
        self.stats = StatisticsService(
            self.weigh_ins, self.member_repo, self.settings_repo
        )
        self.points = PointsService(
            PotatoRuleRepository(db_path),
            PotatoEventRepository(db_path),
            self.member_repo,
            self.groups,
            self.settings_repo,
        )
        self.training = TrainingService(
            SportTypeRepository(db_path),
            TrainingEntryRepository(db_path),
            self.member_repo,
            self.settings_repo,
        )
        self.avatars = AvatarService(
            AvatarRepository(db_path), self.profile_repo, self.settings_repo
        )
        translator.set_language(self.settings_repo.get_text("language", "de"))
        self._state_init()

    def _state_init(self) -> None:
        for key, default in {
            "user_id": "",
            "chart_offset": 0,
            "group_chart_offset": 0,
            "training_offset": 0,
            "flash": None,
        }.items():
            if key not in st.session_state:
                st.session_state[key] = default

    def _flash(self, message: str, error: bool = False) -> None:
        st.session_state.flash = (message, error)

    def _show_flash(self) -> None:
        flash = st.session_state.get("flash")
        if not flash:
            return
        message, error = flash
        if error:
            st.error(message)
        else:
            st.success(message)
        st.session_state.flash = None

    def _attempt(self, fn, *args, success: str | None = None):
        try:
            result = fn(*args)
        except (ValueError, PermissionError) as e:
            st.error(str(e))
            return None
        if success:
            st.success(success)
        return result

    def _metric_grid(self, metrics: list[tuple[str, str]]) -> None:
        cols = st.columns(len(metrics))
        for col, (label, val) in zip(cols, metrics):
            col.metric(label, val)

    def _line_chart(
        self,
        rows: list[dict],
        series: list[tuple[str, str, str | None]],
        *,
        y_label: str = "kg",
    ) -> None:
        """Render one line per ``(key, label, color)`` series over ``rows``."""
        if not rows:
            st.info(_("No entries yet."))
            return
        df = pd.DataFrame(rows)
        keys = [key for key, _label, _color in series]
        long_df = df.melt("date", value_vars=keys, var_name="series", value_name="value")
        labels = {key: label for key, label, _color in series}
        long_df["series"] = long_df["series"].map(labels)
        colors = [color for _key, _label, color in series]
        scale = (
            alt.Scale(domain=[label for _k, label, _c in series], range=colors)
            if all(colors)
            else alt.Scale(scheme="dark2")
        )
        chart = (
            alt.Chart(long_df.dropna())
            .mark_line(point=True)
            .encode(
                x=alt.X("date:T", title=_("Date")),
                y=alt.Y("value:Q", title=y_label, scale=alt.Scale(zero=False)),
                color=alt.Color(
                    "series",
                    scale=scale,
                    legend=None if len(series) == 1 else alt.Legend(title=_("Members")),
                ),
            )
        )
        st.altair_chart(chart, use_container_width=True)

    def _pager_controls(self, info: dict, state_key: str, prefix: str) -> None:
        cols = st.columns([1, 2, 1])
        with cols[0]:
            if st.button(_("Older"), key=f"{prefix}_older", disabled=not info["has_older"]):
                st.session_state[state_key] = info["older_offset"]
                st.rerun()
        with cols[1]:
            label = info["range_label"] or DisplayTools.PLACEHOLDER
            if info["page_count"] > 1:
                label += f" · {_('Page')} {info['current_page'] + 1}/{info['page_count']}"
            st.caption(label)
        with cols[2]:
            if st.button(_("Newer"), key=f"{prefix}_newer", disabled=not info["has_newer"]):
                st.session_state[state_key] = info["newer_offset"]
                st.rerun()

    def _create_sidebar(self) -> None:
        st.sidebar.header(_("Login"))
        user = st.sidebar.text_input(_("User ID"), key="login_user")
        if user.strip() and user.strip() != st.session_state.user_id:
            st.session_state.user_id = user.strip()
            self.profiles.ensure_profile(st.session_state.user_id)
        uid = st.session_state.user_id
        if not uid:
            return
        profile = self.profiles.get(uid)
        name = st.sidebar.text_input(
            _("Display Name"), value=profile["display_name"] or "", key="display_name"
        )
        if st.sidebar.button(_("Save Name"), key="save_name"):
            self._attempt(self.profiles.set_display_name, uid, name, success=_("Saved."))

    def run(self) -> None:
        st.title("Der Plan")
        self._create_sidebar()
        uid = st.session_state.user_id
        if not uid:
            st.info(_("Please log in to continue."))
            return
        self._show_flash()
        (
            dash_tab,
            group_tab,
            group_dash_tab,
            rules_tab,
            training_tab,
            sports_tab,
        ) = st.tabs(
            [
                _("Dashboard"),
                _("Group"),
                _("Group Dashboard"),
                _("Rules"),
                _("Training"),
                _("Sport Types"),
            ]
        )
        group = self.groups.active_group(uid)
        with dash_tab:
            self._dashboard_tab(uid)
        with group_tab:
            self._group_tab(uid, group)
        with group_dash_tab:
            self._group_dashboard_tab(uid, group)
        with rules_tab:
            self._rules_tab(uid, group)
        with training_tab:
            self._training_tab(uid, group)
        with sports_tab:
            self._sports_tab(uid, group)

    def _dashboard_tab(self, uid: str) -> None:
        with st.form("weigh_in_form"):
            day = st.date_input(_("Date"), datetime.date.today(), key="weigh_date")
            weight = st.text_input(_("Weight (kg)"), key="weigh_weight")
            if st.form_submit_button(_("Save Weigh-in")):
                if self._attempt(self.weights.add, uid, day.isoformat(), weight) is not None:
                    self._flash(_("Saved."))
                    st.rerun()
        dash = self.weights.dashboard(uid)
        target = dash["target_weight_kg"]
        target_text = st.text_input(
            _("Target Weight (kg)"),
            value="" if target is None else f"{target:g}",
            key="target_weight",
        )
        if st.button(_("Save Target"), key="save_target"):
            self._attempt(self.profiles.set_target_weight, uid, target_text, success=_("Saved."))
        latest = dash["latest"]
        self._metric_grid(
            [
                (
                    _("Latest"),
                    f"{latest['weight_kg']:.1f} kg" if latest else DisplayTools.PLACEHOLDER,
                ),
                (_("To Goal"), DisplayTools.fmt_signed(dash["diff_to_goal"])),
                (_("vs. Last Week"), DisplayTools.fmt_signed(dash["diff_to_prev_week"])),
            ]
        )
        info = self.stats.user_chart(uid, st.session_state.chart_offset)
        self._line_chart(
            info["points"], [("weight", uid, DisplayTools.color_for_index(0))]
        )
        self._pager_controls(info, "chart_offset", "dash")
        history = self.weights.history(uid)
        if history:
            df = pd.DataFrame(history)
            df["entry_date"] = df["entry_date"].map(DisplayTools.fmt_date_de)
            st.dataframe(df[["entry_date", "weight_kg"]], hide_index=True)

    def _group_tab(self, uid: str, group: dict | None) -> None:
        if group is None:
            name = st.text_input(_("Group Name"), key="new_group_name")
            if st.button(_("Create Group"), key="create_group"):
                if self._attempt(self.groups.create_group, uid, name):
                    st.rerun()
            code = st.text_input(_("Group Code"), key="join_code")
            if st.button(_("Join Group"), key="join_group"):
                if self._attempt(self.groups.join_group, uid, code):
                    st.rerun()
            return
        st.subheader(group["name"])
        st.write(f"{_('Group Code')}: **{group['code']}**")
        is_owner = group["owner_id"] == uid
        members = self.groups.members(group["id"])
        st.dataframe(
            pd.DataFrame(
                [{"name": m["display_name"], "role": m["role"]} for m in members]
            ),
            hide_index=True,
        )
        if is_owner:
            new_name = st.text_input(_("Group Name"), value=group["name"], key="rename_group")
            if st.button(_("Rename"), key="rename_btn"):
                self._attempt(self.groups.rename_group, uid, new_name, success=_("Saved."))
            if st.button(_("New Code"), key="regen_code"):
                self._attempt(self.groups.regenerate_code, uid, success=_("Saved."))
            anchor = st.text_input(
                _("Cycle Start"),
                value=group["potato_cycle_start"] or "",
                key="cycle_anchor",
            )
            if st.button(_("Save Cycle Start"), key="save_anchor"):
                self._attempt(
                    self.groups.set_cycle_anchor, uid, anchor or None, success=_("Saved.")
                )
            others = [m for m in members if m["user_id"] != uid]
            if others:
                target = st.selectbox(
                    _("Member"),
                    [m["user_id"] for m in others],
                    format_func=lambda u: next(
                        m["display_name"] for m in others if m["user_id"] == u
                    ),
                    key="kick_target",
                )
                if st.button(_("Remove"), key="kick_btn"):
                    self._attempt(self.groups.kick_member, uid, target, success=_("Saved."))
        if st.button(_("Leave Group"), key="leave_group"):
            if self._attempt(self.groups.leave_group, uid) is None and self.groups.active_group(uid) is None:
                st.rerun()

    def _group_dashboard_tab(self, uid: str, group: dict | None) -> None:
        if group is None:
            st.info(_("No active group."))
            return
        members = self.groups.members(group["id"])
        info = self.stats.group_chart(group["id"], members, st.session_state.group_chart_offset)
        self._line_chart(
            info["rows"],
            [(s["user_id"], s["name"], s["color"]) for s in info["series"]],
        )
        self._pager_controls(info, "group_chart_offset", "group")
        latest = pd.DataFrame(info["latest_by_member"])
        if not latest.empty:
            latest["date"] = latest["date"].map(DisplayTools.fmt_date_de)
            st.dataframe(latest[["name", "date", "weight"]], hide_index=True)

        st.subheader(_("Potato Points"))
        member_ids = [m["user_id"] for m in members]
        active = st.selectbox(
            _("Member"),
            member_ids,
            index=member_ids.index(uid) if uid in member_ids else 0,
            format_func=lambda u: next(m["display_name"] for m in members if m["user_id"] == u),
            key="active_member",
        )
        summary = self.points.member_summary(group["id"], active)
        st.caption(
            f"{_('Current Week')} ({_('Week')} {summary['current_week_no']}): "
            f"{DisplayTools.fmt_date_de(summary['current_week_start'])} – "
            f"{DisplayTools.fmt_date_de(summary['current_week_end'])}"
        )
        self._metric_grid(
            [
                (_("Current Week"), f"{summary['current_week_points']:g}"),
                (_("Total"), f"{summary['total']:g}"),
            ]
        )
        if active == uid:
            rules = self.points.list_rules(group["id"], active_only=True)
            if rules:
                rule_id = st.selectbox(
                    _("Rule"),
                    [r["id"] for r in rules],
                    format_func=lambda r: next(
                        f"{x['title']} ({x['points']:g})" for x in rules if x["id"] == r
                    ),
                    key="potato_rule",
                )
                day = st.date_input(_("Date"), datetime.date.today(), key="potato_date")
                if st.button(_("Log Point"), key="log_point"):
                    if self._attempt(
                        self.points.log_event, uid, group["id"], rule_id, day.isoformat()
                    ):
                        self._flash(_("Saved."))
                        st.rerun()
        weeks = pd.DataFrame(summary["weeks"])
        weeks["week_start"] = weeks["week_start"].map(DisplayTools.fmt_date_de)
        weeks["week_end"] = weeks["week_end"].map(DisplayTools.fmt_date_de)
        st.dataframe(weeks, hide_index=True)
        st.subheader(_("Leaderboard"))
        st.dataframe(
            pd.DataFrame(self.points.leaderboard(group["id"], members)),
            hide_index=True,
        )
        st.subheader(_("Avatar"))
        upload = st.file_uploader(
            _("Upload Avatar"), type=["jpg", "jpeg", "png", "webp"], key="avatar_upload"
        )
        if upload is not None and st.button(_("Upload Avatar"), key="avatar_btn"):
            self._attempt(
                self.avatars.upload, uid, upload.getvalue(), upload.type, success=_("Saved.")
            )
        if st.button(_("Delete Avatar"), key="avatar_delete"):
            self._attempt(self.avatars.delete, uid, success=_("Saved."))

    def _rules_tab(self, uid: str, group: dict | None) -> None:
        if group is None:
            st.info(_("No active group."))
            return
        title = st.text_input(_("Rule Text"), key="rule_title")
        points = st.number_input(_("Points"), value=1.0, step=1.0, key="rule_points")
        if st.button(_("Add Rule"), key="add_rule"):
            if self._attempt(self.points.create_rule, uid, group["id"], title, points):
                st.rerun()
        for rule in self.points.list_rules(group["id"]):
            cols = st.columns([4, 1, 1, 1])
            cols[0].write(f"{rule['title']} · {rule['points']:g}")
            cols[1].write("✓" if rule["active"] else "–")
            if cols[2].button(_("Toggle"), key=f"toggle_rule_{rule['id']}"):
                self._attempt(self.points.toggle_active, uid, rule["id"])
                st.rerun()
            if cols[3].button(_("Delete"), key=f"delete_rule_{rule['id']}"):
                self._attempt(self.points.delete_rule, uid, rule["id"])
                st.rerun()

    def _training_tab(self, uid: str, group: dict | None) -> None:
        if group is None:
            st.info(_("No active group."))
            return
        kpis = self.training.kpis(uid, group["id"])
        self._metric_grid(
            [
                (_("Last 7 Days"), f"{kpis['minutes_7d']} min / {kpis['sessions_7d']}"),
                (_("All Time"), f"{kpis['minutes_all']} min / {kpis['sessions_all']}"),
            ]
        )
        types = self.training.list_sport_types(group["id"], active_only=True)
        if types:
            with st.form("training_form"):
                sport = st.selectbox(
                    _("Sport Type"),
                    [t["id"] for t in types],
                    format_func=lambda t: next(x["name"] for x in types if x["id"] == t),
                    key="training_sport",
                )
                day = st.date_input(_("Date"), datetime.date.today(), key="training_date")
                duration = st.text_input(_("Duration (min)"), key="training_duration")
                distance = st.text_input(_("Distance (km)"), key="training_distance")
                intensity = st.text_input(_("Intensity (1-7)"), key="training_intensity")
                note = st.text_input(_("Note"), key="training_note")
                if st.form_submit_button(_("Save Training")):
                    if self._attempt(
                        self.training.add_entry,
                        uid,
                        group["id"],
                        sport,
                        day.isoformat(),
                        duration,
                        distance,
                        intensity,
                        note,
                    ):
                        self._flash(_("Saved."))
                        st.rerun()
        week = self.training.week(uid, group["id"], st.session_state.training_offset)
        cols = st.columns([1, 2, 1])
        if cols[0].button(_("Older"), key="training_older"):
            st.session_state.training_offset += 1
            st.rerun()
        cols[1].caption(
            f"{week['title']}: {DisplayTools.fmt_date_de(week['week_start'])} – "
            f"{DisplayTools.fmt_date_de(week['week_end'])}"
        )
        if cols[2].button(
            _("Newer"), key="training_newer", disabled=st.session_state.training_offset == 0
        ):
            st.session_state.training_offset = max(0, st.session_state.training_offset - 1)
            st.rerun()
        totals = week["totals"]
        self._metric_grid(
            [
                (_("Sessions"), str(totals["sessions"])),
                (_("Minutes"), str(totals["minutes"])),
                ("km", f"{totals['km']:g}"),
            ]
        )
        if week["by_sport"]:
            st.dataframe(pd.DataFrame(week["by_sport"]), hide_index=True)
        if week["entries"]:
            df = pd.DataFrame(week["entries"])
            st.dataframe(
                df[["occurred_on", "sport_type", "duration_min", "distance_km", "intensity", "note"]],
                hide_index=True,
            )

    def _sports_tab(self, uid: str, group: dict | None) -> None:
        if group is None:
            st.info(_("No active group."))
            return
        name = st.text_input(_("Name"), key="sport_name")
        if st.button(_("Add Sport Type"), key="add_sport"):
            if self._attempt(self.training.add_sport_type, uid, group["id"], name):
                st.rerun()
        for sport in self.training.list_sport_types(group["id"]):
            cols = st.columns([4, 1])
            label = sport["name"] if sport["active"] else f"{sport['name']} ({_('inactive')})"
            cols[0].write(label)
            if cols[1].button(_("Toggle"), key=f"toggle_sport_{sport['id']}"):
                self._attempt(self.training.toggle_sport_type, uid, sport["id"])
                st.rerun()


if __name__ == "__main__":
    db_path = os.environ.get("DB_PATH", "plan.db")
    yaml_path = os.environ.get("YAML_PATH", "settings.yaml")
    PlanApp(db_path=db_path, yaml_path=yaml_path).run()
