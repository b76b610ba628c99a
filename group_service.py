import logging
import datetime

from db import (
    GroupRepository,
    GroupMemberRepository,
    ProfileRepository,
    SettingsRepository,
)
from cycle_calendar import CycleConfig, DEFAULT_CYCLE_ANCHOR, parse_date, week_start
from tools import GroupCode, DisplayTools

logger = logging.getLogger(__name__)


class GroupService:
    """Create, join and administer accountability groups."""

    def __init__(
        self,
        groups: GroupRepository,
        members: GroupMemberRepository,
        profiles: ProfileRepository,
        settings: SettingsRepository | None = None,
    ) -> None:
        self.groups = groups
        self.member_repo = members
        self.profiles = profiles
        self.settings = settings

    def _code_length(self) -> int:
        if self.settings is None:
            return GroupCode.LENGTH
        return self.settings.get_int("group_code_length", GroupCode.LENGTH)

    def _unique_code(self) -> str:
        length = self._code_length()
        for _ in range(20):
            code = GroupCode.make(length)
            if not self.groups.code_exists(code):
                return code
        raise ValueError("could not generate a unique group code")

    def _profile(self, user_id: str) -> dict:
        profile = self.profiles.fetch(user_id)
        if profile is None:
            self.profiles.create(user_id)
            profile = self.profiles.fetch(user_id)
        return profile

    def active_group(self, user_id: str) -> dict | None:
        """Return the user's active group or ``None``."""
        gid = self._profile(user_id)["active_group_id"]
        if gid is None:
            return None
        try:
            group = self.groups.fetch(gid)
        except ValueError:
            return None
        if not self.member_repo.is_member(gid, user_id):
            return None
        return group

    def require_active_group(self, user_id: str) -> dict:
        group = self.active_group(user_id)
        if group is None:
            raise ValueError("active group not found")
        return group

    def _require_owner(self, user_id: str) -> dict:
        group = self.require_active_group(user_id)
        if group["owner_id"] != user_id:
            logger.warning("user %s is not owner of group %s", user_id, group["id"])
            raise PermissionError("only the group owner may do this")
        return group

    def create_group(self, user_id: str, name: str) -> dict:
        clean = (name or "").strip()
        if len(clean) < 2:
            raise ValueError("group name must have at least 2 characters")
        self._profile(user_id)
        code = self._unique_code()
        gid = self.groups.create(clean, code, user_id)
        self.member_repo.add(gid, user_id, "owner")
        self.profiles.set_active_group(user_id, gid)
        logger.info("group %s created by %s", gid, user_id)
        return self.groups.fetch(gid)

    def join_group(self, user_id: str, code: str) -> dict:
        clean = GroupCode.normalize(code)
        if len(clean) < GroupCode.MIN_LENGTH:
            raise ValueError("group code must have at least 4 characters")
        group = self.groups.fetch_by_code(clean)
        if group is None:
            raise ValueError("group not found")
        self._profile(user_id)
        if self.member_repo.add(group["id"], user_id, "member"):
            logger.info("%s joined group %s", user_id, group["id"])
        self.profiles.set_active_group(user_id, group["id"])
        return group

    def leave_group(self, user_id: str) -> None:
        group = self.require_active_group(user_id)
        gid = group["id"]
        others = [u for u in self.member_repo.user_ids(gid) if u != user_id]
        if group["owner_id"] == user_id and others:
            raise PermissionError("the owner cannot leave while members remain")
        self.member_repo.remove(gid, user_id)
        self.profiles.set_active_group(user_id, None)
        logger.info("%s left group %s", user_id, gid)

    def rename_group(self, user_id: str, name: str) -> None:
        clean = (name or "").strip()
        if len(clean) < 2:
            raise ValueError("group name must have at least 2 characters")
        group = self._require_owner(user_id)
        self.groups.rename(group["id"], clean)

    def regenerate_code(self, user_id: str) -> str:
        group = self._require_owner(user_id)
        code = self._unique_code()
        self.groups.set_code(group["id"], code)
        logger.info("group %s code regenerated", group["id"])
        return code

    def kick_member(self, user_id: str, target_id: str) -> None:
        group = self._require_owner(user_id)
        if target_id == user_id:
            raise ValueError("the owner cannot remove themselves")
        self.member_repo.remove(group["id"], target_id)
        target = self.profiles.fetch(target_id)
        if target and target["active_group_id"] == group["id"]:
            self.profiles.set_active_group(target_id, None)
        logger.info("%s removed %s from group %s", user_id, target_id, group["id"])

    def set_cycle_anchor(
        self, user_id: str, anchor: str | datetime.date | None
    ) -> str | None:
        """Store the group's cycle start, aligned to its Monday."""
        group = self._require_owner(user_id)
        value = None
        if anchor:
            value = week_start(parse_date(anchor)).isoformat()
        self.groups.set_cycle_start(group["id"], value)
        logger.info("group %s cycle anchor set to %s", group["id"], value)
        return value

    def members(self, group_id: int) -> list[dict]:
        """Members of ``group_id`` with the owner first, then by name."""
        group = self.groups.fetch(group_id)
        rows = self.member_repo.fetch_for_group(group_id)
        profiles = {p["user_id"]: p for p in self.profiles.fetch_many(r[0] for r in rows)}
        result = []
        for uid, role, joined in rows:
            profile = profiles.get(uid, {})
            result.append(
                {
                    "user_id": uid,
                    "role": role,
                    "joined_at": joined,
                    "display_name": DisplayTools.safe_name(profile.get("display_name")),
                    "avatar_url": profile.get("avatar_url"),
                    "is_owner": uid == group["owner_id"],
                }
            )
        result.sort(key=lambda m: (not m["is_owner"], m["display_name"].lower()))
        for idx, member in enumerate(result):
            member["color"] = DisplayTools.color_for_index(idx)
            member["initials"] = DisplayTools.initials(
                None if member["display_name"] == DisplayTools.PLACEHOLDER else member["display_name"]
            )
        return result

    def require_member(self, group_id: int, user_id: str) -> None:
        if not self.member_repo.is_member(group_id, user_id):
            raise PermissionError("not a member of this group")

    def default_anchor(self) -> datetime.date:
        if self.settings is None:
            return DEFAULT_CYCLE_ANCHOR
        text = self.settings.get_text(
            "default_cycle_anchor", DEFAULT_CYCLE_ANCHOR.isoformat()
        )
        return parse_date(text)

    def cycle_config(self, group: dict) -> CycleConfig:
        return CycleConfig.from_group(
            group.get("potato_cycle_start"), self.default_anchor()
        )
