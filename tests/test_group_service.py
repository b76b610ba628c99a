import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    GroupRepository,
    GroupMemberRepository,
    ProfileRepository,
    SettingsRepository,
)
from group_service import GroupService
from profile_service import ProfileService


class GroupServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_groups.db"
        self.yaml_path = "test_groups.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.profile_repo = ProfileRepository(self.db_path)
        self.settings = SettingsRepository(self.db_path, self.yaml_path)
        self.service = GroupService(
            GroupRepository(self.db_path),
            GroupMemberRepository(self.db_path),
            self.profile_repo,
            self.settings,
        )
        self.profiles = ProfileService(self.profile_repo)
        self.profiles.ensure_profile("anna", "Anna")
        self.profiles.ensure_profile("ben", "Ben")
        self.profiles.ensure_profile("zoe", "Zoe")

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_create_sets_owner_and_active_group(self) -> None:
        group = self.service.create_group("anna", "  Der Plan ")
        self.assertEqual(group["name"], "Der Plan")
        self.assertEqual(len(group["code"]), 6)
        self.assertEqual(self.service.active_group("anna")["id"], group["id"])
        members = self.service.members(group["id"])
        self.assertEqual(members[0]["user_id"], "anna")
        self.assertEqual(members[0]["role"], "owner")

    def test_create_rejects_short_name(self) -> None:
        with self.assertRaises(ValueError):
            self.service.create_group("anna", "X")

    def test_code_length_from_settings(self) -> None:
        self.settings.set_int("group_code_length", 8)
        group = self.service.create_group("anna", "Lang")
        self.assertEqual(len(group["code"]), 8)

    def test_join_normalizes_code_and_is_idempotent(self) -> None:
        group = self.service.create_group("anna", "Der Plan")
        code = " " + group["code"].lower() + " "
        self.service.join_group("ben", code)
        self.service.join_group("ben", code)
        ids = [m["user_id"] for m in self.service.members(group["id"])]
        self.assertEqual(ids.count("ben"), 1)
        self.assertEqual(self.service.active_group("ben")["id"], group["id"])

    def test_join_errors(self) -> None:
        self.service.create_group("anna", "Der Plan")
        with self.assertRaises(ValueError):
            self.service.join_group("ben", "ab")
        with self.assertRaises(ValueError) as ctx:
            self.service.join_group("ben", "ZZZZZZ")
        self.assertIn("not found", str(ctx.exception))

    def test_members_sorted_owner_first_with_colors(self) -> None:
        group = self.service.create_group("zoe", "Der Plan")
        self.service.join_group("ben", group["code"])
        self.service.join_group("anna", group["code"])
        members = self.service.members(group["id"])
        self.assertEqual([m["user_id"] for m in members], ["zoe", "anna", "ben"])
        self.assertTrue(members[0]["is_owner"])
        self.assertEqual(members[1]["color"], "hsl(57, 85%, 62%)")
        self.assertEqual(members[1]["initials"], "AN")

    def test_owner_only_operations(self) -> None:
        group = self.service.create_group("anna", "Der Plan")
        self.service.join_group("ben", group["code"])
        with self.assertRaises(PermissionError):
            self.service.rename_group("ben", "Neu")
        with self.assertRaises(PermissionError):
            self.service.regenerate_code("ben")
        with self.assertRaises(PermissionError):
            self.service.kick_member("ben", "anna")
        self.service.rename_group("anna", "Neuer Plan")
        self.assertEqual(self.service.active_group("ben")["name"], "Neuer Plan")
        new_code = self.service.regenerate_code("anna")
        self.assertEqual(self.service.active_group("anna")["code"], new_code)

    def test_kick_clears_active_group(self) -> None:
        group = self.service.create_group("anna", "Der Plan")
        self.service.join_group("ben", group["code"])
        with self.assertRaises(ValueError):
            self.service.kick_member("anna", "anna")
        self.service.kick_member("anna", "ben")
        self.assertIsNone(self.service.active_group("ben"))
        self.assertIsNone(self.profile_repo.fetch("ben")["active_group_id"])

    def test_leave(self) -> None:
        group = self.service.create_group("anna", "Der Plan")
        self.service.join_group("ben", group["code"])
        with self.assertRaises(PermissionError):
            self.service.leave_group("anna")
        self.service.leave_group("ben")
        self.assertIsNone(self.service.active_group("ben"))
        self.service.leave_group("anna")
        self.assertIsNone(self.service.active_group("anna"))
        self.assertEqual(self.service.groups.fetch(group["id"])["name"], "Der Plan")

    def test_cycle_anchor_aligned_to_monday(self) -> None:
        group = self.service.create_group("anna", "Der Plan")
        self.assertEqual(self.service.set_cycle_anchor("anna", "2026-02-04"), "2026-02-02")
        stored = self.service.groups.fetch(group["id"])
        self.assertEqual(stored["potato_cycle_start"], "2026-02-02")
        self.assertEqual(self.service.cycle_config(stored).anchor.isoformat(), "2026-02-02")
        self.assertIsNone(self.service.set_cycle_anchor("anna", None))
        stored = self.service.groups.fetch(group["id"])
        self.assertEqual(self.service.cycle_config(stored).anchor.isoformat(), "2026-01-05")

    def test_require_member(self) -> None:
        group = self.service.create_group("anna", "Der Plan")
        with self.assertRaises(PermissionError):
            self.service.require_member(group["id"], "ben")


class ProfileServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_profiles.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.service = ProfileService(ProfileRepository(self.db_path))

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_ensure_profile_creates_once(self) -> None:
        first = self.service.ensure_profile("u1", "Anna")
        second = self.service.ensure_profile("u1", "Other")
        self.assertEqual(first["display_name"], "Anna")
        self.assertEqual(second["display_name"], "Anna")
        with self.assertRaises(ValueError):
            self.service.ensure_profile("  ")

    def test_display_name(self) -> None:
        self.service.set_display_name("u1", "  Ben ")
        self.assertEqual(self.service.get("u1")["display_name"], "Ben")
        with self.assertRaises(ValueError):
            self.service.set_display_name("u1", "B")

    def test_target_weight(self) -> None:
        self.service.set_target_weight("u1", "72,5")
        self.assertEqual(self.service.get("u1")["target_weight_kg"], 72.5)
        self.service.set_target_weight("u1", "")
        self.assertIsNone(self.service.get("u1")["target_weight_kg"])
        with self.assertRaises(ValueError):
            self.service.set_target_weight("u1", -3)

    def test_get_missing(self) -> None:
        with self.assertRaises(ValueError):
            self.service.get("nobody")


if __name__ == "__main__":
    unittest.main()
