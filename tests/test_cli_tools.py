import os
import sys
import datetime
import unittest
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import (
    export_weigh_ins,
    backup_db,
    restore_db,
    demo_data,
    cycle_info,
    set_api_token,
)
from rest_api import PlanAPI
from fastapi.testclient import TestClient

class CLIToolsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        self.yaml_path = "test_cli.yaml"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        self.api = PlanAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        for path in [self.db_path, self.yaml_path, "backup.db", "exports"]:
            if os.path.exists(path):
                if os.path.isdir(path):
                    for f in os.listdir(path):
                        os.remove(os.path.join(path, f))
                    os.rmdir(path)
                else:
                    os.remove(path)

    def test_export_backup_restore(self) -> None:
        os.makedirs("exports", exist_ok=True)
        self.client.post(
            "/weigh_ins",
            params={"weight_kg": "80", "entry_date": "2026-01-05"},
            headers={"X-User-Id": "u1"},
        )
        paths = export_weigh_ins(self.db_path, "exports")
        self.assertEqual(paths, ["exports/weigh_ins_u1.csv"])
        with open(paths[0], encoding="utf-8") as f:
            self.assertEqual(f.read().splitlines()[1], "2026-01-05,80.0")

        backup_db(self.db_path, "backup.db")
        self.assertTrue(os.path.exists("backup.db"))
        self.client.post(
            "/weigh_ins",
            params={"weight_kg": "79", "entry_date": "2026-01-06"},
            headers={"X-User-Id": "u1"},
        )
        restore_db("backup.db", self.db_path)
        rows = self.api.weigh_ins.fetch_history(["u1"])
        self.assertEqual(len(rows), 1)

    def test_demo_data(self) -> None:
        today = datetime.date(2026, 1, 14)
        demo_data(self.db_path, self.yaml_path, today)
        groups = self.api.group_repo.fetch_all("SELECT name FROM groups;")
        self.assertEqual(groups, [("Der Plan",)])
        self.assertEqual(len(self.api.weigh_ins.fetch_history(["anna"])), 15)
        events = self.api.events.fetch_all("SELECT user_id, occurred_on FROM potato_events;")
        self.assertEqual(events, [("ben", "2026-01-14")])
        demo_data(self.db_path, self.yaml_path, today)
        self.assertEqual(len(self.api.group_repo.fetch_all("SELECT id FROM groups;")), 1)

    def test_set_api_token(self) -> None:
        token = set_api_token(self.db_path, self.yaml_path)
        self.assertGreaterEqual(len(token), 24)
        self.assertEqual(self.client.get("/profile", headers={"X-User-Id": "u1"}).status_code, 401)
        resp = self.client.get("/profile", headers={"X-User-Id": "u1", "X-Api-Token": token})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(set_api_token(self.db_path, self.yaml_path, clear=True), "")
        self.assertEqual(self.client.get("/profile", headers={"X-User-Id": "u1"}).status_code, 200)

    def test_cycle_info(self) -> None:
        info = cycle_info("2026-03-30", None)
        self.assertEqual(info["week_no"], 1)
        self.assertEqual(info["cycle_start"], "2026-03-30")
        info = cycle_info("2026-01-01", "2026-01-05")
        self.assertTrue(info["before_anchor"])
        self.assertEqual(info["week_no"], 1)

if __name__ == '__main__':
    unittest.main()
