import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, PotatoRuleRepository
import migrate


def _columns(path, table):
    conn = sqlite3.connect(str(path))
    cols = [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]
    conn.close()
    return cols


class TestSchemaMigration:
    def test_drops_existing_backup_table(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE weigh_ins (id INTEGER PRIMARY KEY AUTOINCREMENT, user_id TEXT, entry_date TEXT, weight_kg REAL, source TEXT)"
        )
        conn.execute("CREATE TABLE weigh_ins_old (id INTEGER)")
        conn.execute(
            "INSERT INTO weigh_ins (user_id, entry_date, weight_kg, source) VALUES ('u1', '2026-01-05', 80.5, 'scale')"
        )
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='weigh_ins_old'"
        )
        assert cur.fetchone() is None
        rows = conn.execute("SELECT user_id, entry_date, weight_kg FROM weigh_ins").fetchall()
        conn.close()
        assert rows == [("u1", "2026-01-05", 80.5)]
        assert "source" not in _columns(db_file, "weigh_ins")

    def test_missing_columns_get_defaults(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute("CREATE TABLE groups (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, code TEXT, owner_id TEXT)")
        conn.execute("INSERT INTO groups (name, code, owner_id) VALUES ('Plan', 'ABCD', 'u1')")
        conn.execute("CREATE TABLE group_members (group_id INTEGER, user_id TEXT)")
        conn.execute("INSERT INTO group_members VALUES (1, 'u1')")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        group = conn.execute("SELECT name, potato_cycle_start FROM groups").fetchone()
        member = conn.execute("SELECT user_id, role FROM group_members").fetchone()
        conn.close()
        assert group == ("Plan", None)
        assert member == ("u1", "member")

    def test_legacy_rule_labels_become_title(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE potato_rules (id INTEGER PRIMARY KEY AUTOINCREMENT, group_id INTEGER, label TEXT, name TEXT, points REAL)"
        )
        conn.executemany(
            "INSERT INTO potato_rules (group_id, label, name, points) VALUES (?, ?, ?, ?)",
            [
                (1, "Chips", None, 1),
                (1, "  ", "Pizza", 2),
                (1, None, None, 3),
            ],
        )
        conn.commit()
        conn.close()

        repo = PotatoRuleRepository(str(db_file))
        titles = {r["points"]: r["title"] for r in repo.fetch_for_group(1)}
        assert titles == {1.0: "Chips", 2.0: "Pizza", 3.0: "Regel"}
        assert _columns(db_file, "potato_rules") == [
            "id",
            "group_id",
            "title",
            "points",
            "active",
            "created_at",
        ]
        assert all(r["active"] for r in repo.fetch_for_group(1))

    def test_migrate_rule_labels_noop_on_canonical_table(self, tmp_path):
        db_file = tmp_path / "test.db"
        Database(str(db_file))
        conn = sqlite3.connect(str(db_file))
        assert migrate.migrate_rule_labels(conn) == 0
        conn.close()

    def test_migrate_rule_labels_without_table(self, tmp_path):
        conn = sqlite3.connect(str(tmp_path / "empty.db"))
        assert migrate.migrate_rule_labels(conn) == 0
        conn.close()

    def test_migrate_adds_columns(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute("CREATE TABLE groups (id INTEGER PRIMARY KEY, name TEXT, code TEXT, owner_id TEXT)")
        conn.execute("CREATE TABLE profiles (user_id TEXT PRIMARY KEY, display_name TEXT)")
        conn.execute(
            "CREATE TABLE potato_events (id INTEGER PRIMARY KEY, group_id INTEGER, user_id TEXT, occurred_on TEXT, points REAL)"
        )
        conn.execute("CREATE TABLE potato_rules (id INTEGER PRIMARY KEY, group_id INTEGER, text TEXT)")
        conn.execute("INSERT INTO potato_rules (group_id, text) VALUES (1, 'Cola')")
        conn.commit()
        conn.close()

        migrate.migrate(str(db_file))

        assert "potato_cycle_start" in _columns(db_file, "groups")
        assert "target_weight_kg" in _columns(db_file, "profiles")
        assert "avatar_url" in _columns(db_file, "profiles")
        assert "note" in _columns(db_file, "potato_events")
        conn = sqlite3.connect(str(db_file))
        assert conn.execute("SELECT title FROM potato_rules").fetchone() == ("Cola",)
        conn.close()
