import sqlite3
import datetime
import base64
from contextlib import contextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig
from migrate import migrate_rule_labels
from settings_schema import validate_settings


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "profiles": (
            """CREATE TABLE profiles (
                    user_id TEXT PRIMARY KEY,
                    display_name TEXT,
                    active_group_id INTEGER,
                    avatar_url TEXT,
                    target_weight_kg REAL,
                    created_at TEXT NOT NULL DEFAULT ''
                );""",
            [
                "user_id",
                "display_name",
                "active_group_id",
                "avatar_url",
                "target_weight_kg",
                "created_at",
            ],
        ),
        "groups": (
            """CREATE TABLE groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    code TEXT NOT NULL UNIQUE,
                    owner_id TEXT NOT NULL,
                    potato_cycle_start TEXT,
                    created_at TEXT NOT NULL DEFAULT ''
                );""",
            ["id", "name", "code", "owner_id", "potato_cycle_start", "created_at"],
        ),
        "group_members": (
            """CREATE TABLE group_members (
                    group_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'member',
                    created_at TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (group_id, user_id),
                    FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE
                );""",
            ["group_id", "user_id", "role", "created_at"],
        ),
        "weigh_ins": (
            """CREATE TABLE weigh_ins (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    entry_date TEXT NOT NULL,
                    weight_kg REAL NOT NULL,
                    UNIQUE (user_id, entry_date)
                );""",
            ["id", "user_id", "entry_date", "weight_kg"],
        ),
        "potato_rules": (
            """CREATE TABLE potato_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    points REAL NOT NULL DEFAULT 0,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL DEFAULT '',
                    FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE
                );""",
            ["id", "group_id", "title", "points", "active", "created_at"],
        ),
        "potato_events": (
            """CREATE TABLE potato_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    rule_id INTEGER,
                    occurred_on TEXT NOT NULL,
                    points REAL NOT NULL DEFAULT 0,
                    note TEXT,
                    created_at TEXT NOT NULL DEFAULT '',
                    FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE,
                    FOREIGN KEY(rule_id) REFERENCES potato_rules(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "group_id",
                "user_id",
                "rule_id",
                "occurred_on",
                "points",
                "note",
                "created_at",
            ],
        ),
        "sport_types": (
            """CREATE TABLE sport_types (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_by TEXT,
                    created_at TEXT NOT NULL DEFAULT '',
                    UNIQUE (group_id, name),
                    FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE
                );""",
            ["id", "group_id", "name", "active", "created_by", "created_at"],
        ),
        "training_entries": (
            """CREATE TABLE training_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    sport_type_id INTEGER NOT NULL,
                    occurred_on TEXT NOT NULL,
                    duration_min INTEGER NOT NULL,
                    distance_km REAL,
                    intensity INTEGER,
                    note TEXT,
                    created_at TEXT NOT NULL DEFAULT '',
                    FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE,
                    FOREIGN KEY(sport_type_id) REFERENCES sport_types(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "group_id",
                "user_id",
                "sport_type_id",
                "occurred_on",
                "duration_min",
                "distance_km",
                "intensity",
                "note",
                "created_at",
            ],
        ),
        "avatars": (
            """CREATE TABLE avatars (
                    path TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    data BLOB NOT NULL,
                    created_at TEXT NOT NULL DEFAULT ''
                );""",
            ["path", "user_id", "content_type", "data", "created_at"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "plan.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep REFERENCES clauses pointing at the rebuilt table names
            conn.execute("PRAGMA legacy_alter_table=ON;")
            migrate_rule_labels(conn)
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:

                def default_val(col: str) -> str:
                    if col == "active":
                        return "1"
                    if col in ("points", "created_at"):
                        return "0" if col == "points" else "''"
                    if col == "role":
                        return "'member'"
                    if col == "title":
                        return "'Regel'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "default_cycle_anchor": "2026-01-05",
            "language": "de",
            "chart_window": "10",
            "weigh_in_limit": "3000",
            "event_limit": "5000",
            "training_limit": "2000",
            "group_code_length": "6",
            "api_token": "",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _exists(self, table: str, key: str, value) -> bool:
        rows = self.fetch_all(f"SELECT 1 FROM {table} WHERE {key} = ?;", (value,))
        return bool(rows)

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    def __init__(self, db_path: str = "plan.db", yaml_path: str = "settings.yaml") -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str] = {}
        for k, v in rows:
            try:
                result[k] = int(v)
            except ValueError:
                try:
                    result[k] = float(v)
                except ValueError:
                    result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = value.isoformat() if isinstance(value, datetime.date) else str(value)
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def get_list(self, key: str) -> list[str]:
        val = self.get_text(key, "")
        return [v for v in val.split(",") if v]

    def set_list(self, key: str, items: list[str]) -> None:
        self.set_text(key, ",".join(items))

    def get_bytes(self, key: str) -> bytes | None:
        val = self.get_text(key, "")
        if not val:
            return None
        return base64.b64decode(val)

    def set_bytes(self, key: str, data: bytes) -> None:
        self.set_text(key, base64.b64encode(data).decode("ascii"))

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()


class ProfileRepository(BaseRepository):
    """Repository for user profiles."""

    _COLUMNS = "user_id, display_name, active_group_id, avatar_url, target_weight_kg"

    def _row_to_dict(self, row: Tuple) -> dict:
        return {
            "user_id": row[0],
            "display_name": row[1],
            "active_group_id": row[2],
            "avatar_url": row[3],
            "target_weight_kg": float(row[4]) if row[4] is not None else None,
        }

    def fetch(self, user_id: str) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM profiles WHERE user_id = ?;", (user_id,)
        )
        return self._row_to_dict(rows[0]) if rows else None

    def fetch_many(self, user_ids: Iterable[str]) -> list[dict]:
        ids = list(user_ids)
        if not ids:
            return []
        marks = ", ".join("?" for _ in ids)
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM profiles WHERE user_id IN ({marks});",
            tuple(ids),
        )
        return [self._row_to_dict(r) for r in rows]

    def create(self, user_id: str, display_name: str | None = None) -> None:
        self.execute(
            "INSERT OR IGNORE INTO profiles (user_id, display_name, created_at) VALUES (?, ?, ?);",
            (user_id, display_name, _now()),
        )

    def _require(self, user_id: str) -> None:
        if not self._exists("profiles", "user_id", user_id):
            raise ValueError("profile not found")

    def set_display_name(self, user_id: str, name: str) -> None:
        self._require(user_id)
        self.execute(
            "UPDATE profiles SET display_name = ? WHERE user_id = ?;", (name, user_id)
        )

    def set_active_group(self, user_id: str, group_id: int | None) -> None:
        self._require(user_id)
        self.execute(
            "UPDATE profiles SET active_group_id = ? WHERE user_id = ?;",
            (group_id, user_id),
        )

    def set_avatar_url(self, user_id: str, url: str | None) -> None:
        self._require(user_id)
        self.execute(
            "UPDATE profiles SET avatar_url = ? WHERE user_id = ?;", (url, user_id)
        )

    def set_target_weight(self, user_id: str, weight: float | None) -> None:
        self._require(user_id)
        self.execute(
            "UPDATE profiles SET target_weight_kg = ? WHERE user_id = ?;",
            (weight, user_id),
        )

    def clear_active_group(self, group_id: int) -> None:
        self.execute(
            "UPDATE profiles SET active_group_id = NULL WHERE active_group_id = ?;",
            (group_id,),
        )


class GroupRepository(BaseRepository):
    """Repository for groups."""

    def create(self, name: str, code: str, owner_id: str) -> int:
        return self.execute(
            "INSERT INTO groups (name, code, owner_id, created_at) VALUES (?, ?, ?, ?);",
            (name, code, owner_id, _now()),
        )

    def _row_to_dict(self, row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "name": row[1],
            "code": row[2],
            "owner_id": row[3],
            "potato_cycle_start": row[4],
        }

    def fetch(self, group_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, name, code, owner_id, potato_cycle_start FROM groups WHERE id = ?;",
            (group_id,),
        )
        if not rows:
            raise ValueError("group not found")
        return self._row_to_dict(rows[0])

    def fetch_by_code(self, code: str) -> Optional[dict]:
        rows = self.fetch_all(
            "SELECT id, name, code, owner_id, potato_cycle_start FROM groups WHERE code = ?;",
            (code,),
        )
        return self._row_to_dict(rows[0]) if rows else None

    def code_exists(self, code: str) -> bool:
        return self._exists("groups", "code", code)

    def _update(self, group_id: int, column: str, value) -> None:
        if not self._exists("groups", "id", group_id):
            raise ValueError("group not found")
        self.execute(f"UPDATE groups SET {column} = ? WHERE id = ?;", (value, group_id))

    def rename(self, group_id: int, name: str) -> None:
        self._update(group_id, "name", name)

    def set_code(self, group_id: int, code: str) -> None:
        self._update(group_id, "code", code)

    def set_cycle_start(self, group_id: int, start: str | None) -> None:
        self._update(group_id, "potato_cycle_start", start)

    def delete(self, group_id: int) -> None:
        if not self._exists("groups", "id", group_id):
            raise ValueError("group not found")
        self.execute("DELETE FROM groups WHERE id = ?;", (group_id,))


class GroupMemberRepository(BaseRepository):
    """Repository for group membership."""

    def add(self, group_id: int, user_id: str, role: str = "member") -> bool:
        """Insert a membership; returns False when it already existed."""
        rows = self.fetch_all(
            "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?;",
            (group_id, user_id),
        )
        if rows:
            return False
        self.execute(
            "INSERT INTO group_members (group_id, user_id, role, created_at) VALUES (?, ?, ?, ?);",
            (group_id, user_id, role, _now()),
        )
        return True

    def remove(self, group_id: int, user_id: str) -> None:
        rows = self.fetch_all(
            "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?;",
            (group_id, user_id),
        )
        if not rows:
            raise ValueError("member not found")
        self.execute(
            "DELETE FROM group_members WHERE group_id = ? AND user_id = ?;",
            (group_id, user_id),
        )

    def fetch_for_group(self, group_id: int) -> list[tuple[str, str, str]]:
        return self.fetch_all(
            "SELECT user_id, role, created_at FROM group_members WHERE group_id = ? ORDER BY created_at, user_id;",
            (group_id,),
        )

    def user_ids(self, group_id: int) -> list[str]:
        return [r[0] for r in self.fetch_for_group(group_id)]

    def is_member(self, group_id: int, user_id: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?;",
            (group_id, user_id),
        )
        return bool(rows)


class WeighInRepository(BaseRepository):
    """Repository for daily body weight entries."""

    def add(self, user_id: str, entry_date: str, weight_kg: float) -> int:
        if weight_kg <= 0:
            raise ValueError("weight must be positive")
        return self.execute(
            "INSERT INTO weigh_ins (user_id, entry_date, weight_kg) VALUES (?, ?, ?);",
            (user_id, entry_date, weight_kg),
        )

    def fetch_for_date(self, user_id: str, entry_date: str) -> Optional[int]:
        rows = self.fetch_all(
            "SELECT id FROM weigh_ins WHERE user_id = ? AND entry_date = ?;",
            (user_id, entry_date),
        )
        return int(rows[0][0]) if rows else None

    def fetch_detail(self, entry_id: int) -> tuple[int, str, str, float]:
        rows = self.fetch_all(
            "SELECT id, user_id, entry_date, weight_kg FROM weigh_ins WHERE id = ?;",
            (entry_id,),
        )
        if not rows:
            raise ValueError("weigh-in not found")
        r = rows[0]
        return int(r[0]), r[1], r[2], float(r[3])

    def fetch_history(
        self,
        user_ids: Iterable[str],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int | None = None,
    ) -> list[tuple[int, str, str, float]]:
        """Return entries for ``user_ids`` newest first."""
        ids = list(user_ids)
        if not ids:
            return []
        marks = ", ".join("?" for _ in ids)
        query = (
            "SELECT id, user_id, entry_date, weight_kg FROM weigh_ins "
            f"WHERE user_id IN ({marks})"
        )
        params: list[str | int] = list(ids)
        if start_date:
            query += " AND entry_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND entry_date <= ?"
            params.append(end_date)
        query += " ORDER BY entry_date DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self.fetch_all(query + ";", tuple(params))
        return [(int(r[0]), r[1], r[2], float(r[3])) for r in rows]

    def update(self, entry_id: int, weight_kg: float) -> None:
        if weight_kg <= 0:
            raise ValueError("weight must be positive")
        self.fetch_detail(entry_id)
        self.execute(
            "UPDATE weigh_ins SET weight_kg = ? WHERE id = ?;", (weight_kg, entry_id)
        )

    def delete(self, entry_id: int) -> None:
        self.fetch_detail(entry_id)
        self.execute("DELETE FROM weigh_ins WHERE id = ?;", (entry_id,))


class PotatoRuleRepository(BaseRepository):
    """Repository for potato point rules."""

    def _row_to_dict(self, row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "group_id": int(row[1]),
            "title": row[2] or "",
            "points": float(row[3] or 0.0),
            "active": bool(row[4]),
        }

    def add(self, group_id: int, title: str, points: float, active: bool = True) -> int:
        return self.execute(
            "INSERT INTO potato_rules (group_id, title, points, active, created_at) VALUES (?, ?, ?, ?, ?);",
            (group_id, title, points, int(active), _now()),
        )

    def fetch(self, rule_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, group_id, title, points, active FROM potato_rules WHERE id = ?;",
            (rule_id,),
        )
        if not rows:
            raise ValueError("rule not found")
        return self._row_to_dict(rows[0])

    def fetch_for_group(self, group_id: int, active_only: bool = False) -> list[dict]:
        query = "SELECT id, group_id, title, points, active FROM potato_rules WHERE group_id = ?"
        if active_only:
            query += " AND active = 1"
        query += " ORDER BY active DESC, points DESC, created_at DESC, id DESC;"
        return [self._row_to_dict(r) for r in self.fetch_all(query, (group_id,))]

    def update(
        self,
        rule_id: int,
        title: str | None = None,
        points: float | None = None,
        active: bool | None = None,
    ) -> None:
        self.fetch(rule_id)
        fields = []
        params: list = []
        if title is not None:
            fields.append("title = ?")
            params.append(title)
        if points is not None:
            fields.append("points = ?")
            params.append(points)
        if active is not None:
            fields.append("active = ?")
            params.append(int(active))
        if fields:
            params.append(rule_id)
            self.execute(
                f"UPDATE potato_rules SET {', '.join(fields)} WHERE id = ?;",
                tuple(params),
            )

    def delete(self, rule_id: int) -> None:
        self.fetch(rule_id)
        self.execute("DELETE FROM potato_rules WHERE id = ?;", (rule_id,))


class PotatoEventRepository(BaseRepository):
    """Repository for logged potato point events."""

    _COLUMNS = "id, group_id, user_id, rule_id, occurred_on, points, note"

    def _row_to_dict(self, row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "group_id": int(row[1]),
            "user_id": row[2],
            "rule_id": int(row[3]) if row[3] is not None else None,
            "occurred_on": row[4],
            "points": float(row[5] or 0.0),
            "note": row[6],
        }

    def add(
        self,
        group_id: int,
        user_id: str,
        rule_id: int,
        occurred_on: str,
        points: float,
        note: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO potato_events (group_id, user_id, rule_id, occurred_on, points, note, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (group_id, user_id, rule_id, occurred_on, points, note, _now()),
        )

    def fetch(self, event_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM potato_events WHERE id = ?;", (event_id,)
        )
        if not rows:
            raise ValueError("event not found")
        return self._row_to_dict(rows[0])

    def fetch_range(
        self,
        group_id: int,
        start_date: str,
        end_date: str,
        user_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        query = (
            f"SELECT {self._COLUMNS} FROM potato_events "
            "WHERE group_id = ? AND occurred_on >= ? AND occurred_on <= ?"
        )
        params: list = [group_id, start_date, end_date]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY occurred_on DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self.fetch_all(query + ";", tuple(params))
        return [self._row_to_dict(r) for r in rows]

    def delete(self, event_id: int) -> None:
        self.fetch(event_id)
        self.execute("DELETE FROM potato_events WHERE id = ?;", (event_id,))


class SportTypeRepository(BaseRepository):
    """Repository for per-group sport types."""

    def _row_to_dict(self, row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "group_id": int(row[1]),
            "name": row[2],
            "active": bool(row[3]),
            "created_at": row[4],
        }

    def add(self, group_id: int, name: str, created_by: str | None = None) -> int:
        rows = self.fetch_all(
            "SELECT id FROM sport_types WHERE group_id = ? AND name = ?;",
            (group_id, name),
        )
        if rows:
            raise ValueError("sport type already exists in this group")
        return self.execute(
            "INSERT INTO sport_types (group_id, name, active, created_by, created_at) VALUES (?, ?, 1, ?, ?);",
            (group_id, name, created_by, _now()),
        )

    def fetch(self, type_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, group_id, name, active, created_at FROM sport_types WHERE id = ?;",
            (type_id,),
        )
        if not rows:
            raise ValueError("sport type not found")
        return self._row_to_dict(rows[0])

    def fetch_for_group(self, group_id: int) -> list[dict]:
        rows = self.fetch_all(
            "SELECT id, group_id, name, active, created_at FROM sport_types WHERE group_id = ? ORDER BY name;",
            (group_id,),
        )
        return [self._row_to_dict(r) for r in rows]

    def set_active(self, type_id: int, active: bool) -> None:
        self.fetch(type_id)
        self.execute(
            "UPDATE sport_types SET active = ? WHERE id = ?;", (int(active), type_id)
        )


class TrainingEntryRepository(BaseRepository):
    """Repository for logged training sessions."""

    _SELECT = (
        "SELECT t.id, t.group_id, t.user_id, t.sport_type_id, t.occurred_on, "
        "t.duration_min, t.distance_km, t.intensity, t.note, s.name "
        "FROM training_entries t LEFT JOIN sport_types s ON s.id = t.sport_type_id"
    )

    def _row_to_dict(self, row: Tuple) -> dict:
        return {
            "id": int(row[0]),
            "group_id": int(row[1]),
            "user_id": row[2],
            "sport_type_id": int(row[3]),
            "occurred_on": row[4],
            "duration_min": int(row[5]),
            "distance_km": float(row[6]) if row[6] is not None else None,
            "intensity": int(row[7]) if row[7] is not None else None,
            "note": row[8],
            "sport_type": row[9],
        }

    def add(
        self,
        group_id: int,
        user_id: str,
        sport_type_id: int,
        occurred_on: str,
        duration_min: int,
        distance_km: float | None = None,
        intensity: int | None = None,
        note: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO training_entries (group_id, user_id, sport_type_id, occurred_on, duration_min, distance_km, intensity, note, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                group_id,
                user_id,
                sport_type_id,
                occurred_on,
                duration_min,
                distance_km,
                intensity,
                note,
                _now(),
            ),
        )

    def fetch(self, entry_id: int) -> dict:
        rows = self.fetch_all(self._SELECT + " WHERE t.id = ?;", (entry_id,))
        if not rows:
            raise ValueError("training entry not found")
        return self._row_to_dict(rows[0])

    def fetch_for_user(
        self,
        group_id: int,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        query = self._SELECT + " WHERE t.group_id = ? AND t.user_id = ?"
        params: list = [group_id, user_id]
        if start_date:
            query += " AND t.occurred_on >= ?"
            params.append(start_date)
        if end_date:
            query += " AND t.occurred_on <= ?"
            params.append(end_date)
        query += " ORDER BY t.occurred_on DESC, t.id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return [self._row_to_dict(r) for r in self.fetch_all(query + ";", tuple(params))]

    def update(
        self,
        entry_id: int,
        sport_type_id: int,
        occurred_on: str,
        duration_min: int,
        distance_km: float | None,
        intensity: int | None,
        note: str | None,
    ) -> None:
        self.fetch(entry_id)
        self.execute(
            "UPDATE training_entries SET sport_type_id = ?, occurred_on = ?, duration_min = ?, "
            "distance_km = ?, intensity = ?, note = ? WHERE id = ?;",
            (sport_type_id, occurred_on, duration_min, distance_km, intensity, note, entry_id),
        )

    def delete(self, entry_id: int) -> None:
        self.fetch(entry_id)
        self.execute("DELETE FROM training_entries WHERE id = ?;", (entry_id,))


class AvatarRepository(BaseRepository):
    """Stores avatar image objects keyed by storage path."""

    def save(self, path: str, user_id: str, content_type: str, data: bytes) -> None:
        self.execute(
            "INSERT INTO avatars (path, user_id, content_type, data, created_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(path) DO UPDATE SET content_type=excluded.content_type, data=excluded.data;",
            (path, user_id, content_type, data, _now()),
        )

    def load(self, path: str) -> tuple[str, bytes] | None:
        rows = self.fetch_all(
            "SELECT content_type, data FROM avatars WHERE path = ?;", (path,)
        )
        return (rows[0][0], bytes(rows[0][1])) if rows else None

    def remove(self, path: str) -> None:
        if not self._exists("avatars", "path", path):
            raise ValueError("avatar not found")
        self.execute("DELETE FROM avatars WHERE path = ?;", (path,))

    def paths_for_user(self, user_id: str) -> list[str]:
        rows = self.fetch_all(
            "SELECT path FROM avatars WHERE user_id = ? ORDER BY path;", (user_id,)
        )
        return [r[0] for r in rows]
