import logging
import sqlite3
import sys

logger = logging.getLogger(__name__)

LEGACY_LABEL_COLUMNS = ("title", "label", "name", "rule", "text", "description")
FALLBACK_TITLE = "Regel"


def _columns(cur, table):
    cur.execute(f"PRAGMA table_info({table});")
    return [r[1] for r in cur.fetchall()]


def migrate_rule_labels(conn):
    """Move legacy rule label columns into ``potato_rules.title``.

    Older databases stored the rule label under varying column names. The
    first non-empty value of ``title, label, name, rule, text, description``
    wins; rules without any label get ``Regel``. Returns the number of rules
    rewritten.
    """
    cur = conn.cursor()
    cols = _columns(cur, "potato_rules")
    if not cols:
        return 0
    present = [c for c in LEGACY_LABEL_COLUMNS if c in cols]
    if present == ["title"]:
        return 0
    if "title" not in cols:
        cur.execute("ALTER TABLE potato_rules ADD COLUMN title TEXT;")
        present = ["title"] + present
    parts = [f"NULLIF(TRIM(CAST({c} AS TEXT)), '')" for c in present]
    cur.execute(
        f"UPDATE potato_rules SET title = COALESCE({', '.join(parts)}, ?);",
        (FALLBACK_TITLE,),
    )
    changed = cur.rowcount
    logger.info("migrated %s potato rule labels into title", changed)
    return changed


def migrate(db_path='plan.db'):
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    migrate_rule_labels(conn)
    cols = _columns(cur, "groups")
    if cols and 'potato_cycle_start' not in cols:
        cur.execute("ALTER TABLE groups ADD COLUMN potato_cycle_start TEXT;")
        logger.info("added groups.potato_cycle_start")
    cols = _columns(cur, "profiles")
    if cols and 'target_weight_kg' not in cols:
        cur.execute("ALTER TABLE profiles ADD COLUMN target_weight_kg REAL;")
        logger.info("added profiles.target_weight_kg")
    if cols and 'avatar_url' not in cols:
        cur.execute("ALTER TABLE profiles ADD COLUMN avatar_url TEXT;")
        logger.info("added profiles.avatar_url")
    cols = _columns(cur, "potato_events")
    if cols and 'note' not in cols:
        cur.execute("ALTER TABLE potato_events ADD COLUMN note TEXT;")
    conn.commit()
    conn.close()

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    path = sys.argv[1] if len(sys.argv) > 1 else 'plan.db'
    migrate(path)
