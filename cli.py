import argparse
import datetime
import logging
import shutil
import requests
import secrets
import time

from db import SettingsRepository, WeighInRepository
from weight_service import WeightService
from rest_api import PlanAPI
from cycle_calendar import CycleConfig, DEFAULT_CYCLE_ANCHOR, parse_date
import migrate

logger = logging.getLogger(__name__)


def export_weigh_ins(db_path: str, output_dir: str = ".") -> list[str]:
    """Write one CSV file of weigh-ins per user."""
    repo = WeighInRepository(db_path)
    users = [r[0] for r in repo.fetch_all("SELECT DISTINCT user_id FROM weigh_ins ORDER BY user_id;")]
    service = WeightService(repo, None)
    written = []
    for uid in users:
        out_path = f"{output_dir}/weigh_ins_{uid}.csv"
        with open(out_path, "w", encoding="utf-8", newline="") as f:
            f.write(service.export_csv(uid))
        written.append(out_path)
    return written


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def cycle_info(date: str | None, anchor: str | None) -> dict:
    day = parse_date(date) if date else datetime.date.today()
    config = CycleConfig.from_group(anchor, DEFAULT_CYCLE_ANCHOR)
    return config.describe(day)


def set_api_token(db_path: str, yaml_path: str, clear: bool = False) -> str:
    """Generate (or clear) the token the API expects in ``X-Api-Token``."""
    settings = SettingsRepository(db_path, yaml_path)
    token = "" if clear else secrets.token_urlsafe(24)
    settings.set_text("api_token", token)
    logger.info("api token %s", "cleared" if clear else "rotated")
    return token


def demo_data(db_path: str, yaml_path: str, today: datetime.date | None = None) -> None:
    """Populate the database with a demo group if empty."""
    today = today or datetime.date.today()
    api = PlanAPI(db_path=db_path, yaml_path=yaml_path, clock=lambda: today)
    if api.group_repo.fetch_all("SELECT id FROM groups LIMIT 1;"):
        print("Database already contains groups")
        return
    names = {"anna": "Anna", "ben": "Ben", "clara": "Clara"}
    for uid, name in names.items():
        api.profiles.ensure_profile(uid, name)
    group = api.groups.create_group("anna", "Der Plan")
    for uid in ("ben", "clara"):
        api.groups.join_group(uid, group["code"])
    api.profiles.set_target_weight("anna", 68)
    for offset, uid in enumerate(names):
        start = 82.0 - offset * 6
        for day in range(14, -1, -1):
            entry = today - datetime.timedelta(days=day)
            api.weights.add(uid, entry.isoformat(), round(start - (14 - day) * 0.15, 1))
    snack = api.points.create_rule("anna", group["id"], "Süßigkeiten", 1)
    api.points.create_rule("anna", group["id"], "Fast Food", 2)
    api.points.log_event("ben", group["id"], snack, today.isoformat())
    run = api.training.add_sport_type("anna", group["id"], "Laufen")
    api.training.add_entry("anna", group["id"], run, today.isoformat(), 35, "5,2", 5)
    print(f"Demo data inserted (group code {group['code']})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="plan.db")
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="plan.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="plan.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="plan.db")
    demo.add_argument("--yaml", default="settings.yaml")

    mig = sub.add_parser("migrate")
    mig.add_argument("--db", default="plan.db")

    cyc = sub.add_parser("cycle")
    cyc.add_argument("--date")
    cyc.add_argument("--anchor")

    tok = sub.add_parser("token")
    tok.add_argument("--db", default="plan.db")
    tok.add_argument("--yaml", default="settings.yaml")
    tok.add_argument("--clear", action="store_true")

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    if args.cmd == "export":
        for path in export_weigh_ins(args.db, args.out):
            print(path)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml)
    elif args.cmd == "migrate":
        migrate.migrate(args.db)
    elif args.cmd == "cycle":
        info = cycle_info(args.date, args.anchor)
        print(
            f"{info['date']}: week {info['week_no']} of cycle "
            f"{info['cycle_start']} – {info['cycle_end']}"
        )
        if info["before_anchor"]:
            print(f"note: date lies before the cycle anchor {info['anchor']}")
    elif args.cmd == "token":
        token = set_api_token(args.db, args.yaml, args.clear)
        print(token or "API token cleared")
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)


if __name__ == "__main__":
    main()
