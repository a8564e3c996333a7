import argparse
import json
import os
import sys

from carre_vert import constants, utils
from carre_vert.attendance import set_attendance
from carre_vert.db.store import RecordStore
from carre_vert.errors import CarreVertError, ValidationError
from carre_vert.reconciliation import ReconciliationEngine
from carre_vert.scoring import get_scores


def import_csv(db_path, csv_file, year, dry_run=False, write_delay=constants.WRITE_DELAY_SECONDS, logger=None, verbose=False):
    """
    Reconcile one year of attendance from a spreadsheet export.

    Returns:
        The run summary as a dict, or None when the CSV file is missing.
    """
    if not os.path.exists(csv_file):
        if logger:
            logger.error(f"CSV file not found: {csv_file}")
        return None

    with open(csv_file, encoding="utf-8-sig") as f:
        csv_text = f.read()

    with RecordStore(db_path) as store:
        engine = ReconciliationEngine(store, write_delay=write_delay, verbose=verbose)
        summary = engine.reconcile_period(csv_text, year, dry_run=dry_run)
    return summary.to_dict()


def print_scores(report, top=None, out=None):
    out = out or sys.stdout
    entries = report.entries[:top] if top else report.entries
    print(f"Participation {report.year} - {report.total_possible_credits} possible outings", file=out)
    for entry in entries:
        print(
            f"{entry.rank:>4}. {entry.name:<30} {entry.group:<8} {entry.credited_count:>4}  ({entry.attendance_rate:.1f}%)",
            file=out
        )
    print(f"\nMembers: {report.total_members} ({report.active_members} active), average {report.average_credits}", file=out)
    for stat in report.group_stats:
        print(f"  Group {stat.group}: {stat.count} active, average {stat.avg_credits}", file=out)
    print("Distribution:", file=out)
    for bucket in report.buckets:
        print(f"  {bucket.label:>6}: {bucket.count}", file=out)


def main():
    default_db = os.getenv("CARRE_VERT_DB_PATH", constants.DEFAULT_DB_PATH)

    parser = argparse.ArgumentParser(description="Carré Vert attendance CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose (DEBUG) logging")
    parser.add_argument("--db", type=str, default=default_db, help=f"Path to the SQLite database (default: {default_db})")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create the database schema")

    import_parser = subparsers.add_parser("import-csv", help="Reconcile a year of attendance from the spreadsheet")
    import_parser.add_argument("--csv-file", required=True, help="Path to the exported attendance CSV")
    import_parser.add_argument("--year", required=True, help="Import year, e.g. 2026")
    import_parser.add_argument("--dry-run", action="store_true", help="Preview changes without modifying the database")
    import_parser.add_argument(
        "--write-delay",
        type=float,
        default=constants.WRITE_DELAY_SECONDS,
        help=f"Seconds between store writes (default: {constants.WRITE_DELAY_SECONDS})",
    )

    scores_parser = subparsers.add_parser("scores", help="Show the participation ranking for a year")
    scores_parser.add_argument("--year", required=True, help="Year to score, e.g. 2026")
    scores_parser.add_argument("--top", type=int, default=None, help="Only show the first N members")
    scores_parser.add_argument("--json", action="store_true", help="Print the full report as JSON")

    attendance_parser = subparsers.add_parser("attendance", help="Mark or unmark one member on one event")
    attendance_parser.add_argument("action", choices=constants.ATTENDANCE_ACTIONS)
    attendance_parser.add_argument("--event-id", required=True, type=int)
    attendance_parser.add_argument("--member-id", required=True, type=int)
    attendance_parser.add_argument("--name", default=None)
    attendance_parser.add_argument("--group", default="")
    attendance_parser.add_argument("--date", dest="iso_date", default=None, help="Event date YYYY-MM-DD (required for add)")

    args = parser.parse_args()
    logger = utils.setup_logging(verbose=args.verbose)

    if args.command == "init-db":
        with RecordStore(args.db):
            pass
        logger.info(f"Database ready at {args.db}")
    elif args.command == "import-csv":
        try:
            result = import_csv(
                args.db,
                args.csv_file,
                args.year,
                dry_run=args.dry_run,
                write_delay=args.write_delay,
                logger=logger,
                verbose=args.verbose,
            )
        except ValidationError as e:
            logger.error(str(e))
            sys.exit(2)
        if result is None:
            sys.exit(1)
        print(json.dumps(result, indent=2, ensure_ascii=False))
        if not result["completed"]:
            sys.exit(1)
    elif args.command == "scores":
        try:
            with RecordStore(args.db) as store:
                report = get_scores(store, args.year)
        except ValidationError as e:
            logger.error(str(e))
            sys.exit(2)
        if args.json:
            print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        else:
            print_scores(report, top=args.top)
    elif args.command == "attendance":
        try:
            with RecordStore(args.db) as store:
                result = set_attendance(
                    store,
                    event_id=args.event_id,
                    member_id=args.member_id,
                    name=args.name,
                    group=args.group,
                    action=args.action,
                    iso_date=args.iso_date,
                )
        except CarreVertError as e:
            logger.error(str(e))
            sys.exit(2)
        print(json.dumps(result))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
