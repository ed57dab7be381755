"""
Load employee whitelist rows from a CSV file into the configured database.

The CSV needs personnel_id, name and email columns; an optional is_active
column accepts true/false, yes/no or 1/0.
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fotota.config import get_settings
from fotota.db import DbClient, PostgresDbClient, WhitelistEntry

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("personnel_id", "name", "email")
TRUE_VALUES = {"1", "true", "yes", "y", "t"}


def parse_active(value: str | None) -> bool:
    if value is None or not value.strip():
        return True
    return value.strip().lower() in TRUE_VALUES


def read_entries(path: Path) -> list[WhitelistEntry]:
    with path.open(newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        missing = [col for col in REQUIRED_COLUMNS if col not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"Missing CSV columns: {', '.join(missing)}")
        entries = []
        for line_no, row in enumerate(reader, start=2):
            email = (row.get("email") or "").strip()
            personnel_id = (row.get("personnel_id") or "").strip()
            if not email or not personnel_id:
                logger.warning("Skipping line %d: personnel_id and email are required", line_no)
                continue
            entries.append(
                WhitelistEntry(
                    personnel_id=personnel_id,
                    name=(row.get("name") or "").strip(),
                    email=email,
                    is_active=parse_active(row.get("is_active")),
                )
            )
        return entries


def import_entries(db: DbClient, entries: list[WhitelistEntry]) -> int:
    for entry in entries:
        db.save_whitelist_entry(entry)
    return len(entries)


def main() -> int:
    parser = argparse.ArgumentParser(description="Import the employee whitelist")
    parser.add_argument("csv_path", type=Path, help="CSV file to import")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse the file and report counts without writing",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    try:
        entries = read_entries(args.csv_path)
    except (OSError, ValueError) as exc:
        logger.error("Cannot read %s: %s", args.csv_path, exc)
        return 1

    if args.dry_run:
        logger.info("Parsed %d whitelist entries (dry run)", len(entries))
        return 0

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is not set")
        return 1

    count = import_entries(PostgresDbClient(database_url), entries)
    logger.info("Imported %d whitelist entries", count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
