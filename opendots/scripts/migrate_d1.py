"""
Apply D1 Migrations Script
Runs every migrations/NNNN_*.sql file against the configured D1 database in
numeric order. Statements use IF NOT EXISTS, so re-running is safe.

    python -m opendots.scripts.migrate_d1 [--dir migrations] [--dry-run]
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from opendots.database.d1_client import D1Client, D1Error, get_d1

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def _migration_number(path: Path) -> int:
    prefix = path.name.split("_", 1)[0]
    return int(prefix) if prefix.isdigit() else 0


def get_migration_files(directory: Path) -> List[Path]:
    """SQL files in the directory, ordered by their numeric prefix"""
    if not directory.is_dir():
        logger.error(f"Migrations directory not found: {directory}")
        return []
    return sorted(directory.glob("*.sql"), key=lambda p: (_migration_number(p), p.name))


def split_statements(sql: str) -> List[str]:
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def run_migration(d1: D1Client, path: Path) -> int:
    logger.info(f"Running migration: {path.name}")
    statements = split_statements(path.read_text())
    for statement in statements:
        d1.execute(statement)
    return len(statements)


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description="Apply SQL migrations to Cloudflare D1")
    parser.add_argument("--dir", type=Path, default=DEFAULT_MIGRATIONS_DIR)
    parser.add_argument("--dry-run", action="store_true", help="List migrations without running them")
    args = parser.parse_args(argv)

    files = get_migration_files(args.dir)
    if not files:
        logger.info("No migration files found.")
        return 0
    logger.info(f"Found {len(files)} migration files.")

    if args.dry_run:
        for path in files:
            logger.info(f"Would run: {path.name}")
        return 0

    d1 = get_d1()
    if d1 is None:
        logger.error("D1 is not configured (set D1_ENABLED, D1_DATABASE_ID, CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_API_TOKEN)")
        return 1

    try:
        for path in files:
            run_migration(d1, path)
    except D1Error as e:
        logger.error(f"Migration failed: {e}")
        return 1

    logger.info("Migrations completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
