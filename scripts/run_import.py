#!/usr/bin/env python3
"""
Run one property import: parse -> map -> validate -> commit.

Uses the active configuration (ESTATE_CONFIG or the packaged defaults) for
parser limits, closing policy and the database URL.

Usage:
    python3 scripts/run_import.py --file <path> --category <category> --unit <id> [options]

Examples:
    # Validate only, print the first issues
    python3 scripts/run_import.py --file loyers.csv --category rents --unit BU-01 --validate-only

    # Commit, skipping rejected rows
    python3 scripts/run_import.py --file etat_locatif.xlsx --category rent_roll --unit BU-01 \\
        --period 2024-03 --confirm-partial

    # Override one column mapping, commit against an in-memory store, roll back
    python3 scripts/run_import.py --file surfaces.json --category surfaces --unit BU-01 \\
        --map "Surf. (m2)=area" --dry-run
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

MAX_PRINTED_ISSUES = 10


def _period(text: str):
    from estate_kernel.domain.periods import PeriodKey

    year, month = text.split("-")
    return PeriodKey(int(year), int(month))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import a tabular property file: parse -> map -> validate -> commit.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--file", required=True, type=Path, help="CSV, JSON or XLSX file.")
    parser.add_argument("--category", required=True, help="Import category (e.g. rent_roll, rents).")
    parser.add_argument("--unit", required=True, help="Business unit id.")
    parser.add_argument("--actor-id", default="cli", help="Actor recorded in the journal (default: cli).")
    parser.add_argument("--period", type=_period, default=None, help="Default period YYYY-MM (default: current month).")
    parser.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="COLUMN=FIELD",
        help="Override one column mapping; FIELD may be empty to ignore the column. Repeatable.",
    )
    parser.add_argument("--confirm-partial", action="store_true", help="Commit valid rows despite errors.")
    parser.add_argument("--validate-only", action="store_true", help="Stop after validation.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Commit against an in-memory store and roll the database back.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument("--db-url", default=None, help="Database URL (default: from configuration).")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    source_path = args.file.resolve()
    if not source_path.is_file():
        print(f"ERROR: File not found: {source_path}", file=sys.stderr)
        return 1

    # Lazy imports so we fail fast on args first
    from estate_config import get_active_config
    from estate_ingestion.domain.types import ImportCategory
    from estate_ingestion.services import CommitEngine, ImportFileService, ImportPipeline
    from estate_ingestion.storage import MemoryRecordStore, SqlRecordStore
    from estate_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from estate_kernel.db.immutability import register_immutability_listeners
    from estate_kernel.domain.clock import SystemClock
    from estate_kernel.exceptions import CommitRefusedError, EstateKernelError, PeriodLockedError
    from estate_kernel.logging_config import configure_logging
    from estate_kernel.services import JournalService, LockGovernor

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1
    configure_logging(level=config.logging.level)

    try:
        category = ImportCategory(args.category)
    except ValueError:
        names = sorted(c.value for c in ImportCategory)
        print(f"ERROR: Unknown category {args.category!r}. Available: {names}", file=sys.stderr)
        return 1

    init_engine_from_url(args.db_url or config.database.url, echo=config.database.echo)
    create_tables()
    register_immutability_listeners()

    session = get_session()
    clock = SystemClock()
    journal = JournalService(session, clock, issue_limit=config.imports.journal_issue_limit)
    governor = LockGovernor(session, journal, clock, policy=config.closing.to_policy())
    store = MemoryRecordStore() if args.dry_run else SqlRecordStore(session)
    engine = CommitEngine(
        session,
        store,
        journal,
        governor,
        ImportFileService(session, journal, clock),
        clock,
        batch_size=config.imports.commit_batch_size,
    )
    pipeline = ImportPipeline(
        engine,
        journal,
        clock,
        parse_options=config.imports.parse_options(),
        chunk_size=config.imports.validation_chunk_size,
    )

    try:
        if config.closing.auto_close:
            governor.close_elapsed_periods(args.unit)

        import_session = pipeline.start_import(
            source_path.read_bytes(),
            category,
            file_name=source_path.name,
            business_unit_id=args.unit,
        )
        for override in args.map:
            column, _, target = override.partition("=")
            pipeline.set_mapping(column, target or None)
        print(f"Parsed {import_session.raw_table.row_count} rows from {source_path.name}")
        for m in import_session.mapping:
            print(f"  {m.source_column!r} -> {m.target_field or '(ignored)'}")

        result = pipeline.validate(args.actor_id)
        print(
            f"Valid rows: {result.valid_row_count}/{result.total_row_count} "
            f"(quality {result.quality_score:.1f}, {result.quality_grade.value})"
        )
        for issue in (result.errors + result.warnings)[:MAX_PRINTED_ISSUES]:
            print(f"  [{issue.severity.value}] {issue.message}")
        shown = result.error_count + result.warning_count
        if shown > MAX_PRINTED_ISSUES:
            print(f"  ... and {shown - MAX_PRINTED_ISSUES} more issues.")

        if args.validate_only:
            session.commit()
            return 0 if result.is_valid else 1

        outcome = pipeline.commit(
            actor_id=args.actor_id,
            confirm_partial=args.confirm_partial,
            period=args.period,
        )
        print(
            f"Import {outcome.status.value}: {outcome.rows_affected} row(s) written, "
            f"{outcome.rows_rejected} rejected (file version {outcome.import_file.version})"
        )
        if outcome.error_summary:
            print(f"  {outcome.error_summary}")
    except PeriodLockedError as e:
        session.commit()
        print(f"ERROR: {e}. Reopen the period and retry.", file=sys.stderr)
        return 1
    except CommitRefusedError as e:
        session.commit()
        hint = " (use --confirm-partial)" if e.overridable else ""
        print(f"ERROR: {e}{hint}", file=sys.stderr)
        return 1
    except EstateKernelError as e:
        session.rollback()
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except Exception:
        session.rollback()
        raise
    else:
        if args.dry_run:
            session.rollback()
            print("Dry run: database rolled back.")
        else:
            session.commit()
        return 0 if outcome.status.value == "success" else 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
