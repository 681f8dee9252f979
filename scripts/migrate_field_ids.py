#!/usr/bin/env python3
"""
Field ID Migration Script

Canonicalizes form/field identifiers in a JSON export of field documents.
Legacy producers stored keys as ``1040_FS`` or ``1040:FS``; every key is
rewritten to the dot dialect (``1040.FS``).

Usage:
    # Dry run (default): write a report of proposed changes
    python scripts/migrate_field_ids.py --input fields_export.json

    # Write migrated documents to a new file
    python scripts/migrate_field_ids.py --input fields_export.json --apply --output fields_migrated.json

Requirements:
    - Export the fields collection to JSON (an array of documents) first
    - Keep the original export; the input file is never modified
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from database.field_id_migration import FieldIdMigration, FieldIdMigrationError
from services.logging_config import configure_from_settings

logger = logging.getLogger(__name__)


DEFAULT_INPUT = Path("fields_export.json")
DEFAULT_REPORT = Path("migrate_fieldids_report.json")


def run(input_path: Path, report_path: Path, apply: bool, output_path: Path) -> int:
    logger.info("=" * 60)
    logger.info("FIELD ID MIGRATION")
    logger.info("=" * 60)
    logger.info(f"Input: {input_path}")
    logger.info(f"Mode: {'APPLY' if apply else 'DRY RUN'}")

    if not input_path.exists():
        logger.error(f"Input file not found: {input_path}")
        return 2

    try:
        documents = json.loads(input_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse input JSON: {e}")
        return 2

    try:
        migration = FieldIdMigration(documents, input_file=str(input_path))
    except FieldIdMigrationError as e:
        logger.error(str(e))
        return 2

    report = migration.plan()
    report_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")

    logger.info(f"Total docs: {report.count}")
    logger.info(f"Proposed changes: {report.proposed_changes}")
    logger.info(f"Collisions: {len(report.collisions)}")
    logger.info(f"Unresolved: {len(report.unresolved)}")
    logger.info(f"Report written to {report_path}")

    if not apply:
        logger.info("*** DRY RUN - No changes were made ***")
        return 0

    try:
        migrated = migration.apply(report)
    except FieldIdMigrationError as e:
        logger.error(str(e))
        return 1

    output_path.write_text(json.dumps(migrated, indent=2), encoding="utf-8")
    logger.info(f"Migrated documents written to {output_path}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Canonicalize field identifiers in a JSON export"
    )
    parser.add_argument(
        '-i', '--input',
        type=Path,
        default=DEFAULT_INPUT,
        help='JSON array of field documents'
    )
    parser.add_argument(
        '--report',
        type=Path,
        default=DEFAULT_REPORT,
        help='Where to write the migration report'
    )
    parser.add_argument(
        '-a', '--apply',
        action='store_true',
        help='Write migrated documents (refused when collisions exist)'
    )
    parser.add_argument(
        '-o', '--output',
        type=Path,
        default=Path("fields_migrated.json"),
        help='Output file for migrated documents'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()

    # APP_LOG_LEVEL / APP_LOG_JSON
    configure_from_settings()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(run(args.input, args.report, args.apply, args.output))


if __name__ == '__main__':
    main()
