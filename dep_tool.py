#!/usr/bin/env python3
"""Command-line tool for the DESCDEP/DEP DBF tables.

Commands
--------
- ``list-dbf``: print the columns and a page of records of any DBF file.
- ``clear-dbf``: back up a DBF file and rewrite it empty, keeping its layout.
- ``import-csv``: import a genetic evaluation CSV into DEP, extending DESCDEP
  with any missing catalog entries.
- ``init-tables``: create empty DEP/DESCDEP tables with the default layouts.

Settings (DBF code page, program id, CSV column names...) come from an
optional YAML file passed with ``--config`` or named by ``DEP_CONFIG``::

    dbf_encoding: cp1252
    program_id: 2
    series_column: Série
    registration_column: RGN
    descriptions:
      MGTe: Mérito genético total
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import polars as pl

from dep_transformer.config import ConfigError, Settings, load_settings
from dep_transformer.dbf_io import DbfTableError, UnknownFieldError, backup_file, create_table, read_table
from dep_transformer.facts import MissingCodeError
from dep_transformer.normalize import FormatError
from dep_transformer.pipeline import ensure_tables, import_evaluations

LOGGER = logging.getLogger(__name__)
DEFAULT_LIST_LIMIT = 50
INDEX_COL = "#"

pl.Config.set_fmt_str_lengths(1000)


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def _format_value(value: Any) -> str:
    return "" if value is None else str(value)


def format_record(record: Sequence[Any]) -> str:
    return ", ".join(_format_value(v) for v in record)


def select_records(
    records: Sequence[Sequence[Any]],
    offset: int = 0,
    limit: int = DEFAULT_LIST_LIMIT,
    search: Optional[str] = None,
) -> List[Tuple[int, Sequence[Any]]]:
    """Filter by ``search`` (substring of the formatted record), then page."""

    matches = [
        (i, record)
        for i, record in enumerate(records)
        if not search or search in format_record(record)
    ]
    return matches[offset : offset + limit]


def records_frame(field_names: Sequence[str], selected: Sequence[Tuple[int, Sequence[Any]]]) -> pl.DataFrame:
    columns = [INDEX_COL, *field_names]
    data = {col: [] for col in columns}
    for index, record in selected:
        data[INDEX_COL].append(str(index))
        for name, value in zip(field_names, record):
            data[name].append(_format_value(value))
    return pl.DataFrame(data, schema={col: pl.Utf8 for col in columns})


def _load_settings(args: argparse.Namespace) -> Settings:
    return load_settings(args.config)


def cmd_list(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    fields, records = read_table(args.file, settings.dbf_encoding)
    field_names = [f.name for f in fields]
    print(f"Columns: {', '.join(field_names)}")

    selected = select_records(records, offset=args.offset, limit=args.limit, search=args.search)
    if not selected:
        print("No records.")
        return 0
    pl.Config.set_tbl_rows(len(selected))
    pl.Config.set_tbl_cols(len(field_names) + 1)
    print(records_frame(field_names, selected))
    print(f"Showing {len(selected)} of {len(records)} records.")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    path: Path = args.file
    fields, records = read_table(path, settings.dbf_encoding)
    backup = backup_file(path, settings.backup_timestamp_format)
    print(f"Backup created at: {backup}")
    create_table(path, fields, settings.dbf_encoding)
    print(f"Removed {len(records)} records from {path}.")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    settings = _load_settings(args)

    if args.create_missing:
        for created in ensure_tables(args.dep, args.descdep, settings.dbf_encoding):
            print(f"Created empty table: {created}")

    if args.backup:
        for path in (args.descdep, args.dep):
            print(f"Backup created at: {backup_file(path, settings.backup_timestamp_format)}")

    report = import_evaluations(
        args.csv,
        args.dep,
        args.descdep,
        settings=settings,
        replace=args.replace,
    )
    for definition in report.new_definitions:
        print(f"New DESCDEP entry: {definition.name} (CODIGODEP {definition.code})")
    print(f"Records inserted: {report.rows_inserted}")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    existing = [p for p in (args.dep, args.descdep) if p.exists()]
    if existing:
        LOGGER.error(f"Refusing to overwrite existing table(s): {', '.join(str(p) for p in existing)}")
        return 1
    for created in ensure_tables(args.dep, args.descdep, settings.dbf_encoding):
        print(f"Created empty table: {created}")
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        help="Path to YAML settings (default: $DEP_CONFIG, then built-in defaults).",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )

    parser = argparse.ArgumentParser(
        description="Import genetic evaluation CSV exports into DESCDEP/DEP DBF tables.",
    )
    subparsers = parser.add_subparsers(dest="command")

    list_cmd = subparsers.add_parser("list-dbf", parents=[common], help="Print records of a DBF file.")
    list_cmd.add_argument("--file", type=Path, required=True, help="DBF file to read.")
    list_cmd.add_argument("--limit", type=int, default=DEFAULT_LIST_LIMIT, help="Maximum records to print (default: 50).")
    list_cmd.add_argument("--offset", type=int, default=0, help="Number of matching records to skip (default: 0).")
    list_cmd.add_argument("--search", help="Only show records containing this text.")
    list_cmd.set_defaults(func=cmd_list)

    clear_cmd = subparsers.add_parser("clear-dbf", parents=[common], help="Back up and empty a DBF file.")
    clear_cmd.add_argument("--file", type=Path, required=True, help="DBF file to clear.")
    clear_cmd.set_defaults(func=cmd_clear)

    import_cmd = subparsers.add_parser("import-csv", parents=[common], help="Import an evaluation CSV into DEP.")
    import_cmd.add_argument("--csv", type=Path, required=True, help="Evaluation CSV export.")
    import_cmd.add_argument("--dep", type=Path, required=True, help="DEP fact table (DBF).")
    import_cmd.add_argument("--descdep", type=Path, required=True, help="DESCDEP lookup table (DBF).")
    import_cmd.add_argument(
        "--replace",
        action="store_true",
        help="Discard existing DEP records instead of appending to them.",
    )
    import_cmd.add_argument(
        "--backup",
        action="store_true",
        help="Copy both tables to <file>.bak-<timestamp> before writing.",
    )
    import_cmd.add_argument(
        "--create-missing",
        action="store_true",
        help="Create DEP/DESCDEP with the default layouts when they do not exist.",
    )
    import_cmd.set_defaults(func=cmd_import)

    init_cmd = subparsers.add_parser("init-tables", parents=[common], help="Create empty DEP/DESCDEP tables.")
    init_cmd.add_argument("--dep", type=Path, required=True, help="DEP fact table to create.")
    init_cmd.add_argument("--descdep", type=Path, required=True, help="DESCDEP lookup table to create.")
    init_cmd.set_defaults(func=cmd_init)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.error("a command is required")

    configure_logging(args.verbose)
    try:
        return args.func(args)
    except (FileNotFoundError, ConfigError, DbfTableError, FormatError, MissingCodeError) as exc:
        LOGGER.error(str(exc))
    except UnknownFieldError as exc:
        LOGGER.error(exc.args[0] if exc.args else str(exc))
    return 1


if __name__ == "__main__":
    sys.exit(main())
