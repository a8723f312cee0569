"""
CSV -> DESCDEP/DEP import.

Reconciles the DESCDEP lookup table against the catalog, converts every CSV
record into DEP rows and rewrites both tables. Nothing is written until the
whole CSV has been converted and every value fits its DEP field; both tables
are then staged before either one is replaced, so a failed import leaves both
files as they were.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .config import Settings, catalog_for
from .csv_io import iter_csv_records
from .dbf_io import FieldIndex, Record, TableBatch, create_table, read_table, value_fits, write_tables
from .facts import DEP_FIELDS, MissingCodeError, build_fact_rows, fact_record, merge_rows
from .normalize import FormatError, build_animal_id
from .reconcile import VariableDefinition, definition_record, load_definitions, reconcile
from .schema import DEP_LAYOUT, DESCDEP_LAYOUT, CatalogEntry, DbfField, TableLayout

LOGGER = logging.getLogger(__name__)


@dataclass
class ImportReport:
    records_read: int = 0
    rows_inserted: int = 0
    rows_total: int = 0
    new_definitions: List[VariableDefinition] = field(default_factory=list)
    descdep_written: bool = False


def ensure_table(path: Path, layout: TableLayout, encoding: str) -> bool:
    """Create an empty table with the default layout when ``path`` does not exist."""

    if Path(path).exists():
        return False
    create_table(Path(path), layout.fields, encoding)
    LOGGER.info(f"Created empty {layout.name.upper()} table at {path}")
    return True


def ensure_tables(dep_path: Path, descdep_path: Path, encoding: str) -> List[Path]:
    created = []
    if ensure_table(descdep_path, DESCDEP_LAYOUT, encoding):
        created.append(Path(descdep_path))
    if ensure_table(dep_path, DEP_LAYOUT, encoding):
        created.append(Path(dep_path))
    return created


def _check_widths(row_number: int, dep_fields: Sequence[DbfField], record: Record) -> None:
    for field, value in zip(dep_fields, record):
        if not value_fits(field, value):
            raise FormatError(f"CSV row {row_number}: value {value} does not fit DEP field {field.spec()}")


def _convert_csv(
    csv_path: Path,
    settings: Settings,
    catalog: Sequence[CatalogEntry],
    code_map: Mapping[str, int],
    dep_fields: Sequence[DbfField],
    report: ImportReport,
) -> List[Record]:
    dep_index = FieldIndex(dep_fields)
    new_records: List[Record] = []
    for row_number, record in iter_csv_records(
        csv_path,
        encoding=settings.csv_encoding,
        delimiter=settings.csv_delimiter,
        chunk_size=settings.csv_chunk_size,
    ):
        report.records_read += 1
        animal = build_animal_id(
            record.get(settings.series_column),
            record.get(settings.registration_column),
            settings.animal_id_digits,
        )
        try:
            rows = build_fact_rows(record, animal, code_map, catalog, settings.program_id)
        except (FormatError, MissingCodeError) as exc:
            raise type(exc)(f"CSV row {row_number}: {exc}") from exc

        if rows and not animal:
            LOGGER.warning(f"CSV row {row_number}: empty animal id ({settings.series_column}/{settings.registration_column})")
        for row in rows:
            dep_record = fact_record(dep_index, row)
            _check_widths(row_number, dep_fields, dep_record)
            new_records.append(dep_record)
    return new_records


def import_evaluations(
    csv_path: Path,
    dep_path: Path,
    descdep_path: Path,
    settings: Optional[Settings] = None,
    catalog: Optional[Sequence[CatalogEntry]] = None,
    replace: bool = False,
) -> ImportReport:
    """
    Import an evaluation CSV into the DEP table, extending DESCDEP as needed.

    New DEP rows are appended after the existing ones unless ``replace`` is
    set. DESCDEP is only rewritten when reconciliation added entries.
    """

    settings = settings or Settings()
    catalog = list(catalog) if catalog is not None else catalog_for(settings)
    encoding = settings.dbf_encoding
    report = ImportReport()

    descdep_fields, descdep_records = read_table(Path(descdep_path), encoding)
    result = reconcile(
        load_definitions(descdep_fields, descdep_records),
        catalog,
        program_id=settings.program_id,
        description_fallback=settings.description_fallback,
    )
    report.new_definitions = list(result.added)

    dep_fields, dep_records = read_table(Path(dep_path), encoding)
    dep_index = FieldIndex(dep_fields)
    dep_index.require(DEP_FIELDS, context="DEP")
    if replace:
        LOGGER.info(f"Discarding {len(dep_records)} existing DEP records")
        dep_records = []

    LOGGER.info(f"Processing {csv_path}")
    new_records = _convert_csv(Path(csv_path), settings, catalog, result.code_map, dep_fields, report)
    report.rows_inserted = len(new_records)

    batches: List[TableBatch] = []
    if result.changed:
        descdep_index = FieldIndex(descdep_fields)
        added_records = [definition_record(descdep_index, d) for d in result.added]
        batches.append((Path(descdep_path), descdep_fields, merge_rows(descdep_records, added_records)))
        report.descdep_written = True
    else:
        LOGGER.info("DESCDEP already up to date")

    all_records = merge_rows(dep_records, new_records)
    batches.append((Path(dep_path), dep_fields, all_records))
    write_tables(batches, encoding)
    report.rows_total = len(all_records)

    LOGGER.info(
        f"Read {report.records_read} CSV records, inserted {report.rows_inserted} DEP rows "
        f"({len(report.new_definitions)} new DESCDEP entries)"
    )
    return report
