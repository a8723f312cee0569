"""
Thin wrapper over the ``dbf`` library for the DESCDEP/DEP tables.

The rest of the package never touches the binary layout: it gets the ordered
field list, the records as plain lists aligned with those fields, and hands a
full record set back for an atomic rewrite.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import dbf

from .schema import DbfField

LOGGER = logging.getLogger(__name__)

DEFAULT_ENCODING = "cp1252"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

_SPEC_RE = re.compile(r"^\s*(\w+)\s+([A-Za-z])(?:\((\d+)(?:,\s*(\d+))?\))?")

Record = List[Any]
# (path, fields, records) for one table in a write_tables call
TableBatch = Tuple[Path, Sequence[DbfField], Iterable[Sequence[Any]]]


class UnknownFieldError(KeyError):
    """Raised when a table lacks a field the caller depends on."""


class DbfTableError(ValueError):
    """Raised when the dbf library rejects a table or a value written to it."""


class FieldIndex:
    """Immutable, case-insensitive name -> position map for one table schema."""

    def __init__(self, fields: Sequence[DbfField]) -> None:
        positions: Dict[str, int] = {}
        for i, field in enumerate(fields):
            positions.setdefault(field.name.upper(), i)
        self._positions: Mapping[str, int] = positions
        self._names: Tuple[str, ...] = tuple(f.name for f in fields)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.upper() in self._positions

    def __len__(self) -> int:
        return len(self._names)

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    def position(self, name: str) -> int:
        try:
            return self._positions[name.upper()]
        except KeyError:
            raise UnknownFieldError(f"Field {name!r} not found (available: {', '.join(self._names)})") from None

    def get(self, record: Sequence[Any], name: str) -> Any:
        return record[self.position(name)]

    def require(self, names: Iterable[str], context: str = "table") -> None:
        missing = [n for n in names if n not in self]
        if missing:
            raise UnknownFieldError(f"Missing required fields for {context}: {', '.join(missing)}")

    def build(self, values: Mapping[str, Any]) -> Record:
        """Build a record aligned with the schema; unmapped fields stay None."""

        record: Record = [None] * len(self._names)
        for name, value in values.items():
            record[self.position(name)] = value
        return record


def parse_field_spec(spec: str) -> DbfField:
    """Parse a ``dbf`` layout string such as ``"valor N(14,4)"``."""

    m = _SPEC_RE.match(spec)
    if not m:
        raise ValueError(f"Unrecognized field spec: {spec!r}")
    name, ftype, length, decimals = m.groups()
    return DbfField(name.upper(), ftype.upper(), int(length or 0), int(decimals or 0))


def _require_file(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(f"DBF file not found: {path}")

@contextmanager
def _dbf_errors(path: Path) -> Iterator[None]:
    try:
        yield
    except dbf.DbfError as exc:
        raise DbfTableError(f"{path}: {exc}") from exc


def _open_table(path: Path, encoding: str) -> dbf.Table:
    _require_file(path)
    table = dbf.Table(str(path), codepage=encoding)
    table.open(mode=dbf.READ_ONLY)
    return table


def read_fields(path: Path, encoding: str = DEFAULT_ENCODING) -> List[DbfField]:
    with _dbf_errors(path):
        table = _open_table(path, encoding)
        try:
            return [parse_field_spec(spec) for spec in table.structure()]
        finally:
            table.close()


def read_records(path: Path, encoding: str = DEFAULT_ENCODING) -> List[Record]:
    """Read all live records (deleted ones are skipped) as lists aligned with the fields."""

    _, records = read_table(path, encoding)
    return records


def read_table(path: Path, encoding: str = DEFAULT_ENCODING) -> Tuple[List[DbfField], List[Record]]:
    with _dbf_errors(path):
        table = _open_table(path, encoding)
        try:
            fields = [parse_field_spec(spec) for spec in table.structure()]
            records: List[Record] = []
            for row in table:
                if dbf.is_deleted(row):
                    continue
                records.append([_clean_value(row[i]) for i in range(len(fields))])
        finally:
            table.close()
    LOGGER.debug("Read %d records from %s", len(records), path)
    return fields, records


def _clean_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.rstrip()
    return value


def value_fits(field: DbfField, value: Any) -> bool:
    """True when ``value`` can be stored in a numeric field without overflowing its width."""

    if value is None or field.type not in ("N", "F") or not field.length:
        return True
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return False
    if not number.is_finite():
        return False
    return len(f"{number:.{field.decimals}f}") <= field.length


def _coerce_for_field(field: DbfField, value: Any) -> Any:
    if value is None:
        return "" if field.type == "C" else None
    if field.type == "C":
        text = str(value)
        if field.length and len(text) > field.length:
            LOGGER.warning("Truncating %s value %r to %d characters", field.name, text, field.length)
            text = text[: field.length]
        return text
    if field.type in ("N", "F"):
        if isinstance(value, Decimal):
            if value != round(value, field.decimals):
                LOGGER.warning("Rounding %s value %s to %d decimals", field.name, value, field.decimals)
            return int(value) if field.decimals == 0 and value == value.to_integral_value() else float(value)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            return float(value) if field.decimals else int(float(value))
    return value


def _write_new_table(path: Path, fields: Sequence[DbfField], records: Iterable[Sequence[Any]], encoding: str) -> int:
    specs = "; ".join(f.spec() for f in fields)
    table = dbf.Table(str(path), specs, codepage=encoding)
    table.open(mode=dbf.READ_WRITE)
    count = 0
    try:
        for record in records:
            if len(record) != len(fields):
                raise ValueError(f"Record has {len(record)} values, table has {len(fields)} fields")
            table.append(tuple(_coerce_for_field(f, v) for f, v in zip(fields, record)))
            count += 1
    finally:
        table.close()
    return count


def _stage_table(
    path: Path, fields: Sequence[DbfField], records: Iterable[Sequence[Any]], encoding: str
) -> Tuple[Path, int]:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".dbf", dir=str(path.parent))
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        with _dbf_errors(path):
            count = _write_new_table(tmp_path, fields, records, encoding)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return tmp_path, count


def write_tables(batches: Sequence[TableBatch], encoding: str = DEFAULT_ENCODING) -> List[int]:
    """
    Rewrite several tables together.

    Every table is first written to a temporary file next to its target. Only
    when all of them were written are they moved into place with
    ``os.replace``; on failure every original file is left untouched.
    """

    staged: List[Tuple[Path, Path, int]] = []
    try:
        for path, fields, records in batches:
            path = Path(path)
            tmp_path, count = _stage_table(path, fields, records, encoding)
            staged.append((tmp_path, path, count))
    except BaseException:
        for tmp_path, _, _ in staged:
            tmp_path.unlink(missing_ok=True)
        raise

    for tmp_path, path, count in staged:
        os.replace(tmp_path, path)
        LOGGER.info("Wrote %d records to %s", count, path)
    return [count for _, _, count in staged]


def write_table(
    path: Path,
    fields: Sequence[DbfField],
    records: Iterable[Sequence[Any]],
    encoding: str = DEFAULT_ENCODING,
) -> int:
    """Atomically rewrite ``path`` with the given layout and records."""

    [count] = write_tables([(path, fields, records)], encoding)
    return count


def create_table(path: Path, fields: Sequence[DbfField], encoding: str = DEFAULT_ENCODING) -> None:
    write_table(path, fields, [], encoding)


def backup_path_for(path: Path, timestamp_format: str = BACKUP_TIMESTAMP_FORMAT, now: Optional[datetime] = None) -> Path:
    timestamp = (now or datetime.now()).strftime(timestamp_format)
    return path.with_name(f"{path.name}.bak-{timestamp}")


def backup_file(path: Path, timestamp_format: str = BACKUP_TIMESTAMP_FORMAT, now: Optional[datetime] = None) -> Path:
    path = Path(path)
    _require_file(path)
    target = backup_path_for(path, timestamp_format, now)
    shutil.copy2(path, target)
    LOGGER.info("Backup created at %s", target)
    return target
