from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, Tuple

import pandas as pd

from .normalize import FormatError

DEFAULT_CHUNK_SIZE = 5000

# Spreadsheet-style numbering: the header is row 1.
FIRST_DATA_ROW = 2


def iter_csv_records(
    path: Path,
    encoding: str = "utf-8-sig",
    delimiter: str = ",",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[Tuple[int, Dict[str, str]]]:
    """
    Stream a header-aware CSV as ``(row_number, record)`` pairs.

    Every cell is read as text; empty cells are ``""``. Header names are
    trimmed. Columns absent from the file are simply absent from the record,
    so callers query with ``record.get(name)``. Blank lines are skipped but
    still counted, so ``row_number`` is the line in the file as long as no
    quoted cell spans several lines.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    row_number = FIRST_DATA_ROW
    try:
        with pd.read_csv(
            path,
            sep=delimiter,
            encoding=encoding,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            skip_blank_lines=False,
            chunksize=chunk_size,
        ) as reader:
            for chunk in reader:
                chunk.columns = [str(c).strip() for c in chunk.columns]
                # short and blank lines leave NaN in the missing columns
                chunk = chunk.fillna("")
                for record in chunk.to_dict("records"):
                    if any(str(v).strip() for v in record.values()):
                        yield row_number, record
                    row_number += 1
    except pd.errors.EmptyDataError as exc:
        raise FormatError(f"CSV file {path} has no header") from exc
    except pd.errors.ParserError as exc:
        raise FormatError(f"CSV file {path} could not be parsed: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise FormatError(f"CSV file {path} is not valid {encoding}: {exc.reason}") from exc
