"""
Import genetic-evaluation (DEP) CSV exports into the DESCDEP/DEP DBF tables
used by herd management software.
"""

from .schema import (  # noqa: F401
    DEFAULT_CATALOG,
    DEP_LAYOUT,
    DESCDEP_LAYOUT,
    VALUE_COLUMNS,
    CatalogEntry,
    DbfField,
    build_catalog,
)

from .normalize import FormatError, build_animal_id, parse_number  # noqa: F401
from .reconcile import ReconcileResult, VariableDefinition, load_definitions, reconcile  # noqa: F401
from .facts import FactRow, MissingCodeError, build_fact_rows, merge_rows  # noqa: F401
from .dbf_io import DbfTableError, FieldIndex, UnknownFieldError  # noqa: F401
from .config import ConfigError, Settings, catalog_for, load_settings  # noqa: F401
from .pipeline import ImportReport, import_evaluations  # noqa: F401

__all__ = [
    "DEFAULT_CATALOG",
    "DEP_LAYOUT",
    "DESCDEP_LAYOUT",
    "VALUE_COLUMNS",
    "CatalogEntry",
    "DbfField",
    "build_catalog",
    "FormatError",
    "build_animal_id",
    "parse_number",
    "ReconcileResult",
    "VariableDefinition",
    "load_definitions",
    "reconcile",
    "FactRow",
    "MissingCodeError",
    "build_fact_rows",
    "merge_rows",
    "FieldIndex",
    "DbfTableError",
    "UnknownFieldError",
    "ConfigError",
    "Settings",
    "catalog_for",
    "load_settings",
    "ImportReport",
    "import_evaluations",
]
