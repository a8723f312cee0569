from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

ACCURACY_PREFIX = "ACC_"
DEFAULT_PROGRAM_ID = 2
DEFAULT_DESCRIPTION_FALLBACK = "Descrição para {name}"


@dataclass(frozen=True)
class DbfField:
    """One column of a DBF table layout."""

    name: str
    type: str
    length: int = 0
    decimals: int = 0

    def spec(self) -> str:
        """Render the field as a layout spec understood by the dbf library."""

        if self.type in ("N", "F"):
            return f"{self.name} {self.type}({self.length},{self.decimals})"
        if self.type == "C":
            return f"{self.name} {self.type}({self.length})"
        return f"{self.name} {self.type}"


@dataclass(frozen=True)
class TableLayout:
    """Default layout for one of the managed tables."""

    name: str
    fields: Sequence[DbfField]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


DESCDEP_LAYOUT = TableLayout(
    "descdep",
    (
        DbfField("PROGAVAL", "N", 4, 0),
        DbfField("CODIGODEP", "N", 6, 0),
        DbfField("DESCDEP", "C", 20),
        DbfField("DESCRICAO", "C", 80),
    ),
)

DEP_LAYOUT = TableLayout(
    "dep",
    (
        DbfField("ANIMAL", "C", 20),
        DbfField("PROGAVAL", "N", 4, 0),
        DbfField("CODIGODEP", "N", 6, 0),
        DbfField("VALOR", "N", 14, 4),
        DbfField("ACURACIA", "N", 8, 4),
    ),
)


# CSV column -> (DESCDEP name for the value, DESCDEP name for its accuracy).
# IGe and MGTe break the DEPx_/ACx_ naming used by the rest.
VALUE_COLUMNS: Mapping[str, Tuple[str, str]] = {
    "IGe": ("IGE", "ACI_GE"),
    "MGTe": ("MGT", "ACM_GT"),
    "DIPP": ("DEPD_IPP", "ACD_IPP"),
    "DPE365": ("DEPD_PE365", "ACD_PE365"),
    "DPE450": ("DEPD_PE450", "ACD_PE450"),
    "DPN": ("DEPD_PN", "ACD_PN"),
    "MP120": ("DEPM_P120", "ACM_P120"),
    "MP210": ("DEPM_P210", "ACM_P210"),
    "DP120": ("DEPD_P120", "ACD_P120"),
    "DP210": ("DEPD_P210", "ACD_P210"),
    "DP365": ("DEPD_P365", "ACD_P365"),
    "DP450": ("DEPD_P450", "ACD_P450"),
    "DPAC": ("DEPD_PAC", "ACD_PAC"),
}

# Curated descriptions keyed by CSV column (accuracy columns carry the ACC_ prefix).
COLUMN_DESCRIPTIONS: Mapping[str, str] = {
    "IGe": "Índice genético",
    "ACC_IGe": "Acurácia do índice genético",
    "DIPP": "Diferença esperada na produção de leite",
    "ACC_DIPP": "Acurácia de DIPP",
    "DPE365": "Diferença esperada na produção aos 365 dias",
    "ACC_DPE365": "Acurácia de DPE365",
    "DPE450": "Diferença esperada na produção aos 450 dias",
    "ACC_DPE450": "Acurácia de DPE450",
    "DPN": "Diferença esperada na produção ao nascimento",
    "ACC_DPN": "Acurácia de DPN",
    "MP120": "Média de produção aos 120 dias",
    "ACC_MP120": "Acurácia de MP120",
    "MP210": "Média de produção aos 210 dias",
    "ACC_MP210": "Acurácia de MP210",
    "DP120": "Diferença de peso aos 120 dias",
    "ACC_DP120": "Acurácia de DP120",
    "DP210": "Diferença de peso aos 210 dias",
    "ACC_DP210": "Acurácia de DP210",
    "DP365": "Diferença de peso aos 365 dias",
    "ACC_DP365": "Acurácia de DP365",
    "DP450": "Diferença de peso aos 450 dias",
    "ACC_DP450": "Acurácia de DP450",
    "DPAC": "Diferença de peso ao acabamento",
    "ACC_DPAC": "Acurácia de DPAC",
}


@dataclass(frozen=True)
class CatalogEntry:
    """Expected DESCDEP entry and the CSV column that feeds it."""

    name: str
    is_accuracy: bool
    description: str
    source_column: str


def accuracy_column(column: str) -> str:
    return f"{ACCURACY_PREFIX}{column}"


def merge_value_columns(
    overrides: Mapping[str, Sequence[str]] | None,
    base: Mapping[str, Tuple[str, str]] | None = None,
) -> Dict[str, Tuple[str, str]]:
    """
    Merge column overrides into the static column table.

    Overrides map a CSV column to ``[value_name, accuracy_name]``. New columns
    are appended after the defaults so existing ordering is kept.
    """

    merged: Dict[str, Tuple[str, str]] = dict(base if base is not None else VALUE_COLUMNS)
    for column, names in (overrides or {}).items():
        names = list(names)
        if len(names) != 2:
            raise ValueError(f"Column {column!r} must map to [value_name, accuracy_name], got {names!r}")
        merged[str(column)] = (str(names[0]), str(names[1]))
    return merged


def build_catalog(
    value_columns: Mapping[str, Tuple[str, str]] | None = None,
    descriptions: Mapping[str, str] | None = None,
    description_fallback: str = DEFAULT_DESCRIPTION_FALLBACK,
) -> List[CatalogEntry]:
    """
    Expand the column table into ordered catalog entries (value, then accuracy).

    Descriptions are looked up by CSV column name; entries without a curated
    text get ``description_fallback`` formatted with the DESCDEP name.
    """

    columns = value_columns if value_columns is not None else VALUE_COLUMNS
    texts: Dict[str, str] = dict(COLUMN_DESCRIPTIONS)
    texts.update(descriptions or {})

    def describe(column: str, name: str) -> str:
        text: Optional[str] = texts.get(column)
        return text if text else description_fallback.format(name=name)

    catalog: List[CatalogEntry] = []
    for column, (value_name, accuracy_name) in columns.items():
        acc_column = accuracy_column(column)
        catalog.append(CatalogEntry(value_name, False, describe(column, value_name), column))
        catalog.append(CatalogEntry(accuracy_name, True, describe(acc_column, accuracy_name), acc_column))
    return catalog


DEFAULT_CATALOG: List[CatalogEntry] = build_catalog()
