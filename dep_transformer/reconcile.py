from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .dbf_io import FieldIndex, Record
from .schema import DEFAULT_DESCRIPTION_FALLBACK, DEFAULT_PROGRAM_ID, CatalogEntry, DbfField

LOGGER = logging.getLogger(__name__)

DESCDEP_FIELDS = ("PROGAVAL", "CODIGODEP", "DESCDEP", "DESCRICAO")


@dataclass(frozen=True)
class VariableDefinition:
    name: str
    code: Optional[int]
    description: str = ""
    program_id: Optional[int] = DEFAULT_PROGRAM_ID


@dataclass
class ReconcileResult:
    code_map: Dict[str, int]
    entries: List[VariableDefinition]
    added: List[VariableDefinition] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added)


def parse_code(value: Any) -> Optional[int]:
    """Read a CODIGODEP cell; blank or unparsable legacy values give None."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number != number or not number.is_integer():
        return None
    return int(number)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def load_definitions(fields: Sequence[DbfField], records: Iterable[Record]) -> List[VariableDefinition]:
    """Convert DESCDEP records into definitions; records without a name are skipped."""

    index = FieldIndex(fields)
    index.require(("CODIGODEP", "DESCDEP"), context="DESCDEP")
    has_program = "PROGAVAL" in index
    has_description = "DESCRICAO" in index

    definitions: List[VariableDefinition] = []
    for record in records:
        name = _text(index.get(record, "DESCDEP"))
        if not name:
            continue
        definitions.append(
            VariableDefinition(
                name=name,
                code=parse_code(index.get(record, "CODIGODEP")),
                description=_text(index.get(record, "DESCRICAO")) if has_description else "",
                program_id=parse_code(index.get(record, "PROGAVAL")) if has_program else None,
            )
        )
    return definitions


def definition_record(index: FieldIndex, definition: VariableDefinition) -> Record:
    values = {
        "PROGAVAL": definition.program_id,
        "CODIGODEP": definition.code,
        "DESCDEP": definition.name,
        "DESCRICAO": definition.description,
    }
    return index.build({k: v for k, v in values.items() if k in index})


def reconcile(
    existing: Sequence[VariableDefinition],
    catalog: Sequence[CatalogEntry],
    program_id: int = DEFAULT_PROGRAM_ID,
    description_fallback: str = DEFAULT_DESCRIPTION_FALLBACK,
) -> ReconcileResult:
    """
    Make sure every catalog entry has a DESCDEP definition.

    Missing value entries get sequential codes starting after the highest code
    already in use; missing accuracy entries get the sentinel code 0. Existing
    definitions are authoritative and never renumbered. The returned code map
    only holds value (non-accuracy) names with a positive code.
    """

    by_name: Dict[str, VariableDefinition] = {}
    for definition in existing:
        if definition.name in by_name:
            LOGGER.warning(f"Duplicate DESCDEP entry {definition.name!r}; keeping code {by_name[definition.name].code}")
            continue
        by_name[definition.name] = definition

    max_code = max((d.code or 0 for d in existing), default=0)
    next_code = max(max_code, 0) + 1

    added: List[VariableDefinition] = []
    for entry in catalog:
        if entry.name in by_name:
            continue
        if entry.is_accuracy:
            code = 0
        else:
            code = next_code
            next_code += 1
        description = entry.description or description_fallback.format(name=entry.name)
        definition = VariableDefinition(entry.name, code, description, program_id)
        by_name[entry.name] = definition
        added.append(definition)
        LOGGER.info(f"New DESCDEP entry {entry.name} -> {code}")

    accuracy_names = {e.name for e in catalog if e.is_accuracy}
    code_map: Dict[str, int] = {}
    for name, definition in by_name.items():
        if name in accuracy_names:
            continue
        if definition.code is not None and definition.code > 0:
            code_map[name] = definition.code

    for entry in catalog:
        if not entry.is_accuracy and entry.name not in code_map:
            LOGGER.warning(f"DESCDEP entry {entry.name!r} has no positive CODIGODEP; its values cannot be imported")

    return ReconcileResult(code_map=code_map, entries=[*existing, *added], added=added)
