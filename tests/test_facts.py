from decimal import Decimal

import pytest

from dep_transformer.dbf_io import FieldIndex
from dep_transformer.facts import FactRow, MissingCodeError, build_fact_rows, fact_record, merge_rows
from dep_transformer.normalize import FormatError, build_animal_id
from dep_transformer.schema import DEFAULT_CATALOG, DEP_LAYOUT, CatalogEntry, DbfField

IGE_CATALOG = [
    CatalogEntry("IGe", False, "Índice genético", "IGe"),
    CatalogEntry("ACC_IGe", True, "Acurácia do índice genético", "ACC_IGe"),
]


def test_value_without_accuracy_yields_one_row():
    record = {"Série": "A", "RGN": "12", "IGe": "3,5", "ACC_IGe": ""}
    animal = build_animal_id(record["Série"], record["RGN"])

    rows = build_fact_rows(record, animal, {"IGe": 1}, IGE_CATALOG)

    assert rows == [FactRow("A0012", 1, Decimal("3.5"), None, 2)]


def test_both_blank_yields_nothing():
    record = {"IGe": "", "ACC_IGe": "  "}

    assert build_fact_rows(record, "A0012", {"IGe": 1}, IGE_CATALOG) == []


def test_missing_columns_count_as_blank():
    assert build_fact_rows({"Série": "A"}, "A", {"IGe": 1}, IGE_CATALOG) == []


def test_accuracy_alone_still_emits_row():
    rows = build_fact_rows({"IGe": "", "ACC_IGe": "0,71"}, "A0001", {"IGe": 1}, IGE_CATALOG)

    assert rows == [FactRow("A0001", 1, None, Decimal("0.71"), 2)]


def test_rows_follow_catalog_order_with_default_catalog():
    code_map = {e.name: i for i, e in enumerate(DEFAULT_CATALOG, start=1) if not e.is_accuracy}
    record = {"DPN": "1,2", "ACC_DPN": "0,4", "IGe": "10", "MP120": "-3"}

    rows = build_fact_rows(record, "X0001", code_map, DEFAULT_CATALOG)

    assert [r.code for r in rows] == [code_map["IGE"], code_map["DEPD_PN"], code_map["DEPM_P120"]]
    assert rows[1].accuracy == Decimal("0.4")
    assert rows[2].value == Decimal("-3")


def test_malformed_value_raises_format_error():
    with pytest.raises(FormatError):
        build_fact_rows({"IGe": "3,5x"}, "A", {"IGe": 1}, IGE_CATALOG)


def test_malformed_accuracy_raises_format_error():
    with pytest.raises(FormatError):
        build_fact_rows({"IGe": "3", "ACC_IGe": "high"}, "A", {"IGe": 1}, IGE_CATALOG)


def test_unknown_code_raises_missing_code_error():
    with pytest.raises(MissingCodeError):
        build_fact_rows({"IGe": "3"}, "A", {}, IGE_CATALOG)


def test_unknown_code_is_ignored_when_column_blank():
    assert build_fact_rows({"IGe": ""}, "A", {}, IGE_CATALOG) == []


def test_program_id_is_carried():
    rows = build_fact_rows({"IGe": "1"}, "A", {"IGe": 1}, IGE_CATALOG, program_id=9)

    assert rows[0].program_id == 9


def test_fact_record_aligns_with_layout():
    index = FieldIndex(DEP_LAYOUT.fields)
    record = fact_record(index, FactRow("A0012", 1, Decimal("3.5"), None, 2))

    assert record == ["A0012", 2, 1, Decimal("3.5"), None]


def test_fact_record_follows_field_order_of_table():
    fields = [
        DbfField("VALOR", "N", 14, 4),
        DbfField("animal", "C", 20),
        DbfField("EXTRA", "C", 5),
        DbfField("ACURACIA", "N", 8, 4),
        DbfField("CODIGODEP", "N", 6),
        DbfField("PROGAVAL", "N", 4),
    ]
    record = fact_record(FieldIndex(fields), FactRow("B0001", 3, Decimal("1"), Decimal("0.5"), 2))

    assert record == [Decimal("1"), "B0001", None, Decimal("0.5"), 3, 2]


def test_merge_rows_appends_in_arrival_order_without_dedup():
    existing = [["A", 1], ["B", 2]]
    new = [["A", 1], ["C", 3]]

    merged = merge_rows(existing, new)

    assert merged == [["A", 1], ["B", 2], ["A", 1], ["C", 3]]
    assert existing == [["A", 1], ["B", 2]]
