from pathlib import Path

import pytest

from dep_transformer.config import Settings
from dep_transformer.dbf_io import UnknownFieldError, create_table, read_records, read_table, write_table
from dep_transformer.facts import MissingCodeError
from dep_transformer.normalize import FormatError
from dep_transformer.pipeline import ensure_tables, import_evaluations
from dep_transformer.schema import DEP_LAYOUT, DESCDEP_LAYOUT, CatalogEntry, DbfField

IGE_CATALOG = [
    CatalogEntry("IGe", False, "Índice genético", "IGe"),
    CatalogEntry("ACC_IGe", True, "Acurácia do índice genético", "ACC_IGe"),
]


@pytest.fixture
def tables(tmp_path: Path):
    dep = tmp_path / "DEP.DBF"
    descdep = tmp_path / "DESCDEP.DBF"
    create_table(dep, DEP_LAYOUT.fields)
    create_table(descdep, DESCDEP_LAYOUT.fields)
    return dep, descdep


def _write_csv(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_import_into_empty_tables(tmp_path: Path, tables):
    dep, descdep = tables
    csv_path = _write_csv(tmp_path / "eval.csv", 'Série,RGN,IGe,ACC_IGe\nA,12,"3,5",\nB,7,,\n')

    report = import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)

    assert report.records_read == 2
    assert report.rows_inserted == 1
    assert report.descdep_written
    assert [(d.name, d.code) for d in report.new_definitions] == [("IGe", 1), ("ACC_IGe", 0)]

    assert read_records(descdep) == [
        [2, 1, "IGe", "Índice genético"],
        [2, 0, "ACC_IGe", "Acurácia do índice genético"],
    ]
    [row] = read_records(dep)
    assert row[:3] == ["A0012", 2, 1]
    assert row[3] == pytest.approx(3.5)
    assert row[4] in (None, 0)


def test_second_import_appends_and_leaves_descdep_alone(tmp_path: Path, tables):
    dep, descdep = tables
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe,ACC_IGe\nA,12,1,0.5\n")

    import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)
    descdep_bytes = descdep.read_bytes()
    report = import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)

    assert report.new_definitions == []
    assert not report.descdep_written
    assert descdep.read_bytes() == descdep_bytes
    assert report.rows_total == 2
    assert [r[0] for r in read_records(dep)] == ["A0012", "A0012"]


def test_replace_discards_existing_rows(tmp_path: Path, tables):
    dep, descdep = tables
    write_table(dep, DEP_LAYOUT.fields, [["OLD0001", 2, 1, 1.0, 0.5]])
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n")

    import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG, replace=True)

    assert [r[0] for r in read_records(dep)] == ["A0001"]


def test_existing_rows_come_first(tmp_path: Path, tables):
    dep, descdep = tables
    write_table(dep, DEP_LAYOUT.fields, [["OLD0001", 2, 1, 1.0, 0.5]])
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\nB,2,3\n")

    import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)

    assert [r[0] for r in read_records(dep)] == ["OLD0001", "A0001", "B0002"]


def test_malformed_number_aborts_without_writing(tmp_path: Path, tables):
    dep, descdep = tables
    before = (dep.read_bytes(), descdep.read_bytes())
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\nB,2,abc\n")

    with pytest.raises(FormatError, match="CSV row 3"):
        import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)

    assert (dep.read_bytes(), descdep.read_bytes()) == before


def test_value_too_wide_for_dep_aborts_without_writing(tmp_path: Path, tables):
    dep, descdep = tables
    before = (dep.read_bytes(), descdep.read_bytes())
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,123456789012345\n")

    with pytest.raises(FormatError, match="CSV row 2.*VALOR"):
        import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)

    assert (dep.read_bytes(), descdep.read_bytes()) == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["DEP.DBF", "DESCDEP.DBF", "eval.csv"]


def test_error_row_number_counts_blank_lines(tmp_path: Path, tables):
    dep, descdep = tables
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n\nB,2,bad\n")

    with pytest.raises(FormatError, match="CSV row 4"):
        import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)


def test_uncoded_value_entry_raises_missing_code(tmp_path: Path, tables):
    dep, descdep = tables
    write_table(descdep, DESCDEP_LAYOUT.fields, [[2, None, "IGe", "legacy"], [2, 0, "ACC_IGe", "legacy"]])
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n")

    with pytest.raises(MissingCodeError):
        import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)


def test_default_catalog_import(tmp_path: Path, tables):
    dep, descdep = tables
    csv_path = _write_csv(
        tmp_path / "eval.csv",
        "Série,RGN,IGe,ACC_IGe,DPN,ACC_DPN,MP120,ACC_MP120\n"
        "TX,B7,\"10,2\",\"0,8\",\"1,5\",\"0,45\",,\n",
    )

    report = import_evaluations(csv_path, dep, descdep)

    assert len(report.new_definitions) == 26
    codes = {d.name: d.code for d in report.new_definitions}
    assert codes["IGE"] == 1
    assert codes["ACI_GE"] == 0
    rows = read_records(dep)
    assert [(r[0], r[2]) for r in rows] == [("TXB0007", codes["IGE"]), ("TXB0007", codes["DEPD_PN"])]
    assert rows[1][4] == pytest.approx(0.45)


def test_legacy_descdep_codes_and_extra_fields_are_kept(tmp_path: Path, tables):
    dep, _ = tables
    descdep = tmp_path / "LEGACY.DBF"
    fields = [*DESCDEP_LAYOUT.fields, DbfField("OBS", "C", 10)]
    write_table(descdep, fields, [[2, 12, "IGe", "legacy", "keep me"]])
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n")
    catalog = [*IGE_CATALOG, CatalogEntry("DPN", False, "", "DPN")]

    report = import_evaluations(csv_path, dep, descdep, catalog=catalog)

    assert [(d.name, d.code) for d in report.new_definitions] == [("ACC_IGe", 0), ("DPN", 13)]
    _, records = read_table(descdep)
    assert records[0] == [2, 12, "IGe", "legacy", "keep me"]
    assert records[2][:3] == [2, 13, "DPN"]
    assert records[2][3] == "Descrição para DPN"
    assert read_records(dep)[0][2] == 12


def test_program_id_from_settings(tmp_path: Path, tables):
    dep, descdep = tables
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n")

    import_evaluations(csv_path, dep, descdep, settings=Settings(program_id=4), catalog=IGE_CATALOG)

    assert {r[0] for r in read_records(descdep)} == {4}
    assert read_records(dep)[0][1] == 4


def test_custom_animal_columns(tmp_path: Path, tables):
    dep, descdep = tables
    csv_path = _write_csv(tmp_path / "eval.csv", "Serie;RG;IGe\nA;5;2\n")
    settings = Settings(series_column="Serie", registration_column="RG", csv_delimiter=";")

    import_evaluations(csv_path, dep, descdep, settings=settings, catalog=IGE_CATALOG)

    assert read_records(dep)[0][0] == "A0005"


def test_missing_tables_raise(tmp_path: Path):
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n")

    with pytest.raises(FileNotFoundError):
        import_evaluations(csv_path, tmp_path / "DEP.DBF", tmp_path / "DESCDEP.DBF", catalog=IGE_CATALOG)


def test_dep_table_without_required_fields(tmp_path: Path, tables):
    _, descdep = tables
    dep = tmp_path / "BAD.DBF"
    create_table(dep, [DbfField("ANIMAL", "C", 20)])
    csv_path = _write_csv(tmp_path / "eval.csv", "Série,RGN,IGe\nA,1,2\n")

    with pytest.raises(UnknownFieldError):
        import_evaluations(csv_path, dep, descdep, catalog=IGE_CATALOG)


def test_ensure_tables_creates_only_missing(tmp_path: Path):
    dep = tmp_path / "DEP.DBF"
    descdep = tmp_path / "DESCDEP.DBF"
    create_table(dep, DEP_LAYOUT.fields)

    created = ensure_tables(dep, descdep, "cp1252")

    assert created == [descdep]
    fields, records = read_table(descdep)
    assert [f.name for f in fields] == DESCDEP_LAYOUT.field_names
    assert records == []
