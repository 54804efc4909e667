import pytest
from pathlib import Path

from open_sight.catalog.db import CatalogManager
from open_sight.catalog.ops import CatalogOperations
from open_sight.copy_main import main as copy_main
from open_sight.exceptions import CatalogError
from open_sight.ledger.sink import LedgerWriter
from open_sight.models import MetadataRecord
from open_sight.organization.copier import PatientFileCopier, read_patient_ids


def _write_ledger(csv_path: Path, records):
    LedgerWriter(csv_path).write(records)
    return csv_path


@pytest.fixture
def source_files(tmp_path):
    """Three indexed files for two patients, plus the ledger describing them."""
    src = tmp_path / "src"
    src.mkdir()
    files = {}
    for name in ("oct.dcm", "fundus.dcm", "other.e2e"):
        p = src / name
        p.write_bytes(name.encode())
        files[name] = p

    records = [
        MetadataRecord(patient_id="P1", laterality="R", scan_date="15-02-2020", modality="OPT",
                       manufacturer="Heidelberg Engineering", file_size=7, file_path=str(files["oct.dcm"])),
        MetadataRecord(patient_id="P1", laterality="L", scan_date="01-01-2019", modality="OP",
                       manufacturer="Topcon", file_size=10, file_path=str(files["fundus.dcm"])),
        MetadataRecord(patient_id="P2", laterality="", scan_date="", modality="CE",
                       file_size=9, file_path=str(files["other.e2e"])),
    ]
    ledger = _write_ledger(tmp_path / "results.csv", records)
    return files, ledger


def test_import_ledger_ignores_known_paths(catalog_ops, source_files):
    _, ledger = source_files

    assert catalog_ops.import_ledger(ledger) == 3
    assert catalog_ops.import_ledger(ledger) == 0
    assert catalog_ops.count_rows() == 3


def test_fetch_patient_files_orders_and_filters(catalog_ops, source_files):
    files, ledger = source_files
    catalog_ops.import_ledger(ledger)

    rows = catalog_ops.fetch_patient_files("P1")
    assert rows == [
        ("L", "2019-01-01", "OP", str(files["fundus.dcm"])),
        ("R", "2020-02-15", "OPT", str(files["oct.dcm"])),
    ]

    assert len(catalog_ops.fetch_patient_files("P1", modalities=["OPT"])) == 1
    assert catalog_ops.fetch_patient_files("P1", manufacturer="Zeiss") == []
    assert catalog_ops.fetch_patient_files("nobody") == []


def test_copier_layout_and_not_found(catalog_ops, source_files, tmp_path):
    files, ledger = source_files
    catalog_ops.import_ledger(ledger)
    dest = tmp_path / "dest"

    copier = PatientFileCopier(catalog_ops, dest)
    not_found = copier.run(["P1", "P2", "P404"])

    assert not_found == ["P404"]
    assert (dest / "P1" / "20200215_R" / "OPT_oct.dcm").read_bytes() == b"oct.dcm"
    assert (dest / "P1" / "20190101_L" / "OP_fundus.dcm").exists()
    assert (dest / "P2" / "unknown_" / "CE_other.e2e").exists()


def test_copier_respects_overwrite(catalog_ops, source_files, tmp_path):
    files, ledger = source_files
    catalog_ops.import_ledger(ledger)
    dest = tmp_path / "dest"
    target = dest / "P1" / "20200215_R" / "OPT_oct.dcm"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"stale")

    PatientFileCopier(catalog_ops, dest, modalities=["OPT"]).copy_patient("P1")
    assert target.read_bytes() == b"stale"

    PatientFileCopier(catalog_ops, dest, overwrite=True, modalities=["OPT"]).copy_patient("P1")
    assert target.read_bytes() == b"oct.dcm"


def test_missing_source_does_not_stop_copy(catalog_ops, source_files, tmp_path, caplog):
    files, ledger = source_files
    catalog_ops.import_ledger(ledger)
    files["oct.dcm"].unlink()

    assert PatientFileCopier(catalog_ops, tmp_path / "dest").copy_patient("P1")
    assert (tmp_path / "dest" / "P1" / "20190101_L" / "OP_fundus.dcm").exists()
    assert "Failed to copy" in caplog.text


def test_read_only_catalog_requires_database(tmp_path):
    with pytest.raises(CatalogError):
        CatalogManager(tmp_path / "missing.db", read_only=True).connect()


def test_read_patient_ids(tmp_path):
    ids = tmp_path / "ids.txt"
    ids.write_text(" P1 \n\nP2\n")
    assert read_patient_ids(ids) == ["P1", "P2"]


def test_copy_cli_end_to_end(source_files, tmp_path, monkeypatch, reset_logging):
    _, ledger = source_files
    monkeypatch.chdir(tmp_path)
    ids = tmp_path / "ids.txt"
    ids.write_text("P2\nP404\n")
    db = tmp_path / "catalog.db"

    copy_main([str(ids), str(tmp_path / "out"), "--database", str(db), "--ledger", str(ledger)])

    assert (tmp_path / "out" / "P2" / "unknown_" / "CE_other.e2e").exists()
    assert (tmp_path / "patient_ids_not_found.csv").read_text() == "P404\n"

    with CatalogManager(db, read_only=True) as conn:
        assert CatalogOperations(conn).count_rows() == 3


def test_copy_cli_unusable_database_exits_cleanly(source_files, tmp_path, reset_logging):
    _, ledger = source_files
    ids = tmp_path / "ids.txt"
    ids.write_text("P1\n")

    with pytest.raises(SystemExit) as exc_info:
        copy_main([str(ids), str(tmp_path / "out"),
                   "--database", str(tmp_path / "no_dir" / "catalog.db"), "--ledger", str(ledger)])

    assert exc_info.value.code == 1
    assert not (tmp_path / "out").exists()


def test_import_skips_rows_with_undecodable_paths(catalog_ops, tmp_path, caplog):
    ledger = _write_ledger(tmp_path / "results.csv", [
        MetadataRecord(patient_id="P1", file_size=1, file_path="/data/ok.dcm"),
        MetadataRecord(patient_id="P1", file_size=1, file_path="/data/caf\udce9.dcm"),
    ])

    assert catalog_ops.import_ledger(ledger) == 1
    assert catalog_ops.fetch_patient_files("P1") == [("", None, "", "/data/ok.dcm")]
    assert "undecodable" in caplog.text
