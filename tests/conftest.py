import json
import logging
import sqlite3
import subprocess
from pathlib import Path

import pytest
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from open_sight.catalog.schema import init_schema
from open_sight.catalog.ops import CatalogOperations
import open_sight.metadata.crystal_eye as crystal_eye_module

SECONDARY_CAPTURE = "1.2.840.10008.5.1.4.1.1.7"


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the catalog schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def catalog_ops(conn):
    return CatalogOperations(conn)


@pytest.fixture
def write_dicom():
    """Factory writing a minimal Part 10 DICOM file with the given attributes."""
    def _write(path: Path, **attrs) -> Path:
        uid = generate_uid()
        meta = FileMetaDataset()
        meta.MediaStorageSOPClassUID = SECONDARY_CAPTURE
        meta.MediaStorageSOPInstanceUID = uid
        meta.TransferSyntaxUID = ExplicitVRLittleEndian

        ds = Dataset()
        ds.file_meta = meta
        ds.SOPClassUID = SECONDARY_CAPTURE
        ds.SOPInstanceUID = uid
        for keyword, value in attrs.items():
            setattr(ds, keyword, value)

        path.parent.mkdir(parents=True, exist_ok=True)
        ds.save_as(path, enforce_file_format=True)
        return path
    return _write


# crystal-eye output keyed by input file name; anything else makes the tool fail
CE_FIXTURES = {
    "c.e2e": {
        "patient": {
            "patient_key": "P2",
            "first_name": "Jane",
            "last_name": "Doe",
            "date_of_birth": "1975-03-09",
            "gender": "F",
        },
        "exam": {"manufacturer": "Heidelberg Engineering", "scan_datetime": "2021-06-01 10:11:12.5"},
        "series": {"laterality": "R", "protocol": "OCT ART Volume"},
    },
}


@pytest.fixture
def fake_crystal_eye(monkeypatch):
    """
    Replaces the crystal-eye subprocess. Returns the list of input paths it was run on.
    """
    calls = []

    def _run(cmd, **kwargs):
        input_path = cmd[cmd.index("-i") + 1]
        output_dir = Path(cmd[cmd.index("-o") + 1])
        calls.append(input_path)

        payload = CE_FIXTURES.get(Path(input_path).name)
        if payload is None:
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="unknown file format")

        (output_dir / "metadata.json").write_text(json.dumps(payload), encoding="utf-8")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(crystal_eye_module.subprocess, "run", _run)
    return calls


@pytest.fixture
def reset_logging():
    """Undoes the handlers installed by setup_logging() inside a test."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)
