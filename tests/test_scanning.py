import os
import pytest
from pathlib import Path

from open_sight.exceptions import StartupError
from open_sight.scanning import filesystem
from open_sight.scanning.filesystem import PathEnumerator
from open_sight.scanning.scheduler import partition
from open_sight.models import CandidatePath
from open_sight import config


def _touch(path: Path, data: bytes = b"data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def test_enumerator_walks_and_filters_extensions(tmp_path):
    _touch(tmp_path / "a.dcm")
    _touch(tmp_path / "sub" / "b.E2E")
    _touch(tmp_path / "sub" / "deeper" / "c.fda")
    _touch(tmp_path / "notes.txt")

    candidates = PathEnumerator().enumerate([str(tmp_path)])
    names = sorted(c.path.name for c in candidates)

    assert names == ["a.dcm", "b.E2E", "c.fda"]
    for c in candidates:
        assert c.path.is_absolute()
        assert c.size_bytes == 4


def test_enumerator_skips_empty_files(tmp_path):
    _touch(tmp_path / "empty.dcm", b"")
    _touch(tmp_path / "full.dcm")

    candidates = PathEnumerator().enumerate([str(tmp_path)])
    assert [c.path.name for c in candidates] == ["full.dcm"]


def test_enumerator_deduplicates_overlapping_roots(tmp_path):
    f = _touch(tmp_path / "x" / "a.dcm")

    candidates = PathEnumerator().enumerate([str(tmp_path), str(tmp_path / "x"), str(f)])
    assert len(candidates) == 1
    assert candidates[0].key == str(f.resolve())


def test_enumerator_expands_globs(tmp_path):
    _touch(tmp_path / "site1" / "a.dcm")
    _touch(tmp_path / "site2" / "b.sdb")
    _touch(tmp_path / "other" / "c.dcm")

    candidates = PathEnumerator().enumerate([str(tmp_path / "site*")])
    assert sorted(c.path.name for c in candidates) == ["a.dcm", "b.sdb"]


def test_enumerator_missing_root_is_startup_failure(tmp_path):
    with pytest.raises(StartupError):
        PathEnumerator().enumerate([str(tmp_path / "missing")])

    with pytest.raises(StartupError):
        PathEnumerator().enumerate([str(tmp_path / "nothing*")])


@pytest.mark.skipif(not hasattr(os, "symlink") or os.name == "nt", reason="needs POSIX symlinks")
def test_enumerator_survives_symlink_loop(tmp_path):
    _touch(tmp_path / "a" / "scan.dcm")
    os.symlink(tmp_path, tmp_path / "a" / "loop")

    candidates = PathEnumerator().enumerate([str(tmp_path)])
    assert [c.path.name for c in candidates] == ["scan.dcm"]


def test_enumerator_skips_unreadable_subdirectory(tmp_path, monkeypatch, caplog):
    _touch(tmp_path / "locked" / "hidden.dcm")
    _touch(tmp_path / "open" / "b.dcm")
    _touch(tmp_path / "a.dcm")

    real_scandir = os.scandir

    def _scandir(path):
        if Path(path).name == "locked":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(filesystem.os, "scandir", _scandir)

    candidates = PathEnumerator().enumerate([str(tmp_path)])

    assert sorted(c.path.name for c in candidates) == ["a.dcm", "b.dcm"]
    assert "Skipping unreadable directory" in caplog.text
    assert "locked" in caplog.text


def test_enumerator_accepts_literal_path_with_glob_characters(tmp_path):
    _touch(tmp_path / "[2020] export" / "a.dcm")

    candidates = PathEnumerator().enumerate([str(tmp_path / "[2020] export")])
    assert [c.path.name for c in candidates] == ["a.dcm"]


def test_custom_extensions():
    enumerator = PathEnumerator(extensions={".DCM"})
    assert enumerator.matches(Path("x.dcm"))
    assert not enumerator.matches(Path("x.e2e"))
    assert PathEnumerator().extensions == config.CE_EXT


def test_partition_keeps_order_and_short_last_batch():
    cands = [CandidatePath(Path(f"/f{i}.dcm"), 1, 0.0) for i in range(5)]
    batches = list(partition(cands, 2))

    assert [len(b) for b in batches] == [2, 2, 1]
    assert [c for b in batches for c in b] == cands

    with pytest.raises(ValueError):
        list(partition(cands, 0))
