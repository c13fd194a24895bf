from __future__ import annotations

from pathlib import Path

import pytest

from cocktail_cellar.storage import Disk


def test_put_creates_parents_and_stays_inside_root(tmp_path: Path) -> None:
    disk = Disk(tmp_path / "uploads")

    written = disk.put("temp/a.jpg", b"abc")

    assert written == disk.root / "temp" / "a.jpg"
    assert written.read_bytes() == b"abc"
    assert disk.exists("temp/a.jpg")


def test_paths_escaping_root_are_rejected(tmp_path: Path) -> None:
    disk = Disk(tmp_path / "uploads")

    with pytest.raises(ValueError):
        disk.path("../outside.txt")
    with pytest.raises(ValueError):
        disk.put("temp/../../outside.txt", b"x")


def test_scratch_disks_are_unique_and_removable(tmp_path: Path) -> None:
    first = Disk.scratch(tmp_path / "scratch")
    second = Disk.scratch(tmp_path / "scratch")
    first.put("nested/file.json", b"[]")

    first.delete_directory()

    assert first.root != second.root
    assert not first.root.exists()
    assert second.root.is_dir()


def test_files_lists_regular_files_sorted(tmp_path: Path) -> None:
    disk = Disk(tmp_path)
    disk.put("uploads/cocktails/b.jpg", b"b")
    disk.put("uploads/cocktails/a.jpg", b"a")
    disk.put("uploads/cocktails/sub/c.jpg", b"c")

    assert [path.name for path in disk.files("uploads/cocktails")] == ["a.jpg", "b.jpg"]
    assert disk.files("uploads/missing") == []


def test_copy_places_file_under_destination(tmp_path: Path) -> None:
    source = tmp_path / "source.png"
    source.write_bytes(b"png")
    disk = Disk(tmp_path / "uploads")

    copied = disk.copy(source, "ingredients/source.png")

    assert copied.read_bytes() == b"png"
