import zipfile

import py7zr
import pytest

from builders import write_zip
from modlens.archive.handler import (
    ArchiveEntry,
    MissingArchiveToolError,
    SevenZipHandler,
    ZipHandler,
    is_archive_filename,
    open_archive,
    parse_7z_listing,
)


class TestZipHandler:
    def test_list_entries_with_sizes(self, tmp_path):
        path = write_zip(tmp_path / "t.zip", {"a.txt": b"hello", "meshes/b.nif": b"x" * 100})
        with ZipHandler(path) as handler:
            entries = {e.filename: e for e in handler.list_entries()}
        assert entries["a.txt"].size == 5
        assert entries["meshes/b.nif"].size == 100

    def test_list_files_skips_directories(self, tmp_path):
        path = tmp_path / "dirs.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.mkdir("subdir")
            zf.writestr("subdir/nested.txt", b"nested")
        with ZipHandler(path) as handler:
            assert handler.list_files() == ["subdir/nested.txt"]
            assert any(e.is_dir for e in handler.list_entries())

    def test_read_file(self, tmp_path):
        path = write_zip(tmp_path / "t.zip", {"data.bin": b"exact bytes"})
        with ZipHandler(path) as handler:
            assert handler.read_file(ArchiveEntry("data.bin", False)) == b"exact bytes"

    def test_read_all_files(self, tmp_path):
        path = write_zip(tmp_path / "t.zip", {"a": b"1", "b": b"2"})
        with ZipHandler(path) as handler:
            assert handler.read_all_files(handler.list_entries()) == {"a": b"1", "b": b"2"}

    def test_extract_paths(self, tmp_path):
        path = write_zip(tmp_path / "t.zip", {"Data/Mod.esp": b"plugin", "Data/other.txt": b"x"})
        dest = tmp_path / "out"
        with ZipHandler(path) as handler:
            extracted = handler.extract_paths(["Data/Mod.esp", "not/there.esp"], dest)
        assert list(extracted) == ["Data/Mod.esp"]
        assert extracted["Data/Mod.esp"].read_bytes() == b"plugin"
        assert not (dest / "Data" / "other.txt").exists()

    def test_extract_rejects_path_traversal(self, tmp_path):
        path = write_zip(tmp_path / "evil.zip", {"../escape.esp": b"bad"})
        dest = tmp_path / "out"
        with ZipHandler(path) as handler:
            extracted = handler.extract_paths(["../escape.esp"], dest)
        assert extracted == {}
        assert not (tmp_path / "escape.esp").exists()

    def test_iter_members(self, tmp_path):
        path = write_zip(tmp_path / "t.zip", {"a.nif": b"first", "b.dds": b"second"})
        with ZipHandler(path) as handler:
            members = handler.iter_members(handler.list_entries())
            seen = [(entry.filename, stream.read()) for entry, stream in members]
        assert seen == [("a.nif", b"first"), ("b.dds", b"second")]


class TestSevenZipHandler:
    @pytest.fixture
    def archive(self, tmp_path):
        path = tmp_path / "mod.7z"
        with py7zr.SevenZipFile(path, "w") as sz:
            sz.writestr(b"mesh data", "meshes/a.nif")
            sz.writestr(b"plugin data", "Mod.esp")
        return path

    def test_list_and_read(self, archive):
        with SevenZipHandler(archive) as handler:
            assert sorted(handler.list_files()) == ["Mod.esp", "meshes/a.nif"]
            data = handler.read_all_files(handler.list_entries())
        assert data["meshes/a.nif"] == b"mesh data"

    def test_extract_paths(self, archive, tmp_path):
        with SevenZipHandler(archive) as handler:
            extracted = handler.extract_paths(["Mod.esp"], tmp_path / "out")
        assert extracted["Mod.esp"].read_bytes() == b"plugin data"

    def test_iter_members_stages_on_disk(self, archive):
        with SevenZipHandler(archive) as handler:
            members = handler.iter_members(handler.list_entries())
            contents = {entry.filename: stream.read() for entry, stream in members}
        assert contents == {"meshes/a.nif": b"mesh data", "Mod.esp": b"plugin data"}


class TestOpenArchive:
    def test_zip(self, tmp_path):
        path = write_zip(tmp_path / "t.ZIP", {"a": b"1"})
        with open_archive(path) as handler:
            assert isinstance(handler, ZipHandler)

    def test_unsupported(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported"):
            open_archive(tmp_path / "mod.tar.gz")

    def test_rar_without_7zip(self, tmp_path, monkeypatch):
        monkeypatch.setattr("modlens.archive.handler.find_7z_executable", lambda: None)
        with pytest.raises(MissingArchiveToolError):
            open_archive(tmp_path / "mod.rar")

    def test_corrupt_zip(self, tmp_path):
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"not a zip")
        with pytest.raises(zipfile.BadZipFile):
            open_archive(bad)

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("a.zip", True), ("A.7Z", True), ("x.rar", True), ("Mod.esp", False), ("noext", False)],
    )
    def test_is_archive_filename(self, name, expected):
        assert is_archive_filename(name) is expected


SLT_OUTPUT = """\
7-Zip 23.01 (x64)

Listing archive: /mods/pack.rar

--
Path = /mods/pack.rar
Type = Rar5
Physical Size = 4096

----------
Path = Data
Folder = +
Size = 0
Attributes = D

Path = Data/Mod.esp
Folder = -
Size = 1234
Attributes = A
"""


class TestParse7zListing:
    def test_entries(self):
        entries = parse_7z_listing(SLT_OUTPUT, "/mods/pack.rar")
        assert entries == [
            ArchiveEntry("Data", True, 0),
            ArchiveEntry("Data/Mod.esp", False, 1234),
        ]

    def test_empty_output(self):
        assert parse_7z_listing("", "x.rar") == []
