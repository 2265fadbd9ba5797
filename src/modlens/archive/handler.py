"""Uniform access to mod archives (ZIP, 7z, RAR).

Handlers list entries, read contents into memory for hashing, and
extract selected members into a caller-owned directory.  Extraction
never writes outside that directory; members whose names would escape
it are skipped.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import zipfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import IO

import py7zr

SUPPORTED_EXTENSIONS = frozenset({".zip", ".7z", ".rar"})

_COPY_CHUNK_SIZE = 65_536
_LIST_TIMEOUT = 60
_EXTRACT_TIMEOUT = 300


class MissingArchiveToolError(RuntimeError):
    """The external 7-Zip tool needed for this archive format is not installed."""


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    filename: str
    is_dir: bool
    size: int = 0


def _safe_destination(dest_dir: Path, name: str) -> Path | None:
    """Resolve *name* under *dest_dir*, or ``None`` if it would escape it."""
    root = dest_dir.resolve()
    target = (root / name.replace("\\", "/")).resolve()
    if target == root or root not in target.parents:
        return None
    return target


class ArchiveHandler(ABC):
    """Base class for archive format handlers."""

    @abstractmethod
    def list_entries(self) -> list[ArchiveEntry]:
        """Return every entry, directories included."""

    @abstractmethod
    def read_file(self, entry: ArchiveEntry) -> bytes: ...

    @abstractmethod
    def close(self) -> None: ...

    def list_files(self) -> list[str]:
        return [e.filename for e in self.list_entries() if not e.is_dir]

    def read_all_files(self, entries: list[ArchiveEntry]) -> dict[str, bytes]:
        """Read the given file entries.  Formats with solid blocks override this."""
        return {e.filename: self.read_file(e) for e in entries if not e.is_dir}

    def extract_paths(self, names: list[str], dest_dir: Path) -> dict[str, Path]:
        """Extract the named members into *dest_dir*.

        Returns archive name -> extracted file.  Unknown names and names
        that would land outside *dest_dir* are left out.
        """
        wanted = set(names)
        extracted: dict[str, Path] = {}
        for entry in self.list_entries():
            if entry.is_dir or entry.filename not in wanted:
                continue
            target = _safe_destination(dest_dir, entry.filename)
            if target is None:
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(self.read_file(entry))
            extracted[entry.filename] = target
        return extracted

    def iter_members(self, entries: list[ArchiveEntry]) -> Iterator[tuple[ArchiveEntry, IO[bytes]]]:
        """Yield an open binary stream for each file entry, one at a time.

        Members are staged in a scratch directory on disk and opened in
        turn, so at most one is open at once.

        Raises:
            FileNotFoundError: If a member could not be staged.
        """
        files = [e for e in entries if not e.is_dir]
        if not files:
            return
        with tempfile.TemporaryDirectory(prefix="modlens-") as scratch:
            staged = self.extract_paths([e.filename for e in files], Path(scratch))
            for entry in files:
                path = staged.get(entry.filename)
                if path is None:
                    raise FileNotFoundError(f"Could not stage {entry.filename!r} from archive")
                with path.open("rb") as stream:
                    yield entry, stream

    def __enter__(self) -> ArchiveHandler:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()


class ZipHandler(ArchiveHandler):
    def __init__(self, path: str | Path) -> None:
        self._zf = zipfile.ZipFile(path, "r")

    def list_entries(self) -> list[ArchiveEntry]:
        return [
            ArchiveEntry(filename=info.filename, is_dir=info.is_dir(), size=info.file_size)
            for info in self._zf.infolist()
        ]

    def read_file(self, entry: ArchiveEntry) -> bytes:
        return self._zf.read(entry.filename)

    def extract_paths(self, names: list[str], dest_dir: Path) -> dict[str, Path]:
        wanted = set(names)
        extracted: dict[str, Path] = {}
        for info in self._zf.infolist():
            if info.is_dir() or info.filename not in wanted:
                continue
            target = _safe_destination(dest_dir, info.filename)
            if target is None:
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with self._zf.open(info) as src, target.open("wb") as dst:
                shutil.copyfileobj(src, dst, _COPY_CHUNK_SIZE)
            extracted[info.filename] = target
        return extracted

    def iter_members(self, entries: list[ArchiveEntry]) -> Iterator[tuple[ArchiveEntry, IO[bytes]]]:
        for entry in entries:
            if entry.is_dir:
                continue
            with self._zf.open(entry.filename) as stream:
                yield entry, stream

    def close(self) -> None:
        self._zf.close()


class SevenZipHandler(ArchiveHandler):
    """Handler for .7z archives backed by py7zr.

    py7zr only extracts to disk, so in-memory reads go through a scratch
    directory.  Reading many members is done in one pass since every
    extraction rewinds the (often solid) archive.
    """

    def __init__(self, path: str | Path) -> None:
        self._archive = py7zr.SevenZipFile(Path(path), mode="r")
        self._contents: dict[str, bytes] = {}

    def list_entries(self) -> list[ArchiveEntry]:
        return [
            ArchiveEntry(
                filename=info.filename,
                is_dir=info.is_directory,
                size=getattr(info, "uncompressed", 0) or 0,
            )
            for info in self._archive.list()
        ]

    def _extract_to(self, targets: list[str], dest_dir: Path) -> dict[str, Path]:
        root = dest_dir.resolve()
        self._archive.reset()
        self._archive.extract(path=root, targets=targets)
        found: dict[str, Path] = {}
        for name in targets:
            candidate = (root / name).resolve()
            if candidate.is_file() and root in candidate.parents:
                found[name] = candidate
        return found

    def read_all_files(self, entries: list[ArchiveEntry]) -> dict[str, bytes]:
        targets = [e.filename for e in entries if not e.is_dir]
        with tempfile.TemporaryDirectory() as scratch:
            extracted = self._extract_to(targets, Path(scratch))
            self._contents = {name: path.read_bytes() for name, path in extracted.items()}
        return dict(self._contents)

    def read_file(self, entry: ArchiveEntry) -> bytes:
        if entry.filename not in self._contents:
            self._contents.update(self.read_all_files([entry]))
        return self._contents.get(entry.filename, b"")

    def extract_paths(self, names: list[str], dest_dir: Path) -> dict[str, Path]:
        members = set(self.list_files())
        targets = [n for n in names if n in members and _safe_destination(dest_dir, n)]
        return self._extract_to(targets, dest_dir) if targets else {}

    def close(self) -> None:
        self._contents = {}
        self._archive.close()


def find_7z_executable() -> str | None:
    """Locate the 7-Zip command-line tool, used for RAR archives."""
    for candidate in (
        r"C:\Program Files\7-Zip\7z.exe",
        r"C:\Program Files (x86)\7-Zip\7z.exe",
    ):
        if Path(candidate).exists():
            return candidate
    return shutil.which("7z") or shutil.which("7zz")


def parse_7z_listing(output: str, archive_path: str) -> list[ArchiveEntry]:
    """Parse the technical listing printed by ``7z l -slt``.

    Each member is a block of ``Key = Value`` lines starting at ``Path``.
    The first block describes the archive itself and is dropped.
    """
    entries: list[ArchiveEntry] = []
    block: dict[str, str] = {}

    def flush() -> None:
        name = block.get("Path")
        if name and name != archive_path:
            size = block.get("Size", "0")
            entries.append(
                ArchiveEntry(
                    filename=name,
                    is_dir=block.get("Folder") == "+" or "D" in block.get("Attributes", ""),
                    size=int(size) if size.isdigit() else 0,
                )
            )

    for raw in output.splitlines():
        key, sep, value = raw.strip().partition(" = ")
        if not sep:
            continue
        if key == "Path":
            flush()
            block = {}
        block[key] = value
    flush()
    return entries


class RarHandler(ArchiveHandler):
    """Handler for .rar archives, driven through the 7-Zip CLI."""

    def __init__(self, path: str | Path) -> None:
        exe = find_7z_executable()
        if exe is None:
            raise MissingArchiveToolError("RAR extraction requires 7-Zip (7z) on PATH")
        self._exe = exe
        self._path = str(path)

    def _run(self, args: list[str], timeout: int) -> subprocess.CompletedProcess[bytes]:
        result = subprocess.run([self._exe, *args], capture_output=True, timeout=timeout)
        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise RuntimeError(f"7z {args[0]} failed (exit {result.returncode}): {stderr}")
        return result

    def list_entries(self) -> list[ArchiveEntry]:
        result = self._run(["l", "-slt", self._path], _LIST_TIMEOUT)
        return parse_7z_listing(result.stdout.decode(errors="replace"), self._path)

    def read_file(self, entry: ArchiveEntry) -> bytes:
        return self._run(["e", "-so", self._path, entry.filename], _EXTRACT_TIMEOUT).stdout

    def extract_paths(self, names: list[str], dest_dir: Path) -> dict[str, Path]:
        members = set(self.list_files())
        targets = [n for n in names if n in members and _safe_destination(dest_dir, n)]
        if not targets:
            return {}
        dest_dir.mkdir(parents=True, exist_ok=True)
        self._run(["x", "-y", f"-o{dest_dir}", self._path, *targets], _EXTRACT_TIMEOUT)
        found: dict[str, Path] = {}
        for name in targets:
            target = _safe_destination(dest_dir, name)
            if target is not None and target.is_file():
                found[name] = target
        return found

    def close(self) -> None:
        pass


def open_archive(path: str | Path) -> ArchiveHandler:
    """Open *path* with the handler matching its extension.

    Raises:
        ValueError: If the extension is not a supported archive format.
        MissingArchiveToolError: For RAR files when 7-Zip is not installed.
        zipfile.BadZipFile: If a ZIP file is corrupt.
    """
    path = Path(path)
    match path.suffix.lower():
        case ".zip":
            return ZipHandler(path)
        case ".7z":
            return SevenZipHandler(path)
        case ".rar":
            return RarHandler(path)
        case ext:
            raise ValueError(f"Unsupported archive format: {ext or path.name}")


def is_archive_filename(filename: str) -> bool:
    return Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS
