"""Schemas for archive file manifests."""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from modlens.utils.paths import normalize_path


class FileType(StrEnum):
    plugin = "plugin"
    mesh = "mesh"
    texture = "texture"
    sound = "sound"
    script = "script"
    interface = "interface"
    seq = "seq"
    bsa = "bsa"
    other = "other"


class FileEntry(BaseModel):
    """A single file inside a mod archive.

    ``path`` is normalized (lower-case, forward slashes, relative to the
    game's data root once packaging wrappers are stripped).
    """

    model_config = ConfigDict(frozen=True)

    path: str
    size: int = 0
    hash: str | None = None
    original_path: str = ""
    file_type: FileType = FileType.other
    extension: str = ""
    directory: str = ""
    filename: str = ""


class Manifest(BaseModel):
    files: list[FileEntry] = Field(default_factory=list)
    total_size: int = 0
    total_count: int = 0
    by_type: dict[FileType, int] = Field(default_factory=dict)
    by_extension: dict[str, int] = Field(default_factory=dict)
    strip_prefix: str | None = None

    @classmethod
    def from_entries(cls, entries: list[FileEntry], *, strip_prefix: str | None = None) -> Manifest:
        by_type: dict[FileType, int] = {}
        by_extension: dict[str, int] = {}
        for entry in entries:
            by_type[entry.file_type] = by_type.get(entry.file_type, 0) + 1
            if entry.extension:
                by_extension[entry.extension] = by_extension.get(entry.extension, 0) + 1
        return cls(
            files=entries,
            total_size=sum(e.size for e in entries),
            total_count=len(entries),
            by_type=by_type,
            by_extension=by_extension,
            strip_prefix=strip_prefix,
        )

    def get_file(self, path: str) -> FileEntry | None:
        wanted = normalize_path(path)
        return next((f for f in self.files if f.path == wanted), None)

    def has_file(self, path: str) -> bool:
        return self.get_file(path) is not None

    def filter(self, predicate: Callable[[FileEntry], bool]) -> list[FileEntry]:
        return [f for f in self.files if predicate(f)]

    def files_by_type(self, file_type: FileType) -> list[FileEntry]:
        return self.filter(lambda f: f.file_type == file_type)

    def files_by_extension(self, extension: str) -> list[FileEntry]:
        ext = extension.lower()
        if not ext.startswith("."):
            ext = "." + ext
        return self.filter(lambda f: f.extension == ext)

    def files_in_directory(self, directory: str) -> list[FileEntry]:
        wanted = normalize_path(directory)
        return self.filter(lambda f: f.directory == wanted)
