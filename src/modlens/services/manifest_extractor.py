"""File manifest extraction for mod archives.

Lists an archive's files and normalizes each path (lower-case, forward
slashes, packaging wrapper folders stripped) so manifests from different
mods can be compared path-for-path.  Content hashing is opt-in: it streams
every file through the hasher and is much slower than a plain listing.
"""

from __future__ import annotations

import logging
import zipfile
import zlib
from collections.abc import Callable
from pathlib import Path
from typing import IO

import xxhash
from py7zr.exceptions import ArchiveError, PasswordRequired

from modlens.archive.handler import ArchiveEntry, ArchiveHandler, MissingArchiveToolError, open_archive
from modlens.constants import FILE_TYPE_BY_EXTENSION
from modlens.schemas.manifest import FileEntry, FileType, Manifest
from modlens.services.archive_layout import ArchiveLayout, detect_layout
from modlens.utils.paths import normalize_path, split_path, strip_prefix

logger = logging.getLogger(__name__)

EntryFilter = Callable[[FileEntry], bool]

HASH_CHUNK_SIZE = 65536

# Read failures from the archive libraries.
_READ_ERRORS = (
    OSError,
    EOFError,
    RuntimeError,
    ValueError,
    zlib.error,
    zipfile.BadZipFile,
    ArchiveError,
    PasswordRequired,
)


class ManifestExtractionError(Exception):
    """The archive could not be opened, listed or read."""


def file_type_for_extension(extension: str) -> FileType:
    return FILE_TYPE_BY_EXTENSION.get(extension.lower(), FileType.other)


def hash_stream(stream: IO[bytes]) -> str:
    h = xxhash.xxh64()
    for chunk in iter(lambda: stream.read(HASH_CHUNK_SIZE), b""):
        h.update(chunk)
    return h.hexdigest()


def build_file_entry(
    original_path: str,
    size: int,
    *,
    prefix: str | None = None,
    content_hash: str | None = None,
) -> FileEntry | None:
    """Create a ``FileEntry`` for one archive path.

    Returns ``None`` when nothing is left of the path after normalization
    and prefix stripping.
    """
    path = normalize_path(original_path)
    if prefix:
        path = strip_prefix(path, prefix)
    if not path:
        return None
    directory, filename, extension = split_path(path)
    return FileEntry(
        path=path,
        size=size,
        hash=content_hash,
        original_path=original_path,
        file_type=file_type_for_extension(extension),
        extension=extension,
        directory=directory,
        filename=filename,
    )


def _hash_members(handler: ArchiveHandler, entries: list[ArchiveEntry]) -> dict[str, str]:
    return {entry.filename: hash_stream(stream) for entry, stream in handler.iter_members(entries)}


def extract_manifest(handler: ArchiveHandler, *, include_hashes: bool = False) -> Manifest:
    """Build the manifest for an already-open archive.

    Any failure to list or read the archive is raised as a single
    ``ManifestExtractionError``.  Hashing holds at most one chunk of one
    member in memory.
    """
    try:
        file_entries: list[ArchiveEntry] = [e for e in handler.list_entries() if not e.is_dir]
        hashes = _hash_members(handler, file_entries) if include_hashes else {}
    except _READ_ERRORS as exc:
        raise ManifestExtractionError(f"Failed to read archive: {exc}") from exc

    layout = detect_layout([e.filename for e in file_entries])
    prefix = layout.strip_prefix if layout.layout == ArchiveLayout.WRAPPED else None

    entries: list[FileEntry] = []
    for archive_entry in file_entries:
        content_hash = hashes.get(archive_entry.filename)
        if include_hashes and content_hash is None:
            raise ManifestExtractionError(f"Could not read {archive_entry.filename!r} for hashing")
        entry = build_file_entry(
            archive_entry.filename,
            archive_entry.size,
            prefix=prefix,
            content_hash=content_hash,
        )
        if entry is not None:
            entries.append(entry)

    return Manifest.from_entries(entries, strip_prefix=prefix)


def extract_manifest_from_path(archive_path: str | Path, *, include_hashes: bool = False) -> Manifest:
    """Open *archive_path* and extract its manifest."""
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise ManifestExtractionError(f"Archive not found: {archive_path}")
    try:
        handler = open_archive(archive_path)
    except MissingArchiveToolError as exc:
        raise ManifestExtractionError(str(exc)) from exc
    except _READ_ERRORS as exc:
        raise ManifestExtractionError(f"Cannot open {archive_path.name}: {exc}") from exc

    with handler:
        manifest = extract_manifest(handler, include_hashes=include_hashes)
    logger.debug(
        "Manifest for %s: %d files, %d bytes", archive_path.name, manifest.total_count, manifest.total_size
    )
    return manifest


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def filter_manifest(manifest: Manifest, predicate: EntryFilter) -> Manifest:
    """Return a new manifest holding only the entries matching *predicate*."""
    return Manifest.from_entries(manifest.filter(predicate), strip_prefix=manifest.strip_prefix)


def by_type(file_type: FileType) -> EntryFilter:
    return lambda entry: entry.file_type == file_type


def by_extension(extension: str) -> EntryFilter:
    ext = extension.lower() if extension.startswith(".") else "." + extension.lower()
    return lambda entry: entry.extension == ext


def by_directory(directory: str) -> EntryFilter:
    wanted = normalize_path(directory)
    return lambda entry: entry.directory == wanted


def by_path_prefix(prefix: str) -> EntryFilter:
    wanted = normalize_path(prefix)
    return lambda entry: entry.path == wanted or entry.path.startswith(wanted + "/")
