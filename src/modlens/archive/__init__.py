from modlens.archive.handler import (
    ArchiveEntry,
    ArchiveHandler,
    MissingArchiveToolError,
    RarHandler,
    SevenZipHandler,
    ZipHandler,
    is_archive_filename,
    open_archive,
)

__all__ = [
    "ArchiveEntry",
    "ArchiveHandler",
    "MissingArchiveToolError",
    "RarHandler",
    "SevenZipHandler",
    "ZipHandler",
    "is_archive_filename",
    "open_archive",
]
