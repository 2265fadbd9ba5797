"""Path and filename normalization shared by every analyzer.

Plugin filenames and archive paths are compared case-insensitively
throughout (duplicate detection, master resolution, conflict grouping).
Every comparison key must come from one of the functions below.
"""

from pathlib import PurePosixPath


def normalize_filename(filename: str) -> str:
    """Return the identity key for a plugin filename.

    ``Skyrim.ESM`` and ``skyrim.esm`` are the same plugin.  Surrounding
    whitespace is ignored; directory components are kept as-is.
    """
    return filename.strip().lower()


def normalize_path(path: str) -> str:
    """Convert an archive-internal path to its canonical form.

    Backslashes become forward slashes, the result is lower-cased,
    empty / ``.`` / ``..`` segments are dropped and no leading or
    trailing slash is kept.  ``Data\\Textures\\X.DDS`` -> ``data/textures/x.dds``.
    """
    unified = path.replace("\\", "/").lower()
    parts = [p for p in unified.split("/") if p and p not in (".", "..")]
    return "/".join(parts)


def split_path(normalized: str) -> tuple[str, str, str]:
    """Split a normalized path into ``(directory, filename, extension)``.

    The extension is lower-case and includes the dot (``".dds"``), or is
    empty when the filename has none.
    """
    pure = PurePosixPath(normalized)
    directory = str(pure.parent) if "/" in normalized else ""
    return directory, pure.name, pure.suffix.lower()


def strip_prefix(path: str, prefix: str) -> str:
    """Remove a normalized *prefix* directory from a normalized *path*.

    Returns *path* unchanged when it does not live under *prefix*.
    """
    if not prefix:
        return path
    if path == prefix:
        return ""
    if path.startswith(prefix + "/"):
        return path[len(prefix) + 1 :]
    return path
