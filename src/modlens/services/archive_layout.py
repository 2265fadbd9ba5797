"""Archive layout detection for manifest root-prefix stripping.

Mod authors package files either relative to the game's ``Data``
directory or inside wrapper folders (``Data/``, ``MyMod v1.2/``,
``MyMod v1.2/Data/``).  To compare manifests across mods every path must
be relative to the data root, so wrapper folders are detected here and
stripped by the manifest extractor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from modlens.constants import DATA_ROOTS
from modlens.plugins.header_parser import is_plugin_file
from modlens.utils.paths import normalize_path

_MAX_WRAPPER_DEPTH = 2


class ArchiveLayout(StrEnum):
    STANDARD = "standard"
    WRAPPED = "wrapped"
    FOMOD = "fomod"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class LayoutResult:
    layout: ArchiveLayout
    strip_prefix: str | None = None


def _looks_like_data_root(paths: list[tuple[str, ...]], known_roots: frozenset[str]) -> bool:
    for parts in paths:
        if len(parts) == 1 and is_plugin_file(parts[0]):
            return True
        if len(parts) > 1 and parts[0] in known_roots:
            return True
    return False


def detect_layout(
    paths: list[str],
    known_roots: frozenset[str] = DATA_ROOTS,
) -> LayoutResult:
    """Classify an archive's layout from its file paths.

    Parameters
    ----------
    paths:
        File (not directory) paths as listed by the archive, in any case
        or separator style.
    known_roots:
        Lower-cased top-level data directories (``meshes``, ``textures``...).

    Returns
    -------
    LayoutResult
        ``STANDARD`` when files already sit at the data root, ``WRAPPED``
        with the normalized prefix to strip, ``FOMOD`` for scripted
        installers, otherwise ``UNKNOWN``.
    """
    split = [tuple(p.split("/")) for p in (normalize_path(x) for x in paths) if p]
    if not split:
        return LayoutResult(layout=ArchiveLayout.UNKNOWN)

    if _looks_like_data_root(split, known_roots):
        return LayoutResult(layout=ArchiveLayout.STANDARD)

    prefix: list[str] = []
    current = split
    for _ in range(_MAX_WRAPPER_DEPTH):
        if any(parts[0] == "fomod" and len(parts) > 1 for parts in current):
            return LayoutResult(layout=ArchiveLayout.FOMOD)

        top_level = {parts[0] for parts in current}
        has_root_file = any(len(parts) == 1 for parts in current)
        if len(top_level) != 1 or has_root_file:
            break

        prefix.append(next(iter(top_level)))
        current = [parts[1:] for parts in current]
        if prefix[-1] == "data" or _looks_like_data_root(current, known_roots):
            return LayoutResult(layout=ArchiveLayout.WRAPPED, strip_prefix="/".join(prefix))

    return LayoutResult(layout=ArchiveLayout.UNKNOWN)
