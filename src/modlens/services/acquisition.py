"""Acquisition pipeline: fetch mod archives and feed the analyzers.

Each mod is an independent unit of work (fetch, extract, decode) run on a
bounded pool.  A unit owns a private temporary directory that is removed
on every exit path.  Failures stay with their unit and are reported as
``ModFailure`` entries so one bad mod never aborts the batch.

Results are always returned in request order, tagged with the request
position, so analysis output does not depend on which download finished
first.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import tempfile
import zipfile
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, TypeVar
from urllib.parse import unquote, urlsplit

import httpx
from py7zr.exceptions import ArchiveError

from modlens.archive.handler import MissingArchiveToolError, is_archive_filename, open_archive
from modlens.config import settings
from modlens.nexus.client import (
    DownloadCancelledError,
    DownloadTooLargeError,
    NexusClient,
    NexusNotFoundError,
    NexusPremiumRequiredError,
    NexusRateLimitError,
)
from modlens.plugins.header_parser import is_plugin_file, parse_plugin_file
from modlens.plugins.reader import PluginDecodeError
from modlens.schemas.conflicts import ModManifest
from modlens.schemas.load_order import PluginFile
from modlens.schemas.manifest import Manifest
from modlens.schemas.pipeline import (
    ConflictReport,
    FailureKind,
    LoadOrderReport,
    ManifestBatch,
    ModFailure,
    ModReference,
    PluginBatch,
    PluginReference,
)
from modlens.schemas.plugin import PluginHeader
from modlens.services.conflict_analyzer import ConflictAnalyzer
from modlens.services.load_order import analyze_load_order
from modlens.services.manifest_extractor import ManifestExtractionError, extract_manifest_from_path

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=ModReference)


class CatalogClient(Protocol):
    async def get_download_links(
        self, game_domain: str, mod_id: int, file_id: int
    ) -> list[dict[str, Any]]: ...


class ArchiveDownloader(Protocol):
    async def stream_download(
        self,
        url: str,
        dest: Path,
        *,
        max_bytes: int | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> int: ...


class ArchiveSource(CatalogClient, ArchiveDownloader, Protocol):
    """A collaborator that can both resolve and download mod files."""


class AnalysisRequestError(ValueError):
    """The analysis request itself is malformed; no work was started."""


class PluginNotInArchiveError(LookupError):
    pass


class _Cancelled(Exception):
    pass


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def _identity(ref: ModReference) -> dict[str, Any]:
    identity: dict[str, Any] = {
        "mod_id": ref.mod_id,
        "game": ref.game,
        "nexus_mod_id": ref.nexus_mod_id,
        "file_id": ref.file_id,
        "archive_path": str(ref.archive_path) if ref.archive_path else "",
    }
    if isinstance(ref, PluginReference):
        identity["filename"] = ref.filename.lower()
    return identity


def request_fingerprint(refs: Sequence[ModReference], include_hashes: bool = False) -> str:
    """Stable cache key for an analysis request.

    Request position is part of the key since it sets the load order.
    Display names are not.
    """
    payload = {
        "refs": [_identity(r) for r in refs],
        "include_hashes": include_hashes,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()
    return hashlib.sha256(encoded).hexdigest()


def _validate_sources(refs: Sequence[ModReference]) -> None:
    for ref in refs:
        if not ref.mod_id.strip():
            raise AnalysisRequestError("Every mod needs a non-empty mod_id")
        if ref.archive_path is None and not (ref.game and ref.nexus_mod_id and ref.file_id):
            raise AnalysisRequestError(
                f"Mod {ref.mod_id!r} needs either archive_path or game, nexus_mod_id and file_id"
            )
        if isinstance(ref, PluginReference) and not ref.filename.strip():
            raise AnalysisRequestError(f"Plugin reference {ref.mod_id!r} has no filename")


def _needs_catalog(refs: Sequence[ModReference]) -> bool:
    return any(r.archive_path is None for r in refs)


def _classify(exc: Exception) -> FailureKind:
    match exc:
        case _Cancelled() | DownloadCancelledError():
            return FailureKind.cancelled
        case MissingArchiveToolError():
            return FailureKind.extraction
        case NexusNotFoundError() | PluginNotInArchiveError() | FileNotFoundError():
            return FailureKind.not_found
        case NexusPremiumRequiredError():
            return FailureKind.access_restricted
        case NexusRateLimitError():
            return FailureKind.rate_limited
        case DownloadTooLargeError():
            return FailureKind.too_large
        case httpx.HTTPStatusError() if exc.response.status_code in (401, 403):
            return FailureKind.access_restricted
        case httpx.HTTPStatusError() if exc.response.status_code == 404:
            return FailureKind.not_found
        case httpx.HTTPStatusError() if exc.response.status_code == 429:
            return FailureKind.rate_limited
        case httpx.HTTPError():
            return FailureKind.download
        case PluginDecodeError():
            return FailureKind.decode
        case _:
            return FailureKind.extraction


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


def _download_name(url: str, fallback: str) -> str:
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    if name in ("", ".", ".."):
        return fallback
    return name


async def _acquire(
    ref: ModReference,
    client: ArchiveSource | None,
    dest_dir: Path,
    max_bytes: int,
) -> Path:
    """Return a local path to the mod's file, downloading it if needed."""
    if ref.archive_path is not None:
        if not ref.archive_path.is_file():
            raise FileNotFoundError(f"Archive not found: {ref.archive_path}")
        return ref.archive_path

    if client is None:
        raise RuntimeError("No catalog client available for remote mods")
    links = await client.get_download_links(ref.game, ref.nexus_mod_id, ref.file_id)
    url = next((link.get("URI") for link in links if link.get("URI")), None)
    if url is None:
        raise NexusNotFoundError(f"No download link for file {ref.file_id}")

    dest = dest_dir / _download_name(url, f"{ref.nexus_mod_id}-{ref.file_id}")
    size = await client.stream_download(url, dest, max_bytes=max_bytes)
    logger.info("Fetched %s (%d bytes)", ref.display_name, size)
    return dest


def _read_plugin(path: Path, filename: str, dest_dir: Path, max_record_bytes: int) -> PluginHeader:
    """Decode *filename* from a bare plugin file or from inside an archive."""
    if not is_archive_filename(path.name):
        return parse_plugin_file(path, max_record_bytes=max_record_bytes)

    wanted = filename.replace("\\", "/").rsplit("/", 1)[-1].lower()
    with open_archive(path) as handler:
        match = next(
            (n for n in handler.list_files() if n.replace("\\", "/").rsplit("/", 1)[-1].lower() == wanted),
            None,
        )
        if match is None:
            raise PluginNotInArchiveError(f"{filename} not found in {path.name}")
        extracted = handler.extract_paths([match], dest_dir / "extracted")
    if match not in extracted:
        raise PluginNotInArchiveError(f"{filename} could not be extracted from {path.name}")
    return parse_plugin_file(extracted[match], max_record_bytes=max_record_bytes)


async def _run_units(
    refs: Sequence[R],
    work: Callable[[R, Path], Awaitable[T]],
    *,
    max_concurrency: int,
    cancel_event: asyncio.Event | None,
    work_dir: Path,
) -> list[tuple[T | None, ModFailure | None]]:
    sem = asyncio.Semaphore(max(1, max_concurrency))
    work_dir.mkdir(parents=True, exist_ok=True)

    async def run_one(ref: R) -> tuple[T | None, ModFailure | None]:
        async with sem:
            try:
                if cancel_event is not None and cancel_event.is_set():
                    raise _Cancelled("Analysis cancelled before this mod started")
                with tempfile.TemporaryDirectory(prefix="modlens-", dir=work_dir) as tmp:
                    return await work(ref, Path(tmp)), None
            except (
                _Cancelled,
                DownloadCancelledError,
                NexusNotFoundError,
                NexusPremiumRequiredError,
                NexusRateLimitError,
                DownloadTooLargeError,
                PluginNotInArchiveError,
                PluginDecodeError,
                ManifestExtractionError,
                MissingArchiveToolError,
                httpx.HTTPError,
                zipfile.BadZipFile,
                ArchiveError,
                OSError,
            ) as exc:
                kind = _classify(exc)
                logger.warning("Mod %s failed (%s): %s", ref.mod_id, kind, exc)
                return None, ModFailure(mod_id=ref.mod_id, kind=kind, message=str(exc))
            except Exception as exc:
                logger.exception("Unexpected failure processing mod %s", ref.mod_id)
                return None, ModFailure(
                    mod_id=ref.mod_id, kind=_classify(exc), message=str(exc)
                )

    return await asyncio.gather(*(run_one(ref) for ref in refs))


async def _with_client(
    refs: Sequence[ModReference],
    client: ArchiveSource | None,
    body: Callable[[ArchiveSource | None], Awaitable[T]],
) -> T:
    """Run *body* with the given client, or a settings-backed one if needed."""
    if client is not None or not _needs_catalog(refs):
        return await body(client)
    async with NexusClient(settings.nexus_api_key, download_timeout=settings.download_timeout) as nexus:
        return await body(nexus)


# ---------------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------------


async def fetch_manifests(
    mods: Sequence[ModReference],
    *,
    client: ArchiveSource | None = None,
    include_hashes: bool | None = None,
    max_concurrency: int | None = None,
    cancel_event: asyncio.Event | None = None,
    work_dir: Path | None = None,
) -> ManifestBatch:
    """Fetch every mod archive and extract its manifest.

    ``load_order`` of each returned ``ModManifest`` is its request position.
    """
    _validate_sources(mods)
    hashes = settings.include_content_hashes if include_hashes is None else include_hashes
    max_bytes = settings.max_download_bytes

    async def body(source: ArchiveSource | None) -> list[tuple[Manifest | None, ModFailure | None]]:
        async def work(ref: ModReference, tmp: Path) -> Manifest:
            archive = await _acquire(ref, source, tmp, max_bytes)
            return await asyncio.to_thread(extract_manifest_from_path, archive, include_hashes=hashes)

        return await _run_units(
            mods,
            work,
            max_concurrency=max_concurrency or settings.max_concurrency,
            cancel_event=cancel_event,
            work_dir=work_dir or settings.work_dir,
        )

    results = await _with_client(mods, client, body)
    batch = ManifestBatch()
    for position, (ref, (manifest, failure)) in enumerate(zip(mods, results, strict=True)):
        batch.manifests.append(
            ModManifest(
                mod_id=ref.mod_id,
                mod_name=ref.display_name,
                load_order=position,
                manifest=manifest,
            )
        )
        if failure is not None:
            batch.failures.append(failure)
    logger.info(
        "Fetched manifests: %d/%d succeeded", len(mods) - len(batch.failures), len(mods)
    )
    return batch


async def fetch_plugin_headers(
    plugins: Sequence[PluginReference],
    *,
    client: ArchiveSource | None = None,
    max_concurrency: int | None = None,
    cancel_event: asyncio.Event | None = None,
    work_dir: Path | None = None,
) -> PluginBatch:
    """Fetch and decode the header of every referenced plugin.

    A plugin that cannot be fetched or decoded keeps its slot with
    ``header=None``.
    """
    _validate_sources(plugins)
    max_bytes = settings.max_download_bytes
    max_record_bytes = settings.max_header_record_bytes

    async def body(source: ArchiveSource | None) -> list[tuple[PluginHeader | None, ModFailure | None]]:
        async def work(ref: PluginReference, tmp: Path) -> PluginHeader:
            path = await _acquire(ref, source, tmp, max_bytes)
            if not is_plugin_file(path.name) and not is_archive_filename(path.name):
                raise ManifestExtractionError(f"Unsupported file type: {path.name}")
            return await asyncio.to_thread(_read_plugin, path, ref.filename, tmp, max_record_bytes)

        return await _run_units(
            plugins,
            work,
            max_concurrency=max_concurrency or settings.max_concurrency,
            cancel_event=cancel_event,
            work_dir=work_dir or settings.work_dir,
        )

    results = await _with_client(plugins, client, body)
    batch = PluginBatch()
    for ref, (header, failure) in zip(plugins, results, strict=True):
        batch.plugins.append(PluginFile(filename=ref.filename, header=header))
        if failure is not None:
            batch.failures.append(failure)
    logger.info(
        "Decoded plugin headers: %d/%d succeeded", len(plugins) - len(batch.failures), len(plugins)
    )
    return batch


async def analyze_mod_conflicts(
    mods: Sequence[ModReference],
    *,
    client: ArchiveSource | None = None,
    analyzer: ConflictAnalyzer | None = None,
    include_hashes: bool | None = None,
    max_concurrency: int | None = None,
    cancel_event: asyncio.Event | None = None,
    work_dir: Path | None = None,
) -> ConflictReport:
    """Fetch every mod and run conflict analysis over the manifests.

    Raises ``AnalysisRequestError`` before any work when fewer than two
    mods are given or mod ids are blank or repeated.
    """
    if len(mods) < 2:
        raise AnalysisRequestError("Conflict analysis needs at least two mods")
    seen: set[str] = set()
    for ref in mods:
        if ref.mod_id in seen:
            raise AnalysisRequestError(f"Duplicate mod_id {ref.mod_id!r}")
        seen.add(ref.mod_id)
    _validate_sources(mods)

    hashes = settings.include_content_hashes if include_hashes is None else include_hashes
    batch = await fetch_manifests(
        mods,
        client=client,
        include_hashes=hashes,
        max_concurrency=max_concurrency,
        cancel_event=cancel_event,
        work_dir=work_dir,
    )
    analysis = (analyzer or ConflictAnalyzer()).analyze(batch.manifests)
    return ConflictReport(
        analysis=analysis,
        failures=batch.failures,
        fingerprint=request_fingerprint(mods, hashes),
    )


async def analyze_plugin_load_order(
    plugins: Sequence[PluginReference],
    *,
    client: ArchiveSource | None = None,
    max_concurrency: int | None = None,
    cancel_event: asyncio.Event | None = None,
    work_dir: Path | None = None,
) -> LoadOrderReport:
    """Fetch and decode every plugin, then validate them in request order."""
    if not plugins:
        raise AnalysisRequestError("Load order analysis needs at least one plugin")
    _validate_sources(plugins)

    batch = await fetch_plugin_headers(
        plugins,
        client=client,
        max_concurrency=max_concurrency,
        cancel_event=cancel_event,
        work_dir=work_dir,
    )
    return LoadOrderReport(
        analysis=analyze_load_order(batch.plugins),
        failures=batch.failures,
        fingerprint=request_fingerprint(plugins),
    )
