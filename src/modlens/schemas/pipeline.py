"""Request and result schemas for the acquisition pipeline."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from modlens.schemas.conflicts import ConflictAnalysis, ModManifest
from modlens.schemas.load_order import LoadOrderAnalysis, PluginFile


class ModReference(BaseModel):
    """Identifies one mod archive to analyse.

    Either the catalog triple (``game``, ``nexus_mod_id``, ``file_id``) or a
    local ``archive_path`` must be set; a local path skips the catalog.
    """

    mod_id: str
    mod_name: str = ""
    game: str = ""
    nexus_mod_id: int = 0
    file_id: int = 0
    archive_path: Path | None = None

    @property
    def display_name(self) -> str:
        return self.mod_name or self.mod_id


class PluginReference(ModReference):
    """A plugin to decode, shipped bare or inside the referenced archive."""

    filename: str


class FailureKind(StrEnum):
    not_found = "not_found"
    access_restricted = "access_restricted"
    rate_limited = "rate_limited"
    download = "download"
    too_large = "too_large"
    extraction = "extraction"
    decode = "decode"
    cancelled = "cancelled"


class ModFailure(BaseModel):
    mod_id: str
    kind: FailureKind
    message: str


class ManifestBatch(BaseModel):
    """Per-mod manifests in request order.

    Failed mods keep their slot with ``manifest=None`` and get a matching
    entry in ``failures``.
    """

    manifests: list[ModManifest] = Field(default_factory=list)
    failures: list[ModFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[ModManifest]:
        return [m for m in self.manifests if m.manifest is not None]


class PluginBatch(BaseModel):
    plugins: list[PluginFile] = Field(default_factory=list)
    failures: list[ModFailure] = Field(default_factory=list)

    @property
    def decoded(self) -> list[PluginFile]:
        return [p for p in self.plugins if p.header is not None]


class ConflictReport(BaseModel):
    analysis: ConflictAnalysis
    failures: list[ModFailure] = Field(default_factory=list)
    fingerprint: str


class LoadOrderReport(BaseModel):
    analysis: LoadOrderAnalysis
    failures: list[ModFailure] = Field(default_factory=list)
    fingerprint: str
