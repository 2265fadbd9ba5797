"""Schemas for file-conflict analysis between mods."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from modlens.schemas.manifest import FileEntry, FileType, Manifest


class Severity(StrEnum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"
    info = "info"


class ConflictType(StrEnum):
    overwrite = "overwrite"
    duplicate = "duplicate"


class ModManifest(BaseModel):
    """A mod's manifest tagged with its load-order position.

    Higher ``load_order`` overwrites lower.  ``manifest`` is ``None`` when
    extraction failed; such a mod contributes no files.
    """

    mod_id: str
    mod_name: str
    load_order: int
    manifest: Manifest | None = None

    @property
    def files(self) -> list[FileEntry]:
        return self.manifest.files if self.manifest is not None else []


class ConflictSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    mod_id: str
    mod_name: str
    load_order: int
    size: int = 0
    hash: str | None = None


class Conflict(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    conflict_type: ConflictType
    file_type: FileType
    severity: Severity
    score: int
    sources: tuple[ConflictSource, ...]
    winner: ConflictSource
    losers: tuple[ConflictSource, ...]
    is_identical: bool
    matched_rules: tuple[str, ...] = ()
    message: str


class ModConflictSummary(BaseModel):
    mod_id: str
    mod_name: str
    total_conflicts: int = 0
    win_count: int = 0
    lose_count: int = 0
    critical_count: int = 0
    high_count: int = 0


class ConflictStats(BaseModel):
    total_files: int = 0
    unique_files: int = 0
    total_conflicts: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    info_count: int = 0
    identical_conflicts: int = 0
    rule_match_count: int = 0
    total_score: int = 0
    max_score: int = 0
    average_score: float = 0.0
    by_file_type: dict[FileType, int] = Field(default_factory=dict)
    mods_analyzed: int = 0
    mods_with_conflicts: int = 0


class ConflictAnalysis(BaseModel):
    conflicts: list[Conflict] = Field(default_factory=list)
    mod_summaries: list[ModConflictSummary] = Field(default_factory=list)
    file_to_mods: dict[str, list[str]] = Field(default_factory=dict)
    stats: ConflictStats = Field(default_factory=ConflictStats)
