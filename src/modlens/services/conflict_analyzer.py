"""Cross-mod file conflict detection.

Two or more mods shipping the same normalized path conflict; the mod with
the highest load order wins and the rest are overwritten.  Conflicts are
classified by file type, scored, and summarized per mod.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from modlens.constants import SEVERITY_BY_FILE_TYPE, SEVERITY_RANK
from modlens.schemas.conflicts import (
    Conflict,
    ConflictAnalysis,
    ConflictSource,
    ConflictStats,
    ConflictType,
    ModConflictSummary,
    ModManifest,
    Severity,
)
from modlens.schemas.manifest import FileEntry, FileType
from modlens.services.conflict_scorer import ConflictScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Contribution:
    source: ConflictSource
    file_type: FileType
    input_index: int


def _collect(mods: Sequence[ModManifest]) -> dict[str, list[_Contribution]]:
    """Map each path to the mods providing it, once per mod."""
    by_path: dict[str, list[_Contribution]] = defaultdict(list)
    for index, mod in enumerate(mods):
        seen: set[str] = set()
        for entry in mod.files:
            if entry.path in seen:
                continue
            seen.add(entry.path)
            by_path[entry.path].append(_Contribution(_source(mod, entry), entry.file_type, index))
    return by_path


def _source(mod: ModManifest, entry: FileEntry) -> ConflictSource:
    return ConflictSource(
        mod_id=mod.mod_id,
        mod_name=mod.mod_name,
        load_order=mod.load_order,
        size=entry.size,
        hash=entry.hash,
    )


def _is_identical(sources: Sequence[ConflictSource]) -> bool:
    hashes = {s.hash for s in sources}
    return None not in hashes and len(hashes) == 1


def _label(source: ConflictSource) -> str:
    return source.mod_name or source.mod_id


def _message(
    path: str, winner: ConflictSource, losers: Sequence[ConflictSource], identical: bool
) -> str:
    if identical:
        return f"File '{path}' is provided by {len(losers) + 1} mods with identical content"
    if len(losers) == 1:
        return f"File '{path}' from '{_label(winner)}' overwrites '{_label(losers[0])}'"
    return f"File '{path}' from '{_label(winner)}' overwrites {len(losers)} other mods"


def _compute_stats(
    mods: Sequence[ModManifest],
    by_path: dict[str, list[_Contribution]],
    conflicts: Sequence[Conflict],
) -> ConflictStats:
    stats = ConflictStats(
        total_files=sum(len(c) for c in by_path.values()),
        unique_files=len(by_path),
        total_conflicts=len(conflicts),
        mods_analyzed=len(mods),
    )
    involved: set[str] = set()
    for conflict in conflicts:
        match conflict.severity:
            case Severity.critical:
                stats.critical_count += 1
            case Severity.high:
                stats.high_count += 1
            case Severity.medium:
                stats.medium_count += 1
            case Severity.low:
                stats.low_count += 1
            case Severity.info:
                stats.info_count += 1
        if conflict.is_identical:
            stats.identical_conflicts += 1
        if conflict.matched_rules:
            stats.rule_match_count += 1
        stats.total_score += conflict.score
        stats.max_score = max(stats.max_score, conflict.score)
        stats.by_file_type[conflict.file_type] = stats.by_file_type.get(conflict.file_type, 0) + 1
        involved.update(s.mod_id for s in conflict.sources)

    if conflicts:
        stats.average_score = stats.total_score / len(conflicts)
    stats.mods_with_conflicts = len(involved)
    return stats


def _summarize(mods: Sequence[ModManifest], conflicts: Sequence[Conflict]) -> list[ModConflictSummary]:
    summaries: dict[str, ModConflictSummary] = {}
    for conflict in conflicts:
        for source in conflict.sources:
            summary = summaries.get(source.mod_id)
            if summary is None:
                summary = ModConflictSummary(mod_id=source.mod_id, mod_name=source.mod_name)
                summaries[source.mod_id] = summary
            summary.total_conflicts += 1
            if source.mod_id == conflict.winner.mod_id:
                summary.win_count += 1
            else:
                summary.lose_count += 1
            if conflict.severity == Severity.critical:
                summary.critical_count += 1
            elif conflict.severity == Severity.high:
                summary.high_count += 1

    return [summaries[m.mod_id] for m in mods if m.mod_id in summaries]


class ConflictAnalyzer:
    """Detects and scores file conflicts across a set of mod manifests."""

    def __init__(self, scorer: ConflictScorer | None = None) -> None:
        self._scorer = scorer or ConflictScorer()

    def _build_conflict(self, path: str, contributions: list[_Contribution]) -> Conflict:
        ordered = sorted(contributions, key=lambda c: (c.source.load_order, c.input_index))
        winner = ordered[-1]
        sources = tuple(c.source for c in ordered)
        losers = sources[:-1]
        identical = _is_identical(sources)
        # Mixed-type paths take the winner's classification.
        file_type = winner.file_type

        if identical:
            severity = Severity.info
            conflict_type = ConflictType.duplicate
        else:
            severity = SEVERITY_BY_FILE_TYPE.get(file_type, Severity.low)
            conflict_type = ConflictType.overwrite

        score, matched = self._scorer.score(
            path, file_type, [s.mod_id for s in sources], is_identical=identical
        )
        return Conflict(
            path=path,
            conflict_type=conflict_type,
            file_type=file_type,
            severity=severity,
            score=score,
            sources=sources,
            winner=winner.source,
            losers=losers,
            is_identical=identical,
            matched_rules=matched,
            message=_message(path, winner.source, losers, identical),
        )

    def analyze(self, mods: Sequence[ModManifest]) -> ConflictAnalysis:
        """Find every path shipped by two or more mods.

        Fewer than two manifests yield an empty analysis.  Mods whose
        manifest is missing contribute no files.

        Raises:
            ValueError: If two manifests share a ``mod_id``.
        """
        seen: set[str] = set()
        for mod in mods:
            if mod.mod_id in seen:
                raise ValueError(f"Duplicate mod_id {mod.mod_id!r}")
            seen.add(mod.mod_id)

        if len(mods) < 2:
            return ConflictAnalysis(stats=ConflictStats(mods_analyzed=len(mods)))

        by_path = _collect(mods)
        conflicts = [
            self._build_conflict(path, contributions)
            for path, contributions in by_path.items()
            if len(contributions) > 1
        ]
        conflicts.sort(key=lambda c: (SEVERITY_RANK[c.severity], -c.score, c.path))

        file_to_mods = {c.path: [s.mod_id for s in c.sources] for c in conflicts}
        stats = _compute_stats(mods, by_path, conflicts)
        logger.info(
            "Conflict analysis: %d mods, %d conflicts (%d critical, %d high)",
            stats.mods_analyzed,
            stats.total_conflicts,
            stats.critical_count,
            stats.high_count,
        )
        return ConflictAnalysis(
            conflicts=conflicts,
            mod_summaries=_summarize(mods, conflicts),
            file_to_mods=file_to_mods,
            stats=stats,
        )


def analyze_conflicts(mods: Sequence[ModManifest]) -> ConflictAnalysis:
    return ConflictAnalyzer().analyze(mods)
