"""Plugin load-order validation.

Plugins load in list order (index 0 first) and every master a plugin
declares must be present and load before it.  This module builds the
master dependency graph for an ordered plugin list and reports missing
masters, masters loading after their dependents, and duplicated plugin
filenames.  It works on pre-decoded headers only; entries whose header
could not be decoded still take part in duplicate detection.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from modlens.plugins.header_parser import plugin_type_from_filename
from modlens.schemas.load_order import (
    IssueSeverity,
    IssueType,
    LoadOrderAnalysis,
    LoadOrderIssue,
    LoadOrderStats,
    PluginFile,
    PluginInfo,
)
from modlens.schemas.plugin import PluginHeader, PluginType
from modlens.utils.paths import normalize_filename

logger = logging.getLogger(__name__)

_ISSUE_TYPE_ORDER = {
    IssueType.missing_master: 0,
    IssueType.wrong_order: 1,
    IssueType.duplicate_plugin: 2,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _plugin_info(index: int, pf: PluginFile) -> PluginInfo:
    header = pf.header
    if header is None:
        return PluginInfo(
            filename=pf.filename,
            index=index,
            plugin_type=plugin_type_from_filename(pf.filename),
        )
    return PluginInfo(
        filename=pf.filename,
        index=index,
        plugin_type=header.plugin_type,
        flags=header.flags,
        author=header.author,
        description=header.description,
        masters=header.master_names,
        has_header=True,
    )


def _build_dependency_graph(plugins: Sequence[PluginFile]) -> dict[str, list[str]]:
    graph: dict[str, list[str]] = {}
    for pf in plugins:
        key = normalize_filename(pf.filename)
        masters = pf.header.master_names if pf.header is not None else []
        if key not in graph or (not graph[key] and masters):
            graph[key] = masters
    return graph


def _first_positions(plugins: Sequence[PluginFile]) -> dict[str, int]:
    positions: dict[str, int] = {}
    for i, pf in enumerate(plugins):
        positions.setdefault(normalize_filename(pf.filename), i)
    return positions


def _duplicate_issues(plugins: Sequence[PluginFile]) -> list[LoadOrderIssue]:
    first_seen: dict[str, PluginFile] = {}
    issues: list[LoadOrderIssue] = []
    for i, pf in enumerate(plugins):
        key = normalize_filename(pf.filename)
        original = first_seen.get(key)
        if original is None:
            first_seen[key] = pf
            continue
        issues.append(
            LoadOrderIssue(
                type=IssueType.duplicate_plugin,
                severity=IssueSeverity.warning,
                plugin=pf.filename,
                related_plugin=original.filename,
                message=f"Plugin {pf.filename} appears more than once in the load order",
                index=i,
            )
        )
    return issues


def _master_issues(
    index: int,
    filename: str,
    header: PluginHeader,
    positions: dict[str, int],
) -> list[LoadOrderIssue]:
    issues: list[LoadOrderIssue] = []
    for master in header.master_names:
        master_index = positions.get(normalize_filename(master))
        if master_index is None:
            issues.append(
                LoadOrderIssue(
                    type=IssueType.missing_master,
                    severity=IssueSeverity.error,
                    plugin=filename,
                    related_plugin=master,
                    message=f"Missing required master: {master}",
                    index=index,
                )
            )
        elif master_index > index:
            issues.append(
                LoadOrderIssue(
                    type=IssueType.wrong_order,
                    severity=IssueSeverity.error,
                    plugin=filename,
                    related_plugin=master,
                    message=f"Master {master} loads after this plugin",
                    index=index,
                )
            )
    return issues


def _calculate_stats(plugins: list[PluginInfo], issues: list[LoadOrderIssue]) -> LoadOrderStats:
    stats = LoadOrderStats(total_plugins=len(plugins), total_issues=len(issues))
    for info in plugins:
        if info.plugin_type == PluginType.ESM:
            stats.esm_count += 1
        elif info.plugin_type == PluginType.ESL:
            stats.esl_count += 1
        else:
            stats.esp_count += 1

    for issue in issues:
        if issue.severity == IssueSeverity.error:
            stats.error_count += 1
        else:
            stats.warning_count += 1

        if issue.type == IssueType.missing_master:
            stats.missing_masters += 1
        elif issue.type == IssueType.wrong_order:
            stats.wrong_order_count += 1
        else:
            stats.duplicate_count += 1

    stats.plugins_with_issues = len({issue.index for issue in issues})
    return stats


# ---------------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------------


def analyze_load_order(plugins: Sequence[PluginFile]) -> LoadOrderAnalysis:
    """Validate an ordered plugin list.

    Issues come out ordered by load position, then by issue type
    (missing master, wrong order, duplicate), then by master declaration
    order, so identical input always yields identical output.
    """
    positions = _first_positions(plugins)
    infos = [_plugin_info(i, pf) for i, pf in enumerate(plugins)]

    issues: list[LoadOrderIssue] = []
    for i, pf in enumerate(plugins):
        if pf.header is not None:
            issues.extend(_master_issues(i, pf.filename, pf.header, positions))
    issues.extend(_duplicate_issues(plugins))
    # sort is stable, so master declaration order survives within a type
    issues.sort(key=lambda issue: (issue.index, _ISSUE_TYPE_ORDER[issue.type]))

    for issue in issues:
        info = infos[issue.index]
        info.has_issues = True
        info.issue_count += 1

    stats = _calculate_stats(infos, issues)
    logger.debug(
        "Load order analysed: %d plugins, %d errors, %d warnings",
        stats.total_plugins,
        stats.error_count,
        stats.warning_count,
    )
    return LoadOrderAnalysis(
        plugins=infos,
        issues=issues,
        stats=stats,
        dependency_graph=_build_dependency_graph(plugins),
    )


def analyze_headers(headers: Sequence[PluginHeader]) -> LoadOrderAnalysis:
    """Analyse a load order given directly as decoded headers."""
    return analyze_load_order([PluginFile(filename=h.filename, header=h) for h in headers])
