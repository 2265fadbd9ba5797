"""Numeric scoring of file conflicts and known-incompatibility rules.

A conflict's score (0-100) starts from a base value for its file type,
drops sharply when every source is byte-identical, rises a little for
each source beyond two, and picks up the bonus of every incompatibility
rule that matches it.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from modlens.constants import (
    BASE_SCORE_BY_FILE_TYPE,
    IDENTICAL_FILE_DISCOUNT,
    MAX_SCORE,
    MIN_SCORE,
    MULTI_SOURCE_BONUS,
)
from modlens.schemas.manifest import FileType


class MatchType(StrEnum):
    exact = "exact"
    prefix = "prefix"
    suffix = "suffix"
    contains = "contains"
    regex = "regex"


@dataclass(frozen=True, slots=True)
class IncompatibilityRule:
    """A known-bad overlap pattern.

    A rule matches when every configured criterion matches: the file type
    is listed (empty = any), the path matches ``path_pattern`` and each of
    ``mod_patterns`` matches a different source mod id.
    """

    id: str
    name: str
    score_bonus: int
    description: str = ""
    path_pattern: str = ""
    path_match: MatchType = MatchType.contains
    mod_patterns: tuple[str, ...] = ()
    mod_match: MatchType = MatchType.contains
    file_types: frozenset[FileType] = frozenset()
    _path_regex: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)
    _mod_regexes: tuple[re.Pattern[str], ...] = field(
        default=(), init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.path_match == MatchType.regex and self.path_pattern:
            object.__setattr__(self, "_path_regex", re.compile(self.path_pattern, re.IGNORECASE))
        if self.mod_match == MatchType.regex:
            object.__setattr__(
                self,
                "_mod_regexes",
                tuple(re.compile(p, re.IGNORECASE) for p in self.mod_patterns),
            )


def _matches(pattern: str, value: str, match: MatchType, compiled: re.Pattern[str] | None) -> bool:
    if match == MatchType.regex:
        return compiled is not None and compiled.search(value) is not None
    pattern = pattern.lower()
    value = value.lower()
    if match == MatchType.exact:
        return value == pattern
    if match == MatchType.prefix:
        return value.startswith(pattern)
    if match == MatchType.suffix:
        return value.endswith(pattern)
    return pattern in value


def _mods_match(rule: IncompatibilityRule, mod_ids: Sequence[str]) -> bool:
    used: set[int] = set()
    for i, pattern in enumerate(rule.mod_patterns):
        compiled = rule._mod_regexes[i] if rule._mod_regexes else None
        for idx, mod_id in enumerate(mod_ids):
            if idx in used:
                continue
            if _matches(pattern, mod_id, rule.mod_match, compiled):
                used.add(idx)
                break
        else:
            return False
    return True


def rule_matches(
    rule: IncompatibilityRule,
    path: str,
    file_type: FileType,
    mod_ids: Sequence[str],
) -> bool:
    if rule.file_types and file_type not in rule.file_types:
        return False
    if rule.path_pattern and not _matches(
        rule.path_pattern, path, rule.path_match, rule._path_regex
    ):
        return False
    return not rule.mod_patterns or _mods_match(rule, mod_ids)


DEFAULT_RULES: tuple[IncompatibilityRule, ...] = (
    IncompatibilityRule(
        id="skyui-scripts",
        name="SkyUI Script Conflict",
        description="Scripts under the SkyUI path drive the modded UI",
        score_bonus=15,
        path_pattern="scripts/skyui",
        path_match=MatchType.prefix,
        file_types=frozenset({FileType.script}),
    ),
    IncompatibilityRule(
        id="script-sources",
        name="Script Source Conflict",
        description="Overwritten script sources break recompiled patches",
        score_bonus=15,
        path_pattern="scripts/source",
        path_match=MatchType.prefix,
        file_types=frozenset({FileType.script}),
    ),
    IncompatibilityRule(
        id="skyui-interface",
        name="SkyUI Interface Conflict",
        description="SkyUI interface files are essential for the modded UI",
        score_bonus=15,
        path_pattern="interface/skyui",
        path_match=MatchType.prefix,
        file_types=frozenset({FileType.interface}),
    ),
    IncompatibilityRule(
        id="mcm-interface",
        name="MCM Interface Conflict",
        description="Mod Configuration Menu interface conflicts",
        score_bonus=10,
        path_pattern="interface/quest_journal",
        path_match=MatchType.contains,
        file_types=frozenset({FileType.interface}),
    ),
    IncompatibilityRule(
        id="skeleton-conflict",
        name="Skeleton Conflict",
        description="Skeleton conflicts can break animations and crash the game",
        score_bonus=20,
        path_pattern="skeleton",
        path_match=MatchType.contains,
        file_types=frozenset({FileType.mesh}),
    ),
    IncompatibilityRule(
        id="body-mesh",
        name="Body Mesh Conflict",
        description="Character body mesh conflicts affect every NPC",
        score_bonus=15,
        path_pattern="actors/character/character assets",
        path_match=MatchType.contains,
        file_types=frozenset({FileType.mesh}),
    ),
    IncompatibilityRule(
        id="animation-behavior",
        name="Animation Behavior Conflict",
        description="Behavior file conflicts can break character animations",
        score_bonus=20,
        path_pattern=".hkx",
        path_match=MatchType.suffix,
    ),
    IncompatibilityRule(
        id="animation-framework",
        name="Animation Framework Conflict",
        description="Generated behavior output from FNIS/Nemesis",
        score_bonus=25,
        path_pattern="meshes/actors/character/behaviors",
        path_match=MatchType.prefix,
    ),
    IncompatibilityRule(
        id="combat-scripts",
        name="Combat Script Conflict",
        description="Combat-related scripts may change game balance",
        score_bonus=10,
        path_pattern="combat",
        path_match=MatchType.contains,
        file_types=frozenset({FileType.script}),
    ),
    IncompatibilityRule(
        id="face-texture",
        name="Face Texture Conflict",
        description="Face texture conflicts cause mismatched face tints",
        score_bonus=5,
        path_pattern="textures/actors/character/facegendata",
        path_match=MatchType.prefix,
        file_types=frozenset({FileType.texture}),
    ),
    IncompatibilityRule(
        id="plugin-overwrite",
        name="Plugin Overwrite",
        description="Overwritten plugins lose their patches",
        score_bonus=10,
        file_types=frozenset({FileType.plugin}),
    ),
)


class ConflictScorer:
    def __init__(self, rules: Sequence[IncompatibilityRule] | None = None) -> None:
        self._rules = tuple(DEFAULT_RULES if rules is None else rules)

    @property
    def rules(self) -> tuple[IncompatibilityRule, ...]:
        return self._rules

    def score(
        self,
        path: str,
        file_type: FileType,
        mod_ids: Sequence[str],
        *,
        is_identical: bool,
    ) -> tuple[int, tuple[str, ...]]:
        """Return ``(score, matched_rule_ids)`` for one conflict."""
        score = BASE_SCORE_BY_FILE_TYPE.get(file_type, BASE_SCORE_BY_FILE_TYPE[FileType.other])
        if is_identical:
            score -= IDENTICAL_FILE_DISCOUNT
        if len(mod_ids) > 2:
            score += (len(mod_ids) - 2) * MULTI_SOURCE_BONUS

        matched = [r for r in self._rules if rule_matches(r, path, file_type, mod_ids)]
        score += sum(r.score_bonus for r in matched)
        return max(MIN_SCORE, min(MAX_SCORE, score)), tuple(r.id for r in matched)
