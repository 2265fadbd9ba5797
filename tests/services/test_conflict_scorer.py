from __future__ import annotations

import pytest

from modlens.schemas.manifest import FileType
from modlens.services.conflict_scorer import (
    DEFAULT_RULES,
    ConflictScorer,
    IncompatibilityRule,
    MatchType,
    rule_matches,
)


class TestBaseScores:
    @pytest.mark.parametrize(
        ("file_type", "path", "expected"),
        [
            (FileType.bsa, "mod.bsa", 75),
            (FileType.script, "scripts/a.pex", 70),
            (FileType.interface, "interface/a.swf", 55),
            (FileType.mesh, "meshes/a.nif", 50),
            (FileType.texture, "textures/a.dds", 45),
            (FileType.seq, "seq/a.seq", 30),
            (FileType.sound, "sound/a.wav", 25),
            (FileType.other, "readme.txt", 20),
        ],
    )
    def test_base_by_type(self, file_type, path, expected):
        score, matched = ConflictScorer().score(path, file_type, ["a", "b"], is_identical=False)
        assert score == expected
        assert matched == ()

    def test_identical_discount_clamps_at_zero(self):
        score, _ = ConflictScorer().score("a.txt", FileType.other, ["a", "b"], is_identical=True)
        assert score == 0

    def test_extra_sources_add_bonus(self):
        score, _ = ConflictScorer().score(
            "meshes/a.nif", FileType.mesh, ["a", "b", "c", "d"], is_identical=False
        )
        assert score == 60

    def test_animation_rules_stack(self):
        score, matched = ConflictScorer().score(
            "meshes/actors/character/behaviors/0_master.hkx",
            FileType.other,
            ["a", "b", "c", "d", "e", "f"],
            is_identical=False,
        )
        assert set(matched) == {"animation-behavior", "animation-framework"}
        # 20 base + 4*5 sources + 20 + 25 = 85
        assert score == 85

    def test_clamped_at_hundred(self):
        score, _ = ConflictScorer().score(
            "mod.esp", FileType.plugin, ["a", "b", "c", "d"], is_identical=False
        )
        assert score == 100

    def test_plugin_rule(self):
        score, matched = ConflictScorer().score("mod.esp", FileType.plugin, ["a", "b"], is_identical=False)
        assert matched == ("plugin-overwrite",)
        assert score == 100


class TestDefaultRules:
    def test_skeleton_mesh(self):
        _, matched = ConflictScorer().score(
            "meshes/actors/character/character assets/skeleton.nif",
            FileType.mesh,
            ["a", "b"],
            is_identical=False,
        )
        assert set(matched) == {"skeleton-conflict", "body-mesh"}

    def test_rule_ids_unique(self):
        ids = [r.id for r in DEFAULT_RULES]
        assert len(ids) == len(set(ids))

    def test_skyui_scripts_need_script_type(self):
        rule = next(r for r in DEFAULT_RULES if r.id == "skyui-scripts")
        assert rule_matches(rule, "scripts/skyui/config.pex", FileType.script, [])
        assert not rule_matches(rule, "scripts/skyui/readme.txt", FileType.other, [])


class TestRuleMatching:
    @pytest.mark.parametrize(
        ("match", "pattern", "path", "expected"),
        [
            (MatchType.exact, "Meshes/A.nif", "meshes/a.nif", True),
            (MatchType.exact, "meshes/a", "meshes/a.nif", False),
            (MatchType.prefix, "MESHES/", "meshes/a.nif", True),
            (MatchType.suffix, ".NIF", "meshes/a.nif", True),
            (MatchType.contains, "es/a", "meshes/a.nif", True),
            (MatchType.regex, r"^meshes/.*\.nif$", "Meshes/A.NIF", True),
            (MatchType.regex, r"^textures/", "meshes/a.nif", False),
        ],
    )
    def test_path_match_types(self, match, pattern, path, expected):
        rule = IncompatibilityRule(id="r", name="r", score_bonus=1, path_pattern=pattern, path_match=match)
        assert rule_matches(rule, path, FileType.mesh, []) is expected

    def test_mod_patterns_need_distinct_mods(self):
        rule = IncompatibilityRule(
            id="pair",
            name="pair",
            score_bonus=10,
            mod_patterns=("ui", "ui"),
        )
        assert not rule_matches(rule, "any", FileType.other, ["skyui", "other"])
        assert rule_matches(rule, "any", FileType.other, ["skyui", "ui-extensions"])

    def test_mod_regex(self):
        rule = IncompatibilityRule(
            id="r",
            name="r",
            score_bonus=10,
            mod_patterns=(r"^sky", r"^frost"),
            mod_match=MatchType.regex,
        )
        assert rule_matches(rule, "x", FileType.other, ["Frostfall", "SkyUI"])
        assert not rule_matches(rule, "x", FileType.other, ["SkyUI", "campfire"])

    def test_file_type_filter(self):
        rule = IncompatibilityRule(
            id="r", name="r", score_bonus=5, file_types=frozenset({FileType.texture})
        )
        assert rule_matches(rule, "a.dds", FileType.texture, [])
        assert not rule_matches(rule, "a.nif", FileType.mesh, [])
