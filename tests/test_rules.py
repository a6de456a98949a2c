import logging

import pytest

from branchtrack.github.model import RepositoryId
from branchtrack.model import InvalidConfig
from branchtrack.rules import MAX_DEPTH, PropagationRule, PropagationRuleSet

NIXPKGS = RepositoryId(owner="NixOS", name="nixpkgs")

NIXPKGS_RULES = {
    r"\Astaging\z": ["staging-next"],
    r"\Astaging-next\z": ["master"],
    r"\Astaging-next-([\d.]+)\z": ["release-$1"],
    r"\Ahaskell-updates\z": ["staging"],
    r"\Amaster\z": ["nixpkgs-unstable", "nixos-unstable-small"],
    r"\Anixos-(.*)-small\z": ["nixos-$1"],
    r"\Arelease-([\d.]+)\z": ["nixpkgs-$1-darwin", "nixos-$1-small"],
    r"\Astaging-((1.|20)\.\d{2})\z": ["release-$1"],
    r"\Astaging-((2[1-9]|[3-90].)\.\d{2})\z": ["staging-next-$1"],
    r"\Astaging-nixos\z": ["master"],
}


@pytest.fixture
def rules():
    return PropagationRuleSet.from_targets({NIXPKGS: NIXPKGS_RULES})


def test_next_branches_single_target(rules):
    assert rules.next_branches(NIXPKGS, "staging-next") == ["master"]
    assert rules.next_branches(NIXPKGS, "haskell-updates") == ["staging"]


def test_next_branches_fan_out(rules):
    assert rules.next_branches(NIXPKGS, "master") == [
        "nixpkgs-unstable",
        "nixos-unstable-small",
    ]


def test_next_branches_capture_group(rules):
    assert set(rules.next_branches(NIXPKGS, "staging-next-25.11")) == {
        "release-25.11"
    }
    assert rules.next_branches(NIXPKGS, "nixos-unstable-small") == ["nixos-unstable"]


def test_next_branches_is_deterministic(rules):
    first = rules.next_branches(NIXPKGS, "release-25.11")
    for _ in range(5):
        assert rules.next_branches(NIXPKGS, "release-25.11") == first


def test_leaf_and_unknown_repository(rules):
    assert rules.next_branches(NIXPKGS, "nixos-unstable") == []
    assert rules.next_branches(NIXPKGS, "staging-next-foo") == []

    other = RepositoryId(owner="octo", name="cat")
    assert rules.next_branches(other, "master") == []
    assert rules.all_branches(other, "master") == ["master"]


def test_all_branches_master(rules):
    assert rules.all_branches(NIXPKGS, "master") == [
        "master",
        "nixpkgs-unstable",
        "nixos-unstable-small",
        "nixos-unstable",
    ]


def test_all_branches_release(rules):
    assert rules.all_branches(NIXPKGS, "release-25.11") == [
        "release-25.11",
        "nixpkgs-25.11-darwin",
        "nixos-25.11-small",
        "nixos-25.11",
    ]


def test_all_branches_versioned_staging(rules):
    assert rules.all_branches(NIXPKGS, "staging-25.11") == [
        "staging-25.11",
        "staging-next-25.11",
        "release-25.11",
        "nixpkgs-25.11-darwin",
        "nixos-25.11-small",
        "nixos-25.11",
    ]
    # old releases skip staging-next
    assert rules.all_branches(NIXPKGS, "staging-20.09")[:2] == [
        "staging-20.09",
        "release-20.09",
    ]


def test_all_branches_starts_with_branch(rules):
    for branch in ("staging", "master", "nixos-unstable", "unrelated"):
        assert rules.all_branches(NIXPKGS, branch)[0] == branch


def test_all_branches_keeps_duplicates():
    rules = PropagationRuleSet.from_targets(
        {
            NIXPKGS: {
                "^a$": ["b", "c"],
                "^b$": ["d"],
                "^c$": ["d"],
            }
        }
    )
    assert rules.all_branches(NIXPKGS, "a") == ["a", "b", "c", "d", "d"]


def test_all_branches_cycle_is_bounded(caplog):
    rules = PropagationRuleSet.from_targets({NIXPKGS: {"^a$": ["b"], "^b$": ["a"]}})
    with caplog.at_level(logging.WARNING, logger="branchtrack"):
        branches = rules.all_branches(NIXPKGS, "a")
    assert len(branches) == MAX_DEPTH + 1
    assert "cycle" in caplog.text


def test_template_syntax():
    rule = PropagationRule.compile(
        r"^(?P<kind>nixos|nixpkgs)-(\d+)\.(\d+)$",
        ["${kind}-$2${3}", "$kind-$$", "v${2}_x"],
    )
    assert rule.apply("nixos-25.11") == ["nixos-2511", "nixos-$", "v25_x"]
    assert rule.apply("master") == []


def test_named_group_expands_to_captured_value():
    rules = PropagationRuleSet.from_targets(
        {NIXPKGS: {r"^staging-next-(?P<ver>[\d.]+)$": ["release-${ver}", "$ver"]}}
    )
    assert rules.next_branches(NIXPKGS, "staging-next-25.11") == [
        "release-25.11",
        "25.11",
    ]


def test_unanchored_pattern_replaces_match_only():
    rule = PropagationRule.compile(r"-small", ["-large"])
    assert rule.apply("nixos-unstable-small") == ["nixos-unstable-large"]


def test_optional_group_expands_empty():
    rule = PropagationRule.compile(r"^release(-beta)?$", ["stable$1"])
    assert rule.apply("release") == ["stable"]
    assert rule.apply("release-beta") == ["stable-beta"]


def test_escaped_backslash_before_z_is_literal():
    rule = PropagationRule.compile(r"^a\\z$", ["b"])
    assert rule.apply("a\\z") == ["b"]


def test_invalid_pattern():
    with pytest.raises(InvalidConfig):
        PropagationRuleSet.from_targets({NIXPKGS: {"staging-(": ["x"]}})


def test_template_references_unknown_group():
    with pytest.raises(InvalidConfig):
        PropagationRuleSet.from_targets({NIXPKGS: {"^staging-(.*)$": ["x-$2"]}})

    with pytest.raises(InvalidConfig):
        PropagationRuleSet.from_targets({NIXPKGS: {"^staging-(.*)$": ["x-${name}"]}})
