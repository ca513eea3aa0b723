"""Tests for the rule catalog and profile registry."""

import pytest

from tidymac.catalog import LEFTOVER_TEMPLATES, PROFILES, RULES, ProfileRegistry, leftover_root, leftover_rules
from tidymac.errors import UnknownProfile
from tidymac.models import Category, ProfileName


@pytest.mark.parametrize("name", [p.value for p in ProfileName])
def test_every_profile_resolves_to_rules(name):
    rules = ProfileRegistry().resolve(name)
    assert rules
    assert len({r.rule_id for r in rules}) == len(rules)


def test_unknown_profile_is_rejected():
    with pytest.raises(UnknownProfile):
        ProfileRegistry().resolve("not-a-profile")
    with pytest.raises(UnknownProfile):
        ProfileName.parse(None)


@pytest.mark.parametrize("name", ["quick", "developer", "creative", "deep"])
def test_profile_names_parse_once_at_the_edge(name):
    assert ProfileName.parse(name).value == name


@pytest.mark.parametrize("raw", ["dev", "deep_clean", "quick_sweep", "Quick", " developer "])
def test_only_exact_profile_names_are_recognised(raw):
    with pytest.raises(UnknownProfile):
        ProfileName.parse(raw)


def test_profiles_only_reference_catalog_rules():
    ids = {r.rule_id for r in RULES}
    for profile in PROFILES.values():
        assert set(profile.rule_ids) <= ids


def test_rule_patterns_are_home_relative_or_absolute():
    for rule in RULES:
        for pattern in rule.patterns:
            assert pattern.startswith("~/") or pattern.startswith("/"), rule.rule_id


def test_developer_rules_take_priority_over_generic_caches():
    rules = [r.rule_id for r in ProfileRegistry().resolve(ProfileName.DEVELOPER)]
    assert rules.index("pip_cache") < rules.index("user_caches")


def test_profile_listing():
    listed = ProfileRegistry().list()
    assert [p["name"] for p in listed] == ["quick", "developer", "creative", "deep"]
    deep = next(p for p in listed if p["name"] == "deep")
    assert deep["aggression"] == 3
    assert deep["rule_count"] == len(PROFILES[ProfileName.DEEP].rule_ids)


def test_leftover_rules_expand_every_template_per_identifier():
    rules = leftover_rules("Foo", ["com.example.foo", "Foo"])
    assert len(rules) == 2 * len(LEFTOVER_TEMPLATES)
    assert all(r.category is Category.LEFTOVER for r in rules)
    assert any(r.name == "Foo Cache" for r in rules)
    assert "~/Library/Caches/com.example.foo" in {p for r in rules for p in r.patterns}


def test_leftover_rules_skip_duplicate_and_empty_identifiers():
    rules = leftover_rules("Foo", ["Foo", "", "Foo"])
    assert len(rules) == len(LEFTOVER_TEMPLATES)


def test_leftover_identifiers_are_glob_escaped():
    rules = leftover_rules("Foo [Beta]", ["Foo [Beta]"])
    support = next(r for r in rules if r.rule_id == "leftover:app_support")
    assert support.patterns == ("~/Library/Application Support/Foo [[]Beta]",)


@pytest.mark.parametrize("ident", ["", ".", "..", "../Projects", "a/b"])
def test_leftover_rules_skip_path_like_identifiers(ident):
    assert leftover_rules("App", [ident]) == ()


def test_leftover_roots_are_library_directories():
    assert leftover_root("leftover:caches") == "~/Library/Caches"
    assert leftover_root("leftover:group_container") == "~/Library/Group Containers"
    assert leftover_root("leftover:crash_reports") == "~/Library/Logs/DiagnosticReports"
    assert leftover_root("user_caches") is None
    for key, _, _, _ in LEFTOVER_TEMPLATES:
        assert leftover_root(f"leftover:{key}").startswith("~/Library/")
