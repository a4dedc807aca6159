from pathlib import Path

import pytest

from logdiag.diagnosis import Category
from logdiag.rules import catalog_path, load_catalog, load_rules, load_ruleset, merge_rules


def test_rule_loading_from_yaml(tmp_path: Path) -> None:
    rule_file = tmp_path / "rules.yaml"
    rule_file.write_text(
        "version: 1\nrules:\n"
        "  - name: demo\n"
        "    category: internet\n"
        "    any: ['Could not fetch (?P<url>\\S+)']\n"
        "    caption: 'Fetching {url} failed for {user}'\n",
        encoding="utf-8",
    )
    rules = load_rules([rule_file])
    assert len(rules) == 1
    assert rules[0].name == "demo"
    assert rules[0].category == Category.INTERNET
    found = rules[0].search("W: Could not fetch http://example.org")
    assert found and found.group("url") == "http://example.org"


def test_rule_loading_from_json(tmp_path: Path) -> None:
    rule_file = tmp_path / "rules.json"
    rule_file.write_text('[{"name": "demo", "any": ["oops"], "caption": "Oops"}]', encoding="utf-8")
    rules = load_rules([rule_file])
    assert rules[0].category is None
    assert rules[0].render({}) == "Oops"


def test_unknown_caption_field_is_rejected(tmp_path: Path) -> None:
    rule_file = tmp_path / "rules.yaml"
    rule_file.write_text(
        "rules:\n  - name: demo\n    any: ['x']\n    caption: 'hello {nobody}'\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="nobody"):
        load_rules([rule_file])


def test_invalid_category_is_rejected(tmp_path: Path) -> None:
    rule_file = tmp_path / "rules.yaml"
    rule_file.write_text(
        "rules:\n  - name: demo\n    category: fatal\n    any: ['x']\n    caption: 'x'\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="Invalid category"):
        load_rules([rule_file])


def test_rule_needs_caption_or_handler(tmp_path: Path) -> None:
    rule_file = tmp_path / "rules.yaml"
    rule_file.write_text("rules:\n  - name: demo\n    any: ['x']\n", encoding="utf-8")
    with pytest.raises(ValueError, match="caption or a handler"):
        load_rules([rule_file])


def test_all_and_none_gates(tmp_path: Path) -> None:
    rule_file = tmp_path / "rules.yaml"
    rule_file.write_text(
        "rules:\n"
        "  - name: gated\n"
        "    any: ['downgraded']\n"
        "    all: ['without --allow-downgrades']\n"
        "    none: ['will be DOWNGRADED']\n"
        "    caption: 'x'\n",
        encoding="utf-8",
    )
    rule = load_rules([rule_file])[0]
    assert rule.search("downgraded and -y was used without --allow-downgrades")
    assert rule.search("downgraded") is None
    assert rule.search("downgraded without --allow-downgrades\nwill be DOWNGRADED:") is None


def test_merge_rules_overrides_in_place_and_adds_before_user_errors(tmp_path: Path) -> None:
    default = load_catalog("apt")
    custom_file = tmp_path / "custom.yaml"
    custom_file.write_text(
        "version: 1\nrules:\n"
        "  - name: dpkg_lock\n"
        "    category: unknown\n"
        "    any: ['E: Could not get lock']\n"
        "    caption: 'Another package manager is busy.'\n"
        "  - name: site_specific\n"
        "    category: package\n"
        "    any: ['my-app failed']\n"
        "    caption: 'my-app is broken'\n",
        encoding="utf-8",
    )
    merged = merge_rules(default, load_rules([custom_file]))
    names = [rule.name for rule in merged]
    assert names.index("dpkg_lock") == [rule.name for rule in default].index("dpkg_lock")
    assert merged[names.index("dpkg_lock")].category == Category.UNKNOWN
    assert names[-3:] == ["site_specific", "user_error", "user_error_reporting_allowed"]


def test_load_ruleset_without_custom_files_is_the_catalog() -> None:
    assert [rule.name for rule in load_ruleset("generic", [])] == [rule.name for rule in load_catalog("generic")]


def test_bundled_catalogs_load() -> None:
    for name in ("common", "apt", "pacman", "generic"):
        assert catalog_path(name).exists()
        rules = load_catalog(name)
        assert len({rule.name for rule in rules}) == len(rules)


def test_pacman_catalog_overrides_shared_rules_in_place() -> None:
    common = [rule.name for rule in load_catalog("common")]
    pacman = load_catalog("pacman")
    names = [rule.name for rule in pacman]
    assert "gnupg_missing" not in names
    assert "apt_reinstall_impossible" not in names
    appmenu = pacman[names.index("appmenu_gtk_module")]
    assert "sudo pacman -S" in (appmenu.caption or "")
    assert names.index("appmenu_gtk_module") < names.index("dbus_unavailable")
    assert common.index("appmenu_gtk_module") < common.index("dbus_unavailable")
    assert names[-2:] == ["user_error", "user_error_reporting_allowed"]


def test_include_cycle_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "a.yaml").write_text("rules:\n  - include: b\n", encoding="utf-8")
    (tmp_path / "b.yaml").write_text("rules:\n  - include: a\n", encoding="utf-8")
    monkeypatch.setattr("logdiag.rules.catalog_path", lambda name: tmp_path / f"{name}.yaml")
    with pytest.raises(ValueError, match="cycle"):
        load_catalog("a")


def test_catalog_path_falls_back_when_resources_fail(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_files(package: str) -> Path:
        raise NotADirectoryError("MultiplexedPath only supports directories")

    monkeypatch.setattr("logdiag.rules.resources.files", broken_files)
    path = catalog_path("generic")
    assert path.name == "generic.yaml"
    assert path.parent.name == "catalogs"
    assert path.exists()
    assert [rule.name for rule in load_catalog("generic")][-1] == "user_error_reporting_allowed"
