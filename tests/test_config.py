from pathlib import Path

import pytest

from logdiag.config import load_config, merge_config


def test_load_config_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "backend: apt\n"
        "commands:\n  timeout: 5\n  retries: 2\n"
        "header:\n  fetch_latest_version: false\n"
        "rules:\n  files: [./custom.yaml]\n",
        encoding="utf-8",
    )
    config = load_config(config_path)
    assert config.backend == "apt"
    assert config.commands.timeout == 5
    assert config.commands.retries == 2
    assert config.header.fetch_latest_version is False
    assert config.rules.files[0].name == "custom.yaml"


def test_load_config_defaults() -> None:
    config = load_config(None)
    assert config.backend == "auto"
    assert config.commands.retries == 0
    assert config.rules.files == []


def test_invalid_config_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text('{"commands": {"timeout": 0}}', encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid config"):
        load_config(config_path)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_merge_config_ignores_unset_overrides() -> None:
    base = load_config(None)
    merged = merge_config(base, {"backend": None, "verbosity": 2})
    assert merged.backend == "auto"
    assert merged.verbosity == 2
    assert merge_config(base, {"backend": "pacman"}).backend == "pacman"


def test_merge_config_overlays_nested_sections(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("commands:\n  timeout: 5\n  retries: 2\n", encoding="utf-8")
    base = load_config(config_path)
    merged = merge_config(base, {"commands": {"retries": 4, "timeout": None}, "rules": {"files": None}})
    assert merged.commands.timeout == 5
    assert merged.commands.retries == 4
    assert merged.rules.files == []

    merged = merge_config(base, {"rules": {"files": [tmp_path / "extra.yaml"]}})
    assert merged.rules.files == [tmp_path / "extra.yaml"]
    assert merged.commands.retries == 2


def test_invalid_override_is_reported() -> None:
    with pytest.raises(ValueError, match="Invalid config"):
        merge_config(load_config(None), {"commands": {"retries": -1}})


def test_config_file_must_be_a_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- backend: apt\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must contain a mapping"):
        load_config(config_path)

    config_path.write_text("backend: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValueError, match="cannot parse"):
        load_config(config_path)
