import json
from pathlib import Path

from typer.testing import CliRunner

from logdiag.cli import app

runner = CliRunner()


def test_diagnose_missing_log(tmp_path: Path) -> None:
    result = runner.invoke(app, ["diagnose", str(tmp_path / "absent.log"), "--backend", "generic"])
    assert result.exit_code == 1
    assert "Log file not found" in result.output


def test_diagnose_prints_captions_and_category(tmp_path: Path) -> None:
    log = tmp_path / "install-fail.log"
    log.write_text("tar: foo: Cannot write: No space left on device\n", encoding="utf-8")
    result = runner.invoke(app, ["diagnose", str(log), "--backend", "generic", "--no-write"])
    assert result.exit_code == 0
    assert "Your system has insufficient disk space." in result.output
    assert "Category: system" in result.output
    assert "Reporting allowed: no" in result.output


def test_diagnose_json_output(tmp_path: Path) -> None:
    log = tmp_path / "install-fail.log"
    log.write_text("Failed to install Foo!\n", encoding="utf-8")
    result = runner.invoke(app, ["diagnose", str(log), "--backend", "generic", "--no-write", "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload == {"category": "unknown", "reporting_allowed": True, "captions": [], "rules": []}


def test_diagnose_with_custom_rule_file(tmp_path: Path) -> None:
    rule_file = tmp_path / "custom.yaml"
    rule_file.write_text(
        "rules:\n  - name: foo_broken\n    category: package\n    any: ['Foo exploded']\n"
        "    caption: 'Foo is broken upstream.'\n",
        encoding="utf-8",
    )
    log = tmp_path / "install-fail.log"
    log.write_text("Foo exploded\n", encoding="utf-8")
    result = runner.invoke(
        app, ["diagnose", str(log), "--backend", "generic", "--no-write", "--rule", str(rule_file)]
    )
    assert result.exit_code == 0
    assert "Foo is broken upstream." in result.output
    assert "Category: package" in result.output


def test_unknown_backend_is_rejected(tmp_path: Path) -> None:
    log = tmp_path / "install-fail.log"
    log.write_text("x\n", encoding="utf-8")
    result = runner.invoke(app, ["diagnose", str(log), "--backend", "zypper"])
    assert result.exit_code == 1
    assert "Unknown backend: zypper" in result.output


def test_rules_listing() -> None:
    result = runner.invoke(app, ["rules", "--backend", "generic"])
    assert result.exit_code == 0
    assert "user_error\tsystem\tuser_error" in result.output
    assert "disk_space\tsystem" in result.output
    assert "Loaded " in result.output
    assert result.output.strip().endswith("rules for generic")


def test_invalid_rule_file_is_reported(tmp_path: Path) -> None:
    rule_file = tmp_path / "bad.yaml"
    rule_file.write_text("rules:\n  - name: bad\n    any: ['(']\n    caption: x\n", encoding="utf-8")
    result = runner.invoke(app, ["rules", "--backend", "generic", "--rule-file", str(rule_file)])
    assert result.exit_code == 1
    assert "Invalid pattern in rule bad" in result.output


def test_invalid_config_file_exits(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("commands:\n  timeout: 0\n", encoding="utf-8")
    log = tmp_path / "install-fail.log"
    log.write_text("x\n", encoding="utf-8")
    result = runner.invoke(app, ["diagnose", str(log), "--config", str(config_path)])
    assert result.exit_code == 1
    assert "Invalid config" in result.output
