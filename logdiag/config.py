from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError

from logdiag.report import DEFAULT_POINTER
from logdiag.runner import DEFAULT_TIMEOUT


def _pi_apps_dir() -> Path | None:
    value = os.environ.get("PI_APPS_DIR")
    return Path(value) if value else None


class CommandsConfig(BaseModel):
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    retries: int = Field(default=0, ge=0)


class ReportConfig(BaseModel):
    pointer: str = DEFAULT_POINTER
    timeout: float = Field(default=30.0, gt=0)


class HeaderConfig(BaseModel):
    pi_apps_dir: Path | None = Field(default_factory=_pi_apps_dir)
    fetch_latest_version: bool = True
    github_token: str | None = Field(default_factory=lambda: os.environ.get("GITHUB_API_KEY"))
    timeout: float = Field(default=10.0, gt=0)


class RulesConfig(BaseModel):
    files: list[Path] = Field(default_factory=list)


class LogDiagConfig(BaseModel):
    backend: str = "auto"
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    header: HeaderConfig = Field(default_factory=HeaderConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    verbosity: int = 0


def _read_mapping(path: Path) -> dict[str, Any]:
    content = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid config: cannot parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config: {path} must contain a mapping")
    return data


def load_config(path: Path | None) -> LogDiagConfig:
    if path is None:
        return LogDiagConfig()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    try:
        return LogDiagConfig.model_validate(_read_mapping(path))
    except ValidationError as exc:
        raise ValueError(f"Invalid config: {exc}") from exc


def _overlay(payload: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(payload)
    for key, value in overrides.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            merged[key] = _overlay(current, value)
        else:
            merged[key] = value
    return merged


def merge_config(base: LogDiagConfig, overrides: Mapping[str, Any]) -> LogDiagConfig:
    """Apply CLI overrides; nested sections merge key by key and ``None`` keeps the base value."""
    try:
        return LogDiagConfig.model_validate(_overlay(base.model_dump(mode="python"), overrides))
    except ValidationError as exc:
        raise ValueError(f"Invalid config: {exc}") from exc
