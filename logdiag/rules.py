from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from string import Formatter
from typing import Any, Iterable, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from logdiag.diagnosis import Category
from logdiag.host import HostInfo


CATEGORIES = {category.value for category in Category if category != Category.NONE}
TEMPLATE_FIELDS = ("user", "home", "codename", "arch", "bitness")
USER_ERROR_HANDLER = "user_error"


class HostRequirement(BaseModel):
    distros: list[str] = Field(default_factory=list)
    version_id: str | None = None
    raspberry_pi_os: bool | None = None

    def satisfied_by(self, host: HostInfo) -> bool:
        if self.distros and host.distro not in self.distros:
            return False
        if self.version_id is not None and host.version_id != self.version_id:
            return False
        if self.raspberry_pi_os is not None and host.raspberry_pi_os != self.raspberry_pi_os:
            return False
        return True


class RuleDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    category: str | None = None
    match_any: list[str] = Field(default_factory=list, alias="any")
    match_all: list[str] = Field(default_factory=list, alias="all")
    match_none: list[str] = Field(default_factory=list, alias="none")
    caption: str | None = None
    handler: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    requires: HostRequirement | None = None


class IncludeDefinition(BaseModel):
    include: str
    exclude: list[str] = Field(default_factory=list)


def _compile(name: str, patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    try:
        return tuple(re.compile(pattern, re.MULTILINE) for pattern in patterns)
    except re.error as exc:
        raise ValueError(f"Invalid pattern in rule {name}: {exc}") from exc


@dataclass(frozen=True)
class Rule:
    name: str
    category: Category | None
    match_any: tuple[re.Pattern[str], ...]
    match_all: tuple[re.Pattern[str], ...] = ()
    match_none: tuple[re.Pattern[str], ...] = ()
    caption: str | None = None
    handler: str | None = None
    params: Mapping[str, Any] = field(default_factory=dict)
    requires: HostRequirement | None = None

    @classmethod
    def from_definition(cls, definition: RuleDefinition) -> "Rule":
        category = None
        if definition.category is not None:
            if definition.category not in CATEGORIES:
                raise ValueError(f"Invalid category in rule {definition.name}: {definition.category}")
            category = Category(definition.category)
        if definition.caption is None and definition.handler is None:
            raise ValueError(f"Rule {definition.name} needs a caption or a handler")
        match_any = _compile(definition.name, definition.match_any)
        if definition.caption is not None:
            known = set(TEMPLATE_FIELDS) | set(definition.params)
            for pattern in match_any:
                known.update(pattern.groupindex)
            try:
                fields = {name for _, name, _, _ in Formatter().parse(definition.caption) if name}
            except ValueError as exc:
                raise ValueError(f"Invalid caption in rule {definition.name}: {exc}") from exc
            unknown = fields - known
            if unknown:
                raise ValueError(f"Unknown caption fields in rule {definition.name}: {', '.join(sorted(unknown))}")
        return cls(
            name=definition.name,
            category=category,
            match_any=match_any,
            match_all=_compile(definition.name, definition.match_all),
            match_none=_compile(definition.name, definition.match_none),
            caption=definition.caption,
            handler=definition.handler,
            params=dict(definition.params),
            requires=definition.requires,
        )

    def search(self, text: str) -> re.Match[str] | bool | None:
        """The first ``any`` match, ``True`` for rules without ``any`` patterns, else None."""
        found: re.Match[str] | bool | None = None
        if self.match_any:
            for pattern in self.match_any:
                found = pattern.search(text)
                if found:
                    break
            if not found:
                return None
        else:
            found = True
        if not all(pattern.search(text) for pattern in self.match_all):
            return None
        if any(pattern.search(text) for pattern in self.match_none):
            return None
        return found

    def applies_to(self, host: HostInfo) -> bool:
        return self.requires is None or self.requires.satisfied_by(host)

    def render(self, values: Mapping[str, str]) -> str:
        if self.caption is None:
            raise ValueError(f"Rule {self.name} has no caption")
        return self.caption.format_map(values).rstrip("\n")


def _read_rule_file(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(path)
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(content) or []
    else:
        raw = json.loads(content)
    if isinstance(raw, dict):
        raw = raw.get("rules") or []
    if not isinstance(raw, list):
        raise ValueError(f"Rule file {path} must contain a list of rules")
    return raw


def _parse(path: Path, item: dict[str, Any], seen: tuple[str, ...]) -> list[Rule]:
    try:
        if "include" in item:
            include = IncludeDefinition.model_validate(item)
            return [
                rule
                for rule in load_catalog(include.include, seen)
                if rule.name not in include.exclude
            ]
        return [Rule.from_definition(RuleDefinition.model_validate(item))]
    except ValidationError as exc:
        raise ValueError(f"Invalid rule in {path}: {exc}") from exc


def load_rules(paths: Iterable[Path], seen: tuple[str, ...] = ()) -> list[Rule]:
    """Load rule files in order; a later rule with an existing name replaces it in place."""
    merged: dict[str, Rule] = {}
    for path in paths:
        for item in _read_rule_file(path):
            for rule in _parse(path, item, seen):
                merged[rule.name] = rule
    return list(merged.values())


def load_catalog(name: str, seen: tuple[str, ...] = ()) -> list[Rule]:
    if name in seen:
        raise ValueError(f"Catalog include cycle: {' -> '.join((*seen, name))}")
    return load_rules([catalog_path(name)], (*seen, name))


def merge_rules(defaults: list[Rule], custom: list[Rule]) -> list[Rule]:
    """Override catalog rules by name; new rules go before the trailing user-error rules."""
    merged: dict[str, Rule] = {rule.name: rule for rule in defaults}
    added: list[Rule] = []
    for rule in custom:
        if rule.name in merged:
            merged[rule.name] = rule
        else:
            added.append(rule)
    ordered = list(merged.values())
    tail = len(ordered)
    while tail > 0 and ordered[tail - 1].handler == USER_ERROR_HANDLER:
        tail -= 1
    return [*ordered[:tail], *added, *ordered[tail:]]


def load_ruleset(catalog: str, custom_paths: Iterable[Path]) -> list[Rule]:
    defaults = load_catalog(catalog)
    custom_paths = list(custom_paths)
    if not custom_paths:
        return defaults
    return merge_rules(defaults, load_rules(custom_paths))


def catalog_path(name: str) -> Path:
    fallback = Path(__file__).resolve().parent / "catalogs" / f"{name}.yaml"
    try:
        path = Path(resources.files("logdiag") / "catalogs" / f"{name}.yaml")
    except (ModuleNotFoundError, AttributeError, TypeError, OSError):
        return fallback
    return path if path.exists() else fallback
