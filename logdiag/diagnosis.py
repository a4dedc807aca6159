from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class Category(str, Enum):
    NONE = ""
    SYSTEM = "system"
    PACKAGE = "package"
    INTERNET = "internet"
    UNKNOWN = "unknown"
    OS_RELEASE_NOTICE = "os-release-notice"


# Only failures caused by the user's own system block error reports.
REPORT_BLOCKING = frozenset({Category.SYSTEM})


@dataclass(frozen=True)
class Finding:
    rule: str
    caption: str
    # None appends the caption without touching the current category.
    category: Category | None


@dataclass
class Diagnosis:
    category: Category = Category.NONE
    captions: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)

    def record(self, finding: Finding) -> None:
        """Append a caption; the latest categorized finding decides the category."""
        self.captions.append(finding.caption)
        self.findings.append(finding)
        if finding.category is not None:
            self.category = finding.category

    def extend(self, findings: Iterable[Finding]) -> None:
        for finding in findings:
            self.record(finding)

    def finalize(self) -> "Diagnosis":
        if self.category == Category.NONE:
            self.category = Category.UNKNOWN
        return self

    @property
    def reporting_allowed(self) -> bool:
        return self.category not in REPORT_BLOCKING

    def rule_names(self) -> list[str]:
        return [finding.rule for finding in self.findings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "reporting_allowed": self.reporting_allowed,
            "captions": list(self.captions),
            "rules": self.rule_names(),
        }
