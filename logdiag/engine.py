from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from logdiag.backends import Backend
from logdiag.diagnosis import Diagnosis, Finding
from logdiag.enrich import DeveloperAppendix, Enricher
from logdiag.formatter import strip_ansi
from logdiag.handlers import HANDLERS, RuleContext
from logdiag.host import HostInfo
from logdiag.rules import Rule, load_ruleset
from logdiag.runner import CommandRunner


LOGGER = logging.getLogger(__name__)


class LogDiagnoser:
    """Evaluates every rule of a backend catalog against a log, in catalog order.

    All matching rules contribute captions. The category is that of the last
    matching rule which sets one, so catalog order is the priority order.
    """

    def __init__(
        self,
        backend: Backend,
        rules: list[Rule] | None = None,
        runner: CommandRunner | None = None,
        host: HostInfo | None = None,
        rule_files: Iterable[Path] = (),
    ) -> None:
        self.backend = backend
        self.rules = rules if rules is not None else load_ruleset(backend.catalog, rule_files)
        self.runner = runner or CommandRunner()
        self._host = host
        unknown = sorted({rule.handler for rule in self.rules if rule.handler and rule.handler not in HANDLERS})
        if unknown:
            raise ValueError(f"Unknown rule handlers: {', '.join(unknown)}")

    @property
    def host(self) -> HostInfo:
        if self._host is None:
            self._host = HostInfo.detect(self.runner)
        return self._host

    def diagnose(
        self,
        text: str,
        allow_enrichment: bool = True,
        appendix: DeveloperAppendix | None = None,
    ) -> Diagnosis:
        diagnosis = Diagnosis()
        host = self.host
        enricher = None
        if allow_enrichment:
            enricher = Enricher(self.backend, self.runner, appendix or DeveloperAppendix())
        context = RuleContext(text=text, host=host, backend=self.backend, enricher=enricher)
        values = host.template_values()

        for rule in self.rules:
            if not rule.applies_to(host):
                continue
            found = rule.search(text)
            if found is None:
                continue
            findings = self._evaluate(rule, found, context, values)
            for finding in findings:
                LOGGER.info("Rule %s matched (%s)", finding.rule, finding.category.value if finding.category else "-")
            diagnosis.extend(findings)
        return diagnosis.finalize()

    def _evaluate(
        self,
        rule: Rule,
        found: re.Match[str] | bool,
        context: RuleContext,
        values: dict[str, str],
    ) -> list[Finding]:
        if rule.handler:
            return HANDLERS[rule.handler](context, rule)
        captured = {}
        if isinstance(found, re.Match):
            captured = {key: value or "" for key, value in found.groupdict().items()}
        caption = rule.render({**values, **{k: str(v) for k, v in rule.params.items()}, **captured})
        return [Finding(rule=rule.name, caption=caption, category=rule.category)]


def diagnose_file(
    path: Path,
    allow_write: bool,
    diagnoser: LogDiagnoser,
) -> Diagnosis:
    """Diagnose a log file; read errors propagate as ``OSError``.

    With ``allow_write`` the package manager is re-queried and its output is
    appended to the log for developers.
    """
    text = strip_ansi(path.read_text(encoding="utf-8", errors="replace"))
    appendix = DeveloperAppendix(path if allow_write else None)
    return diagnoser.diagnose(text, allow_enrichment=allow_write, appendix=appendix)
