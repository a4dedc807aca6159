from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from logdiag.backends import Backend
from logdiag.diagnosis import Category, Finding
from logdiag.extract import CandidateSet, extract_all
from logdiag.runner import CommandRunner


LOGGER = logging.getLogger(__name__)

APPENDIX_HEADER = "\nAdditional log diagnosis for developers below:\n\n"
HOLD_MARKER = "Status: hold ok installed"

MULTIARCH_CAPTION = (
    "Packages failed to install because {package} does not have a multiarch (armhf) compatible version.\n"
    "This issue does not occur on Ubuntu/Debian (where every package is multiarch compatible). "
    "Contact your distro maintainer or the packager of {package} to have this issue resolved."
)

HOLD_CAPTION = (
    "Packages failed to install because you manually marked at least one of the following packages as held:\n\n"
    "{listing}\n\n"
    "You will need to unmark the packages with the following command before installation can proceed:\n"
    "{command}"
)


class DeveloperAppendix:
    """Raw enrichment output for developers.

    Output is always kept in memory. When a log path is given it is also
    appended to that file, behind a single header written on first use.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self.entries: list[str] = []
        self._header_written = False

    def write(self, output: str) -> None:
        self.entries.append(output)
        if self.path is None:
            return
        with self.path.open("a", encoding="utf-8") as handle:
            if not self._header_written:
                handle.write(APPENDIX_HEADER)
                self._header_written = True
            handle.write(output + "\n")

    def text(self) -> str:
        return "\n".join(self.entries)


class Enricher:
    """Re-queries the live package manager about packages named in a log."""

    def __init__(self, backend: Backend, runner: CommandRunner, appendix: DeveloperAppendix) -> None:
        self.backend = backend
        self.runner = runner
        self.appendix = appendix
        self._index_targets: str | None = None

    def query(self, command: Sequence[str], packages: Sequence[str]) -> str:
        if not command or not packages:
            return ""
        output = self.runner.run([*command, *packages])
        self.appendix.write(output)
        return output

    def unmet_dependencies(self, text: str, rule: str) -> list[Finding]:
        findings: list[Finding] = []
        for candidates in extract_all(text):
            if candidates:
                findings.extend(self.probe(candidates, rule))
        self.record_environment()
        return findings

    def probe(self, candidates: CandidateSet, rule: str) -> list[Finding]:
        LOGGER.debug("Probing %s candidates: %s", candidates.strategy, " ".join(candidates.names))
        show = self.query(self.backend.show, candidates.probes)
        self.query(self.backend.policy, candidates.probes)
        self.query(self.backend.list_all, candidates.clean)
        dry_run = self.query(self.backend.dry_run_install, candidates.probes)

        findings = [
            Finding(
                rule=f"{rule}.multiarch",
                caption=MULTIARCH_CAPTION.format(package=package),
                category=Category.PACKAGE,
            )
            for package in candidates.clean
            if f"{package} : Breaks: {package}:armhf" in dry_run
        ]
        if not findings and HOLD_MARKER in show:
            findings.append(self.held_packages(candidates.names, rule))
        return findings

    def held_packages(self, packages: Sequence[str], rule: str) -> Finding:
        command = self.backend.unhold.format(packages=" ".join(packages))
        return Finding(
            rule=f"{rule}.held",
            caption=HOLD_CAPTION.format(listing="\n".join(packages), command=command),
            category=self.backend.hold_category,
        )

    def record_environment(self) -> None:
        targets = self.index_targets()
        if targets:
            self.appendix.write(targets)
        if self.backend.foreign_architectures:
            foreign = self.runner.run(self.backend.foreign_architectures)
            self.appendix.write("foreign architectures: " + foreign)

    def index_targets(self) -> str:
        if self._index_targets is None:
            self._index_targets = self.runner.run(self.backend.index_targets) if self.backend.index_targets else ""
        return self._index_targets

    def installed_from_backports(self, packages: Sequence[str]) -> list[str]:
        conflicts: list[str] = []
        for package in packages:
            if "-backports,now" in self.runner.run([*self.backend.list_installed, package]):
                conflicts.append(package)
        return conflicts

    def verify_files(self, packages: Sequence[str]) -> str:
        return self.query(self.backend.verify_files, packages)
