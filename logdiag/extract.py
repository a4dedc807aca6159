from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable


ARCH_SUFFIX = re.compile(r":(armhf|arm64|amd64|riscv64|i686|all)")
VERSION_CONSTRAINT = re.compile(r"\([^)]*\)")

_DEPENDS_ENTRY = re.compile(r"^ .* : Depends:")
_DEPENDS_CONTINUATION = re.compile(r"^ +Depends:")


@dataclass(frozen=True)
class CandidateSet:
    """Package names pulled from one extraction strategy.

    ``names`` keeps architecture suffixes and is what the package manager is
    queried with. ``clean`` strips them for listings and cross-arch checks.
    """

    strategy: str
    names: tuple[str, ...]

    def __bool__(self) -> bool:
        return bool(self.names)

    @property
    def probes(self) -> tuple[str, ...]:
        probes: list[str] = []
        for name in self.names:
            probes.append(name)
            if ":armhf" in name:
                probes.append(name.replace(":armhf", ":arm64", 1))
        return tuple(probes)

    @property
    def clean(self) -> tuple[str, ...]:
        return tuple(sorted({ARCH_SUFFIX.sub("", name) for name in self.names}))


def _unique_sorted(names: list[str]) -> tuple[str, ...]:
    return tuple(sorted({name for name in names if name}))


def depends_entries(text: str) -> CandidateSet:
    """``" pkgA : Depends: pkgB ..."`` yields the package and its first dependency."""
    names: list[str] = []
    for line in text.splitlines():
        if not _DEPENDS_ENTRY.match(line):
            continue
        parts = line.split()
        if len(parts) >= 4:
            names.extend((parts[0], parts[3]))
    return CandidateSet("depends-entry", _unique_sorted(names))


def depends_continuations(text: str) -> CandidateSet:
    """Indented ``"      Depends: pkgC"`` lines that continue an entry."""
    names: list[str] = []
    for line in text.splitlines():
        if not _DEPENDS_CONTINUATION.match(line):
            continue
        parts = line.split()
        if len(parts) >= 2:
            names.append(parts[1])
    return CandidateSet("depends-continuation", _unique_sorted(names))


def depends_fields(text: str) -> CandidateSet:
    """Control-file style ``Depends: a (>= 1), b | c:any`` lines."""
    names: list[str] = []
    for line in text.splitlines():
        if not line.startswith("Depends:"):
            continue
        specs = line.split(":", 1)[1].replace(", ", "\n").replace("| ", "\n")
        specs = VERSION_CONSTRAINT.sub("", specs)
        for spec in specs.split("\n"):
            spec = spec.strip().replace(":any", "")
            if spec:
                names.append(spec)
    return CandidateSet("depends-field", _unique_sorted(names))


STRATEGIES: tuple[Callable[[str], CandidateSet], ...] = (
    depends_entries,
    depends_continuations,
    depends_fields,
)


def extract_all(text: str) -> list[CandidateSet]:
    return [strategy(text) for strategy in STRATEGIES]


def unmet_section(text: str, marker: str) -> str:
    """The block from ``marker`` up to the first blank line or ``E:`` line."""
    lines: list[str] = []
    capturing = False
    for line in text.splitlines():
        if marker in line:
            capturing = True
            lines = [line]
            continue
        if capturing:
            if not line or "E:" in line:
                capturing = False
            else:
                lines.append(line)
    return "\n".join(lines) + ("\n" if lines else "")
