from __future__ import annotations

from dataclasses import dataclass

from logdiag.backends import Backend
from logdiag.runner import CommandRunner


BASE_TOOLS = ("curl", "git", "lscpu", "getconf", "uname")


@dataclass
class DoctorReport:
    backend: str
    enrichment: bool
    tools: dict[str, bool]

    @property
    def ok(self) -> bool:
        return all(self.tools.values())


def _backend_tools(backend: Backend) -> list[str]:
    commands = (
        backend.show,
        backend.policy,
        backend.list_all,
        backend.dry_run_install,
        backend.index_targets,
        backend.foreign_architectures,
        backend.verify_files,
    )
    tools: list[str] = []
    for command in commands:
        if command and command[0] not in tools:
            tools.append(command[0])
    return tools


def run_doctor(backend: Backend, runner: CommandRunner | None = None) -> DoctorReport:
    runner = runner or CommandRunner()
    names = [*BASE_TOOLS, *(name for name in _backend_tools(backend) if name not in BASE_TOOLS)]
    tools = {name: runner.which(name) is not None for name in names}
    return DoctorReport(backend.name, backend.enrichment, tools)
