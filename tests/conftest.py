import subprocess
from typing import Iterable

import pytest

from logdiag.host import HostInfo
from logdiag.runner import CommandRunner


class FakeRunner(CommandRunner):
    """Answers commands from a table keyed by command prefix; records every call."""

    def __init__(self, outputs: dict[tuple[str, ...], str] | None = None, tools: Iterable[str] = ()) -> None:
        super().__init__(timeout=1.0)
        self.outputs = outputs or {}
        self.tools = set(tools)
        self.calls: list[list[str]] = []
        self.returncode = 0

    def _lookup(self, cmd: list[str]) -> str:
        best: tuple[str, ...] = ()
        for prefix in self.outputs:
            if tuple(cmd[: len(prefix)]) == prefix and len(prefix) > len(best):
                best = prefix
        return self.outputs.get(best, "") if best else ""

    def execute(self, args: Iterable[str], timeout: float | None = None) -> subprocess.CompletedProcess[str]:
        cmd = list(args)
        self.calls.append(cmd)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self._lookup(cmd), stderr="")

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if name in self.tools else None

    def called(self, *prefix: str) -> list[list[str]]:
        return [cmd for cmd in self.calls if tuple(cmd[: len(prefix)]) == prefix]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def host() -> HostInfo:
    return HostInfo(
        os_id="debian",
        pretty_name="Debian GNU/Linux 12 (bookworm)",
        version_id="12",
        codename="bookworm",
        bitness="64",
        native_arch="arm64",
        user="pi",
        home="/home/pi",
    )
