from __future__ import annotations

import getpass
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from logdiag.arch import cpu_supports_32bit, native_architecture
from logdiag.runner import CommandRunner


LOGGER = logging.getLogger(__name__)

DEBIAN_VERSION_CODENAMES = (("11", "bullseye"), ("10", "buster"), ("9", "stretch"))


@dataclass(frozen=True)
class HostInfo:
    """Snapshot of the host state that rules and enrichment consult."""

    os_id: str = ""
    pretty_name: str = ""
    version_id: str = ""
    codename: str = "bullseye"
    raspberry_pi_os: bool = False
    bitness: str = "64"
    native_arch: str = ""
    cpu_op_mode_32: bool = False
    user: str = "$USER"
    home: str = "$HOME"
    root: Path = field(default=Path("/"))

    @property
    def distro(self) -> str:
        """Debian-style distro name, treating Debian on a Pi image as Raspbian."""
        if self.os_id == "debian" and self.raspberry_pi_os:
            return "raspbian"
        return self.os_id

    @property
    def debian_family(self) -> bool:
        return self.distro in {"debian", "raspbian"}

    @property
    def major_version(self) -> int | None:
        head = self.version_id.split(".", 1)[0]
        return int(head) if head.isdigit() else None

    def path(self, absolute: str) -> Path:
        return self.root / absolute.lstrip("/")

    def template_values(self) -> dict[str, str]:
        return {
            "user": self.user,
            "home": self.home,
            "codename": self.codename,
            "arch": self.native_arch,
            "bitness": self.bitness,
        }

    @classmethod
    def detect(cls, runner: CommandRunner, root: Path = Path("/")) -> "HostInfo":
        release = read_os_release(root / "etc" / "os-release")
        raspberry_pi_os = (root / "etc" / "rpi-issue").exists()
        host = cls(
            os_id=release.get("ID", "").lower(),
            pretty_name=release.get("PRETTY_NAME", ""),
            version_id=release.get("VERSION_ID", ""),
            codename=release.get("VERSION_CODENAME") or _debian_codename(root),
            raspberry_pi_os=raspberry_pi_os,
            bitness=detect_bitness(runner),
            native_arch=native_architecture(runner),
            cpu_op_mode_32=cpu_supports_32bit(runner),
            user=os.environ.get("USER") or _login_name(),
            home=os.environ.get("HOME") or "$HOME",
            root=root,
        )
        LOGGER.debug("Detected host: %s", host)
        return host


def read_os_release(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return values
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip("\"'")
    return values


def _debian_codename(root: Path) -> str:
    try:
        version = (root / "etc" / "debian_version").read_text(encoding="utf-8").strip()
    except OSError:
        return "bullseye"
    for prefix, codename in DEBIAN_VERSION_CODENAMES:
        if version.startswith(prefix):
            return codename
    return "bullseye"


def detect_bitness(runner: CommandRunner) -> str:
    long_bit = runner.run(["getconf", "LONG_BIT"]).strip()
    if long_bit in {"32", "64"}:
        return long_bit
    machine = runner.run(["uname", "-m"])
    if machine:
        return "64" if "64" in machine else "32"
    return "64"


def _login_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "$USER"
