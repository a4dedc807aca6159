from __future__ import annotations

import re
from types import MappingProxyType

from logdiag.runner import CommandRunner


KNOWN_ARCHITECTURES = ("i386", "amd64", "armhf", "arm64", "riscv64")

UNAME_TO_DPKG = MappingProxyType(
    {
        "x86_64": "amd64",
        "i386": "i386",
        "i686": "i386",
        "aarch64": "arm64",
        "armv7l": "armhf",
        "armv6l": "armhf",
        "riscv64": "riscv64",
    }
)

_ARCH_GROUP = "|".join(KNOWN_ARCHITECTURES)
FOREIGN_ARCH_PATTERN = re.compile(
    rf"(?:404.*Not Found.*|Ign:.*)[ /]({_ARCH_GROUP}) Packages"
)
_OP_MODES = re.compile(r"CPU op-mode\(s\):\s+(.*)")


def native_architecture(runner: CommandRunner) -> str:
    """Native package architecture, falling back to a translated ``uname -m``."""
    arch = runner.run(["dpkg", "--print-architecture"]).strip()
    if arch and " " not in arch:
        return arch
    machine = runner.run(["uname", "-m"]).strip()
    return UNAME_TO_DPKG.get(machine, machine)


def cpu_supports_32bit(runner: CommandRunner) -> bool:
    match = _OP_MODES.search(runner.run(["lscpu"]))
    return bool(match and "32-bit" in match.group(1))


def extract_foreign_architectures(text: str) -> list[str]:
    found: list[str] = []
    for match in FOREIGN_ARCH_PATTERN.finditer(text):
        arch = match.group(1)
        if arch not in found:
            found.append(arch)
    return found


def is_supported(native: str, foreign: str, cpu_op_mode_32: bool) -> bool:
    if native == foreign:
        return True
    if native == "amd64":
        return foreign == "i386"
    if native == "arm64":
        return cpu_op_mode_32 and foreign == "armhf"
    if native == "armhf":
        # A 32-bit userland on a kernel that also runs 64-bit code.
        return cpu_op_mode_32
    return False


def unsupported_architectures(text: str, native: str, cpu_op_mode_32: bool) -> list[str]:
    return [
        arch
        for arch in extract_foreign_architectures(text)
        if not is_supported(native, arch, cpu_op_mode_32)
    ]


def remove_architecture_commands(architectures: list[str]) -> str:
    return "\n".join(f"sudo dpkg --remove-architecture {arch}" for arch in architectures)
