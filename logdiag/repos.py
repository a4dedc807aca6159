from __future__ import annotations

import re
from pathlib import Path

from logdiag.host import HostInfo


RASPI_REPO = re.compile(r"^deb https?://archive\.raspberrypi\.(org|com)/debian", re.MULTILINE)
RASPI_SOURCES_URI = re.compile(r"^URIs:.*https?://archive\.raspberrypi\.(org|com)/debian", re.MULTILINE)

SOURCES_LIST = "/etc/apt/sources.list"
DEBIAN_SOURCES = "/etc/apt/sources.list.d/debian.sources"
RASPI_LIST = "/etc/apt/sources.list.d/raspi.list"
RASPI_SOURCES = "/etc/apt/sources.list.d/raspi.sources"

ALTERED_HEADER = (
    "Packages failed to install because you seem to have deleted or altered an important repository file in "
    "/etc/apt/sources.list.d\n\n"
    "This error-dialog appeared because {path} is missing or altered, but you may have deleted other files as well.\n"
    "The {name} file should contain this:\n\n"
)

DELETED_HEADER = "Packages failed to install because you deleted an important repository file: {path}\n\n"

RESTORE_ADVICE = (
    "Refer to your Linux distro's documentation for how to restore this file.\n"
    "You may have a backup of it in {path}.save if you have not deleted that as well."
)


def has_backports_target(index_targets: str, codename: str) -> bool:
    for line in index_targets.splitlines():
        fields = line.split()
        if (
            len(fields) >= 4
            and fields[3] == "deb"
            and "debian.org/debian" in fields[0]
            and f"{codename}-backports" in fields[1]
            and fields[2] == "main"
        ):
            return True
    return False


def _contains(path: Path, pattern: re.Pattern[str]) -> bool:
    try:
        return bool(pattern.search(path.read_text(encoding="utf-8", errors="replace")))
    except OSError:
        return False


def raspi_list_body(codename: str) -> str:
    return (
        f"deb http://archive.raspberrypi.com/debian/ {codename} main\n"
        "# Uncomment line below then 'apt-get update' to enable 'apt-get source'\n"
        f"#deb-src http://archive.raspberrypi.com/debian/ {codename} main"
    )


def raspi_sources_body(codename: str) -> str:
    return (
        "Types: deb\n"
        "URIs: http://archive.raspberrypi.com/debian/\n"
        f"Suites: {codename}\n"
        "Components: main\n"
        "Signed-By: /usr/share/keyrings/raspberrypi-archive-keyring.pgp\n"
    )


def sources_list_body(codename: str, bitness: str) -> str | None:
    if bitness == "32":
        return (
            f"deb http://raspbian.raspberrypi.org/raspbian/ {codename} main contrib non-free rpi\n"
            "# Uncomment line below then 'apt-get update' to enable 'apt-get source'\n"
            f"deb-src http://raspbian.raspberrypi.org/raspbian/ {codename} main contrib non-free rpi"
        )
    if bitness == "64":
        return (
            f"deb http://deb.debian.org/debian {codename} main contrib non-free\n"
            f"deb http://security.debian.org/debian-security {codename}-security main contrib non-free\n"
            f"deb http://deb.debian.org/debian {codename}-updates main contrib non-free\n"
            "# Uncomment deb-src lines below then 'apt-get update' to enable 'apt-get source'\n"
            f"#deb-src http://deb.debian.org/debian {codename} main contrib non-free\n"
            f"#deb-src http://security.debian.org/debian-security {codename}-security main contrib non-free\n"
            f"#deb-src http://deb.debian.org/debian {codename}-updates main contrib non-free"
        )
    return None


def debian_sources_body(codename: str) -> str:
    return (
        "Types: deb\n"
        "URIs: http://deb.debian.org/debian/\n"
        f"Suites: {codename} {codename}-updates\n"
        "Components: main contrib non-free non-free-firmware\n"
        "Signed-By: /usr/share/keyrings/debian-archive-keyring.pgp\n\n"
        "Types: deb\n"
        "URIs: http://deb.debian.org/debian-security/\n"
        f"Suites: {codename}-security\n"
        "Components: main contrib non-free non-free-firmware\n"
        "Signed-By: /usr/share/keyrings/debian-archive-keyring.pgp"
    )


def _deleted_caption(path: str, body: str | None, bitness: str, name: str) -> str:
    caption = DELETED_HEADER.format(path=path)
    if body is None:
        return caption + RESTORE_ADVICE.format(path=path)
    return (
        caption
        + f"You appear to be using Raspberry Pi OS {bitness}-bit, so the {name} file should contain this:\n"
        + body
    )


def repository_file_problems(host: HostInfo) -> list[str]:
    """Remediation text for each missing or altered Raspberry Pi OS repository file."""
    if not host.raspberry_pi_os:
        return []
    problems: list[str] = []
    major = host.major_version
    trixie_or_later = major is not None and major >= 13
    codename = host.codename

    if trixie_or_later:
        raspi_sources = host.path(RASPI_SOURCES)
        if not _contains(raspi_sources, RASPI_SOURCES_URI):
            problems.append(
                ALTERED_HEADER.format(path=RASPI_SOURCES, name="raspi.sources") + raspi_sources_body(codename)
            )
        if not host.path(DEBIAN_SOURCES).exists():
            body = debian_sources_body(codename) if host.bitness in {"32", "64"} else None
            problems.append(_deleted_caption(DEBIAN_SOURCES, body, host.bitness, "debian.sources"))
        return problems

    if not _contains(host.path(RASPI_LIST), RASPI_REPO):
        problems.append(ALTERED_HEADER.format(path=RASPI_LIST, name="raspi.list") + raspi_list_body(codename))
    if not host.path(SOURCES_LIST).exists():
        problems.append(
            _deleted_caption(SOURCES_LIST, sources_list_body(codename, host.bitness), host.bitness, "sources.list")
        )
    return problems
