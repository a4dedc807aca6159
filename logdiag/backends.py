from __future__ import annotations

import shutil
from dataclasses import dataclass
from types import MappingProxyType

from logdiag.diagnosis import Category


@dataclass(frozen=True)
class Backend:
    """Package-manager capabilities shared by one rule catalog."""

    name: str
    catalog: str
    enrichment: bool = False
    show: tuple[str, ...] = ()
    policy: tuple[str, ...] = ()
    list_all: tuple[str, ...] = ()
    list_installed: tuple[str, ...] = ()
    dry_run_install: tuple[str, ...] = ()
    index_targets: tuple[str, ...] = ()
    foreign_architectures: tuple[str, ...] = ()
    verify_files: tuple[str, ...] = ()
    unhold: str = ""
    hold_category: Category = Category.SYSTEM


GENERIC = Backend(name="generic", catalog="generic")

APT = Backend(
    name="apt",
    catalog="apt",
    enrichment=True,
    show=("apt-cache", "show"),
    policy=("apt-cache", "policy"),
    list_all=("apt", "list", "-a"),
    list_installed=("apt", "list", "--installed"),
    dry_run_install=(
        "apt-get",
        "install",
        "-fy",
        "--no-install-recommends",
        "--allow-downgrades",
        "--dry-run",
    ),
    index_targets=(
        "apt-get",
        "indextargets",
        "--no-release-info",
        "--format",
        "$(SITE) $(RELEASE) $(COMPONENT) $(TARGET_OF) $(ARCHITECTURE)",
    ),
    foreign_architectures=("dpkg", "--print-foreign-architectures"),
    verify_files=("debsums",),
    unhold="sudo apt-mark unhold {packages}",
    hold_category=Category.SYSTEM,
)

PACMAN = Backend(name="pacman", catalog="pacman")

BACKENDS = MappingProxyType({backend.name: backend for backend in (GENERIC, APT, PACMAN)})


def get_backend(name: str | None) -> Backend:
    if name is None or name == "auto":
        return detect_backend()
    try:
        return BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown backend: {name}") from None


def detect_backend() -> Backend:
    if shutil.which("apt-get"):
        return APT
    if shutil.which("pacman"):
        return PACMAN
    return GENERIC
