from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

from logdiag.arch import remove_architecture_commands, unsupported_architectures
from logdiag.backends import Backend
from logdiag.diagnosis import Finding
from logdiag.enrich import Enricher
from logdiag.extract import ARCH_SUFFIX, CandidateSet, extract_all, unmet_section
from logdiag.host import HostInfo
from logdiag.repos import has_backports_target, repository_file_problems
from logdiag.rules import Rule


LOGGER = logging.getLogger(__name__)

UNMET_MARKER = "The following packages have unmet dependencies:"
USER_ERROR_STOPS = ("Failed to install", "Need help?", "Please ask on Github:", "Or on Discord:")


@dataclass(frozen=True)
class RuleContext:
    text: str
    host: HostInfo
    backend: Backend
    # None when enrichment is not allowed for this diagnosis.
    enricher: Enricher | None


Handler = Callable[[RuleContext, Rule], list[Finding]]
HANDLERS: dict[str, Handler] = {}


def handler(name: str) -> Callable[[Handler], Handler]:
    def register(func: Handler) -> Handler:
        HANDLERS[name] = func
        return func

    return register


def _finding(rule: Rule, caption: str) -> Finding:
    return Finding(rule=rule.name, caption=caption, category=rule.category)


@handler("user_error")
def user_error(ctx: RuleContext, rule: Rule) -> list[Finding]:
    """Message a script printed for the user, up to the first blank or boilerplate line."""
    prefix = str(rule.params.get("prefix", "User error: "))
    message: list[str] | None = None
    for line in ctx.text.splitlines():
        if message is None:
            if line.startswith(prefix):
                message = [line[len(prefix):]]
            continue
        if not line or line.startswith(USER_ERROR_STOPS):
            break
        message.append(line)
    if message is None:
        return []
    return [_finding(rule, "\n".join(message))]


UNMET_FALLBACKS = (
    (
        ("not going to be installed",),
        "Packages failed to install because the package manager requires you to install some dependencies manually.\n\n"
        "{section}\n"
        "Either your APT repositories are broken, or you need to run:\n"
        "sudo apt update && sudo apt full-upgrade",
    ),
    (
        ("but it is not installable",),
        "Packages failed to install because at least one dependency is not available in your repositories:\n\n"
        "{section}\n"
        "This might be fixed by enabling additional repositories or by running:\n"
        "sudo apt update && sudo apt full-upgrade",
    ),
    (
        ("has no installation candidate",),
        "Packages failed to install because one or more packages are not available in your repositories:\n\n"
        "{section}\n"
        "This might be fixed by enabling additional repositories.",
    ),
    (
        ("is to be installed", "Depends:"),
        "Packages failed to install due to unmet dependencies:\n\n"
        "{section}\n"
        "This might be fixed by running:\n"
        "sudo apt --fix-broken install",
    ),
)

UNMET_GENERIC = (
    "Packages failed to install due to unresolved dependency issues:\n\n"
    "{section}\n"
    "Try running these commands to resolve the issue:\n"
    "sudo apt update\n"
    "sudo apt --fix-broken install\n"
    "sudo apt full-upgrade"
)


def unmet_fallback_caption(text: str) -> str:
    section = unmet_section(text, UNMET_MARKER)
    for needles, caption in UNMET_FALLBACKS:
        if any(needle in text for needle in needles):
            return caption.format(section=section)
    return UNMET_GENERIC.format(section=section)


@handler("unmet_dependencies")
def unmet_dependencies(ctx: RuleContext, rule: Rule) -> list[Finding]:
    findings: list[Finding] = []
    if ctx.enricher is not None and ctx.backend.enrichment:
        findings = ctx.enricher.unmet_dependencies(ctx.text, rule.name)
    if findings:
        return findings
    return [_finding(rule, unmet_fallback_caption(ctx.text))]


SHARED_FILE_MODIFIED = (
    "You have overwritten system files which prevent packages that share files from being able to install.\n"
    "You need to reinstall the following packages to restore the integrity of your apt managed system packages:\n\n"
    "{packages}"
)

SHARED_FILE_CONFLICT = (
    "Two packages which share the same files are having a problem with different file versions.\n"
    "Try running this command to fix it:\n"
    "sudo apt --fix-broken install -o Dpkg::Options::='--force-overwrite'"
)


@handler("shared_file_overwrite")
def shared_file_overwrite(ctx: RuleContext, rule: Rule) -> list[Finding]:
    packages: set[str] = set()
    for line in ctx.text.splitlines():
        if any(pattern.search(line) for pattern in rule.match_any):
            fields = line.split()
            if fields:
                packages.add(fields[-1])
    candidates = CandidateSet("shared-file", tuple(sorted(packages)))
    if ctx.enricher is not None and ctx.backend.enrichment and candidates:
        probes = tuple(sorted(set(candidates.probes)))
        ctx.enricher.query(ctx.backend.show, probes)
        ctx.enricher.query(ctx.backend.list_all, candidates.clean)
        if "FAILED" in ctx.enricher.verify_files(probes):
            return [_finding(rule, SHARED_FILE_MODIFIED.format(packages="\n".join(probes)))]
    return [_finding(rule, SHARED_FILE_CONFLICT)]


FOREIGN_ARCH_CAPTION = (
    "APT is failing because you have added unsupported foreign architecture(s): {architectures}\n\n"
    "Your system architecture ({native}) does not support these architectures. "
    "This commonly happens when users add i386 architecture to ARM systems or vice versa.\n\n"
    "To fix this, remove the unsupported architecture(s) with these commands:\n"
    "{commands}\n\n"
    "Then run: sudo apt update"
)


@handler("foreign_architecture")
def foreign_architecture(ctx: RuleContext, rule: Rule) -> list[Finding]:
    native = ctx.host.native_arch
    if not native:
        LOGGER.debug("Native architecture unknown; skipping foreign architecture check")
        return []
    unsupported = unsupported_architectures(ctx.text, native, ctx.host.cpu_op_mode_32)
    if not unsupported:
        return []
    caption = FOREIGN_ARCH_CAPTION.format(
        architectures=", ".join(unsupported),
        native=native,
        commands=remove_architecture_commands(unsupported),
    )
    return [_finding(rule, caption)]


BACKPORTS_CAPTION = (
    "The debian {codename}-backports repo is enabled on your system and packages installed from it are causing conflicts.\n"
    "You will need to revert to the stable version of the packages or manually upgrade all dependent packages "
    "to the {codename}-backports version.\n\n"
    "The packages that should be reverted to the stable versions that are causing conflicts are:\n"
    "{packages}\n\n"
    "For more information refer to the debian documentation: https://backports.debian.org/Instructions/"
)


@handler("backports_conflict")
def backports_conflict(ctx: RuleContext, rule: Rule) -> list[Finding]:
    if ctx.enricher is None or not ctx.backend.enrichment or not ctx.host.debian_family:
        return []
    codename = ctx.host.codename
    if not has_backports_target(ctx.enricher.index_targets(), codename):
        return []
    clean: set[str] = set()
    for candidates in extract_all(ctx.text):
        clean.update(ARCH_SUFFIX.sub("", name) for name in candidates.names)
    conflicts = ctx.enricher.installed_from_backports(sorted(clean))
    if not conflicts:
        return []
    return [_finding(rule, BACKPORTS_CAPTION.format(codename=codename, packages="\n".join(conflicts)))]


@handler("repository_files")
def repository_files(ctx: RuleContext, rule: Rule) -> list[Finding]:
    return [_finding(rule, caption) for caption in repository_file_problems(ctx.host)]


PACMAN_CONFLICT_CAPTION = (
    "Pacman reported file conflicts during package installation.{details}\n\n"
    "This happens when files from different packages would overwrite each other.\n\n"
    "It's possible that this issue has been announced on the official Arch Linux page if intervention is needed, "
    "so check the Arch Linux' news page for more information.\n\n"
    "Options:\n"
    "1. Remove the conflicting package first: sudo pacman -R <conflicting-package>\n"
    "2. Force overwrite (use with caution): sudo pacman -S --overwrite='*' <package>\n"
    "3. Check if the package is available from AUR instead"
)
_CONFLICTING_FILES = re.compile(r"error: failed to commit transaction.*conflicting files.*?:\s*(.*?)\n")


@handler("pacman_conflicting_files")
def pacman_conflicting_files(ctx: RuleContext, rule: Rule) -> list[Finding]:
    match = _CONFLICTING_FILES.search(ctx.text)
    details = f"\n\nConflicting files: {match.group(1)}" if match and match.group(1) else ""
    return [_finding(rule, PACMAN_CONFLICT_CAPTION.format(details=details))]


NVIDIA_AUR_SERIES = (("580", "nvidia-580xx-dkms"), ("390", "nvidia-390xx-dkms"), ("340", "nvidia-340xx-dkms"))

PACMAN_DEPENDENCY_CAPTION = (
    "Pacman reported missing or conflicting dependencies.{suggestion}\n\n"
    "To resolve:\n"
    "1. Update your package database: sudo pacman -Sy\n"
    "2. Check if the package exists: pacman -Ss <package-name>\n"
    "3. If not found in official repos, check AUR: yay -Ss <package-name>\n"
    "4. Some packages may have been moved to AUR (like older NVIDIA drivers)\n"
    "5. Check Arch Linux news (https://archlinux.org/news/) for migration announcements"
)
_MISSING_DEPENDENCY = re.compile(
    r"error:.*could not satisfy dependencies.*?:\s*(.*?)\n|error:.*dependency.*?:\s*(.*?)\s+not found"
)


def _nvidia_series(package: str) -> str | None:
    lowered = package.lower()
    for series, replacement in NVIDIA_AUR_SERIES:
        if series in lowered:
            return replacement
    return None


def _first_group(match: re.Match[str] | None) -> str:
    if match is None:
        return ""
    return next((group for group in match.groups() if group), "")


@handler("pacman_missing_dependency")
def pacman_missing_dependency(ctx: RuleContext, rule: Rule) -> list[Finding]:
    missing = _first_group(_MISSING_DEPENDENCY.search(ctx.text))
    suggestion = ""
    if missing and "nvidia" in missing.lower():
        replacement = _nvidia_series(missing)
        if replacement:
            example = f"yay -S {replacement}"
        else:
            replacement = f"{missing}-dkms or {missing}-xx-dkms"
            example = "yay -S <aur-package-name>"
        suggestion = (
            "\n\nNote: NVIDIA driver packages (especially older series like 580, 390, 340) have been moved to AUR "
            "with different names.\n\n"
            "Important: According to Arch Linux news, you MUST uninstall the old package before installing the AUR "
            "replacement!\n\n"
            "Steps:\n"
            f"1. Uninstall the old package: sudo pacman -R {missing}\n"
            "2. Search for the AUR replacement: yay -Ss nvidia-*xx-dkms\n"
            f"3. Install from AUR (example: {example}, likely package: {replacement})\n\n"
            "Check the Arch Linux news page (https://archlinux.org/news/) for the exact package name and migration "
            "instructions.\n\n"
            "If yay is not installed, you can install it from AUR manually."
        )
    elif missing:
        suggestion = f"\n\nThis package might be available from AUR. Try searching for it:\nyay -Ss {missing}"
    return [_finding(rule, PACMAN_DEPENDENCY_CAPTION.format(suggestion=suggestion))]


_TARGET_NOT_FOUND = re.compile(
    r"""error:.*package ['"]?([^'"]+)['"]?.*not found|error:.*target ['"]?([^'"]+)['"]?.*not found"""
)


def _aur_suggestion(package: str) -> str:
    if not package:
        return (
            "\n\nThis package is not in the official repositories. "
            "It may be available from AUR (Arch User Repository). "
            "Try searching with: yay -Ss <package-name>"
        )
    if "nvidia" not in package.lower():
        return (
            "\n\nThis package is not in the official repositories. "
            "It may be available from AUR (Arch User Repository).\n\n"
            "To install from AUR, you'll need an AUR helper like yay:\n"
            "1. Install yay if not already installed\n"
            f"2. Search for the package: yay -Ss {package}\n"
            f"3. Install it: yay -S {package}\n\n"
            "Note: Some packages (like older NVIDIA drivers) have been moved from official repos to AUR."
        )
    replacement = _nvidia_series(package)
    if replacement:
        return (
            "\n\nThis NVIDIA driver package has been moved to AUR with a different name.\n\n"
            "Important: You MUST uninstall the old package before installing the AUR replacement!\n\n"
            "Steps:\n"
            f"1. Uninstall the old package: sudo pacman -R {package}\n"
            f"2. Install from AUR: yay -S {replacement}\n\n"
            "Check the Arch Linux news page (https://archlinux.org/news/) for the exact package name and migration "
            "instructions."
        )
    return (
        "\n\nThis NVIDIA driver package may have been moved to AUR with a different name.\n\n"
        "Important: If migrating from an official package, uninstall it first before installing the AUR "
        "replacement!\n\n"
        "Steps:\n"
        "1. Search for the AUR replacement: yay -Ss nvidia-*xx-dkms\n"
        f"2. Uninstall the old package if installed: sudo pacman -R {package}\n"
        "3. Install from AUR: yay -S <aur-package-name>\n\n"
        "Check the Arch Linux news page (https://archlinux.org/news/) for migration announcements."
    )


@handler("pacman_target_not_found")
def pacman_target_not_found(ctx: RuleContext, rule: Rule) -> list[Finding]:
    package = _first_group(_TARGET_NOT_FOUND.search(ctx.text)).strip()
    caption = "Pacman could not find the requested package in the official repositories." + _aur_suggestion(package)
    return [_finding(rule, caption)]


PACMAN_MIGRATION_CAPTION = (
    "A package that was previously in the official repositories has been moved to AUR.{details}"
    "This commonly happens with:\n"
    "- Older NVIDIA driver versions (nvidia-580xx-dkms, nvidia-390xx-dkms, nvidia-340xx-dkms, etc.)\n"
    "- Packages that are no longer maintained in official repos\n"
    "- Legacy or deprecated packages\n\n"
    "Important: According to Arch Linux news, you MUST uninstall the old package before installing the AUR "
    "replacement!\n\n"
    "Steps:\n"
    "1. Check Arch Linux news (https://archlinux.org/news/) for the exact migration instructions\n"
    "2. Uninstall the old package: sudo pacman -R <old-package-name>\n"
    "3. Install from AUR: yay -S <new-aur-package-name>\n\n"
    "If you don't have yay installed, you can install it from AUR manually or use makepkg directly."
)
_AUR_MIGRATION = re.compile(r"(nvidia\S*).*?(nvidia\S*-xx-dkms|nvidia\S*-aur)")


@handler("pacman_aur_migration")
def pacman_aur_migration(ctx: RuleContext, rule: Rule) -> list[Finding]:
    match = _AUR_MIGRATION.search(ctx.text)
    details = f"\n\nDetected migration: {match.group(1)} → {match.group(2)}\n\n" if match else "\n\n"
    return [_finding(rule, PACMAN_MIGRATION_CAPTION.format(details=details))]
