from __future__ import annotations

import hashlib
import logging
import os
import platform
import socket
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from types import MappingProxyType

import requests

from logdiag.host import detect_bitness, read_os_release
from logdiag.runner import CommandRunner


LOGGER = logging.getLogger(__name__)

MODEL_PATHS = (
    "sys/firmware/devicetree/base/model",
    "sys/firmware/devicetree/base/banner-name",
    "tmp/sysinfo/model",
    "sys/devices/virtual/dmi/id/product_name",
    "sys/class/dmi/id/product_name",
)

ANDROID_MODEL_PROPS = (
    "ro.product.marketname",
    "ro.vendor.product.display",
    "ro.config.devicename",
    "ro.config.marketing_name",
    "ro.product.vendor.model",
    "ro.product.oppo_model",
    "ro.oppo.market.name",
    "ro.product.model",
    "ro.product.product.model",
    "ro.product.odm.model",
)

# Longer identifiers first so tegra210 is not reported as tegra20.
TEGRA_SOCS = MappingProxyType(
    {
        "tegra114": "tegra-4",
        "tegra124": "tegra-k1-32",
        "tegra132": "tegra-k1-64",
        "tegra186": "tegra-x2",
        "tegra194": "xavier",
        "tegra210": "tegra-x1",
        "tegra234": "orin",
        "tegra239": "switch-2-chip",
        "tegra20": "tegra-2",
        "tegra30": "tegra-3",
    }
)
LEGACY_TEGRA_FAMILIES = ("tegra114", "tegra124", "tegra132", "tegra210", "tegra20", "tegra30")
ROCKCHIP_SOCS = ("rk3588s", "rk3399", "rk3308", "rk3326", "rk3328", "rk3368", "rk3566", "rk3568", "rk3588")
RISCV_SOCS = ("jh7100", "jh7110", "jh7120", "cv1800b", "cv1812h", "th1520", "k230", "sg2042", "u74", "fu740", "kyu")
AMLOGIC_SOCS = ("g12b",)
BROADCOM_SOCS = ("bcm2712", "bcm2711", "bcm2837", "bcm2836", "bcm2835")

# Vendor tables are consulted in order; a later vendor match wins.
SOC_TABLES = (ROCKCHIP_SOCS, RISCV_SOCS, AMLOGIC_SOCS, BROADCOM_SOCS)


@dataclass
class HeaderSettings:
    pi_apps_dir: Path | None = None
    fetch_latest_version: bool = True
    github_token: str | None = None
    timeout: float = 10.0
    root: Path = field(default=Path("/"))


def _read(root: Path, relative: str) -> str | None:
    try:
        return (root / relative).read_bytes().decode("utf-8", errors="replace")
    except OSError:
        return None


def detect_soc(root: Path) -> str:
    soc = ""
    compatible = _read(root, "proc/device-tree/compatible")
    if compatible is not None:
        chip = compatible.replace("\x00", "")
        soc = next((name for key, name in TEGRA_SOCS.items() if key in chip), "")
        if not soc and "tegra" in chip:
            soc = "jetson-unknown"
        for table in SOC_TABLES:
            soc = next((key for key in table if key in chip), soc)
    if not soc:
        family = _read(root, "sys/devices/soc0/family")
        if family is not None:
            chip = family.replace("\x00", "")
            soc = next((TEGRA_SOCS[key] for key in LEGACY_TEGRA_FAMILIES if key in chip), "")
    return soc


def detect_model(runner: CommandRunner, root: Path) -> str:
    for relative in MODEL_PATHS:
        content = _read(root, relative)
        if content:
            model = content.replace("\x00", "").strip()
            if model:
                return model
    if (root / "system" / "app").exists() and (root / "system" / "priv-app").exists():
        for prop in ANDROID_MODEL_PROPS:
            value = runner.run(["getprop", prop]).strip()
            if value:
                return value
    hostname = socket.gethostname()
    if "raspberry" in hostname.lower() or "rpi" in hostname.lower():
        return hostname
    return "Unknown"


def _us_date(value: date) -> str:
    return value.strftime("%m/%d/%Y")


def local_update_date(runner: CommandRunner, pi_apps_dir: Path) -> str:
    output = runner.run(["git", "-C", str(pi_apps_dir), "show", "-s", "--format=%ad", "--date=short"]).strip()
    if not output:
        return ""
    try:
        return _us_date(datetime.strptime(output, "%Y-%m-%d").date())
    except ValueError:
        return output


def latest_version_date(pi_apps_dir: Path, token: str | None, timeout: float) -> str:
    """Date of the newest upstream commit, or "" when it cannot be fetched."""
    try:
        git_url = (pi_apps_dir / "etc" / "git_url").read_text(encoding="utf-8").strip()
    except OSError:
        return ""
    parts = git_url.rstrip("/").split("/")
    if len(parts) < 2:
        return ""
    account, repo = parts[-2], parts[-1]
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"token {token}"
    try:
        response = requests.get(
            f"https://api.github.com/repos/{account}/{repo}/commits/master",
            headers=headers,
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        LOGGER.debug("Latest version lookup failed: %s", exc)
        return ""
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    stamp = payload.get("commit", {}).get("author", {}).get("date", "")
    try:
        return _us_date(datetime.fromisoformat(stamp.replace("Z", "+00:00")).date())
    except ValueError:
        return ""


def _first_line_value(content: str | None, prefix: str) -> str | None:
    if content is None:
        return None
    for line in content.splitlines():
        if line.startswith(prefix):
            return line.split(":", 1)[1].strip() if ":" in line else None
    return None


def device_info(runner: CommandRunner, settings: HeaderSettings | None = None) -> str:
    """Key/value header describing the device a log was captured on."""
    settings = settings or HeaderSettings()
    root = settings.root
    lines: list[str] = []

    release = read_os_release(root / "etc" / "os-release")
    lines.append(f"OS: {release.get('PRETTY_NAME') or 'Unknown'}")
    lines.append(f"OS architecture: {detect_bitness(runner)}-bit")

    pi_apps_dir = settings.pi_apps_dir
    if pi_apps_dir is not None and pi_apps_dir.exists():
        updated = local_update_date(runner, pi_apps_dir)
        if updated:
            lines.append(f"Last updated Pi-Apps on: {updated}")
        if settings.fetch_latest_version:
            latest = latest_version_date(pi_apps_dir, settings.github_token, settings.timeout)
            if latest:
                lines.append(f"Latest Pi-Apps version: {latest}")

    machine = runner.run(["uname", "-m"]).strip()
    kernel = runner.run(["uname", "-r"]).strip()
    lines.append(f"Kernel: {machine} {kernel}" if machine and kernel else "Kernel: Unknown")

    lines.append(f"Device model: {detect_model(runner, root)}")
    soc = detect_soc(root)
    if soc:
        lines.append(f"SOC identifier: {soc}")

    for label, relative in (
        ("Machine-id", "etc/machine-id"),
        ("Serial-number", "sys/firmware/devicetree/base/serial-number"),
    ):
        try:
            digest = hashlib.sha1((root / relative).read_bytes()).hexdigest()
        except OSError:
            continue
        lines.append(f"{label} (hashed): {digest}")

    cpu_name = _first_line_value(_read(root, "proc/cpuinfo"), "model name")
    if cpu_name:
        lines.append(f"CPU name: {cpu_name}")

    meminfo = _first_line_value(_read(root, "proc/meminfo"), "MemTotal")
    if meminfo:
        try:
            lines.append(f"RAM size: {float(meminfo.split()[0]) / 1024000:.2f} GB")
        except (ValueError, IndexError):
            pass

    rpi_issue = _read(root, "etc/rpi-issue")
    if rpi_issue:
        for line in rpi_issue.splitlines():
            if "Raspberry Pi reference" in line:
                version = line.replace("Raspberry Pi reference ", "", 1).strip()
                lines.append(f"Raspberry Pi OS image version: {version}")
                break

    language = os.environ.get("LANG") or os.environ.get("LC_ALL")
    if language:
        lines.append(f"Language: {language}")

    lines.append(f"Python runtime used: {platform.python_implementation()} {platform.python_version()}")
    return "\n".join(lines) + "\n"
