from __future__ import annotations

import base64
import binascii
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests

from logdiag.formatter import format_logfile
from logdiag.runner import CommandRunner


LOGGER = logging.getLogger(__name__)

DEFAULT_POINTER = (
    "aHR0cHM6Ly9yYXcuZ2l0aHVidXNlcmNvbnRlbnQuY29tL0JvdHNwb3QvcGktYXBwcy1hbmFseXRpY3MvbWFpbi9lcnJvci1sb2ctd2ViaG9vay1uZXcK"
)
REQUIRED_HEADER = re.compile(r"^Last updated Pi-Apps on:", re.MULTILINE)
SENT_MESSAGE = "Error report sent successfully!"


class ReportError(RuntimeError):
    """Raised when the endpoint cannot be resolved or the upload fails."""


@dataclass(frozen=True)
class ReportResult:
    sent: bool
    message: str


def _b64decode(data: str | bytes) -> str:
    try:
        return base64.b64decode(data).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ReportError(f"Could not decode endpoint data: {exc}") from exc


def resolve_endpoint(pointer: str, timeout: float = 10.0) -> str:
    """Decode ``pointer`` to a URL whose content is the encoded upload endpoint."""
    location = _b64decode(pointer)
    try:
        response = requests.get(location, timeout=timeout)
    except requests.RequestException as exc:
        raise ReportError(f"Could not fetch upload endpoint: {exc}") from exc
    if response.status_code != 200:
        raise ReportError(f"Could not fetch upload endpoint: server returned {response.status_code}")
    endpoint = _b64decode(response.content.strip())
    if not endpoint:
        raise ReportError("Upload endpoint is empty")
    return endpoint


def upload_name(path: Path) -> str:
    return f"{path.stem}.txt"


def send_report(
    path: Path,
    header: Callable[[], str],
    runner: CommandRunner | None = None,
    pointer: str = DEFAULT_POINTER,
    timeout: float = 10.0,
) -> ReportResult:
    """Format ``path`` and upload it; unmet preconditions return ``sent=False``."""
    runner = runner or CommandRunner()
    if runner.which("curl") is None:
        return ReportResult(False, "Cannot send report: curl command not found")
    if not path.is_file():
        return ReportResult(False, f"Cannot send report: '{path}' is not a valid file")

    format_logfile(path, header)
    if not REQUIRED_HEADER.search(path.read_text(encoding="utf-8", errors="replace")):
        return ReportResult(False, "Log file not sent - missing required header")

    endpoint = resolve_endpoint(pointer, timeout)
    LOGGER.info("Uploading %s as %s", path, upload_name(path))
    try:
        result = runner.execute(
            ["curl", "-F", f"file=@{path};filename={upload_name(path)}", endpoint],
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise ReportError(f"curl failed to upload log file: {exc}") from exc
    if result.returncode != 0:
        raise ReportError(f"curl failed to upload log file: {result.stderr.strip()}")
    return ReportResult(True, SENT_MESSAGE)
