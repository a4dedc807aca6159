from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable


LOGGER = logging.getLogger(__name__)

LOG_MARKER = "\n\nBEGINNING OF LOG FILE:\n-----------------------\n\n"

ANSI_PATTERNS = (
    re.compile(r"\x1b\[?[0-9;]*[a-zA-Z]"),
    re.compile(r"\x1b\[[0-9;]*[a-zA-Z]"),
    re.compile(r"\x1b\[[0-9;]*"),
)
PROGRESS_BAR = re.compile(r"\.{10} \.{10} \.{10} \.{10} \.{9}")


def strip_ansi(text: str) -> str:
    """Remove terminal control sequences and wget-style dot progress lines."""
    text = text.replace("\r", "\n")
    previous = None
    # Removing one sequence can expose another, so repeat until stable.
    while previous != text:
        previous = text
        for pattern in ANSI_PATTERNS:
            text = pattern.sub("", text)
    return "\n".join(line for line in text.split("\n") if not PROGRESS_BAR.search(line))


def is_formatted(text: str) -> bool:
    return text.startswith("OS: ") and LOG_MARKER.strip() in text


def format_logfile(path: Path, header: Callable[[], str]) -> None:
    """Clean ``path`` in place and prepend the device header once."""
    cleaned = strip_ansi(path.read_text(encoding="utf-8", errors="replace"))
    if is_formatted(cleaned):
        LOGGER.debug("Log %s already has a device header", path)
        path.write_text(cleaned, encoding="utf-8")
        return
    path.write_text(header().rstrip("\n") + LOG_MARKER + cleaned, encoding="utf-8")
