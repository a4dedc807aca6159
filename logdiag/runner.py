from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Iterable


LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class CommandRunner:
    """Runs external tools with a bounded timeout.

    ``run`` never raises: a missing binary, a timeout or an OS error all
    degrade to an empty string. A non-zero exit still returns whatever the
    tool printed, since package managers report useful text on failure.
    """

    def __init__(self, timeout: float | None = DEFAULT_TIMEOUT, retries: int = 0) -> None:
        self.timeout = timeout
        self.retries = max(retries, 0)

    def execute(self, args: Iterable[str], timeout: float | None = None) -> subprocess.CompletedProcess[str]:
        cmd = list(args)
        LOGGER.debug("Command run: %s", " ".join(cmd))
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout if timeout is not None else self.timeout,
        )

    def run(self, args: Iterable[str], timeout: float | None = None) -> str:
        cmd = list(args)
        for attempt in range(self.retries + 1):
            try:
                result = self.execute(cmd, timeout)
            except subprocess.TimeoutExpired:
                LOGGER.debug("Command timed out (attempt %d): %s", attempt + 1, cmd[0])
                continue
            except (OSError, subprocess.SubprocessError) as exc:
                LOGGER.debug("Command failed: %s: %s", cmd[0], exc)
                return ""
            return (result.stdout or "") + (result.stderr or "")
        return ""

    def which(self, name: str) -> str | None:
        return shutil.which(name)
