from __future__ import annotations

import logging


class ContextFilter(logging.Filter):
    def __init__(self, backend: str | None) -> None:
        super().__init__()
        self.backend = backend

    def filter(self, record: logging.LogRecord) -> bool:
        record.backend = self.backend or "auto"
        return True


def setup_logging(verbosity: int, backend: str | None) -> None:
    level = logging.WARNING if verbosity == 0 else logging.INFO if verbosity == 1 else logging.DEBUG
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(backend)s] %(message)s",
        "%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    # Records from child loggers skip root logger filters, so the handler carries it.
    handler.addFilter(ContextFilter(backend))
    logging.basicConfig(level=level, handlers=[handler], force=True)
