from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import get_settings

LOG_CONFIGURED = False


def configure_logging(command_name: str, level: Optional[str] = None) -> None:
    global LOG_CONFIGURED
    if LOG_CONFIGURED:
        return
    settings = get_settings()
    log_level = (level or settings.log_level or "INFO").upper()
    formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    handlers: list[logging.Handler] = []

    if settings.log_dir:
        path = os.path.abspath(settings.log_dir)
        os.makedirs(path, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(path, f"{command_name}.log"))
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    # azure-identity logs every token request at INFO
    if log_level != "DEBUG":
        logging.getLogger("azure").setLevel(logging.WARNING)
    LOG_CONFIGURED = True


@contextmanager
def log_group(title: str, logger: Optional[logging.Logger] = None) -> Iterator[None]:
    """Log ``title`` on entry and the elapsed time on exit; failures are logged and re-raised."""
    log = logger or logging.getLogger("policykit")
    log.info(title)
    start = time.perf_counter()
    try:
        yield
    except Exception:
        log.error("%s failed after %.2fs", title, time.perf_counter() - start)
        raise
    log.debug("%s finished in %.2fs", title, time.perf_counter() - start)
