from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

DEFAULT_LOG_PATH = "/var/log/mailhost-installer.log"
FALLBACK_LOG_NAME = "mailhost-installer.log"

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# requests (public IP lookup) and dnspython log every connection at INFO/DEBUG.
QUIET_LOGGERS = ("urllib3", "dns")

_installed: List[logging.Handler] = []


def _open_log_file(log_path: str) -> tuple[Optional[logging.Handler], Optional[str]]:
    for candidate in (log_path, str(Path.cwd() / FALLBACK_LOG_NAME)):
        try:
            Path(os.path.dirname(candidate) or ".").mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(candidate), candidate
        except OSError:
            continue
    return None, None


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Send every command, file write and decision to ``log_path``.

    Writing to /var/log needs root; without it the log goes to
    ``./mailhost-installer.log``, and to the console only if that fails too.
    Calling this again replaces the handlers it installed earlier, so the
    CLIs can be driven repeatedly in one process.

    Returns the log file actually used, or None.
    """

    root = logging.getLogger()
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    while _installed:
        h = _installed.pop()
        root.removeHandler(h)
        h.close()

    file_handler, chosen_path = _open_log_file(log_path)
    if file_handler is not None:
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
        _installed.append(file_handler)

    if also_console or file_handler is None:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console.setLevel(level if also_console else logging.WARNING)
        _installed.append(console)

    for h in _installed:
        root.addHandler(h)

    if chosen_path != log_path:
        logging.getLogger(__name__).warning("Cannot write %s; logging to %s", log_path, chosen_path or "console only")
    else:
        logging.getLogger(__name__).info("Logging to %s", chosen_path)
    return chosen_path
