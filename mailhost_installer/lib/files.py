from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)


def make_timestamp() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def backup_file(path: Path, timestamp: str, *, dry_run: bool = False) -> Optional[Path]:
    """Copy an existing file to ``<path>.bak-<timestamp>``. No-op when absent."""

    if not path.is_file():
        return None
    dst = path.with_name(f"{path.name}.bak-{timestamp}")
    if dry_run:
        logger.info("Would back up %s -> %s", path, dst)
        return dst
    shutil.copy2(path, dst)
    logger.info("Backed up %s -> %s", path, dst)
    return dst


def write_file(
    path: Path,
    contents: str,
    *,
    mode: Optional[int] = None,
    backup: bool = True,
    timestamp: Optional[str] = None,
    dry_run: bool = False,
) -> None:
    if dry_run:
        logger.info("Would write %s", path)
        return
    if backup:
        backup_file(path, timestamp or make_timestamp())
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode is None:
        path.write_text(contents, encoding="utf-8")
    else:
        # Restricted files (credentials, keys) never exist with looser permissions.
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        os.fchmod(fd, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(contents)
    logger.info("Wrote %s", path)


def append_line_once(path: Path, line: str, *, dry_run: bool = False) -> bool:
    """Append ``line`` unless an identical line already exists. Returns True if appended."""

    existing = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
    if line in existing:
        return False
    if dry_run:
        logger.info("Would append to %s: %s", path, line)
        return True
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        if existing and not path.read_text(encoding="utf-8").endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    logger.info("Appended to %s: %s", path, line)
    return True


def ensure_dir(path: Path, *, mode: Optional[int] = None, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would create %s", path)
        return
    path.mkdir(parents=True, exist_ok=True)
    if mode is not None:
        path.chmod(mode)


def chown(path: Path, owner: str, *, recursive: bool = False, dry_run: bool = False) -> None:
    argv = ["chown"]
    if recursive:
        argv.append("-R")
    run_cmd([*argv, owner, str(path)], dry_run=dry_run)
