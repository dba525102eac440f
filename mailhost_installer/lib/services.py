from __future__ import annotations

import logging

from .command import run_cmd, try_cmd

logger = logging.getLogger(__name__)


def daemon_reload(*, dry_run: bool = False) -> bool:
    return try_cmd(["systemctl", "daemon-reload"], dry_run=dry_run, what="daemon-reload")


def enable(*units: str, dry_run: bool = False) -> bool:
    if not units:
        return True
    return try_cmd(["systemctl", "enable", *units], dry_run=dry_run, what=f"enable {' '.join(units)}")


def restart(unit: str, *, dry_run: bool = False) -> bool:
    return try_cmd(["systemctl", "restart", unit], dry_run=dry_run, what=f"restart {unit}")


def reload(unit: str, *, dry_run: bool = False) -> bool:
    return try_cmd(["systemctl", "reload", unit], dry_run=dry_run, what=f"reload {unit}")


def stop(unit: str, *, dry_run: bool = False) -> bool:
    return try_cmd(["systemctl", "stop", unit], dry_run=dry_run, what=f"stop {unit}")


def is_active(unit: str) -> bool:
    return run_cmd(["systemctl", "is-active", "--quiet", unit], check=False).returncode == 0


def is_enabled(unit: str) -> bool:
    return run_cmd(["systemctl", "is-enabled", "--quiet", unit], check=False).returncode == 0


def stop_if_active(unit: str, *, dry_run: bool = False) -> bool:
    """Stop a unit that is running. Returns True if it was stopped."""

    if dry_run or not is_active(unit):
        return False
    logger.info("Stopping %s", unit)
    return stop(unit, dry_run=dry_run)
