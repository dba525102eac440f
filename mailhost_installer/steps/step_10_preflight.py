from __future__ import annotations

import logging
from typing import Any, Dict

from ..errors import PreflightError
from ..lib.command import which
from ..lib.system import SUPPORTED_UBUNTU, detect_os, free_disk_mb, is_root, is_supported_release
from ..state_store import record_decision
from ._common import mail_config

logger = logging.getLogger(__name__)


class PreflightStep:
    step_id = "10_preflight"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        cfg.validate()

        paths = cfg.paths
        dry_run = cfg.dry_run

        if not dry_run and not is_root():
            raise PreflightError("This installer must be run as root.")

        if not dry_run and not which("hostnamectl"):
            raise PreflightError("hostnamectl not found; this installer targets Ubuntu.")

        os_info = detect_os(paths)
        state["host"] = {"distro": os_info.distro, "version": os_info.version, "pretty": os_info.pretty}
        if not os_info.is_ubuntu:
            raise PreflightError(f"This installer is intended for Ubuntu only. Detected: {os_info.distro} {os_info.version}")
        if not is_supported_release(os_info.version):
            logger.warning(
                "Ubuntu %s not in tested versions (%s). Proceeding anyway.",
                os_info.version,
                " ".join(SUPPORTED_UBUNTU),
            )

        free_mb = free_disk_mb(paths.under("/var"))
        state["host"]["free_mb_var"] = free_mb
        if free_mb < cfg.min_free_mb:
            raise PreflightError(f"Not enough disk space under /var: {free_mb} MB free, {cfg.min_free_mb} MB required")

        record_decision(state, "mail_domain", cfg.mail_domain)
        record_decision(state, "hostname", cfg.hostname)
        logger.info("Preflight ok: %s, domain=%s hostname=%s", os_info.pretty or os_info.version, cfg.mail_domain, cfg.hostname)
        return state
