from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.files import write_file
from ..lib.pkg import BASE_PACKAGES, apt_install, apt_update, apt_upgrade
from ..lib.system import set_hostname
from ..state_store import record_decision
from ._common import mail_config, run_timestamp

logger = logging.getLogger(__name__)


class PrepareSystemStep:
    step_id = "20_prepare_system"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        paths = cfg.paths
        dry_run = cfg.dry_run

        logger.info("Updating apt cache and upgrading packages")
        apt_update(dry_run=dry_run)
        apt_install(BASE_PACKAGES, dry_run=dry_run)
        apt_upgrade(dry_run=dry_run)

        changed = set_hostname(cfg.hostname, paths, dry_run=dry_run)
        write_file(paths.mailname, cfg.mail_domain + "\n", timestamp=run_timestamp(state), dry_run=dry_run)

        record_decision(state, "hostname_changed", changed)
        return state
