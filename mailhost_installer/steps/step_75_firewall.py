from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.files import write_file
from ..lib.firewall import MAIL_PORTS, configure_ufw, render_fail2ban_jail
from ..state_store import record_decision
from ._common import mail_config, run_timestamp

logger = logging.getLogger(__name__)


class FirewallStep:
    step_id = "75_firewall"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)

        if cfg.enable_ufw:
            logger.info("Configuring UFW firewall rules")
            allowed = configure_ufw(MAIL_PORTS, dry_run=cfg.dry_run)
            record_decision(state, "ufw_allowed_ports", allowed)
        else:
            logger.info("UFW disabled by configuration")

        if cfg.enable_fail2ban:
            logger.info("Configuring Fail2ban for Postfix/Dovecot")
            write_file(cfg.paths.fail2ban_jail, render_fail2ban_jail(), timestamp=run_timestamp(state), dry_run=cfg.dry_run)

        record_decision(state, "ufw", cfg.enable_ufw)
        record_decision(state, "fail2ban", cfg.enable_fail2ban)
        return state
