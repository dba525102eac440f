from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib import services
from ..state_store import record_decision
from ._common import mail_config

logger = logging.getLogger(__name__)


def service_order(*, spamassassin: bool, fail2ban: bool) -> list[str]:
    """Milters before the daemons that connect to them."""

    units = ["opendkim", "opendmarc"]
    if spamassassin:
        units += ["spamassassin", "spamass-milter"]
    units += ["dovecot", "postfix"]
    if fail2ban:
        units.append("fail2ban")
    return units


class EnableServicesStep:
    step_id = "80_enable_services"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        dry_run = cfg.dry_run

        units = service_order(spamassassin=cfg.enable_spamassassin, fail2ban=cfg.enable_fail2ban)

        logger.info("Enabling and restarting services")
        services.daemon_reload(dry_run=dry_run)
        services.enable(*units, dry_run=dry_run)

        failed = [u for u in units if not services.restart(u, dry_run=dry_run)]
        if failed:
            logger.warning("Services that failed to restart: %s", ", ".join(failed))

        record_decision(state, "services_failed", failed)
        return state
