from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib import milters, services
from ._common import mail_config, run_timestamp

logger = logging.getLogger(__name__)


class ConfigureMiltersStep:
    step_id = "60_configure_milters"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        ts = run_timestamp(state)

        logger.info("Configuring OpenDMARC")
        milters.configure_opendmarc(cfg.paths, hostname=cfg.hostname, timestamp=ts, dry_run=cfg.dry_run)

        if cfg.enable_spamassassin:
            logger.info("Configuring SpamAssassin and spamass-milter")
            milters.configure_spamassassin(cfg.paths, timestamp=ts, dry_run=cfg.dry_run)
            services.enable("spamassassin", dry_run=cfg.dry_run)
        return state
