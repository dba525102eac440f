from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib import dkim
from ..state_store import record_decision
from ._common import mail_config, run_timestamp

logger = logging.getLogger(__name__)


class ConfigureOpenDkimStep:
    step_id = "55_configure_opendkim"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        paths = cfg.paths

        logger.info("Configuring OpenDKIM (selector %s)", cfg.dkim_selector)
        dkim.write_configs(
            paths,
            domain=cfg.mail_domain,
            hostname=cfg.hostname,
            selector=cfg.dkim_selector,
            timestamp=run_timestamp(state),
            dry_run=cfg.dry_run,
        )
        generated = dkim.generate_key(paths, cfg.mail_domain, cfg.dkim_selector, dry_run=cfg.dry_run)

        record_decision(state, "dkim", {"selector": cfg.dkim_selector, "generated": generated})
        return state
