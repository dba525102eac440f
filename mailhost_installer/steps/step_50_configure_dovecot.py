from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib import dovecot
from ..lib.tls import CERT_PATH, KEY_PATH
from ._common import mail_config, run_timestamp

logger = logging.getLogger(__name__)


class ConfigureDovecotStep:
    step_id = "50_configure_dovecot"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        tls = ((state.get("execution") or {}).get("decisions") or {}).get("tls") or {}

        logger.info("Configuring Dovecot")
        dovecot.write_configs(
            cfg.paths,
            cert_file=tls.get("cert", CERT_PATH),
            key_file=tls.get("key", KEY_PATH),
            timestamp=run_timestamp(state),
            dry_run=cfg.dry_run,
        )
        return state
