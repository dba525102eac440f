from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.tls import provision_certificate
from ..state_store import record_decision
from ._common import mail_config

logger = logging.getLogger(__name__)


class TlsCertificatesStep:
    step_id = "40_tls_certificates"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)

        certs = provision_certificate(
            hostname=cfg.hostname,
            domain=cfg.mail_domain,
            email=cfg.letsencrypt_email,
            use_self_signed=cfg.use_self_signed,
            paths=cfg.paths,
            dry_run=cfg.dry_run,
        )

        record_decision(state, "tls", {"cert": certs.cert, "key": certs.key, "source": certs.source})
        logger.info("TLS certificate source: %s", certs.source)
        return state
