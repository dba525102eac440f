from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib import dkim
from ..lib.dns_records import recommended_records, render_report
from ..lib.system import public_ip
from ._common import mail_config

logger = logging.getLogger(__name__)


class DnsReportStep:
    step_id = "90_dns_report"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        decisions = (state.get("execution") or {}).get("decisions") or {}

        logger.info("Gathering DKIM public key and server addresses")
        dkim_value = dkim.read_public_record(cfg.paths, cfg.mail_domain, cfg.dkim_selector)
        ipv4 = public_ip(4)
        ipv6 = public_ip(6) if cfg.enable_ipv6 else None

        records = recommended_records(
            domain=cfg.mail_domain,
            hostname=cfg.hostname,
            ipv4=ipv4,
            ipv6=ipv6,
            dkim_selector=cfg.dkim_selector,
            dkim_value=dkim_value,
            dmarc_policy=cfg.dmarc_policy,
        )
        postmaster = decisions.get("postmaster") or {}
        report = render_report(
            domain=cfg.mail_domain,
            hostname=cfg.hostname,
            records=records,
            dkim_selector=cfg.dkim_selector,
            postmaster=postmaster.get("email"),
            postmaster_password=postmaster.get("password"),
            cert_source=(decisions.get("tls") or {}).get("source"),
        )

        print(report)
        logger.info("All done. Configure DNS and wait for propagation before sending mail.")

        exe = state.setdefault("execution", {})
        exe["dns_records"] = [r.as_dict() for r in records]
        exe["report"] = report
        return state
