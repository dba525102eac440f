from __future__ import annotations

import logging
from typing import Any, Dict

from ..errors import CommandError
from ..lib import postfix
from ..lib.files import write_file
from ..lib.relay import write_credentials
from ..lib.tls import CERT_PATH, KEY_PATH
from ._common import mail_config, run_timestamp

logger = logging.getLogger(__name__)


class ConfigurePostfixStep:
    step_id = "70_configure_postfix"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        paths = cfg.paths
        dry_run = cfg.dry_run
        ts = run_timestamp(state)
        tls = ((state.get("execution") or {}).get("decisions") or {}).get("tls") or {}

        relayhost = None
        relay = cfg.relay
        if relay.get("host"):
            relay_host, relay_port = str(relay["host"]), int(relay.get("port") or 587)
            relayhost = postfix.format_relayhost(relay_host, relay_port)
            write_credentials(
                paths,
                host=relay_host,
                port=relay_port,
                user=str(relay.get("user") or ""),
                password=str(relay.get("password") or ""),
                timestamp=ts,
                dry_run=dry_run,
            )

        logger.info("Configuring Postfix")
        main_cf = postfix.render_main_cf(
            hostname=cfg.hostname,
            domain=cfg.mail_domain,
            cert_file=tls.get("cert", CERT_PATH),
            key_file=tls.get("key", KEY_PATH),
            ipv6=cfg.enable_ipv6,
            spamassassin=cfg.enable_spamassassin,
            relayhost=relayhost,
        )
        write_file(paths.main_cf, main_cf, timestamp=ts, dry_run=dry_run)
        write_file(paths.master_cf, postfix.render_master_cf(), timestamp=ts, dry_run=dry_run)

        if cfg.admin_email:
            postfix.set_alias(paths, "root", cfg.admin_email, dry_run=dry_run)
        else:
            postfix.newaliases(dry_run=dry_run)

        if not dry_run and not postfix.postfix_check():
            raise CommandError(["postfix", "check"], 1, "Postfix rejected the generated configuration")
        return state
