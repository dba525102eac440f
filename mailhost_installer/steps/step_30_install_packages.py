from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.pkg import (
    CORE_PACKAGES,
    EXTRA_PACKAGES,
    SPAM_PACKAGES,
    apt_install,
    debconf_preseed,
    install_certbot,
    postfix_preseed_lines,
)
from ..state_store import record_decision
from ._common import mail_config

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    step_id = "30_install_packages"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        dry_run = cfg.dry_run

        logger.info("Preseeding Postfix debconf answers")
        debconf_preseed(postfix_preseed_lines(cfg.mail_domain), dry_run=dry_run)

        packages = [*CORE_PACKAGES, *EXTRA_PACKAGES]
        if cfg.enable_spamassassin:
            packages += SPAM_PACKAGES
        if cfg.enable_fail2ban:
            packages.append("fail2ban")

        logger.info("Installing %d packages", len(packages))
        apt_install(packages, dry_run=dry_run)

        if not cfg.use_self_signed:
            logger.info("Installing certbot (Let's Encrypt)")
            install_certbot(dry_run=dry_run)

        record_decision(state, "packages", packages)
        return state
