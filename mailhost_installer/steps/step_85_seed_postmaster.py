from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.dovecot import MailUserDB, generate_password
from ..state_store import record_decision
from ._common import mail_config

logger = logging.getLogger(__name__)


class SeedPostmasterStep:
    step_id = "85_seed_postmaster"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        email = f"postmaster@{cfg.mail_domain}"
        db = MailUserDB(paths=cfg.paths, dry_run=cfg.dry_run)

        if db.exists(email):
            logger.info("%s already exists; leaving its password unchanged", email)
            previous = ((state.get("execution") or {}).get("decisions") or {}).get("postmaster") or {}
            if previous.get("email") != email:
                record_decision(state, "postmaster", {"email": email, "password": None})
            return state

        password = generate_password()
        db.add_or_update(email, password)
        record_decision(state, "postmaster", {"email": email, "password": password})
        return state
