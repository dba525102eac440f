from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.command import run_cmd
from ..lib.dovecot import VMAIL_ROOT
from ..lib.env import VMAIL_GID, VMAIL_UID, VMAIL_USER
from ..lib.files import chown, ensure_dir
from ..lib.system import ensure_system_user
from ._common import mail_config

logger = logging.getLogger(__name__)


class VmailLayoutStep:
    step_id = "45_vmail_layout"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = mail_config(state)
        paths = cfg.paths
        dry_run = cfg.dry_run

        logger.info("Creating %s user and mailbox directory layout", VMAIL_USER)
        ensure_system_user(VMAIL_USER, VMAIL_UID, VMAIL_GID, VMAIL_ROOT, dry_run=dry_run)

        ensure_dir(paths.vmail_home, dry_run=dry_run)
        chown(paths.vmail_home, f"{VMAIL_USER}:{VMAIL_USER}", recursive=True, dry_run=dry_run)
        run_cmd(["chmod", "-R", "770", str(paths.vmail_home)], dry_run=dry_run)
        return state
