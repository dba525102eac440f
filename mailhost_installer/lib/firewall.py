from __future__ import annotations

import logging
from typing import Sequence

from .command import run_cmd, try_cmd, which
from .pkg import apt_install

logger = logging.getLogger(__name__)

# ssh, smtp, smtps, submission, pop3, pop3s, imap, imaps, http/https for ACME.
MAIL_PORTS = (22, 25, 465, 587, 110, 995, 143, 993, 80, 443)


def configure_ufw(ports: Sequence[int] = MAIL_PORTS, *, dry_run: bool = False) -> list[int]:
    """Allow the mail ports and enable UFW. Returns the ports that were allowed."""

    if not dry_run and not which("ufw"):
        apt_install(["ufw"], dry_run=dry_run)

    allowed: list[int] = []
    for port in ports:
        if try_cmd(["ufw", "allow", f"{port}/tcp"], dry_run=dry_run, what=f"ufw allow {port}/tcp"):
            allowed.append(port)
    run_cmd(["ufw", "--force", "enable"], check=False, dry_run=dry_run)
    return allowed


def render_fail2ban_jail(*, maxretry: int = 6, bantime: str = "1h", findtime: str = "10m") -> str:
    return (
        "[DEFAULT]\n"
        f"maxretry = {maxretry}\n"
        f"bantime = {bantime}\n"
        f"findtime = {findtime}\n"
        "\n"
        "[postfix]\n"
        "enabled = true\n"
        "\n"
        "[postfix-sasl]\n"
        "enabled = true\n"
        "\n"
        "[dovecot]\n"
        "enabled = true\n"
    )
