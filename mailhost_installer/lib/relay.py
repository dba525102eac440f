from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ..config import split_email
from ..errors import CommandError, ConfigError
from .command import run_cmd
from .env import Paths
from .files import chown, make_timestamp, write_file
from .postfix import (
    HEADER_CHECKS,
    format_relayhost,
    postconf_get,
    postconf_remove,
    postconf_set,
    postfix_check,
    postfix_reload,
    postmap,
    relay_settings,
    render_header_checks,
    render_sasl_passwd,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayProvider:
    host: str
    port: int = 587
    note: str = ""


PROVIDERS: Dict[str, RelayProvider] = {
    "gmail": RelayProvider("smtp.gmail.com", 587, "Use an App Password (requires 2FA), not the account password."),
    "outlook": RelayProvider("smtp-mail.outlook.com", 587),
    "yahoo": RelayProvider("smtp.mail.yahoo.com", 587),
    "mailgun": RelayProvider("smtp.mailgun.org", 587),
    "sendgrid": RelayProvider("smtp.sendgrid.net", 587),
    "ses": RelayProvider("email-smtp.us-east-1.amazonaws.com", 587),
}


def resolve_provider(name: Optional[str], host: Optional[str], port: Optional[int]) -> RelayProvider:
    if name and name != "custom":
        try:
            p = PROVIDERS[name]
        except KeyError:
            raise ConfigError(f"Unknown relay provider {name!r}; choose from {', '.join(sorted(PROVIDERS))} or custom")
        return RelayProvider(host or p.host, port or p.port, p.note)
    if not host:
        raise ConfigError("--host is required for a custom relay")
    return RelayProvider(host, port or 587)


def write_credentials(
    paths: Paths,
    *,
    host: str,
    port: int,
    user: str,
    password: str,
    timestamp: Optional[str] = None,
    dry_run: bool = False,
) -> None:
    """Write the SASL password map (0600, root:postfix) and hash it with postmap."""

    if not user or not password:
        raise ConfigError("Relay user and password are required")
    write_file(
        paths.sasl_passwd,
        render_sasl_passwd(host, port, user, password),
        mode=0o600,
        timestamp=timestamp,
        dry_run=dry_run,
    )
    chown(paths.sasl_passwd, "root:postfix", dry_run=dry_run)
    postmap(paths.sasl_passwd, dry_run=dry_run)


def configure_relay(
    paths: Paths,
    *,
    host: str,
    port: int,
    user: str,
    password: str,
    rewrite_from: Optional[str] = None,
    dry_run: bool = False,
) -> None:
    """Send all outbound mail through an authenticated smarthost."""

    ts = make_timestamp()
    write_credentials(paths, host=host, port=port, user=user, password=password, timestamp=ts, dry_run=dry_run)

    settings = relay_settings(format_relayhost(host, port))
    if rewrite_from:
        split_email(rewrite_from)
        write_file(paths.header_checks, render_header_checks(rewrite_from), timestamp=ts, dry_run=dry_run)
        settings["smtp_header_checks"] = f"regexp:{HEADER_CHECKS}"
    postconf_set(settings, dry_run=dry_run)

    if not dry_run and not postfix_check():
        raise CommandError(["postfix", "check"], 1, "Postfix configuration has errors")
    postfix_reload(dry_run=dry_run)
    logger.info("Relay configured via %s", format_relayhost(host, port))


RELAY_KEYS = [*relay_settings("").keys(), "smtp_header_checks"]


@dataclass
class RelayStatus:
    settings: Dict[str, str]
    credentials: bool

    @property
    def configured(self) -> bool:
        return bool(self.settings.get("relayhost"))


def relay_status(paths: Paths) -> RelayStatus:
    return RelayStatus(
        settings={key: postconf_get(key) for key in RELAY_KEYS},
        credentials=paths.sasl_passwd.exists(),
    )


def remove_relay(paths: Paths, *, dry_run: bool = False) -> None:
    """Deliver directly again: drop the relay parameters and the stored credentials."""

    postconf_remove(RELAY_KEYS, dry_run=dry_run)
    for path in (paths.sasl_passwd, paths.sasl_passwd.with_name("sasl_passwd.db"), paths.header_checks):
        if not path.exists():
            continue
        if dry_run:
            logger.info("Would remove %s", path)
        else:
            path.unlink()
            logger.info("Removed %s", path)

    if not dry_run and not postfix_check():
        raise CommandError(["postfix", "check"], 1, "Postfix configuration has errors")
    postfix_reload(dry_run=dry_run)
    logger.info("Relay removed; outbound mail is delivered directly")


def send_relay_test(sender: str, recipient: str, *, dry_run: bool = False) -> None:
    """Queue a message through the local Postfix with mailutils' ``mail``."""

    split_email(sender)
    split_email(recipient)
    run_cmd(
        ["mail", "-s", "Test Email - SMTP Relay Working", "-a", f"From: {sender}", recipient],
        input_text="This is a test email from your Postfix mail server configured with SMTP relay.\n",
        dry_run=dry_run,
    )
    logger.info("Relay test message to %s queued", recipient)
