from __future__ import annotations

import logging
from typing import Iterable, Sequence

from ..errors import InstallerError
from .command import run_cmd, which

logger = logging.getLogger(__name__)


BASE_PACKAGES = [
    "apt-transport-https",
    "ca-certificates",
    "software-properties-common",
    "lsb-release",
    "gnupg2",
]

CORE_PACKAGES = [
    "postfix",
    "postfix-pcre",
    "dovecot-core",
    "dovecot-imapd",
    "dovecot-pop3d",
    "dovecot-lmtpd",
    "dovecot-sieve",
    "dovecot-managesieved",
    "opendkim",
    "opendkim-tools",
    "opendmarc",
]

EXTRA_PACKAGES = ["openssl", "rsyslog", "logrotate", "cron"]

SPAM_PACKAGES = ["spamassassin", "spamc", "spamass-milter"]

RELAY_PACKAGES = ["postfix", "libsasl2-modules", "ca-certificates", "mailutils"]


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update", "-y"], dry_run=dry_run)


def apt_upgrade(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "upgrade", "-yq"], dry_run=dry_run)


def apt_install(
    packages: Sequence[str],
    *,
    with_recommends: bool = False,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv = [
        "apt-get",
        "install",
        "-y",
    ]
    if not with_recommends:
        argv.append("--no-install-recommends")
    run_cmd([*argv, *packages], dry_run=dry_run)


def apt_has_package(package: str, *, dry_run: bool = False) -> bool:
    r = run_cmd(["apt-cache", "show", package], check=False, dry_run=dry_run)
    return r.returncode == 0


def debconf_preseed(selections: Iterable[str], *, dry_run: bool = False) -> None:
    """Feed debconf answers so package installs stay non-interactive."""

    text = "".join(line.rstrip("\n") + "\n" for line in selections)
    run_cmd(["debconf-set-selections"], input_text=text, dry_run=dry_run)


def postfix_preseed_lines(mail_domain: str) -> list[str]:
    return [
        f"postfix postfix/mailname string {mail_domain}",
        "postfix postfix/main_mailer_type select Internet Site",
    ]


def install_certbot(*, dry_run: bool = False) -> None:
    """Install certbot, preferring the snap (newer than the archive package)."""

    if not dry_run and not which("snap"):
        apt_install(["snapd"], dry_run=dry_run)

    run_cmd(["snap", "install", "core"], check=False, dry_run=dry_run)
    run_cmd(["snap", "refresh", "core"], check=False, dry_run=dry_run)

    listed = run_cmd(["snap", "list"], check=False, dry_run=dry_run)
    if "certbot" in listed.stdout:
        logger.info("certbot snap already installed")
        return

    r = run_cmd(["snap", "install", "--classic", "certbot"], check=False, dry_run=dry_run)
    if r.ok:
        run_cmd(["ln", "-sf", "/snap/bin/certbot", "/usr/bin/certbot"], dry_run=dry_run)
        return

    logger.warning("certbot snap install failed; falling back to apt")
    if not apt_has_package("certbot", dry_run=dry_run):
        raise InstallerError("certbot is available neither as a snap nor from apt; use --use-self-signed")
    apt_install(["certbot"], dry_run=dry_run)
