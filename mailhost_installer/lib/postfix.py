from __future__ import annotations

import logging
import re
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from .command import run_cmd
from .env import Paths
from .files import write_file

logger = logging.getLogger(__name__)

OPENDKIM_MILTER = "unix:/var/spool/postfix/opendkim/opendkim.sock"
OPENDMARC_MILTER = "inet:localhost:8893"
SPAMASS_MILTER = "unix:/var/spool/postfix/spamass/spamass.sock"

SASL_PASSWD = "/etc/postfix/sasl_passwd"
HEADER_CHECKS = "/etc/postfix/header_checks"
CA_BUNDLE = "/etc/ssl/certs/ca-certificates.crt"


def milters(*, spamassassin: bool) -> list[str]:
    out = [OPENDKIM_MILTER, OPENDMARC_MILTER]
    if spamassassin:
        out.append(SPAMASS_MILTER)
    return out


def format_relayhost(host: str, port: int) -> str:
    return f"[{host}]:{port}"


def relay_settings(relayhost: str) -> "OrderedDict[str, str]":
    """SMTP client settings for delivering through an authenticated smarthost."""

    return OrderedDict(
        [
            ("relayhost", relayhost),
            ("smtp_sasl_auth_enable", "yes"),
            ("smtp_sasl_password_maps", f"hash:{SASL_PASSWD}"),
            ("smtp_sasl_security_options", "noanonymous"),
            ("smtp_sasl_tls_security_options", "noanonymous"),
            ("smtp_tls_security_level", "encrypt"),
            ("smtp_tls_CAfile", CA_BUNDLE),
        ]
    )


def render_main_cf(
    *,
    hostname: str,
    domain: str,
    cert_file: str,
    key_file: str,
    ipv6: bool = True,
    spamassassin: bool = True,
    relayhost: Optional[str] = None,
) -> str:
    milter_list = ", ".join(milters(spamassassin=spamassassin))
    lines = [
        "# Managed by mailhost-installer. Manual edits are overwritten on re-run.",
        "smtputf8_enable = no",
        "compatibility_level = 2",
        "",
        f"myhostname = {hostname}",
        f"mydomain = {domain}",
        "myorigin = $mydomain",
        "mydestination = localhost",
        "smtpd_banner = $myhostname ESMTP $mail_name",
        "biff = no",
        "append_dot_mydomain = no",
        "",
        "# Network",
        "inet_interfaces = all",
        f"inet_protocols = {'all' if ipv6 else 'ipv4'}",
        "mynetworks = 127.0.0.0/8 [::ffff:127.0.0.0]/104 [::1]/128",
        "",
        "# Local aliases",
        "alias_maps = hash:/etc/aliases",
        "alias_database = hash:/etc/aliases",
        "",
        "# Relay and restrictions (no open relay)",
        "smtpd_helo_required = yes",
        "smtpd_relay_restrictions = permit_mynetworks, permit_sasl_authenticated, defer_unauth_destination",
        "smtpd_recipient_restrictions =",
        "    permit_mynetworks,",
        "    permit_sasl_authenticated,",
        "    reject_unauth_destination",
        "",
        "# TLS",
        f"smtpd_tls_cert_file = {cert_file}",
        f"smtpd_tls_key_file = {key_file}",
        "smtpd_tls_security_level = may",
        "smtpd_tls_auth_only = yes",
        "smtpd_tls_protocols = !SSLv2, !SSLv3, !TLSv1, !TLSv1.1",
        "smtpd_tls_session_cache_database = btree:${data_directory}/smtpd_scache",
        "smtp_tls_security_level = may",
        "smtp_tls_protocols = !SSLv2, !SSLv3, !TLSv1, !TLSv1.1",
        "smtp_tls_session_cache_database = btree:${data_directory}/smtp_scache",
        "",
        "# SASL via Dovecot",
        "smtpd_sasl_type = dovecot",
        "smtpd_sasl_path = private/auth",
        "smtpd_sasl_auth_enable = yes",
        "smtpd_sasl_security_options = noanonymous",
        "broken_sasl_auth_clients = yes",
        "",
        "# Virtual domains and mailboxes",
        f"virtual_mailbox_domains = {domain}",
        "virtual_transport = lmtp:unix:private/dovecot-lmtp",
        "mailbox_size_limit = 0",
        "recipient_delimiter = +",
        "",
        "# Milters",
        "milter_default_action = accept",
        "milter_protocol = 6",
        f"smtpd_milters = {milter_list}",
        f"non_smtpd_milters = {milter_list}",
    ]
    if relayhost:
        # Postfix keeps the last assignment, so smtp_tls_security_level here overrides "may".
        lines += ["", "# Outbound relay"]
        lines += [f"{k} = {v}" for k, v in relay_settings(relayhost).items()]
    return "\n".join(lines) + "\n"


_SASL_OPTS = [
    "  -o smtpd_sasl_auth_enable=yes",
    "  -o smtpd_sasl_type=dovecot",
    "  -o smtpd_sasl_path=private/auth",
    "  -o smtpd_client_restrictions=permit_sasl_authenticated,reject",
    "  -o milter_macro_daemon_name=ORIGINATING",
]

_STANDARD_SERVICES = """\
pickup    unix  n       -       y       60      1       pickup
cleanup   unix  n       -       y       -       0       cleanup
qmgr      unix  n       -       n       300     1       qmgr
tlsmgr    unix  -       -       y       1000?   1       tlsmgr
rewrite   unix  -       -       y       -       -       trivial-rewrite
bounce    unix  -       -       y       -       0       bounce
defer     unix  -       -       y       -       0       bounce
trace     unix  -       -       y       -       0       bounce
verify    unix  -       -       y       -       1       verify
flush     unix  n       -       y       1000?   0       flush
proxymap  unix  -       -       n       -       -       proxymap
proxywrite unix -       -       n       -       1       proxymap
smtp      unix  -       -       y       -       -       smtp
relay     unix  -       -       y       -       -       smtp
  -o syslog_name=postfix/$service_name
showq     unix  n       -       y       -       -       showq
error     unix  -       -       y       -       -       error
retry     unix  -       -       y       -       -       error
discard   unix  -       -       y       -       -       discard
local     unix  -       n       n       -       -       local
virtual   unix  -       n       n       -       -       virtual
lmtp      unix  -       -       y       -       -       lmtp
anvil     unix  -       -       y       -       1       anvil
scache    unix  -       -       y       -       1       scache
postlog   unix-dgram n  -       n       -       1       postlogd
"""


def render_master_cf() -> str:
    """smtp (25) for inbound MX traffic, submission (587) and smtps (465) for authenticated clients."""

    lines = [
        "# Managed by mailhost-installer.",
        "smtp      inet  n       -       y       -       -       smtpd",
        "  -o smtpd_tls_security_level=may",
        "  -o smtpd_sasl_auth_enable=no",
        "  -o smtpd_client_restrictions=",
        "",
        "submission inet n       -       y       -       -       smtpd",
        "  -o syslog_name=postfix/submission",
        "  -o smtpd_tls_security_level=encrypt",
        *_SASL_OPTS,
        "",
        "smtps     inet  n       -       y       -       -       smtpd",
        "  -o syslog_name=postfix/smtps",
        "  -o smtpd_tls_wrappermode=yes",
        *_SASL_OPTS,
        "",
    ]
    return "\n".join(lines) + _STANDARD_SERVICES


_ASSIGN_RE = re.compile(r"^([A-Za-z0-9_]+)\s*=\s*(.*)$")


def parse_main_cf(text: str) -> "OrderedDict[str, str]":
    """Parse ``key = value`` lines; indented lines continue the previous value."""

    out: "OrderedDict[str, str]" = OrderedDict()
    last: Optional[str] = None
    for raw in text.splitlines():
        if not raw.strip() or raw.lstrip().startswith("#"):
            continue
        if raw[0].isspace() and last is not None:
            out[last] = (out[last] + " " + raw.strip()).strip()
            continue
        m = _ASSIGN_RE.match(raw.strip())
        if not m:
            last = None
            continue
        last = m.group(1)
        out[last] = m.group(2).strip()
    return out


def postconf_set(settings: Mapping[str, str], *, dry_run: bool = False) -> None:
    for key, value in settings.items():
        run_cmd(["postconf", "-e", f"{key} = {value}"], dry_run=dry_run)


def postconf_get(key: str) -> str:
    return run_cmd(["postconf", "-h", key], check=False).stdout.strip()


def postconf_remove(keys: Iterable[str], *, dry_run: bool = False) -> None:
    """Drop parameters from main.cf so Postfix falls back to its defaults."""

    keys = list(keys)
    if keys:
        run_cmd(["postconf", "-X", *keys], dry_run=dry_run)


def mail_queue(limit: int = 20) -> list[str]:
    r = run_cmd(["mailq"], check=False)
    return r.stdout.splitlines()[:limit]


def postmap(path: Path, *, dry_run: bool = False) -> None:
    run_cmd(["postmap", str(path)], dry_run=dry_run)


def newaliases(*, dry_run: bool = False) -> None:
    run_cmd(["newaliases"], dry_run=dry_run)


def postfix_check() -> bool:
    r = run_cmd(["postfix", "check"], check=False)
    if not r.ok:
        logger.error("postfix check failed: %s", (r.stderr or r.stdout).strip())
    return r.ok


def postfix_reload(*, dry_run: bool = False) -> None:
    run_cmd(["postfix", "reload"], check=False, dry_run=dry_run)


def render_sasl_passwd(host: str, port: int, user: str, password: str) -> str:
    return f"{format_relayhost(host, port)} {user}:{password}\n"


def render_header_checks(address: str) -> str:
    return f"/^From:.*/ REPLACE From: {address}\n/^Reply-To:.*/ REPLACE Reply-To: {address}\n"


def set_alias(paths: Paths, name: str, destination: str, *, dry_run: bool = False) -> None:
    """Add or replace ``name: destination`` in /etc/aliases and rebuild the map."""

    p = paths.aliases
    lines = p.read_text(encoding="utf-8").splitlines() if p.exists() else []
    entry = f"{name}: {destination}"
    out: list[str] = []
    replaced = False
    for line in lines:
        if line.split(":", 1)[0].strip() == name and not line.lstrip().startswith("#"):
            if not replaced:
                out.append(entry)
                replaced = True
            continue
        out.append(line)
    if not replaced:
        out.append(entry)

    write_file(p, "\n".join(out) + "\n", dry_run=dry_run)
    newaliases(dry_run=dry_run)


def read_aliases(paths: Paths) -> Dict[str, str]:
    p = paths.aliases
    if not p.exists():
        return {}
    out: Dict[str, str] = {}
    for line in p.read_text(encoding="utf-8").splitlines():
        if not line.strip() or line.lstrip().startswith("#") or ":" not in line:
            continue
        k, v = line.split(":", 1)
        out[k.strip()] = v.strip()
    return out
