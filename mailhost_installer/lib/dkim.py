from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from .command import run_cmd
from .env import Paths
from .files import ensure_dir, write_file

logger = logging.getLogger(__name__)

KEYS_DIR = "/etc/opendkim/keys"
SOCKET = "local:/var/spool/postfix/opendkim/opendkim.sock"


def private_key_path(domain: str, selector: str) -> str:
    return f"{KEYS_DIR}/{domain}/{selector}.private"


def record_name(domain: str, selector: str) -> str:
    return f"{selector}._domainkey.{domain}"


def render_opendkim_conf() -> str:
    return """\
Syslog                  yes
UMask                   002
OversignHeaders         From
Canonicalization        relaxed/simple
Mode                    sv
SubDomains              no
AutoRestart             yes
AutoRestartRate         10/1h
Background              yes
DNSTimeout              5
SignatureAlgorithm      rsa-sha256

# Socket is set in /etc/default/opendkim so it lands inside the Postfix chroot.

KeyTable                refile:/etc/opendkim/KeyTable
SigningTable            refile:/etc/opendkim/SigningTable
ExternalIgnoreList      refile:/etc/opendkim/TrustedHosts
InternalHosts           refile:/etc/opendkim/TrustedHosts
"""


def render_default() -> str:
    return (
        "RUNDIR=/var/run/opendkim\n"
        f'SOCKET="{SOCKET}"\n'
        "USER=opendkim\n"
        "GROUP=opendkim\n"
        "MODE=0660\n"
        'PIDFILE="$RUNDIR/opendkim.pid"\n'
        "EXTRAAFTER=\n"
    )


def render_trusted_hosts(domain: str, hostname: str) -> str:
    return "\n".join(["127.0.0.1", "localhost", hostname, f"*.{domain}", domain]) + "\n"


def render_signing_table(domain: str, selector: str) -> str:
    return f"*@{domain}    {record_name(domain, selector)}\n"


def render_key_table(domain: str, selector: str) -> str:
    return f"{record_name(domain, selector)} {domain}:{selector}:{private_key_path(domain, selector)}\n"


def write_configs(
    paths: Paths,
    *,
    domain: str,
    hostname: str,
    selector: str,
    timestamp: str,
    dry_run: bool = False,
) -> None:
    write_file(paths.opendkim_conf, render_opendkim_conf(), timestamp=timestamp, dry_run=dry_run)
    write_file(paths.opendkim_default, render_default(), timestamp=timestamp, dry_run=dry_run)

    ensure_dir(paths.opendkim_keys, dry_run=dry_run)
    write_file(paths.opendkim_dir / "TrustedHosts", render_trusted_hosts(domain, hostname), timestamp=timestamp, dry_run=dry_run)
    write_file(paths.opendkim_dir / "SigningTable", render_signing_table(domain, selector), timestamp=timestamp, dry_run=dry_run)
    write_file(paths.opendkim_dir / "KeyTable", render_key_table(domain, selector), timestamp=timestamp, dry_run=dry_run)

    sock_dir = paths.opendkim_socket_dir
    ensure_dir(sock_dir, mode=0o750, dry_run=dry_run)
    run_cmd(["chown", "opendkim:opendkim", str(sock_dir)], dry_run=dry_run)
    # Postfix must reach the socket from its chroot.
    run_cmd(["usermod", "-a", "-G", "opendkim", "postfix"], check=False, dry_run=dry_run)


def generate_key(paths: Paths, domain: str, selector: str, *, dry_run: bool = False) -> bool:
    """Create the signing key pair unless one already exists. Returns True if generated."""

    key_dir = paths.opendkim_keys / domain
    if (key_dir / f"{selector}.private").exists():
        logger.info("DKIM key for %s (selector %s) already present", domain, selector)
        return False

    ensure_dir(key_dir, dry_run=dry_run)
    run_cmd(["opendkim-genkey", "-r", "-s", selector, "-d", domain, "-D", str(key_dir)], dry_run=dry_run)
    run_cmd(["chown", "-R", "opendkim:opendkim", str(key_dir)], dry_run=dry_run)
    if not dry_run:
        key_dir.chmod(0o700)
        for f in key_dir.iterdir():
            f.chmod(0o600)
    return True


_QUOTED_RE = re.compile(r'"([^"]*)"')


def parse_public_record(text: str) -> Optional[str]:
    """Turn opendkim-genkey's zone-file snippet into the flat TXT value.

    The generated file splits the value into several quoted chunks across
    lines; they are concatenated. Files without quotes fall back to picking
    out the ``p=`` tag.
    """

    chunks = _QUOTED_RE.findall(text)
    if chunks:
        value = "".join(chunks).strip()
        value = re.sub(r"\s*;\s*", "; ", value).strip()
        return value or None

    m = re.search(r"p=([A-Za-z0-9+/=]+)", "".join(text.split()))
    if m:
        return f"v=DKIM1; k=rsa; p={m.group(1)}"
    return None


def read_public_record(paths: Paths, domain: str, selector: str) -> Optional[str]:
    p: Path = paths.opendkim_keys / domain / f"{selector}.txt"
    if not p.exists():
        return None
    return parse_public_record(p.read_text(encoding="utf-8", errors="ignore"))
