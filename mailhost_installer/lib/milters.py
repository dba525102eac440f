from __future__ import annotations

import logging
import re

from .command import run_cmd
from .env import Paths
from .files import ensure_dir, write_file

logger = logging.getLogger(__name__)

OPENDMARC_SOCKET = "inet:8893@localhost"


def render_opendmarc_conf(hostname: str) -> str:
    return (
        "AuthservID          mailserver\n"
        f"TrustedAuthservIDs  mailserver,localhost,{hostname}\n"
        "PidFile             /var/run/opendmarc/opendmarc.pid\n"
        "UMask               002\n"
        "Syslog              true\n"
        "SyslogSuccess       true\n"
        f"Socket              {OPENDMARC_SOCKET}\n"
        "UserID              opendmarc:opendmarc\n"
        "SoftwareHeader      true\n"
        "SPFIgnoreResults    false\n"
    )


def render_spamass_milter_default() -> str:
    return (
        "# Run as spamass-milter; the socket lives inside the Postfix chroot.\n"
        'OPTIONS="-u spamass-milter -i 127.0.0.1 -x"\n'
        'SOCKET="/var/spool/postfix/spamass/spamass.sock"\n'
        'SOCKETOWNER="postfix:postfix"\n'
        'SOCKETMODE="0660"\n'
    )


def enable_spamassassin_default(text: str) -> str:
    """Flip ENABLED=0 to ENABLED=1 (older packages gate spamd on it)."""

    return re.sub(r"^ENABLED=0\s*$", "ENABLED=1", text, flags=re.MULTILINE)


def configure_opendmarc(paths: Paths, *, hostname: str, timestamp: str, dry_run: bool = False) -> None:
    write_file(paths.opendmarc_conf, render_opendmarc_conf(hostname), timestamp=timestamp, dry_run=dry_run)


def configure_spamassassin(paths: Paths, *, timestamp: str, dry_run: bool = False) -> None:
    sa_default = paths.spamassassin_default
    if sa_default.exists():
        before = sa_default.read_text(encoding="utf-8")
        after = enable_spamassassin_default(before)
        if after != before:
            write_file(sa_default, after, timestamp=timestamp, dry_run=dry_run)

    write_file(paths.spamass_milter_default, render_spamass_milter_default(), timestamp=timestamp, dry_run=dry_run)

    sock_dir = paths.spamass_socket_dir
    ensure_dir(sock_dir, mode=0o750, dry_run=dry_run)
    run_cmd(["chown", "spamass-milter:postfix", str(sock_dir)], dry_run=dry_run)
