"""Dovecot configuration and the passwd-file virtual mailbox database."""

from __future__ import annotations

import logging
import secrets
import shutil
import string
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..config import split_email
from ..errors import ConfigError
from . import services
from .command import run_cmd
from .env import VMAIL_GID, VMAIL_UID, Paths
from .files import chown, ensure_dir, write_file

logger = logging.getLogger(__name__)

PASSWORD_SCHEME = "SHA512-CRYPT"
PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#%^*_"

VMAIL_ROOT = "/var/mail/vhosts"
USERS_FILE = "/etc/dovecot/users"


def render_dovecot_conf() -> str:
    return (
        "!include_try /usr/share/dovecot/protocols.d/*.protocol\n"
        "protocols = imap pop3 lmtp\n"
        "\n"
        "dict {\n"
        "}\n"
        "\n"
        "!include conf.d/*.conf\n"
        "!include_try local.conf\n"
    )


def render_mail_conf() -> str:
    return (
        f"mail_location = maildir:{VMAIL_ROOT}/%d/%n/Maildir\n"
        "mail_privileged_group = mail\n"
        f"first_valid_uid = {VMAIL_UID}\n"
        f"last_valid_uid = {VMAIL_UID}\n"
        "\n"
        "namespace inbox {\n"
        "  inbox = yes\n"
        "}\n"
    )


def render_auth_conf() -> str:
    return (
        "disable_plaintext_auth = yes\n"
        "auth_username_format = %u\n"
        "\n"
        "passdb {\n"
        "  driver = passwd-file\n"
        f"  args = scheme={PASSWORD_SCHEME} username_format=%u {USERS_FILE}\n"
        "}\n"
        "\n"
        "userdb {\n"
        "  driver = static\n"
        f"  args = uid={VMAIL_UID} gid={VMAIL_GID} home={VMAIL_ROOT}/%d/%n\n"
        "}\n"
        "\n"
        "auth_mechanisms = plain login\n"
    )


def render_master_conf() -> str:
    return """\
service lmtp {
  unix_listener /var/spool/postfix/private/dovecot-lmtp {
    mode = 0600
    user = postfix
    group = postfix
  }
}

service auth {
  unix_listener /var/spool/postfix/private/auth {
    mode = 0660
    user = postfix
    group = postfix
  }
  user = dovecot
}

service imap-login {
  inet_listener imaps {
    port = 993
  }
  inet_listener imap {
    port = 143
  }
}

service pop3-login {
  inet_listener pop3s {
    port = 995
  }
  inet_listener pop3 {
    port = 110
  }
}
"""


def render_ssl_conf(cert_file: str, key_file: str) -> str:
    return f"ssl = required\nssl_cert = <{cert_file}\nssl_key = <{key_file}\n"


def write_configs(paths: Paths, *, cert_file: str, key_file: str, timestamp: str, dry_run: bool = False) -> None:
    files = [
        (paths.dovecot_conf, render_dovecot_conf()),
        (paths.dovecot_confd("10-mail.conf"), render_mail_conf()),
        (paths.dovecot_confd("10-auth.conf"), render_auth_conf()),
        (paths.dovecot_confd("10-master.conf"), render_master_conf()),
        (paths.dovecot_confd("10-ssl.conf"), render_ssl_conf(cert_file, key_file)),
    ]
    for path, contents in files:
        write_file(path, contents, timestamp=timestamp, dry_run=dry_run)

    users = paths.dovecot_users
    if not dry_run:
        users.parent.mkdir(parents=True, exist_ok=True)
        users.touch(exist_ok=True)
        users.chmod(0o640)
    chown(users, "root:dovecot", dry_run=dry_run)


def generate_password(length: int = 16) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def hash_password(password: str, *, dry_run: bool = False) -> str:
    if dry_run:
        return "{" + PASSWORD_SCHEME + "}dry-run"
    r = run_cmd(["doveadm", "pw", "-s", PASSWORD_SCHEME, "-p", password], secrets=[password])
    hashed = r.stdout.strip()
    if not hashed:
        raise ConfigError("doveadm pw returned an empty hash")
    return hashed


@dataclass
class MailUserDB:
    """Virtual mailboxes backed by Dovecot's passwd-file (``email:hash::::::``)."""

    paths: Paths
    dry_run: bool = False
    reload_service: bool = True

    @property
    def users_file(self) -> Path:
        return self.paths.dovecot_users

    def _lines(self) -> List[str]:
        if not self.users_file.exists():
            return []
        return self.users_file.read_text(encoding="utf-8").splitlines()

    def _save(self, lines: List[str]) -> None:
        contents = "\n".join(lines) + ("\n" if lines else "")
        write_file(self.users_file, contents, mode=0o640, backup=False, dry_run=self.dry_run)

    def list_users(self) -> List[str]:
        return [line.split(":", 1)[0] for line in self._lines() if line.strip() and not line.startswith("#")]

    def exists(self, email: str) -> bool:
        return self.password_hash(email) is not None

    def mailbox_home(self, email: str) -> Path:
        local, domain = split_email(email)
        return self.paths.vmail_home / domain / local

    def add_or_update(self, email: str, password: str) -> bool:
        """Create or update a mailbox. Returns True if the user was newly created."""

        split_email(email)
        if not password:
            raise ConfigError("Password must not be empty")

        hashed = hash_password(password, dry_run=self.dry_run)
        lines = self._lines()
        created = True
        for i, line in enumerate(lines):
            name = line.split(":", 1)[0]
            if name.lower() == email.lower():
                # Keep the spelling already on file.
                email = name
                lines[i] = f"{email}:{hashed}::::::"
                created = False
                break
        else:
            lines.append(f"{email}:{hashed}::::::")
        self._save(lines)

        maildir = self.mailbox_home(email) / "Maildir"
        for sub in ("cur", "new", "tmp"):
            ensure_dir(maildir / sub, mode=0o700, dry_run=self.dry_run)
        chown(self.mailbox_home(email), f"{VMAIL_UID}:{VMAIL_GID}", recursive=True, dry_run=self.dry_run)

        if self.reload_service:
            services.reload("dovecot", dry_run=self.dry_run)
        logger.info("%s mailbox for %s", "Created" if created else "Updated", email)
        return created

    def remove(self, email: str, *, keep_mail: bool = False) -> bool:
        """Delete a mailbox entry (and its Maildir unless keep_mail). Returns True if it existed."""

        split_email(email)
        lines = self._lines()
        kept = [line for line in lines if line.split(":", 1)[0].lower() != email.lower()]
        if len(kept) == len(lines):
            logger.info("No mailbox entry for %s; leaving %s untouched", email, self.mailbox_home(email))
            return False
        self._save(kept)

        home = self.mailbox_home(email)
        if not keep_mail and home.exists():
            if self.dry_run:
                logger.info("Would remove %s", home)
            else:
                shutil.rmtree(home)

        if self.reload_service:
            services.reload("dovecot", dry_run=self.dry_run)
        logger.info("Removed user %s (mail kept: %s)", email, keep_mail)
        return True

    def password_hash(self, email: str) -> Optional[str]:
        for line in self._lines():
            parts = line.split(":")
            if parts and parts[0].lower() == email.lower():
                return parts[1] if len(parts) > 1 else ""
        return None
