from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

VMAIL_USER = "vmail"
VMAIL_UID = 5000
VMAIL_GID = 5000


@dataclass(frozen=True)
class Paths:
    """Every host location the installer reads or writes, relative to ``root``."""

    root: str = "/"
    state_default: str = "/var/lib/mailhost-installer/state.json"

    def under(self, abs_path: str) -> Path:
        return Path(self.root) / abs_path.lstrip("/")

    # Host identity
    @property
    def hosts(self) -> Path:
        return self.under("/etc/hosts")

    @property
    def mailname(self) -> Path:
        return self.under("/etc/mailname")

    @property
    def aliases(self) -> Path:
        return self.under("/etc/aliases")

    @property
    def os_release(self) -> Path:
        return self.under("/etc/os-release")

    @property
    def mail_log(self) -> Path:
        return self.under("/var/log/mail.log")

    # Postfix
    @property
    def postfix_dir(self) -> Path:
        return self.under("/etc/postfix")

    @property
    def main_cf(self) -> Path:
        return self.postfix_dir / "main.cf"

    @property
    def master_cf(self) -> Path:
        return self.postfix_dir / "master.cf"

    @property
    def sasl_passwd(self) -> Path:
        return self.postfix_dir / "sasl_passwd"

    @property
    def header_checks(self) -> Path:
        return self.postfix_dir / "header_checks"

    @property
    def postfix_spool(self) -> Path:
        return self.under("/var/spool/postfix")

    # Dovecot
    @property
    def dovecot_dir(self) -> Path:
        return self.under("/etc/dovecot")

    @property
    def dovecot_conf(self) -> Path:
        return self.dovecot_dir / "dovecot.conf"

    def dovecot_confd(self, name: str) -> Path:
        return self.dovecot_dir / "conf.d" / name

    @property
    def dovecot_users(self) -> Path:
        return self.dovecot_dir / "users"

    @property
    def vmail_home(self) -> Path:
        return self.under("/var/mail/vhosts")

    # OpenDKIM
    @property
    def opendkim_conf(self) -> Path:
        return self.under("/etc/opendkim.conf")

    @property
    def opendkim_default(self) -> Path:
        return self.under("/etc/default/opendkim")

    @property
    def opendkim_dir(self) -> Path:
        return self.under("/etc/opendkim")

    @property
    def opendkim_keys(self) -> Path:
        return self.opendkim_dir / "keys"

    @property
    def opendkim_socket_dir(self) -> Path:
        return self.postfix_spool / "opendkim"

    # Other milters / hardening
    @property
    def opendmarc_conf(self) -> Path:
        return self.under("/etc/opendmarc.conf")

    @property
    def spamassassin_default(self) -> Path:
        return self.under("/etc/default/spamassassin")

    @property
    def spamass_milter_default(self) -> Path:
        return self.under("/etc/default/spamass-milter")

    @property
    def spamass_socket_dir(self) -> Path:
        return self.postfix_spool / "spamass"

    @property
    def fail2ban_jail(self) -> Path:
        return self.under("/etc/fail2ban/jail.local")

    # TLS
    @property
    def cert_dir(self) -> Path:
        return self.under("/etc/ssl/mail")

    @property
    def cert_file(self) -> Path:
        return self.cert_dir / "fullchain.pem"

    @property
    def key_file(self) -> Path:
        return self.cert_dir / "privkey.pem"

    def letsencrypt_live(self, hostname: str) -> Path:
        return self.under(f"/etc/letsencrypt/live/{hostname}")


PATHS = Paths()
