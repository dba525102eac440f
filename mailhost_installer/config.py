from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .lib.env import Paths

_DOMAIN_RE = re.compile(r"^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))+$")
_LOCAL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+$")


def is_valid_domain(name: str) -> bool:
    return bool(_DOMAIN_RE.match(name or ""))


def split_email(address: str) -> tuple[str, str]:
    """Return (local, domain) or raise ConfigError."""

    if not address or address.count("@") != 1:
        raise ConfigError(f"Invalid email address: {address!r}")
    local, domain = address.split("@")
    if not _LOCAL_RE.match(local) or not is_valid_domain(domain):
        raise ConfigError(f"Invalid email address: {address!r}")
    return local, domain.lower()


@dataclass(frozen=True)
class MailConfig:
    raw: Dict[str, Any]

    @property
    def mail_domain(self) -> str:
        return str(self.raw.get("mail_domain") or "").strip().lower()

    @property
    def hostname(self) -> str:
        h = str(self.raw.get("hostname") or "").strip().lower()
        return h or f"mail.{self.mail_domain}"

    @property
    def admin_email(self) -> Optional[str]:
        return self.raw.get("admin_email") or None

    @property
    def letsencrypt_email(self) -> str:
        return str(self.raw.get("letsencrypt_email") or self.admin_email or f"admin@{self.mail_domain}")

    @property
    def use_self_signed(self) -> bool:
        return bool(self.raw.get("use_self_signed", False))

    @property
    def enable_ufw(self) -> bool:
        return bool(self.raw.get("enable_ufw", True))

    @property
    def enable_spamassassin(self) -> bool:
        return bool(self.raw.get("enable_spamassassin", True))

    @property
    def enable_fail2ban(self) -> bool:
        return bool(self.raw.get("enable_fail2ban", True))

    @property
    def enable_ipv6(self) -> bool:
        return bool(self.raw.get("enable_ipv6", True))

    @property
    def dkim_selector(self) -> str:
        return str(self.raw.get("dkim_selector") or "mail")

    @property
    def dmarc_policy(self) -> str:
        return str(self.raw.get("dmarc_policy") or "quarantine")

    @property
    def min_free_mb(self) -> int:
        return int(self.raw.get("min_free_mb", 1024))

    @property
    def dry_run(self) -> bool:
        return bool(self.raw.get("dry_run", False))

    @property
    def root(self) -> str:
        return str(self.raw.get("root") or "/")

    @property
    def paths(self) -> Paths:
        return Paths(root=self.root)

    @property
    def relay(self) -> Dict[str, Any]:
        return dict(self.raw.get("relay") or {})

    def validate(self) -> None:
        if not self.mail_domain:
            raise ConfigError("--mail-domain is required")
        if not is_valid_domain(self.mail_domain):
            raise ConfigError(f"Invalid mail domain: {self.mail_domain!r}")
        if not is_valid_domain(self.hostname):
            raise ConfigError(f"Invalid hostname: {self.hostname!r}")
        for key in ("admin_email", "letsencrypt_email"):
            if self.raw.get(key):
                split_email(str(self.raw[key]))
        if self.dmarc_policy not in {"none", "quarantine", "reject"}:
            raise ConfigError(f"Invalid DMARC policy: {self.dmarc_policy!r}")
        relay = self.relay
        if relay.get("host"):
            missing = [k for k in ("user", "password") if not relay.get(k)]
            if missing:
                raise ConfigError(f"relay: {' and '.join(missing)} required when relay.host is set")


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("config file must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")
    return raw


def merge_config(base: Mapping[str, Any], *overlays: Mapping[str, Any]) -> Dict[str, Any]:
    """Later overlays win; ``None`` values never override."""

    merged = dict(base)
    for overlay in overlays:
        for k, v in overlay.items():
            if v is not None:
                merged[k] = v
    return merged
