from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import requests

from .command import run_cmd
from .env import Paths
from .files import append_line_once

logger = logging.getLogger(__name__)

SUPPORTED_UBUNTU = ("20.04", "22.04", "24.04")

_IP_ECHO = {
    4: "https://api.ipify.org",
    6: "https://api64.ipify.org",
}


@dataclass(frozen=True)
class OsInfo:
    distro: str
    version: str
    pretty: str = ""

    @property
    def is_ubuntu(self) -> bool:
        return self.distro.lower() == "ubuntu"


def is_root() -> bool:
    return os.geteuid() == 0


def _parse_os_release(text: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        out[k.strip()] = v.strip().strip('"').strip("'")
    return out


def detect_os(paths: Paths) -> OsInfo:
    """Identify the distribution from os-release, falling back to lsb_release."""

    p = paths.os_release
    if p.exists():
        data = _parse_os_release(p.read_text(encoding="utf-8", errors="ignore"))
        os_id = data.get("ID", "")
        distro = "Ubuntu" if os_id.lower() == "ubuntu" else (data.get("NAME") or os_id or "unknown")
        return OsInfo(
            distro=distro,
            version=data.get("VERSION_ID", ""),
            pretty=data.get("PRETTY_NAME", ""),
        )

    name = run_cmd(["lsb_release", "-is"], check=False).stdout.strip()
    ver = run_cmd(["lsb_release", "-rs"], check=False).stdout.strip()
    return OsInfo(distro=name or "unknown", version=ver, pretty=f"{name} {ver}".strip())


def is_supported_release(version: str) -> bool:
    # Minor point releases (24.04.1) count as their base release.
    return any(version == v or version.startswith(v + ".") for v in SUPPORTED_UBUNTU)


def free_disk_mb(path: Path) -> int:
    probe = path
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return shutil.disk_usage(str(probe)).free // (1024 * 1024)


def current_fqdn() -> str:
    return run_cmd(["hostname", "-f"], check=False).stdout.strip()


def local_ipv4() -> Optional[str]:
    r = run_cmd(["hostname", "-I"], check=False)
    parts = r.stdout.split()
    return parts[0] if parts else None


def public_ip(version: int = 4, *, timeout: float = 5.0) -> Optional[str]:
    """Best-effort public address lookup."""

    url = _IP_ECHO[version]
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        ip = resp.text.strip()
        if ip:
            if version == 6 and ":" not in ip:
                return None
            return ip
    except requests.RequestException as e:
        logger.info("Public IPv%s lookup failed: %s", version, e)

    if version == 4:
        return local_ipv4()
    return None


def hosts_line(ip: str, fqdn: str) -> str:
    short = fqdn.split(".", 1)[0]
    return f"{ip} {fqdn} {short}"


def set_hostname(fqdn: str, paths: Paths, *, dry_run: bool = False) -> bool:
    """Set the system hostname and make sure /etc/hosts resolves it. Returns True if changed."""

    if current_fqdn() == fqdn:
        return False

    logger.info("Setting hostname to %s", fqdn)
    run_cmd(["hostnamectl", "set-hostname", fqdn], dry_run=dry_run)

    hosts = paths.hosts
    existing = hosts.read_text(encoding="utf-8") if hosts.exists() else ""
    if fqdn not in existing.split():
        ip = local_ipv4() or "127.0.1.1"
        append_line_once(hosts, hosts_line(ip, fqdn), dry_run=dry_run)
    return True


def ensure_system_user(user: str, uid: int, gid: int, home: str, *, dry_run: bool = False) -> None:
    """Create group/user with no login shell; idempotent."""

    if run_cmd(["getent", "group", str(gid)], check=False, dry_run=dry_run).returncode != 0:
        run_cmd(["groupadd", "-g", str(gid), user], dry_run=dry_run)
    if run_cmd(["id", "-u", user], check=False, dry_run=dry_run).returncode != 0:
        run_cmd(
            ["useradd", "-g", str(gid), "-u", str(uid), "-d", home, "-m", "-s", "/usr/sbin/nologin", user],
            dry_run=dry_run,
        )
