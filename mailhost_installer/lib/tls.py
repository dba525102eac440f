from __future__ import annotations

import logging
from dataclasses import dataclass

from . import services
from .command import run_cmd
from .env import Paths
from .files import ensure_dir

logger = logging.getLogger(__name__)

# Paths as the daemons see them (never prefixed by Paths.root).
CERT_PATH = "/etc/ssl/mail/fullchain.pem"
KEY_PATH = "/etc/ssl/mail/privkey.pem"

SELF_SIGNED_DAYS = 825
SELF_SIGNED_BITS = 4096

_PORT_80_SERVICES = ("nginx", "apache2")


@dataclass(frozen=True)
class CertPaths:
    cert: str
    key: str
    source: str


def issue_letsencrypt(hostname: str, email: str, paths: Paths, *, dry_run: bool = False) -> bool:
    """Request a certificate with the standalone authenticator and link it into the mail cert dir.

    Port 80 must be free, so web servers holding it are stopped first.
    Returns False when issuance fails or the live files are missing.
    """

    for unit in _PORT_80_SERVICES:
        services.stop_if_active(unit, dry_run=dry_run)

    r = run_cmd(
        [
            "certbot",
            "certonly",
            "--standalone",
            "--non-interactive",
            "--agree-tos",
            "-m",
            email,
            "-d",
            hostname,
        ],
        check=False,
        dry_run=dry_run,
    )
    if not r.ok:
        logger.warning("Let's Encrypt failed for %s: %s", hostname, r.stderr.strip())
        return False

    live = paths.letsencrypt_live(hostname)
    if dry_run:
        return True
    if not (live / "privkey.pem").exists() or not (live / "fullchain.pem").exists():
        logger.warning("certbot succeeded but %s has no key/fullchain", live)
        return False

    ensure_dir(paths.cert_dir)
    run_cmd(["ln", "-sf", str(live / "privkey.pem"), str(paths.key_file)])
    run_cmd(["ln", "-sf", str(live / "fullchain.pem"), str(paths.cert_file)])
    return True


def generate_self_signed(hostname: str, domain: str, paths: Paths, *, dry_run: bool = False) -> None:
    if paths.cert_file.exists() and paths.key_file.exists():
        logger.info("Certificate already present in %s; keeping it", paths.cert_dir)
        return

    ensure_dir(paths.cert_dir, dry_run=dry_run)
    logger.info("Generating self-signed certificate for %s", hostname)
    run_cmd(
        [
            "openssl",
            "req",
            "-x509",
            "-nodes",
            "-days",
            str(SELF_SIGNED_DAYS),
            "-newkey",
            f"rsa:{SELF_SIGNED_BITS}",
            "-keyout",
            str(paths.key_file),
            "-out",
            str(paths.cert_file),
            "-subj",
            f"/CN={hostname}",
            "-addext",
            f"subjectAltName=DNS:{hostname},DNS:{domain}",
        ],
        dry_run=dry_run,
    )
    if not dry_run:
        paths.key_file.chmod(0o600)


def provision_certificate(
    *,
    hostname: str,
    domain: str,
    email: str,
    use_self_signed: bool,
    paths: Paths,
    dry_run: bool = False,
) -> CertPaths:
    """Let's Encrypt first (unless disabled), self-signed as the fallback."""

    if not use_self_signed:
        logger.info("Attempting Let's Encrypt certificate issuance for %s", hostname)
        if issue_letsencrypt(hostname, email, paths, dry_run=dry_run):
            return CertPaths(cert=CERT_PATH, key=KEY_PATH, source="letsencrypt")
        logger.warning("Falling back to a self-signed certificate")

    generate_self_signed(hostname, domain, paths, dry_run=dry_run)
    return CertPaths(cert=CERT_PATH, key=KEY_PATH, source="self-signed")
