"""SMTP endpoint checks: reachability, handshake, STARTTLS, AUTH, test delivery."""

from __future__ import annotations

import logging
import os
import smtplib
import socket
import ssl
import time
from dataclasses import dataclass, field, replace
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Dict, List, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

SMTPS_PORT = 465


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SmtpSettings:
    host: str = "localhost"
    port: int = 587
    secure: Optional[bool] = None
    user: Optional[str] = None
    password: Optional[str] = None
    timeout: float = 10.0
    verify_tls: bool = False

    @property
    def implicit_tls(self) -> bool:
        if self.secure is None:
            return self.port == SMTPS_PORT
        return self.secure

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "SmtpSettings":
        """Read SMTP_* variables (optionally from a .env file); explicit overrides win."""

        load_dotenv(env_file or find_dotenv(usecwd=True))
        values = {
            "host": os.environ.get("SMTP_HOST") or "localhost",
            "port": int(os.environ.get("SMTP_PORT") or 587),
            "secure": _env_bool(os.environ.get("SMTP_SECURE")),
            "user": os.environ.get("SMTP_USER") or None,
            "password": os.environ.get("SMTP_PASS") or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ProbeResult:
    host: str
    port: int
    connected: bool = False
    banner: str = ""
    features: Dict[str, str] = field(default_factory=dict)
    starttls: bool = False
    tls_active: bool = False
    auth_mechanisms: List[str] = field(default_factory=list)
    login_ok: Optional[bool] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.connected and self.error is None and self.login_ok is not False


@dataclass(frozen=True)
class SendResult:
    message_id: str
    accepted: List[str]
    refused: Dict[str, tuple]


def _tls_context(verify: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify:
        # Fresh installs usually run on a self-signed certificate.
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def check_port(host: str, port: int, *, timeout: float = 5.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as e:
        logger.info("Port %s:%s unreachable: %s", host, port, e)
        return False


def _connect(settings: SmtpSettings) -> smtplib.SMTP:
    ctx = _tls_context(settings.verify_tls)
    if settings.implicit_tls:
        return smtplib.SMTP_SSL(settings.host, settings.port, timeout=settings.timeout, context=ctx)
    return smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)


def _open_session(settings: SmtpSettings, result: Optional[ProbeResult] = None) -> smtplib.SMTP:
    """Connect, EHLO, upgrade with STARTTLS when offered, EHLO again."""

    client = _connect(settings)
    code, msg = client.ehlo()
    if result is not None:
        result.connected = True
        result.banner = msg.decode("utf-8", errors="ignore").splitlines()[0] if msg else ""
        result.tls_active = settings.implicit_tls
        result.starttls = client.has_extn("starttls")

    if not settings.implicit_tls and client.has_extn("starttls"):
        client.starttls(context=_tls_context(settings.verify_tls))
        client.ehlo()
        if result is not None:
            result.tls_active = True

    if result is not None:
        result.features = dict(client.esmtp_features)
        result.auth_mechanisms = client.esmtp_features.get("auth", "").split()
    return client


def probe(settings: SmtpSettings) -> ProbeResult:
    """Connect and report what the server offers. Failures are captured in the result."""

    result = ProbeResult(host=settings.host, port=settings.port)
    client: Optional[smtplib.SMTP] = None
    try:
        client = _open_session(settings, result)
        if settings.user and settings.password:
            try:
                client.login(settings.user, settings.password)
                result.login_ok = True
            except smtplib.SMTPAuthenticationError as e:
                result.login_ok = False
                result.error = f"authentication failed: {e.smtp_code} {e.smtp_error!r}"
    except (smtplib.SMTPException, OSError) as e:
        result.error = f"{e.__class__.__name__}: {e}"
    finally:
        if client is not None:
            try:
                client.quit()
            except (smtplib.SMTPException, OSError) as e:
                logger.debug("QUIT failed: %s", e)
    return result


def try_login_variants(settings: SmtpSettings, usernames: Sequence[str]) -> Dict[str, bool]:
    """Try the same password with several usernames (bare local part vs full address)."""

    outcome: Dict[str, bool] = {}
    for name in usernames:
        r = probe(replace(settings, user=name))
        outcome[name] = bool(r.login_ok)
        logger.info("Login as %s: %s", name, "ok" if r.login_ok else (r.error or "failed"))
    return outcome


def build_test_message(sender: str, recipient: str, *, host: str, port: int, subject: Optional[str] = None) -> EmailMessage:
    stamp = time.strftime("%Y-%m-%dT%H:%M:%S%z")
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject or f"SMTP Test - {stamp}"
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=sender.split("@")[-1])
    msg.set_content(
        f"This is a test email from your SMTP server.\n\nServer: {host}\nPort: {port}\nTimestamp: {stamp}\n"
    )
    msg.add_alternative(
        "<h2>SMTP Test Email</h2>"
        "<p>This is a test email from your SMTP server.</p>"
        f"<p><strong>Server:</strong> {host}<br><strong>Port:</strong> {port}"
        f"<br><strong>Timestamp:</strong> {stamp}</p>",
        subtype="html",
    )
    return msg


def send_test_email(
    settings: SmtpSettings,
    sender: str,
    recipient: str,
    *,
    subject: Optional[str] = None,
) -> SendResult:
    """Send one message. SMTP errors propagate."""

    msg = build_test_message(sender, recipient, host=settings.host, port=settings.port, subject=subject)
    client = _open_session(settings)
    try:
        if settings.user and settings.password:
            client.login(settings.user, settings.password)
        refused = client.send_message(msg)
    finally:
        try:
            client.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.debug("QUIT failed: %s", e)

    accepted = [recipient] if recipient not in refused else []
    logger.info("Sent test message %s to %s", msg["Message-ID"], recipient)
    return SendResult(message_id=str(msg["Message-ID"]), accepted=accepted, refused=dict(refused))
