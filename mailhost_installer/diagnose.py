"""Post-install diagnostics: DNS records, SMTP endpoints, test delivery, service status."""

from __future__ import annotations

import argparse
import logging
import os
import smtplib
import sys
from typing import List, Optional

from .config import split_email
from .errors import InstallerError
from .lib import services
from .lib.dns_check import CheckResult, DnsChecker
from .lib.env import Paths
from .lib.postfix import parse_main_cf, postconf_get, postfix_check
from .lib.smtp_probe import SmtpSettings, check_port, probe, send_test_email, try_login_variants
from .lib.system import public_ip
from .lib.tls import CERT_PATH, KEY_PATH
from .logging_utils import DEFAULT_LOG_PATH, configure_logging

logger = logging.getLogger(__name__)

DEFAULT_PORTS = (25, 587, 465)
STATUS_UNITS = ("postfix", "dovecot", "opendkim")
STATUS_POSTCONF_KEYS = (
    "myhostname",
    "mydomain",
    "virtual_mailbox_domains",
    "smtpd_tls_cert_file",
    "smtpd_milters",
    "relayhost",
)


def _mark(ok: bool, level: str = "error") -> str:
    if ok:
        return "[OK]  "
    return "[FAIL]" if level == "error" else "[WARN]"


def _print_results(results: List[CheckResult]) -> None:
    for r in results:
        print(f"{_mark(r.ok, r.level)} {r.name}: {r.detail}")


def _settings_from_args(args: argparse.Namespace) -> SmtpSettings:
    return SmtpSettings.from_env(
        args.env_file,
        host=args.host,
        port=args.port,
        secure=True if args.secure else None,
        user=args.user,
        password=args.password,
        verify_tls=True if args.verify_tls else None,
    )


def cmd_dns(args: argparse.Namespace) -> int:
    hostname = args.hostname or f"mail.{args.domain}"
    ip = args.ip or public_ip(4)
    results = DnsChecker().validate_domain(
        domain=args.domain,
        hostname=hostname,
        server_ip=ip,
        dkim_selector=args.selector,
    )
    print(f"DNS checks for {args.domain} (host {hostname}, ip {ip or 'unknown'})")
    _print_results(results)
    failed = [r for r in results if r.failed_hard]
    if failed:
        print(f"{len(failed)} check(s) failed")
        return 1
    print("All required DNS records are in place")
    return 0


def cmd_smtp(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    ports = args.ports or list(DEFAULT_PORTS)
    for port in ports:
        print(f"{_mark(check_port(settings.host, port), 'warning')} port {settings.host}:{port}")

    result = probe(settings)
    print(f"Handshake {settings.host}:{settings.port} ({'SSL' if settings.implicit_tls else 'plain'})")
    if result.connected:
        print(f"  banner:    {result.banner}")
        print(f"  STARTTLS:  {'offered' if result.starttls else 'not offered'}")
        print(f"  TLS:       {'active' if result.tls_active else 'inactive'}")
        print(f"  AUTH:      {' '.join(result.auth_mechanisms) or 'none'}")
    if result.login_ok is not None:
        print(f"  login:     {'ok' if result.login_ok else 'failed'} ({settings.user})")
    if result.error:
        print(f"  error:     {result.error}")

    if args.try_variants and settings.user and settings.password:
        local = settings.user.split("@", 1)[0]
        names = [local] + ([settings.user] if settings.user != local else [])
        for name, ok in try_login_variants(settings, names).items():
            print(f"{_mark(ok, 'warning')} login as {name}")

    return 0 if result.ok else 1


def cmd_send(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    # from_env has loaded the .env file by now.
    sender = args.sender or os.environ.get("TEST_EMAIL_FROM") or settings.user
    recipient = args.to or os.environ.get("TEST_EMAIL_TO")
    if not sender or not recipient:
        print("--from and --to are required (or TEST_EMAIL_FROM / TEST_EMAIL_TO)", file=sys.stderr)
        return 2
    split_email(sender)
    split_email(recipient)
    try:
        sent = send_test_email(settings, sender, recipient, subject=args.subject)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Send failed: %s", e)
        print(f"Send failed: {e}", file=sys.stderr)
        return 1
    print(f"Message-ID: {sent.message_id}")
    print(f"Accepted:   {', '.join(sent.accepted) or 'none'}")
    if sent.refused:
        print(f"Refused:    {', '.join(sent.refused)}")
        return 1
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    paths = Paths(args.root)
    ok = True
    for unit in STATUS_UNITS:
        active = services.is_active(unit)
        ok = ok and active
        boot = "" if services.is_enabled(unit) else " (not enabled at boot)"
        print(f"{_mark(active)} {unit} {'active' if active else 'inactive'}{boot}")

    checked = postfix_check()
    ok = ok and checked
    print(f"{_mark(checked)} postfix check")

    # main.cf as written wins; postconf fills in what it leaves at the default.
    on_disk = parse_main_cf(paths.main_cf.read_text(encoding="utf-8")) if paths.main_cf.exists() else {}
    for key in STATUS_POSTCONF_KEYS:
        value = on_disk[key] if key in on_disk else postconf_get(key)
        print(f"       {key} = {value}")

    for label, path in (("certificate", paths.under(CERT_PATH)), ("private key", paths.under(KEY_PATH)), ("mailname", paths.mailname)):
        present = path.exists()
        ok = ok and present
        print(f"{_mark(present)} {label} {path}")

    return 0 if ok else 1


def _smtp_opts(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--env-file", default=None, help="Read SMTP_HOST/PORT/SECURE/USER/PASS from this .env file")
    sp.add_argument("--host", default=None)
    sp.add_argument("--port", type=int, default=None)
    sp.add_argument("--secure", action="store_true", help="Implicit TLS (default only for port 465)")
    sp.add_argument("--user", default=None)
    sp.add_argument("--password", default=None)
    sp.add_argument("--verify-tls", action="store_true", help="Verify the server certificate")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mailhost-check", description="Check DNS, SMTP and service health")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("dns", help="Validate A/PTR/MX/SPF/DKIM/DMARC records")
    sp.add_argument("--domain", required=True)
    sp.add_argument("--hostname", default=None, help="Mail host FQDN (default: mail.<domain>)")
    sp.add_argument("--ip", default=None, help="Expected server IPv4 (default: detected public IP)")
    sp.add_argument("--selector", default="mail", help="DKIM selector")
    sp.set_defaults(func=cmd_dns)

    sp = sub.add_parser("smtp", help="Test ports, handshake, STARTTLS and login")
    _smtp_opts(sp)
    sp.add_argument("--ports", type=int, nargs="*", default=None, help="Ports to test for reachability")
    sp.add_argument("--try-variants", action="store_true", help="Also try the bare local part as username")
    sp.set_defaults(func=cmd_smtp)

    sp = sub.add_parser("send", help="Send a test email")
    _smtp_opts(sp)
    sp.add_argument("--from", dest="sender", default=None, help="Sender (default: TEST_EMAIL_FROM, then SMTP user)")
    sp.add_argument("--to", default=None, help="Recipient (default: TEST_EMAIL_TO)")
    sp.add_argument("--subject", default=None)
    sp.set_defaults(func=cmd_send)

    sp = sub.add_parser("status", help="Service state, postfix check and key settings")
    sp.add_argument("--root", default="/", help="Filesystem root (default: /)")
    sp.set_defaults(func=cmd_status)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    configure_logging(log_path=args.log, also_console=False)
    try:
        return int(args.func(args))
    except InstallerError as e:
        logger.error("%s", e)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
