from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Optional

from .errors import InstallerError
from .lib.env import Paths
from .lib.pkg import RELAY_PACKAGES, apt_install
from .lib.postfix import postconf_get
from .lib.relay import PROVIDERS, configure_relay, relay_status, remove_relay, resolve_provider, send_relay_test
from .lib.system import is_root
from .logging_utils import DEFAULT_LOG_PATH, configure_logging

logger = logging.getLogger(__name__)


def cmd_configure(args: argparse.Namespace) -> int:
    provider = resolve_provider(args.provider, args.host, args.port)
    if provider.note:
        print(f"Note: {provider.note}")
    password = args.password or getpass.getpass(f"Password for {args.user}@{provider.host}: ")
    if not args.skip_install:
        apt_install(RELAY_PACKAGES, dry_run=bool(args.dry_run))
    configure_relay(
        Paths(args.root),
        host=provider.host,
        port=provider.port,
        user=args.user,
        password=password,
        rewrite_from=args.rewrite_from,
        dry_run=bool(args.dry_run),
    )
    print(f"Outbound mail now relays via [{provider.host}]:{provider.port}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    status = relay_status(Paths(args.root))
    for key, value in status.settings.items():
        print(f"{key} = {value}")
    print(f"credentials: {'configured' if status.credentials else 'missing'}")
    if status.configured and not status.credentials:
        print("WARNING: relayhost is set but no SASL credentials are stored", file=sys.stderr)
        return 1
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    remove_relay(Paths(args.root), dry_run=bool(args.dry_run))
    print("SMTP relay removed")
    return 0


def cmd_test(args: argparse.Namespace) -> int:
    sender = args.test_from or f"noreply@{postconf_get('mydomain')}"
    send_relay_test(sender, args.test, dry_run=bool(args.dry_run))
    print(f"Test email queued for {args.test}; check the recipient's inbox and spam folder")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mailhost-relay",
        description="Route outbound mail through an authenticated SMTP relay",
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--show", action="store_true", help="Print the current relay settings")
    mode.add_argument("--remove", action="store_true", help="Remove the relay and its stored credentials")
    mode.add_argument("--test", metavar="RECIPIENT", default=None, help="Send a test email through the relay")

    p.add_argument("--provider", choices=sorted(PROVIDERS) + ["custom"], default="custom")
    p.add_argument("--host", default=None, help="Relay host (required for custom)")
    p.add_argument("--port", type=int, default=None, help="Relay port (default: 587)")
    p.add_argument("--user", default=None, help="Relay username (required to configure)")
    p.add_argument("--password", default=None, help="Relay password (prompted when omitted)")
    p.add_argument("--rewrite-from", default=None, help="Rewrite From/Reply-To of outbound mail to this address")
    p.add_argument("--test-from", default=None, help="Sender for --test (default: noreply@<mydomain>)")
    p.add_argument("--skip-install", action="store_true", help="Do not apt-get install the SASL client packages")
    p.add_argument("--root", default="/", help="Filesystem root (default: /)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("--dry-run", action="store_true")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.show:
        func = cmd_show
    elif args.remove:
        func = cmd_remove
    elif args.test:
        func = cmd_test
    else:
        if not args.user:
            p.error("--user is required to configure a relay")
        func = cmd_configure

    configure_logging(log_path=args.log)

    if func is not cmd_show and args.root == "/" and not args.dry_run and not is_root():
        print("This command must be run as root", file=sys.stderr)
        return 1

    try:
        return int(func(args))
    except InstallerError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
