from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Optional

from .config import split_email
from .errors import ConfigError, InstallerError
from .lib.dovecot import MailUserDB, generate_password
from .lib.env import Paths
from .lib.postfix import mail_queue, read_aliases, set_alias
from .lib.system import is_root
from .logging_utils import DEFAULT_LOG_PATH, configure_logging

logger = logging.getLogger(__name__)


def _db(args: argparse.Namespace) -> MailUserDB:
    return MailUserDB(paths=Paths(args.root), dry_run=bool(args.dry_run))


def _read_password(args: argparse.Namespace, email: str) -> str:
    if args.password:
        return args.password
    if args.generate:
        return generate_password()
    first = getpass.getpass(f"Password for {email}: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise ConfigError("Passwords do not match")
    if not first:
        raise ConfigError("Password must not be empty")
    return first


def cmd_add(args: argparse.Namespace) -> int:
    db = _db(args)
    password = _read_password(args, args.email)
    created = db.add_or_update(args.email, password)
    print(f"{'Added' if created else 'Updated'} {args.email}")
    if args.generate and not args.password:
        print(f"Password: {password}")
    return 0


def cmd_passwd(args: argparse.Namespace) -> int:
    db = _db(args)
    if not db.exists(args.email):
        print(f"No such user: {args.email}", file=sys.stderr)
        return 1
    password = _read_password(args, args.email)
    db.add_or_update(args.email, password)
    print(f"Password changed for {args.email}")
    if args.generate and not args.password:
        print(f"Password: {password}")
    return 0


def cmd_del(args: argparse.Namespace) -> int:
    existed = _db(args).remove(args.email, keep_mail=bool(args.keep_mail))
    if not existed:
        print(f"No such user: {args.email}", file=sys.stderr)
        return 1
    print(f"Deleted {args.email}" + (" (mail kept)" if args.keep_mail else ""))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    for user in _db(args).list_users():
        print(user)
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    paths = Paths(args.root)
    users = _db(args).list_users()
    domains = sorted({u.split("@", 1)[1] for u in users})
    print(f"Mail users: {len(users)} ({len(domains)} domain(s))")

    print("\nMail queue:")
    for line in mail_queue(limit=args.lines):
        print(f"  {line}")

    print("\nRecent mail log:")
    if paths.mail_log.exists():
        for line in paths.mail_log.read_text(encoding="utf-8", errors="replace").splitlines()[-args.lines :]:
            print(f"  {line}")
    else:
        print(f"  {paths.mail_log} not found")
    return 0


def cmd_alias(args: argparse.Namespace) -> int:
    paths = Paths(args.root)
    if args.destination is None:
        for name, dest in read_aliases(paths).items():
            print(f"{name}: {dest}")
        return 0
    if "@" in args.destination:
        split_email(args.destination)
    set_alias(paths, args.name, args.destination, dry_run=bool(args.dry_run))
    print(f"{args.name} -> {args.destination}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mailhost-users", description="Manage virtual mailboxes and aliases")
    p.add_argument("--root", default="/", help="Filesystem root holding /etc and /var (default: /)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("--dry-run", action="store_true", help="Log changes without applying them")

    sub = p.add_subparsers(dest="subcmd", required=True)

    def _password_opts(sp: argparse.ArgumentParser) -> None:
        g = sp.add_mutually_exclusive_group()
        g.add_argument("--password", default=None, help="Password (prompted when omitted)")
        g.add_argument("--generate", action="store_true", help="Generate a random password and print it")

    sp = sub.add_parser("add", help="Add a mailbox, or update its password if it exists")
    sp.add_argument("email")
    _password_opts(sp)
    sp.set_defaults(func=cmd_add)

    sp = sub.add_parser("passwd", help="Change a mailbox password")
    sp.add_argument("email")
    _password_opts(sp)
    sp.set_defaults(func=cmd_passwd)

    sp = sub.add_parser("del", help="Delete a mailbox")
    sp.add_argument("email")
    sp.add_argument("--keep-mail", action="store_true", help="Keep the Maildir on disk")
    sp.set_defaults(func=cmd_del)

    sp = sub.add_parser("list", help="List mailboxes")
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("stats", help="Mailbox count, mail queue and recent log lines")
    sp.add_argument("--lines", type=int, default=10, help="Queue and log lines to show")
    sp.set_defaults(func=cmd_stats)

    sp = sub.add_parser("alias", help="Set NAME: DEST in /etc/aliases, or list aliases when DEST is omitted")
    sp.add_argument("name", nargs="?")
    sp.add_argument("destination", nargs="?")
    sp.set_defaults(func=cmd_alias)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.subcmd == "alias" and args.name and args.destination is None:
        p.error("alias: DEST is required when NAME is given")

    configure_logging(log_path=args.log, also_console=False)

    if args.root == "/" and not args.dry_run and args.subcmd not in ("list", "stats") and not is_root():
        print("This command must be run as root", file=sys.stderr)
        return 1

    try:
        return int(args.func(args))
    except InstallerError as e:
        logger.error("%s", e)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
