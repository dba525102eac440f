from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, Optional

from .config import MailConfig, load_config_file, merge_config
from .errors import InstallerError
from .lib.env import PATHS
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import run_pipeline
from .state_store import ensure_defaults, load_state, save_state
from .steps import (
    ConfigureDovecotStep,
    ConfigureMiltersStep,
    ConfigureOpenDkimStep,
    ConfigurePostfixStep,
    DnsReportStep,
    EnableServicesStep,
    FirewallStep,
    InstallPackagesStep,
    PreflightStep,
    PrepareSystemStep,
    SeedPostmasterStep,
    TlsCertificatesStep,
    VmailLayoutStep,
)

logger = logging.getLogger(__name__)


DEFAULT_STATE_PATH = PATHS.state_default


def build_steps():
    return [
        PreflightStep(),
        PrepareSystemStep(),
        InstallPackagesStep(),
        TlsCertificatesStep(),
        VmailLayoutStep(),
        ConfigureDovecotStep(),
        ConfigureOpenDkimStep(),
        ConfigureMiltersStep(),
        ConfigurePostfixStep(),
        FirewallStep(),
        EnableServicesStep(),
        SeedPostmasterStep(),
        DnsReportStep(),
    ]


def run(
    *,
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
    state_path: str = DEFAULT_STATE_PATH,
    log_path: str = DEFAULT_LOG_PATH,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    steps=None,
) -> Dict[str, Any]:
    """Run the installer pipeline, persisting state for resume.

    Config precedence: state defaults < config file < ``overrides`` (CLI flags).
    """

    actual_log_path = configure_logging(log_path=log_path)

    state = ensure_defaults(load_state(state_path))
    file_cfg = load_config_file(config_path) if config_path else {}
    state["config"] = merge_config(state["config"], file_cfg, overrides or {})
    # Dry runs are per-invocation: never inherited from, or written back to, the state file.
    dry_run = bool((overrides or {}).get("dry_run") or file_cfg.get("dry_run"))
    state["config"]["dry_run"] = dry_run
    state.setdefault("execution", {}).setdefault("paths", {})["log_path_requested"] = log_path
    state.setdefault("execution", {}).setdefault("paths", {})["log_path_actual"] = actual_log_path

    try:
        MailConfig(raw=state["config"]).validate()
        result = run_pipeline(
            state=state,
            steps=steps if steps is not None else build_steps(),
            start_at=start_at,
            stop_after=stop_after,
            force=force,
        )
        state = result.state
        state.setdefault("execution", {}).setdefault("summary", {})["ran_steps"] = result.ran_steps
        state.setdefault("execution", {}).setdefault("summary", {})["skipped_steps"] = result.skipped_steps
        return state
    except Exception as e:
        logger.exception("Installer failed")
        state.setdefault("execution", {}).setdefault("errors", []).append(
            {
                "step": (state.get("execution") or {}).get("current_step"),
                "error": str(e),
            }
        )
        raise
    finally:
        if dry_run:
            logger.info("Dry run: state not saved to %s", state_path)
        else:
            save_state(state_path, state)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mailhost-installer",
        description="Automated Postfix/Dovecot mail server setup for Ubuntu",
    )
    p.add_argument("--mail-domain", default=None, help="Primary mail domain, e.g. example.com")
    p.add_argument("--hostname", default=None, help="Mail host FQDN (default: mail.<domain>)")
    p.add_argument("--admin-email", default=None, help="Admin email; receives root's mail")
    p.add_argument("--letsencrypt-email", default=None, help="Email for Let's Encrypt registration")
    p.add_argument("--use-self-signed", action="store_true", default=None, help="Use a self-signed certificate instead of Let's Encrypt")
    p.add_argument("--no-ufw", dest="enable_ufw", action="store_false", default=None, help="Do not configure UFW firewall")
    p.add_argument("--no-spamassassin", dest="enable_spamassassin", action="store_false", default=None, help="Do not install SpamAssassin/milter")
    p.add_argument("--no-fail2ban", dest="enable_fail2ban", action="store_false", default=None, help="Do not install Fail2ban")
    p.add_argument("--ipv4-only", dest="enable_ipv6", action="store_false", default=None, help="Disable IPv6 in Postfix")
    p.add_argument("--dkim-selector", default=None, help="DKIM selector (default: mail)")
    p.add_argument("--dmarc-policy", choices=["none", "quarantine", "reject"], default=None)
    p.add_argument("--config", default=None, help="YAML file with the same keys as the flags")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to installer state (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 70_configure_postfix)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("--dry-run", action="store_true", default=None, help="Log commands and writes without executing them")
    p.add_argument("--root", default=None, help="Filesystem root for written files (default: /)")
    return p


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "mail_domain": args.mail_domain,
        "hostname": args.hostname,
        "admin_email": args.admin_email,
        "letsencrypt_email": args.letsencrypt_email,
        "use_self_signed": args.use_self_signed,
        "enable_ufw": args.enable_ufw,
        "enable_spamassassin": args.enable_spamassassin,
        "enable_fail2ban": args.enable_fail2ban,
        "enable_ipv6": args.enable_ipv6,
        "dkim_selector": args.dkim_selector,
        "dmarc_policy": args.dmarc_policy,
        "dry_run": args.dry_run,
        "root": args.root,
    }


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    try:
        run(
            overrides=overrides_from_args(args),
            config_path=args.config,
            state_path=args.state,
            log_path=args.log,
            start_at=args.start_at,
            stop_after=args.stop_after,
            force=args.force,
        )
    except InstallerError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
