from __future__ import annotations

from typing import Any, Dict

from ..config import MailConfig
from ..lib.files import make_timestamp


def mail_config(state: Dict[str, Any]) -> MailConfig:
    return MailConfig(raw=dict(state.get("config") or {}))


def run_timestamp(state: Dict[str, Any]) -> str:
    """One backup suffix per installer run so all .bak files of a run line up."""

    exe = state.setdefault("execution", {})
    ts = exe.get("run_timestamp")
    if not ts:
        ts = make_timestamp()
        exe["run_timestamp"] = ts
    return ts
