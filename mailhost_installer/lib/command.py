from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

MASK = "***"


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str], secrets: Iterable[str] = ()) -> str:
    hidden = [s for s in secrets if s]
    out = []
    for a in argv:
        for s in hidden:
            a = a.replace(s, MASK)
        out.append(shlex.quote(a))
    return " ".join(out)


def which(name: str) -> bool:
    return shutil.which(name) is not None


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
    secrets: Iterable[str] = (),
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command (with ``secrets`` masked).
    - Captures stdout/stderr.
    - Package tools never prompt: DEBIAN_FRONTEND is forced to noninteractive.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    secrets = tuple(secrets)
    shown = _fmt_argv(argv_list, secrets)
    logger.info("CMD %s", shown)

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    child_env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    child_env.update(env or {})

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=child_env,
        )
    except FileNotFoundError:
        if check:
            raise CommandError(argv_list, 127, f"{argv_list[0]}: not found", display=shown)
        logger.warning("Executable not found: %s", argv_list[0])
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=f"{argv_list[0]}: not found")

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, p.stderr or "", display=shown)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout or "", stderr=p.stderr or "")


def try_cmd(argv: Sequence[str], *, dry_run: bool = False, what: str | None = None, **kwargs) -> bool:
    """Best-effort command: log a warning on failure instead of raising."""

    r = run_cmd(argv, check=False, dry_run=dry_run, **kwargs)
    if not r.ok:
        logger.warning("Non-fatal: %s failed (%s)", what or argv[0], r.returncode)
    return r.ok
