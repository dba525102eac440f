from __future__ import annotations

from typing import Sequence


class InstallerError(RuntimeError):
    """Base class for failures the CLIs report and exit(1) on."""


class ConfigError(InstallerError):
    pass


class PreflightError(InstallerError):
    pass


class CommandError(InstallerError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "", display: str | None = None):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        shown = display if display is not None else " ".join(self.argv)
        msg = f"Command failed ({returncode}): {shown}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)
