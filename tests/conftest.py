from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import pytest

from mailhost_installer.lib.env import Paths


@dataclass
class _Rule:
    prefix: tuple
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Optional[Callable[[List[str]], None]] = None


@dataclass
class FakeRunner:
    """Stands in for subprocess.run; answers by argv prefix, most recent rule first."""

    calls: List[List[str]] = field(default_factory=list)
    inputs: List[Optional[str]] = field(default_factory=list)
    envs: List[dict] = field(default_factory=list)
    rules: List[_Rule] = field(default_factory=list)

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "", effect=None) -> None:
        self.rules.insert(0, _Rule(tuple(prefix), returncode, stdout, stderr, effect))

    def __call__(self, argv, input=None, text=None, stdout=None, stderr=None, cwd=None, env=None):
        argv = list(argv)
        self.calls.append(argv)
        self.inputs.append(input)
        self.envs.append(dict(env or {}))
        for rule in self.rules:
            if tuple(argv[: len(rule.prefix)]) == rule.prefix:
                if rule.effect is not None:
                    rule.effect(argv)
                return subprocess.CompletedProcess(argv, rule.returncode, rule.stdout, rule.stderr)
        return subprocess.CompletedProcess(argv, 0, "", "")

    def find(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == tuple(prefix)]

    def ran(self, *prefix: str) -> bool:
        return bool(self.find(*prefix))


@pytest.fixture
def runner(monkeypatch) -> FakeRunner:
    fake = FakeRunner()
    fake.on("doveadm", "pw", stdout="{SHA512-CRYPT}$6$saltsalt$hashhash\n")
    monkeypatch.setattr("mailhost_installer.lib.command.subprocess.run", fake)
    return fake


@pytest.fixture
def root_paths(tmp_path) -> Paths:
    root = tmp_path / "root"
    root.mkdir()
    return Paths(root=str(root))


def write(path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def argv_value(argv: Sequence[str], flag: str) -> str:
    return argv[list(argv).index(flag) + 1]
