import os
import stat

import pytest

from mailhost_installer import state_store
from mailhost_installer.errors import ConfigError
from mailhost_installer.pipeline import run_pipeline
from mailhost_installer.state_store import (
    ensure_defaults,
    is_step_completed,
    load_state,
    mark_step_completed,
    record_decision,
    save_state,
)


class RecordingStep:
    def __init__(self, step_id, log, fail=False):
        self.step_id = step_id
        self.log = log
        self.fail = fail

    def run(self, state):
        self.log.append(self.step_id)
        if self.fail:
            raise RuntimeError(f"{self.step_id} broke")
        state.setdefault("seen", []).append(self.step_id)
        return state


def _steps(log, fail_at=None):
    return [RecordingStep(s, log, fail=(s == fail_at)) for s in ("10_a", "20_b", "30_c")]


def test_missing_state_file_is_empty(tmp_path):
    assert load_state(str(tmp_path / "nope.json")) == {}


@pytest.mark.parametrize("name", ["state.json", "state.yaml"])
def test_state_persists_and_is_private(tmp_path, name):
    path = tmp_path / "sub" / name
    state = ensure_defaults({})
    record_decision(state, "postmaster", {"email": "postmaster@example.com", "password": "pw"})
    mark_step_completed(state, "10_preflight")
    save_state(str(path), state)

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    loaded = load_state(str(path))
    assert is_step_completed(loaded, "10_preflight")
    assert loaded["execution"]["decisions"]["postmaster"]["password"] == "pw"


def test_state_is_private_before_anything_is_written(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    path.write_text("{}")
    path.chmod(0o644)
    modes = []
    real_fdopen = state_store.os.fdopen

    def fdopen(fd, *args, **kwargs):
        modes.append(stat.S_IMODE(os.fstat(fd).st_mode))
        return real_fdopen(fd, *args, **kwargs)

    monkeypatch.setattr(state_store.os, "fdopen", fdopen)
    save_state(str(path), ensure_defaults({}))
    assert modes == [0o600]
    assert load_state(str(path))["version"] == "1"


def test_state_must_be_a_mapping(tmp_path):
    p = tmp_path / "state.json"
    p.write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_state(str(p))


def test_ensure_defaults_keeps_user_values():
    state = ensure_defaults({"config": {"dkim_selector": "s2024", "enable_ufw": False}})
    assert state["config"]["dkim_selector"] == "s2024"
    assert state["config"]["enable_ufw"] is False
    assert state["config"]["dmarc_policy"] == "quarantine"
    assert state["execution"]["completed_steps"] == []


def test_mark_step_completed_is_idempotent():
    state = {}
    mark_step_completed(state, "10_a")
    mark_step_completed(state, "10_a")
    assert state["execution"]["completed_steps"] == ["10_a"]


def test_pipeline_runs_in_order_and_records():
    log = []
    result = run_pipeline(state=ensure_defaults({}), steps=_steps(log))
    assert log == ["10_a", "20_b", "30_c"]
    assert result.ran_steps == log
    assert result.state["execution"]["completed_steps"] == log
    assert set(result.state["execution"]["timings"]) == set(log)
    assert result.state["execution"]["current_step"] is None


def test_pipeline_resumes_after_failure():
    log = []
    state = ensure_defaults({})
    with pytest.raises(RuntimeError):
        run_pipeline(state=state, steps=_steps(log, fail_at="20_b"))
    assert state["execution"]["completed_steps"] == ["10_a"]
    assert state["execution"]["current_step"] == "20_b"

    log.clear()
    result = run_pipeline(state=state, steps=_steps(log))
    assert log == ["20_b", "30_c"]
    assert result.skipped_steps == ["10_a"]


def test_pipeline_force_reruns_completed():
    log = []
    state = ensure_defaults({"execution": {"completed_steps": ["10_a", "20_b", "30_c"]}})
    run_pipeline(state=state, steps=_steps(log), force=True)
    assert log == ["10_a", "20_b", "30_c"]


def test_pipeline_start_at_and_stop_after():
    log = []
    result = run_pipeline(state=ensure_defaults({}), steps=_steps(log), start_at="20_b", stop_after="20_b")
    assert log == ["20_b"]
    assert result.ran_steps == ["20_b"]


def test_pipeline_rejects_unknown_step_ids():
    log = []
    with pytest.raises(ConfigError):
        run_pipeline(state=ensure_defaults({}), steps=_steps(log), start_at="99_nope")
    with pytest.raises(ConfigError):
        run_pipeline(state=ensure_defaults({}), steps=_steps(log), stop_after="99_nope")
    assert log == []
