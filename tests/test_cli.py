"""Tests for the numbered operator scripts."""
from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pytest

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"


def load_script(filename: str):
    spec = importlib.util.spec_from_file_location(filename.replace(".py", "").lstrip("0123456789_"),
                                                  SCRIPTS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def abort_signal():
    return load_script("01_abort_signal.py")


@pytest.fixture
def run_simulation():
    return load_script("02_run_simulation.py")


def test_stop_status_resume(abort_signal, run_dir: Path, capsys: pytest.CaptureFixture) -> None:
    marker = run_dir / "abort"

    assert abort_signal.main(["stop", "--run-dir", str(run_dir)]) == 0
    assert marker.exists()

    abort_signal.main(["status", "--run-dir", str(run_dir)])
    assert "ABORT PENDING" in capsys.readouterr().out

    abort_signal.main(["resume", "--run-dir", str(run_dir)])
    assert not marker.exists()

    abort_signal.main(["resume", "--run-dir", str(run_dir)])
    assert "nothing to clear" in capsys.readouterr().out


def test_name_and_env_run_dir(abort_signal, run_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIM_RUN_DIR", str(run_dir))
    abort_signal.main(["stop", "--name", "halt"])
    assert (run_dir / "halt").exists()


def test_empty_file_is_an_error(abort_signal, run_dir: Path) -> None:
    assert abort_signal.main(["stop", "--run-dir", str(run_dir), "--file", ""]) == 2


def test_run_simulation_to_end(run_simulation, run_dir: Path, capsys: pytest.CaptureFixture) -> None:
    code = run_simulation.main(["--run-dir", str(run_dir), "--end-step", "12", "--write-interval", "5"])
    assert code == 0
    assert "Stopped at step 12 (last checkpoint: 12)" in capsys.readouterr().out


def test_run_simulation_bad_config(run_simulation, run_dir: Path, tmp_path: Path) -> None:
    config = tmp_path / "functions.json"
    config.write_text(json.dumps({"functions": {"abort": {"type": "abort", "action": "soon"}}}),
                      encoding="utf-8")
    assert run_simulation.main(["--run-dir", str(run_dir), "--config", str(config)]) == 2
