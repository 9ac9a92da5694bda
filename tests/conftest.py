"""Shared fixtures for the watchdog tests."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest


@dataclass
class RecordingControl:
    """HostLoopControl double that records every request it receives."""

    step: int = 0
    calls: list[str] = field(default_factory=list)

    def request_immediate_halt(self) -> None:
        self.calls.append("immediate_halt")

    def request_checkpoint_then_halt(self) -> None:
        self.calls.append("checkpoint_then_halt")

    def request_halt_after_next_scheduled_checkpoint(self) -> None:
        self.calls.append("halt_after_next_checkpoint")


@pytest.fixture
def control() -> RecordingControl:
    return RecordingControl()


@pytest.fixture
def run_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty run directory, with $SIM_RUN_DIR cleared."""
    monkeypatch.delenv("SIM_RUN_DIR", raising=False)
    path = tmp_path / "run"
    path.mkdir()
    return path.resolve()
