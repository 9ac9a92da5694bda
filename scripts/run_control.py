"""
run_control.py
--------------
Host-loop control contract used by the watchdogs, plus a small reference
implementation and driver loop.

Provides:
- HostLoopControl: the three halt requests a watchdog may make
- StopAt: how (and whether) the loop has been asked to stop
- RunControl: step counter + write schedule honouring StopAt
- run_loop(): advance / on_step / write / on_end driver
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

from abort_watchdog import ExistenceCheckFailed

logger = logging.getLogger(__name__)


class HostLoopControl(Protocol):
    """What a watchdog may ask of the host loop. Owned by the host."""

    @property
    def step(self) -> int: ...

    def request_immediate_halt(self) -> None: ...

    def request_checkpoint_then_halt(self) -> None: ...

    def request_halt_after_next_scheduled_checkpoint(self) -> None: ...


class StopAt(enum.Enum):
    END_TIME = "endTime"
    NEXT_WRITE = "nextWrite"
    WRITE_NOW = "writeNow"
    NO_WRITE_NOW = "noWriteNow"


# Higher wins; a weaker request never downgrades a pending stronger one.
_STOP_RANK = {
    StopAt.END_TIME: 0,
    StopAt.NEXT_WRITE: 1,
    StopAt.WRITE_NOW: 2,
    StopAt.NO_WRITE_NOW: 3,
}


@dataclass
class RunControl:
    end_step: int
    write_interval: int = 0
    step: int = 0
    stop_at: StopAt = StopAt.END_TIME
    last_write_step: Optional[int] = None
    halted: bool = False

    # -- HostLoopControl ----------------------------------------------------

    def request_immediate_halt(self):
        self._request(StopAt.NO_WRITE_NOW)

    def request_checkpoint_then_halt(self):
        self._request(StopAt.WRITE_NOW)

    def request_halt_after_next_scheduled_checkpoint(self):
        self._request(StopAt.NEXT_WRITE)

    def _request(self, stop_at: StopAt):
        if _STOP_RANK[stop_at] > _STOP_RANK[self.stop_at]:
            logger.debug(f"step {self.step}: stopAt {self.stop_at.value} -> {stop_at.value}")
            self.stop_at = stop_at

    # -- Loop state ---------------------------------------------------------

    def running(self) -> bool:
        if self.halted or self.stop_at is StopAt.NO_WRITE_NOW:
            return False
        return self.step < self.end_step

    def advance(self) -> int:
        self.step += 1
        return self.step

    def is_write_step(self) -> bool:
        """True if a checkpoint is due at the current step."""
        if self.stop_at is StopAt.NO_WRITE_NOW:
            return False
        if self.stop_at is StopAt.WRITE_NOW or self.step >= self.end_step:
            return True
        return self.write_interval > 0 and self.step % self.write_interval == 0

    def mark_written(self):
        """Record a completed checkpoint; halts if one was waiting on it."""
        self.last_write_step = self.step
        if self.stop_at in (StopAt.WRITE_NOW, StopAt.NEXT_WRITE):
            self.halted = True


def run_loop(control: RunControl, function_objects: Iterable,
             advance: Optional[Callable[[int], None]] = None,
             write: Optional[Callable[[int], None]] = None) -> int:
    """Drive ``control`` until it stops; returns the final step.

    Watchdogs run after ``advance`` and before the write decision, so a
    writeNow request is honoured at the step it was made.
    """
    function_objects = list(function_objects)

    try:
        while control.running():
            control.advance()
            if advance is not None:
                advance(control.step)

            for fo in function_objects:
                try:
                    fo.on_step(control)
                except ExistenceCheckFailed as e:
                    logger.warning(f"step {control.step}: {fo!r} could not check its marker, "
                                   f"continuing: {e}")

            if control.is_write_step():
                if write is not None:
                    write(control.step)
                control.mark_written()
    finally:
        # Markers must not outlive the run, even when a callback raised.
        for fo in function_objects:
            fo.on_end(control)

    reason = control.stop_at.value if control.stop_at is not StopAt.END_TIME else "end"
    logger.info(f"Loop finished at step {control.step} ({reason})")
    return control.step
