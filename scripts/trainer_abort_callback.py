"""
trainer_abort_callback.py
-------------------------
Runs abort watchdogs inside a Hugging Face ``Trainer`` loop.

The Trainer owns checkpointing through ``TrainerControl.should_save`` and
stopping through ``should_training_stop``; the adapter maps the watchdog's
halt requests onto those flags.

Usage:
    from function_objects import build_all, load_config
    from trainer_abort_callback import AbortCallback

    watchdogs = build_all(load_config("functions.json"), run_dir=args.output_dir)
    trainer = Trainer(..., callbacks=[AbortCallback(watchdogs)])
"""

import logging

from transformers import TrainerCallback, TrainerControl, TrainerState

from abort_watchdog import ExistenceCheckFailed

logger = logging.getLogger(__name__)


class TrainerControlAdapter:
    """HostLoopControl view over one callback invocation's control/state."""

    def __init__(self, control: TrainerControl, state: TrainerState):
        self.control = control
        self.state = state
        self.halt_after_next_save = False

    @property
    def step(self) -> int:
        return self.state.global_step

    def request_immediate_halt(self):
        self.control.should_save = False
        self.control.should_training_stop = True

    def request_checkpoint_then_halt(self):
        self.control.should_save = True
        self.control.should_training_stop = True

    def request_halt_after_next_scheduled_checkpoint(self):
        self.halt_after_next_save = True


class AbortCallback(TrainerCallback):
    """Checks every watchdog at the end of each optimizer step."""

    def __init__(self, watchdogs):
        self.watchdogs = list(watchdogs)
        self.halt_after_next_save = False

    def on_step_end(self, args, state, control, **kwargs):
        host = TrainerControlAdapter(control, state)
        for wd in self.watchdogs:
            try:
                wd.on_step(host)
            except ExistenceCheckFailed as e:
                logger.warning(f"step {state.global_step}: {wd!r} could not check its marker, "
                               f"continuing: {e}")
        if host.halt_after_next_save:
            self.halt_after_next_save = True
        return control

    def on_save(self, args, state, control, **kwargs):
        if self.halt_after_next_save:
            logger.info(f"step {state.global_step}: checkpoint written, stopping as requested")
            control.should_training_stop = True
        return control

    def on_train_end(self, args, state, control, **kwargs):
        host = TrainerControlAdapter(control, state)
        for wd in self.watchdogs:
            wd.on_end(host)
        self.halt_after_next_save = False
        return control
