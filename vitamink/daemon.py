"""
Polling daemon: ticks the state machine and sequences the side effects.

Order matters on both edges.  Going Away, the dummy output is enabled
before Sunshine starts so its KMS capture has something to attach to.
Coming back, Sunshine is stopped before the output is removed from under
it.  A failed step is logged and the rest of that sequence is skipped; the
committed state is kept and nothing is rolled back.
"""

import logging
import time
from typing import Protocol

from vitamink.config import Config
from vitamink.dpms import SignalReading, read_dpms, wait_for_drm_active
from vitamink.errors import VitaminKError
from vitamink.machine import (
    Action,
    ActionKind,
    DebounceStateMachine,
    PresenceState,
    initial_state,
)

LOG = logging.getLogger(__name__)


class OutputToggler(Protocol):
    def enable_output(self, name: str) -> None: ...

    def disable_output(self, name: str) -> None: ...


class ServiceController(Protocol):
    def start_service(self) -> None: ...

    def stop_service(self) -> None: ...

    def is_service_running(self) -> bool: ...


class Daemon:
    def __init__(
        self,
        config: Config,
        outputs: OutputToggler,
        service: ServiceController,
        read_signal=read_dpms,
        wait_drm=wait_for_drm_active,
        clock=time.monotonic,
    ):
        self.config = config
        self.outputs = outputs
        self.service = service
        self._read_signal = read_signal
        self._wait_drm = wait_drm

        reading = self.read()
        state = initial_state(reading)
        LOG.info("Starting in state: %s (DPMS: %s)", state, reading.value)
        self.machine = DebounceStateMachine(state, config.grace_period, clock=clock)

    @property
    def state(self) -> PresenceState:
        return self.machine.state

    def read(self) -> SignalReading:
        return self._read_signal(self.config.primary_output)

    def tick(self) -> Action | None:
        """
        Run one poll: read DPMS, feed the state machine, apply on commit.

        Returns the state machine's action, or None if the poll itself
        failed.  Never raises for command failures.
        """
        try:
            reading = self.read()
            action = self.machine.evaluate(reading)
            if action.kind is ActionKind.STARTED:
                LOG.info("DPMS changed to %s, waiting grace period...", reading.value)
            elif action.kind is ActionKind.WAITING:
                LOG.info("Waiting... %.0fs remaining", action.remaining)
            else:
                LOG.debug("DPMS %s: %s", reading.value, action)

            if action.kind is ActionKind.COMMIT:
                self.apply_state()
            return action
        except (VitaminKError, OSError) as exc:
            LOG.error("Poll error: %s", exc)
            return None

    def apply_state(self) -> bool:
        """
        Make the hardware match the committed state.

        Returns True when every step succeeded.
        """
        if self.state is PresenceState.AWAY:
            steps = [
                ("enable dummy output", self._enable_secondary),
                ("start service", self.service.start_service),
            ]
        else:
            steps = [
                ("stop service", self._stop_service_if_running),
                ("disable dummy output", self._disable_secondary),
            ]

        for label, step in steps:
            LOG.info("-> %s", label.capitalize())
            try:
                step()
            except VitaminKError as exc:
                LOG.warning(
                    "Applying %s failed at step '%s': %s", self.state, label, exc
                )
                return False

        LOG.info("%s mode active", self.state)
        return True

    def _enable_secondary(self) -> None:
        name = self.config.secondary_output
        self.outputs.enable_output(name)
        if self.config.drm_timeout and not self._wait_drm(name, self.config.drm_timeout):
            LOG.warning(
                "%s not DRM-active after %.1fs; starting service anyway",
                name,
                self.config.drm_timeout,
            )

    def _disable_secondary(self) -> None:
        self.outputs.disable_output(self.config.secondary_output)

    def _stop_service_if_running(self) -> None:
        if self.service.is_service_running():
            self.service.stop_service()
        else:
            LOG.debug("Service not running, nothing to stop")
