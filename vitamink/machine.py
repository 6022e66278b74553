"""
Debounced AtDesk/Away state machine.

DPMS reporting bounces around sleep/wake edges, so a single flipped reading
never changes the committed state.  A disagreeing reading starts a grace
timer; the transition commits only once the disagreement has lasted the
whole grace period, and any agreeing reading in between cancels it.  The
timer runs on the monotonic clock so wall-clock adjustments cannot shorten
or stretch it.
"""

import enum
import logging
import time
from dataclasses import dataclass

from vitamink.dpms import SignalReading

LOG = logging.getLogger(__name__)


class PresenceState(enum.Enum):
    AT_DESK = "AtDesk"
    AWAY = "Away"

    def __str__(self):
        return self.value

    @classmethod
    def from_reading(cls, reading: SignalReading) -> "PresenceState | None":
        """Map a DPMS reading to the state it asks for; None for UNKNOWN."""
        if reading is SignalReading.OFF:
            return cls.AWAY
        if reading is SignalReading.ON:
            return cls.AT_DESK
        return None


def initial_state(reading: SignalReading) -> PresenceState:
    """
    Pick the startup state from one reading.

    Only an explicit Off means Away; an unreadable monitor is assumed to be
    in use, which is the non-disruptive choice.
    """
    if reading is SignalReading.OFF:
        return PresenceState.AWAY
    return PresenceState.AT_DESK


class ActionKind(enum.Enum):
    HOLD = "hold"
    NOOP = "no-op"
    STARTED = "started waiting"
    WAITING = "still waiting"
    COMMIT = "commit"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    target: PresenceState | None = None
    remaining: float | None = None

    def __str__(self):
        if self.kind is ActionKind.WAITING:
            return f"waiting for {self.target}, {self.remaining:.0f}s remaining"
        if self.target is not None:
            return f"{self.kind.value} ({self.target})"
        return self.kind.value


class DebounceStateMachine:
    """
    Holds the committed PresenceState and the pending-transition timestamp.

    Not thread-safe; one owner calls evaluate() once per poll.  clock must
    be monotonic.
    """

    def __init__(self, state: PresenceState, grace_period: float, clock=time.monotonic):
        self._state = state
        self._pending = None
        self.grace_period = grace_period
        self._clock = clock

    @property
    def state(self) -> PresenceState:
        return self._state

    @property
    def pending(self) -> float | None:
        """Monotonic time the current disagreement was first seen, if any."""
        return self._pending

    def evaluate(self, reading: SignalReading) -> Action:
        desired = PresenceState.from_reading(reading)
        if desired is None:
            LOG.info("DPMS unknown, holding state %s", self._state)
            return Action(ActionKind.HOLD)

        if desired is self._state:
            if self._pending is not None:
                LOG.info("DPMS back to %s, cancelling pending transition", reading.value)
                self._pending = None
            return Action(ActionKind.NOOP)

        now = self._clock()
        if self._pending is None:
            self._pending = now
            return Action(ActionKind.STARTED, target=desired)

        elapsed = now - self._pending
        if elapsed >= self.grace_period:
            LOG.info(
                "Grace period elapsed after %.1fs, transitioning: %s -> %s",
                elapsed,
                self._state,
                desired,
            )
            self._state = desired
            self._pending = None
            return Action(ActionKind.COMMIT, target=desired)

        return Action(
            ActionKind.WAITING, target=desired, remaining=self.grace_period - elapsed
        )
