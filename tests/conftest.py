"""Shared fixtures: a settable monotonic clock and recording effect sinks."""

import pytest

from vitamink.errors import VitaminKError


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Recorder:
    """Records every effect call, in order, across outputs and service."""

    def __init__(self, running=False):
        self.calls = []
        self.running = running
        self.fail_on = set()

    def _record(self, call):
        self.calls.append(call)
        if call[0] in self.fail_on:
            raise VitaminKError(f"{call[0]} failed")

    def enable_output(self, name):
        self._record(("enable_output", name))

    def disable_output(self, name):
        self._record(("disable_output", name))

    def start_service(self):
        self._record(("start_service",))
        self.running = True

    def stop_service(self):
        self._record(("stop_service",))
        self.running = False

    def is_service_running(self):
        return self.running

    @property
    def names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return Recorder()
