"""
Output control and status through kscreen-doctor.

kscreen-doctor talks to KWin over Wayland, so it needs WAYLAND_DISPLAY (and
DISPLAY for the XWayland fallback).  systemd user services do not inherit
either; the defaults below are filled in when they are missing.

Report format of 'kscreen-doctor -o' (ANSI colour codes stripped):

    Output: 1 HDMI-A-1 9c1e1f0a-...
        enabled
        connected
        priority 0
        HDMI
        Modes:  1:1920x1080@60.00*!  2:3840x2160@60.00
        Geometry: 0,0 1920x1080

In the Modes line '*' marks the current mode and '!' the preferred one.
"""

import logging
import os
import re
import shutil
import signal
import subprocess
from dataclasses import dataclass, field

from vitamink.errors import DisplayError

KSCREEN_DOCTOR = "kscreen-doctor"

# Applied only when not already set in the environment.
WAYLAND_ENV_DEFAULTS = {
    "WAYLAND_DISPLAY": "wayland-0",
    "DISPLAY": ":0",
}

KSCREEN_TIMEOUT_SEC = 15

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

LOG = logging.getLogger(__name__)


@dataclass
class Mode:
    id: int
    width: int
    height: int
    refresh: float
    preferred: bool = False
    current: bool = False

    def __str__(self):
        return f"{self.width}x{self.height}@{self.refresh:.2f}Hz"


@dataclass
class Output:
    index: int
    name: str
    uuid: str
    enabled: bool = False
    connected: bool = False
    modes: list[Mode] = field(default_factory=list)

    @property
    def current_mode(self) -> Mode | None:
        for mode in self.modes:
            if mode.current:
                return mode
        return None


def kscreen_doctor_available() -> bool:
    return shutil.which(KSCREEN_DOCTOR) is not None


def _kscreen_env() -> dict:
    env = dict(os.environ)
    for key, value in WAYLAND_ENV_DEFAULTS.items():
        env.setdefault(key, value)
    return env


def run_kscreen_doctor(args: list, label: str) -> str:
    """
    Run kscreen-doctor with args and return its stdout, ANSI stripped.

    Raises DisplayError on a non-zero exit, a timeout or a failure to
    start.  On timeout the whole process group is SIGKILL'd; a wedged
    kscreen-doctor otherwise keeps its Wayland connection open.
    """
    cmd = [KSCREEN_DOCTOR, *args]
    LOG.debug("Command: %s", cmd)
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=_kscreen_env(),
            start_new_session=True,
        )
        try:
            stdout, stderr = proc.communicate(timeout=KSCREEN_TIMEOUT_SEC)
        except subprocess.TimeoutExpired:
            try:
                os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
            except ProcessLookupError:
                pass
            proc.wait()
            raise DisplayError(
                f"kscreen-doctor timed out after {KSCREEN_TIMEOUT_SEC}s during {label}"
            ) from None
    except OSError as exc:
        raise DisplayError(f"Failed to run kscreen-doctor during {label}: {exc}") from exc

    if proc.returncode != 0:
        raise DisplayError(
            f"kscreen-doctor exited {proc.returncode} during {label}: "
            f"{stderr.decode(errors='replace').strip()}"
        )
    return strip_ansi(stdout.decode(errors="replace"))


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def enable_output(name: str, mode: str = "1") -> None:
    """Enable output name and select mode id on it.  No-op if already on."""
    run_kscreen_doctor(
        [f"output.{name}.enable", f"output.{name}.mode.{mode}"],
        f"enable {name}",
    )


def disable_output(name: str) -> None:
    run_kscreen_doctor([f"output.{name}.disable"], f"disable {name}")


class KScreenOutputs:
    """Output toggler for the daemon, bound to the mode used on enable."""

    def __init__(self, mode: str = "1"):
        self.mode = mode

    def enable_output(self, name: str) -> None:
        enable_output(name, self.mode)

    def disable_output(self, name: str) -> None:
        disable_output(name)


# ---------------------------------------------------------------------------
# Report parsing
# ---------------------------------------------------------------------------


def get_outputs() -> list[Output]:
    return parse_outputs(run_kscreen_doctor(["-o"], "query outputs"))


def parse_outputs(report: str) -> list[Output]:
    """
    Parse a 'kscreen-doctor -o' report into Output objects.

    Lines before the first 'Output:' header are ignored.  Raises
    DisplayError on a malformed header or Modes line.
    """
    outputs = []
    header = None
    body = []

    for line in report.splitlines():
        if line.startswith("Output:"):
            if header is not None:
                outputs.append(_parse_output(header, body))
            header = line
            body = []
        elif header is not None:
            body.append(line)

    if header is not None:
        outputs.append(_parse_output(header, body))

    return outputs


def _parse_output(header: str, body: list) -> Output:
    parts = header.split()
    if len(parts) < 4:
        raise DisplayError(f"Invalid output header: {header!r}")
    try:
        index = int(parts[1])
    except ValueError:
        raise DisplayError(f"Invalid output index: {parts[1]!r}") from None

    output = Output(index=index, name=parts[2], uuid=parts[3])
    for line in body:
        trimmed = line.strip()
        if trimmed == "enabled":
            output.enabled = True
        elif trimmed == "disabled":
            output.enabled = False
        elif trimmed == "connected":
            output.connected = True
        elif trimmed == "disconnected":
            output.connected = False
        elif trimmed.startswith("Modes:"):
            output.modes = parse_modes(trimmed)
    return output


def parse_modes(line: str) -> list[Mode]:
    """Parse 'Modes:  1:1920x1080@60.00*!  2:...' into Mode objects."""
    if line.startswith("Modes:"):
        line = line[len("Modes:"):]

    modes = []
    for token in line.split():
        id_str, sep, spec = token.partition(":")
        if not sep:
            raise DisplayError(f"Invalid mode token: {token!r}")

        current = "*" in spec
        preferred = "!" in spec
        clean = spec.replace("*", "").replace("!", "")

        res, sep, refresh_str = clean.partition("@")
        width_str, xsep, height_str = res.partition("x")
        if not sep or not xsep:
            raise DisplayError(f"Invalid mode spec: {token!r}")

        try:
            mode = Mode(
                id=int(id_str),
                width=int(width_str),
                height=int(height_str),
                refresh=float(refresh_str),
                preferred=preferred,
                current=current,
            )
        except ValueError:
            raise DisplayError(f"Invalid mode spec: {token!r}") from None
        modes.append(mode)

    return modes
