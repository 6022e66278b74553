"""Tests for kscreen-doctor control and report parsing."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from vitamink import display
from vitamink.display import (
    KScreenOutputs,
    parse_modes,
    parse_outputs,
    run_kscreen_doctor,
    strip_ansi,
)
from vitamink.errors import DisplayError

REPORT = """\
Output: 1 HDMI-A-1 some-uuid-here
\tenabled
\tconnected
\tpriority 0
\tHDMI
\tModes:  1:1920x1080@60.00*!  2:3840x2160@60.00
\tGeometry: 0,0 1920x1080
Output: 2 DP-2 other-uuid-here
\tdisabled
\tconnected
\tpriority 1
\tDisplayPort
\tModes:  3:3840x2160@240.02*  4:1920x1080@60.00!
\tGeometry: 0,0 3200x1800
"""


def _proc(returncode=0, stdout=b"", stderr=b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.pid = 4242
    proc.communicate.return_value = (stdout, stderr)
    return proc


class TestStripAnsi:
    def test_colour_codes(self):
        assert strip_ansi("\x1b[31mhello\x1b[0m") == "hello"

    def test_bold_and_reset(self):
        assert strip_ansi("\x1b[01;32mOutput: \x1b[0;0m1") == "Output: 1"

    def test_plain(self):
        assert strip_ansi("no escapes") == "no escapes"
        assert strip_ansi("") == ""


class TestParseModes:
    def test_flags_and_values(self):
        modes = parse_modes("Modes:  1:1920x1080@60.00*!  2:4096x2160@59.94")

        assert len(modes) == 2
        assert (modes[0].id, modes[0].width, modes[0].height) == (1, 1920, 1080)
        assert modes[0].current and modes[0].preferred
        assert modes[1].width == 4096
        assert modes[1].refresh == pytest.approx(59.94)
        assert not modes[1].current and not modes[1].preferred

    def test_empty(self):
        assert parse_modes("Modes:") == []

    def test_str(self):
        assert str(parse_modes("Modes: 7:2560x1440@143.97")[0]) == "2560x1440@143.97Hz"

    @pytest.mark.parametrize(
        "line",
        [
            "Modes: 1-1920x1080@60",
            "Modes: 1:1920x1080",
            "Modes: 1:1920@60",
            "Modes: x:1920x1080@60",
            "Modes: 1:1920x1080@fast",
        ],
    )
    def test_malformed(self, line):
        with pytest.raises(DisplayError, match="Invalid mode"):
            parse_modes(line)


class TestParseOutputs:
    def test_report(self):
        outputs = parse_outputs(REPORT)

        assert [o.name for o in outputs] == ["HDMI-A-1", "DP-2"]

        hdmi, dp = outputs
        assert hdmi.index == 1
        assert hdmi.uuid == "some-uuid-here"
        assert hdmi.enabled and hdmi.connected
        assert len(hdmi.modes) == 2
        assert hdmi.current_mode.id == 1

        assert not dp.enabled and dp.connected
        assert dp.modes[0].refresh == pytest.approx(240.02)
        assert dp.current_mode.width == 3840

    def test_preamble_ignored(self):
        outputs = parse_outputs("kscreen-doctor 6.1\n" + REPORT)

        assert len(outputs) == 2

    def test_disconnected_without_modes(self):
        outputs = parse_outputs("Output: 3 HDMI-A-2 u\n\tdisabled\n\tdisconnected\n")

        assert not outputs[0].connected
        assert outputs[0].modes == []
        assert outputs[0].current_mode is None

    def test_empty_report(self):
        assert parse_outputs("") == []

    def test_bad_header(self):
        with pytest.raises(DisplayError, match="Invalid output header"):
            parse_outputs("Output: 1 HDMI-A-1\n")

    def test_bad_index(self):
        with pytest.raises(DisplayError, match="Invalid output index"):
            parse_outputs("Output: one HDMI-A-1 uuid\n")


class TestRunKscreenDoctor:
    def test_success_returns_stripped_stdout(self):
        proc = _proc(stdout=b"\x1b[32mOutput:\x1b[0m 1 DP-2 u\n")
        with patch.object(display.subprocess, "Popen", return_value=proc) as popen:
            out = run_kscreen_doctor(["-o"], "query outputs")

        assert out == "Output: 1 DP-2 u\n"
        assert popen.call_args.args[0] == ["kscreen-doctor", "-o"]

    def test_wayland_env_filled_in(self, monkeypatch):
        monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
        monkeypatch.setenv("DISPLAY", ":1")
        with patch.object(display.subprocess, "Popen", return_value=_proc()) as popen:
            run_kscreen_doctor(["-o"], "query outputs")

        env = popen.call_args.kwargs["env"]
        assert env["WAYLAND_DISPLAY"] == "wayland-0"
        assert env["DISPLAY"] == ":1"

    def test_nonzero_exit(self):
        proc = _proc(returncode=1, stderr=b"output not found\n")
        with patch.object(display.subprocess, "Popen", return_value=proc):
            with pytest.raises(DisplayError, match="exited 1 during enable X: output not found"):
                run_kscreen_doctor(["output.X.enable"], "enable X")

    def test_missing_binary(self):
        with patch.object(display.subprocess, "Popen", side_effect=FileNotFoundError("nope")):
            with pytest.raises(DisplayError, match="Failed to run kscreen-doctor"):
                run_kscreen_doctor(["-o"], "query outputs")

    def test_timeout_kills_process_group(self):
        proc = _proc()
        proc.communicate.side_effect = subprocess.TimeoutExpired("kscreen-doctor", 15)
        with patch.object(display.subprocess, "Popen", return_value=proc), patch.object(
            display.os, "getpgid", return_value=4242
        ), patch.object(display.os, "killpg") as killpg:
            with pytest.raises(DisplayError, match="timed out"):
                run_kscreen_doctor(["-o"], "query outputs")

        killpg.assert_called_once_with(4242, display.signal.SIGKILL)
        proc.wait.assert_called_once()


class TestToggle:
    def test_enable_selects_mode(self):
        with patch.object(display, "run_kscreen_doctor") as run:
            KScreenOutputs(mode="3").enable_output("HDMI-A-1")

        run.assert_called_once_with(
            ["output.HDMI-A-1.enable", "output.HDMI-A-1.mode.3"], "enable HDMI-A-1"
        )

    def test_disable(self):
        with patch.object(display, "run_kscreen_doctor") as run:
            KScreenOutputs().disable_output("HDMI-A-1")

        run.assert_called_once_with(["output.HDMI-A-1.disable"], "disable HDMI-A-1")

    def test_failure_propagates(self):
        with patch.object(display, "run_kscreen_doctor", side_effect=DisplayError("boom")):
            with pytest.raises(DisplayError):
                KScreenOutputs().enable_output("HDMI-A-1")
