"""
systemd notify integration and the GLib main loop that drives the daemon.

Polls run from a GLib timeout on the main loop thread, so there is only
ever one tick in flight.  kscreen-doctor and D-Bus calls block that thread
while they run; keep WatchdogSec comfortably above poll interval plus the
kscreen-doctor timeout.

sd_notify is implemented inline; no python3-sdnotify dependency required.
"""

import logging
import os
import signal
import socket
import sys

try:
    from gi.repository import GLib
except ImportError:
    print("Please install python3-gobject (pygobject3)", file=sys.stderr)
    raise

from vitamink.machine import ActionKind

LOG = logging.getLogger(__name__)


def sd_notify(msg: str) -> None:
    """
    Send a sd_notify message to systemd over NOTIFY_SOCKET.

    No-op if NOTIFY_SOCKET is not set (not running under systemd, or
    NotifyAccess not configured).  Errors are silently ignored; a failed
    notification is not worth crashing the daemon over.
    """
    notify_socket = os.getenv("NOTIFY_SOCKET")
    if not notify_socket:
        return
    # Abstract namespace sockets are advertised with a leading '@'.
    if notify_socket.startswith("@"):
        notify_socket = "\0" + notify_socket[1:]
    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        with sock:
            sock.connect(notify_socket)
            sock.sendall(msg.encode())
    except OSError:
        pass


def setup_watchdog() -> None:
    """
    If systemd watchdog is enabled, schedule periodic WATCHDOG=1
    notifications at half the configured interval.
    """
    watchdog_usec = os.getenv("WATCHDOG_USEC")
    if not watchdog_usec:
        return

    interval_sec = int(watchdog_usec) / 2_000_000
    interval_ms = int(interval_sec * 1000)
    LOG.info("Systemd watchdog enabled (ping interval %.1fs)", interval_sec)

    def ping():
        sd_notify("WATCHDOG=1")
        return True

    GLib.timeout_add(interval_ms, ping)


def run_forever(daemon) -> None:
    """
    Reconcile the hardware with the committed state, then poll forever.

    Returns only on SIGTERM or Ctrl-C.
    """
    if not daemon.apply_state():
        LOG.error("Could not fully apply initial state %s", daemon.state)
    sd_notify(f"STATUS={daemon.state}")

    loop = GLib.MainLoop()

    def on_tick():
        # Returning False (or raising) would remove the GLib source for good.
        try:
            action = daemon.tick()
        except Exception:
            LOG.exception("Unexpected poll failure")
            return True
        if action is not None and action.kind is ActionKind.COMMIT:
            sd_notify(f"STATUS={daemon.state}")
        return True

    def on_sigterm(_signum, _frame):
        LOG.info("Received SIGTERM, shutting down")
        loop.quit()

    signal.signal(signal.SIGTERM, on_sigterm)

    GLib.timeout_add(int(daemon.config.poll_interval * 1000), on_tick)
    setup_watchdog()
    sd_notify("READY=1")

    try:
        loop.run()
    except KeyboardInterrupt:
        LOG.info("Interrupted, exiting")
    finally:
        sd_notify("STOPPING=1")
