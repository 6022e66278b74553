"""
vitamink - Sunshine lifecycle manager for KDE Plasma on Wayland

  vitamink status    print outputs, DPMS and service state, then exit
  vitamink daemon    watch the primary monitor and switch modes

When the primary monitor has been DPMS-off for the grace period, the dummy
output is enabled and the streaming service is started.  When it has been
on again for the grace period, the service is stopped and the dummy output
disabled.

Runtime dependencies:
    python3-dbus        (dbus-python)   - systemd user unit control
    python3-gobject     (pygobject3)    - GLib main loop
    kscreen-doctor      (libkscreen)    - output enable/disable
"""

import logging
import os
import sys
from argparse import ArgumentParser, RawDescriptionHelpFormatter

from vitamink import display
from vitamink.config import (
    DEFAULT_PRIMARY_OUTPUT,
    DEFAULT_SECONDARY_OUTPUT,
    DEFAULT_SERVICE_UNIT,
    Config,
)
from vitamink.dpms import read_dpms
from vitamink.errors import DisplayError

LOG = logging.getLogger("vitamink")


def build_parser() -> ArgumentParser:
    """
    Build the argument parser, with environment variables as defaults.

    Config file format (shell-style key=value, for a systemd EnvironmentFile):

        # ~/.config/vitamink/vitamink.conf
        VITAMINK_PRIMARY=DP-2
        VITAMINK_SECONDARY=HDMI-A-1
        VITAMINK_POLL_INTERVAL=5
        VITAMINK_GRACE_PERIOD=10
        # VITAMINK_SERVICE=sunshine.service
        # VITAMINK_MODE=1
        # VITAMINK_DRM_TIMEOUT=5
        # VITAMINK_DEBUG=0
    """

    def _bool_env(key: str) -> bool:
        v = os.getenv(key, "").strip().lower()
        return v in ("1", "true", "yes")

    parser = ArgumentParser(
        prog="vitamink",
        description=__doc__,
        formatter_class=RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("status", "daemon"),
        default="status",
        help="What to do (default: status)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=_bool_env("VITAMINK_DEBUG"),
        help="Enable debug logging [env: VITAMINK_DEBUG]",
    )
    parser.add_argument(
        "--primary",
        default=os.getenv("VITAMINK_PRIMARY", DEFAULT_PRIMARY_OUTPUT),
        metavar="OUTPUT",
        help=(
            f"Monitor whose DPMS state is watched (default: {DEFAULT_PRIMARY_OUTPUT}) "
            "[env: VITAMINK_PRIMARY]"
        ),
    )
    parser.add_argument(
        "--secondary",
        default=os.getenv("VITAMINK_SECONDARY", DEFAULT_SECONDARY_OUTPUT),
        metavar="OUTPUT",
        help=(
            "Dummy plug enabled while away "
            f"(default: {DEFAULT_SECONDARY_OUTPUT}) [env: VITAMINK_SECONDARY]"
        ),
    )
    parser.add_argument(
        "--mode",
        default=os.getenv("VITAMINK_MODE", "1"),
        metavar="ID",
        help=(
            "kscreen-doctor mode id selected on the dummy plug (default: 1) "
            "[env: VITAMINK_MODE]"
        ),
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=float(os.getenv("VITAMINK_POLL_INTERVAL", "5")),
        metavar="SECONDS",
        help="Seconds between DPMS polls (default: 5) [env: VITAMINK_POLL_INTERVAL]",
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        default=float(os.getenv("VITAMINK_GRACE_PERIOD", "10")),
        metavar="SECONDS",
        help=(
            "Seconds a DPMS change must persist before switching mode "
            "(default: 10) [env: VITAMINK_GRACE_PERIOD]"
        ),
    )
    parser.add_argument(
        "--service",
        default=os.getenv("VITAMINK_SERVICE", DEFAULT_SERVICE_UNIT),
        metavar="UNIT",
        help=(
            f"systemd user unit to run while away (default: {DEFAULT_SERVICE_UNIT}) "
            "[env: VITAMINK_SERVICE]"
        ),
    )
    parser.add_argument(
        "--drm-timeout",
        type=float,
        default=float(os.getenv("VITAMINK_DRM_TIMEOUT", "5")),
        metavar="SECONDS",
        help=(
            "Seconds to wait for the dummy plug's DRM framebuffer before "
            "starting the service; 0 disables the wait (default: 5) "
            "[env: VITAMINK_DRM_TIMEOUT]"
        ),
    )
    return parser


def config_from_args(parser: ArgumentParser, args) -> Config:
    try:
        return Config(
            primary_output=args.primary,
            secondary_output=args.secondary,
            poll_interval=args.poll_interval,
            grace_period=args.grace_period,
            service_unit=args.service,
            secondary_mode=args.mode,
            drm_timeout=args.drm_timeout,
        )
    except ValueError as exc:
        parser.error(str(exc))


def print_status(config: Config) -> int:
    from vitamink.service import SystemdUnit

    print("VitaminK - Sunshine Lifecycle Manager\n")

    try:
        outputs = display.get_outputs()
    except DisplayError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    for out in outputs:
        state = "enabled" if out.enabled else "disabled"
        conn = "connected" if out.connected else "disconnected"
        dpms = read_dpms(out.name)
        print(f"{out.name} (Output {out.index}): {state}, {conn}, DPMS: {dpms.value}")
        print(f"  {len(out.modes)} modes available")
        if out.current_mode is not None:
            print(f"  Current: {out.current_mode}")

    unit = SystemdUnit(config.service_unit)
    running = "running" if unit.is_service_running() else "stopped"
    print(f"\n{config.service_unit}: {running}")
    return 0


def run_daemon(config: Config) -> int:
    import dbus
    import dbus.mainloop.glib

    from vitamink.daemon import Daemon
    from vitamink.service import SystemdUnit
    from vitamink.systemd import run_forever, sd_notify

    LOG.info(
        "Starting vitamink daemon (primary=%s, secondary=%s mode %s, service=%s, "
        "poll=%.1fs, grace=%.1fs)",
        config.primary_output,
        config.secondary_output,
        config.secondary_mode,
        config.service_unit,
        config.poll_interval,
        config.grace_period,
    )

    dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)

    try:
        service = SystemdUnit(config.service_unit, bus=dbus.SessionBus())
    except dbus.DBusException as exc:
        LOG.error("Cannot connect to session bus: %s", exc)
        sd_notify("STOPPING=1")
        return 1

    daemon = Daemon(config, display.KScreenOutputs(config.secondary_mode), service)
    run_forever(daemon)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = config_from_args(parser, args)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stdout,
    )

    if not display.kscreen_doctor_available():
        print(
            f"{display.KSCREEN_DOCTOR} not found in PATH; please install libkscreen",
            file=sys.stderr,
        )
        return 1

    if args.command == "daemon":
        return run_daemon(config)
    return print_status(config)


if __name__ == "__main__":
    sys.exit(main())
