"""
Start, stop and query a systemd user unit over the session D-Bus.

This is the same API 'systemctl --user start|stop|is-active' uses, minus
the subprocess.  StartUnit/StopUnit return as soon as the job is queued;
systemd orders the job itself, so there is nothing to wait for here.
"""

import logging
import sys

try:
    import dbus
except ImportError:
    print("Please install python3-dbus (dbus-python)", file=sys.stderr)
    raise

from vitamink.errors import ServiceError

SYSTEMD_BUS_NAME = "org.freedesktop.systemd1"
SYSTEMD_OBJECT_PATH = "/org/freedesktop/systemd1"
SYSTEMD_MANAGER_IFACE = "org.freedesktop.systemd1.Manager"
SYSTEMD_UNIT_IFACE = "org.freedesktop.systemd1.Unit"
DBUS_PROPS_IFACE = "org.freedesktop.DBus.Properties"

# ActiveState values 'systemctl is-active' reports as success.
RUNNING_STATES = ("active", "reloading")

LOG = logging.getLogger(__name__)


class SystemdUnit:
    """
    Service controller for one systemd user unit.

    The session bus is connected on first use rather than at construction,
    so the caller can install the GLib D-Bus main loop first.  Pass bus to
    reuse an existing connection.
    """

    def __init__(self, unit: str, bus=None):
        self.unit = unit
        self._bus = bus

    @property
    def bus(self):
        if self._bus is None:
            self._bus = dbus.SessionBus()
        return self._bus

    def _manager(self):
        obj = self.bus.get_object(SYSTEMD_BUS_NAME, SYSTEMD_OBJECT_PATH)
        return dbus.Interface(obj, SYSTEMD_MANAGER_IFACE)

    def _control(self, action: str) -> None:
        LOG.debug("%s %s", action, self.unit)
        try:
            manager = self._manager()
            method = getattr(manager, action)
            job = method(self.unit, "replace")
        except dbus.DBusException as exc:
            raise ServiceError(f"{action} {self.unit} failed: {exc}") from exc
        LOG.debug("%s %s queued as %s", action, self.unit, job)

    def start_service(self) -> None:
        self._control("StartUnit")

    def stop_service(self) -> None:
        self._control("StopUnit")

    def active_state(self) -> str | None:
        """
        Return the unit's ActiveState, or None if it is not loaded.

        GetUnit raises NoSuchUnit for a unit systemd has not loaded, which
        for our purposes is the same as inactive.
        """
        try:
            unit_path = self._manager().GetUnit(self.unit)
            props = dbus.Interface(
                self.bus.get_object(SYSTEMD_BUS_NAME, unit_path), DBUS_PROPS_IFACE
            )
            return str(props.Get(SYSTEMD_UNIT_IFACE, "ActiveState"))
        except dbus.DBusException as exc:
            LOG.debug("Cannot read ActiveState of %s: %s", self.unit, exc)
            return None

    def is_service_running(self) -> bool:
        return self.active_state() in RUNNING_STATES
