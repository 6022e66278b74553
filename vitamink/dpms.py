"""
DPMS and DRM state of a connector, read from sysfs.

The kernel exposes each connector as /sys/class/drm/card<N>-<output>/ with
a 'dpms' file ("On", "Off", "Standby", "Suspend") and an 'enabled' file
("enabled" / "disabled").  The card number depends on probe order, so every
card is tried and the first readable one wins.
"""

import enum
import glob
import logging
import os
import time

DRM_SYSFS_ROOT = "/sys/class/drm"

LOG = logging.getLogger(__name__)


class SignalReading(enum.Enum):
    ON = "On"
    OFF = "Off"
    UNKNOWN = "Unknown"


def _read_connector_attr(output_name: str, attr: str, root: str) -> str | None:
    pattern = os.path.join(root, f"card*-{output_name}", attr)
    for path in sorted(glob.glob(pattern)):
        try:
            with open(path, encoding="ascii", errors="replace") as fh:
                return fh.read().strip()
        except OSError as exc:
            LOG.debug("Cannot read %s: %s", path, exc)
    return None


def read_dpms(output_name: str, root: str = DRM_SYSFS_ROOT) -> SignalReading:
    """
    Return the DPMS state of output_name.

    Best effort: a missing connector, an unreadable file or a state other
    than On/Off (standby, suspend) all map to UNKNOWN.
    """
    value = _read_connector_attr(output_name, "dpms", root)
    if value == "On":
        return SignalReading.ON
    if value == "Off":
        return SignalReading.OFF
    if value is None:
        LOG.debug("No readable DPMS file for %s under %s", output_name, root)
    else:
        LOG.debug("Unrecognised DPMS state for %s: %r", output_name, value)
    return SignalReading.UNKNOWN


def is_drm_active(output_name: str, root: str = DRM_SYSFS_ROOT) -> bool:
    """
    True when the kernel reports an active framebuffer on output_name.

    Sunshine captures through KMS, so KDE marking the output enabled is not
    enough; the DRM connector itself has to say "enabled".
    """
    return _read_connector_attr(output_name, "enabled", root) == "enabled"


def wait_for_drm_active(
    output_name: str,
    timeout: float,
    interval: float = 0.5,
    root: str = DRM_SYSFS_ROOT,
) -> bool:
    """
    Poll until output_name is DRM-active or timeout expires.

    kscreen-doctor returns before the kernel has finished the modeset, so
    there is a short window where the output is enabled in KDE but not yet
    usable for capture.  Returns False on timeout.
    """
    end_time = time.monotonic() + timeout
    while True:
        if is_drm_active(output_name, root):
            return True
        if time.monotonic() >= end_time:
            return False
        time.sleep(interval)
