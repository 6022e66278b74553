import math
from dataclasses import dataclass

DEFAULT_PRIMARY_OUTPUT = "DP-2"
DEFAULT_SECONDARY_OUTPUT = "HDMI-A-1"
DEFAULT_SERVICE_UNIT = "sunshine.service"


@dataclass(frozen=True)
class Config:
    """
    Daemon settings, resolved once at startup.

    Durations are in seconds.  drm_timeout bounds the wait for the kernel
    DRM layer to report the secondary output active after kscreen-doctor
    enables it; 0 skips the wait.
    """

    primary_output: str = DEFAULT_PRIMARY_OUTPUT
    secondary_output: str = DEFAULT_SECONDARY_OUTPUT
    poll_interval: float = 5.0
    grace_period: float = 10.0
    service_unit: str = DEFAULT_SERVICE_UNIT
    secondary_mode: str = "1"
    drm_timeout: float = 5.0

    def __post_init__(self):
        if not self.primary_output or not self.secondary_output:
            raise ValueError("output names must not be empty")
        if self.primary_output == self.secondary_output:
            raise ValueError(
                f"primary and secondary output are both {self.primary_output}"
            )
        if not self.service_unit:
            raise ValueError("service unit must not be empty")
        if not math.isfinite(self.poll_interval) or self.poll_interval <= 0:
            raise ValueError(
                f"poll interval must be finite and positive, got {self.poll_interval}"
            )
        if not math.isfinite(self.grace_period) or self.grace_period < 0:
            raise ValueError(
                f"grace period must be finite and not negative, got {self.grace_period}"
            )
        if not math.isfinite(self.drm_timeout) or self.drm_timeout < 0:
            raise ValueError(
                f"DRM timeout must be finite and not negative, got {self.drm_timeout}"
            )
