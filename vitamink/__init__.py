"""
vitamink - switch a KDE desktop into headless streaming when you walk away.

Watches the DPMS state of the primary monitor.  Once it has stayed off for
the grace period, a dummy output is enabled and the streaming service is
started; once it has stayed on again, the service is stopped and the dummy
output is disabled.
"""

__version__ = "0.3.0"
