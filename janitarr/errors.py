"""
Exception types for Janitarr.
Remote API errors live with the clients (clients/base.py).
"""


class JanitarrError(Exception):
    """Base class for Janitarr errors."""


class ConfigError(JanitarrError):
    """Invalid configuration values."""


class ConfigAccessError(ConfigError):
    """The configuration store could not be read."""


class InvalidLimitsError(JanitarrError):
    """Search limits that make allocation impossible (e.g. negative)."""


class CycleCancelled(JanitarrError):
    """A cycle was aborted because its cancel event was set."""

    def __init__(self, message: str = "cycle cancelled"):
        super().__init__(message)


class SchedulerBusyError(JanitarrError):
    """A manual trigger is already queued behind the active cycle."""

    def __init__(self, message: str = "a manual cycle is already queued"):
        super().__init__(message)


class SchedulerStoppedError(JanitarrError):
    """Janitarr is shutting down and no longer runs cycles."""
