"""Exceptions raised by the respawn tracking engine.

A message that does not look like a death report is not an error: the parsers
return ``None`` for it. Everything below is a real failure that the caller
either reports back to the operator or logs and survives.
"""


class BossTrackerError(Exception):
    """Base class for all tracker errors."""


class InvalidDuration(BossTrackerError):
    """Respawn duration text could not be turned into a positive number of minutes."""


class InvalidTimeOfDay(BossTrackerError):
    """Hour or minute outside the 24-hour clock."""


class NotFound(BossTrackerError):
    """No boss is tracked under the given name."""

    def __init__(self, name: str):
        super().__init__(f"Boss '{name}' not found")
        self.name = name


class SourceUnavailable(BossTrackerError):
    """The durable log could not be read or written."""


class SinkUnavailable(BossTrackerError):
    """The notification channel could not be reached."""


class JobBusy(BossTrackerError):
    """Another background job (scan, cleanup or reload) is still running."""

    def __init__(self, job: str, running: str):
        super().__init__(f"Cannot run {job} now: {running} is still in progress")
        self.job = job
        self.running = running
