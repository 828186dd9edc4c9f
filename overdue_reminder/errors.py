"""Exceptions raised by the overdue reminder batch."""


class ReminderError(Exception):
    """Base exception for the overdue reminder job."""

    pass


class RecordNotFound(ReminderError):
    """A customer or employee lookup found no record for the given id."""

    pass


class SourceError(ReminderError):
    """The invoice store could not run the overdue query."""

    pass


class TransportError(ReminderError):
    """The email transport refused or failed to send a message."""

    pass


class BatchAborted(ReminderError):
    """Raised instead of skipping a failure when the run uses ABORT_BATCH."""

    pass
