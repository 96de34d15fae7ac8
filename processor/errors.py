"""Exceptions raised by the recurrence engine."""


class RecurrenceError(Exception):
    """Base exception for recurrence engine errors."""
    pass


class PermissionDenied(RecurrenceError):
    """The acting user may not generate or delete occurrences."""
    pass


class ValidationError(RecurrenceError):
    """The recurrence rule on a source record is not usable."""
    pass


class MissingField(ValidationError):
    pass


class InvalidDate(ValidationError):
    pass


class InvalidRange(ValidationError):
    pass


class InvalidCadence(ValidationError):
    pass


class InvalidInterval(ValidationError):
    pass


class InvalidCount(ValidationError):
    pass


class MissingStopCondition(ValidationError):
    pass


class AmbiguousStopCondition(ValidationError):
    pass


class DateTooFarFuture(ValidationError):
    pass


class InvalidConfiguration(RecurrenceError):
    """Wraps a ValidationError raised while checking a source record."""

    def __init__(self, reason: ValidationError):
        super().__init__(str(reason))
        self.reason = reason


class GenerationFailed(RecurrenceError):
    """Occurrence generation failed after the transaction was opened."""
    pass


class PerOccurrenceFailure(RecurrenceError):
    """A single occurrence could not be created; the batch continues."""
    pass


class TransactionError(RecurrenceError):
    """The storage transaction boundary was used out of order."""
    pass
