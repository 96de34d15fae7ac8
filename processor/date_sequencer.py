"""Expansion of a recurrence config into concrete occurrence intervals."""
from datetime import timedelta
from typing import Iterator, List

from dateutil.relativedelta import relativedelta

from processor.models import Cadence, EngineSettings, OccurrenceInterval, RecurrenceConfig

CADENCE_STEPS = {
    Cadence.DAILY: lambda interval: relativedelta(days=interval),
    Cadence.WEEKLY: lambda interval: relativedelta(weeks=interval),
    Cadence.MONTHLY: lambda interval: relativedelta(months=interval),
    Cadence.YEARLY: lambda interval: relativedelta(years=interval),
}


def sequence(
    config: RecurrenceConfig,
    max_iterations: int = EngineSettings.MAX_ITERATIONS
) -> List[OccurrenceInterval]:
    """
    Compute the repeat occurrences described by a recurrence config.

    Each advance is taken from the original start date (n steps of the
    cadence), so month and year steps clamp to the last valid day of the
    target month without drifting on later steps. The source occurrence
    itself is never included.

    Args:
        config: Validated recurrence config
        max_iterations: Upper bound on the number of advances

    Returns:
        Occurrence intervals in strictly increasing start order
    """
    return list(_iter_occurrences(config, max_iterations))


def estimate_count(
    config: RecurrenceConfig,
    max_iterations: int = EngineSettings.MAX_ITERATIONS
) -> int:
    """Number of occurrences ``sequence`` yields for ``config``."""
    return sum(1 for _ in _iter_occurrences(config, max_iterations))


def _iter_occurrences(
    config: RecurrenceConfig,
    max_iterations: int
) -> Iterator[OccurrenceInterval]:
    step = CADENCE_STEPS[config.cadence](config.interval)
    duration = timedelta(seconds=config.duration_seconds)
    emitted = 0

    for iteration in range(1, max_iterations + 1):
        try:
            current = config.start_date + step * iteration
            end = current + duration
        except (OverflowError, ValueError):
            # Past the last representable date; the series ends here
            break

        if config.repeat_end_date is not None and current > config.repeat_end_date:
            break

        if config.repeat_count is not None and emitted >= config.repeat_count:
            break

        yield OccurrenceInterval(start=current, end=end)
        emitted += 1
