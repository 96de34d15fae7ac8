"""Extraction and validation of recurrence rules from source records."""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from processor.errors import (
    AmbiguousStopCondition,
    DateTooFarFuture,
    InvalidCadence,
    InvalidCount,
    InvalidDate,
    InvalidInterval,
    InvalidRange,
    MissingField,
    MissingStopCondition,
)
from processor.models import (
    END_DATE,
    REPEAT_COUNT,
    REPEAT_END_DATE,
    REPEAT_INTERVAL,
    REPEAT_TYPE,
    START_DATE,
    Cadence,
    EngineSettings,
    Record,
    RecurrenceConfig,
)
from processor.sanitizer import strip_markup

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> datetime:
    """
    Parse a stored date value into a naive UTC datetime.

    Args:
        value: datetime or date string in any format dateutil understands

    Returns:
        Naive datetime (timezone-aware input is converted to UTC)

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.parse(strip_markup(str(value)))
        except OverflowError as e:
            raise ValueError(str(e)) from e

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ConfigExtractor:
    """Turns the repeat fields of a source record into a RecurrenceConfig."""

    def __init__(
        self,
        settings: EngineSettings,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the extractor.

        Args:
            settings: Safety caps and strictness mode
            clock: Returns the current naive UTC time
        """
        self.settings = settings
        self.clock = clock

    def validate(self, record: Record) -> None:
        """
        Check a source record's recurrence rule without keeping the result.

        Raises:
            ValidationError: If the rule is not usable
        """
        self.extract(record)

    def extract(self, record: Record) -> RecurrenceConfig:
        """
        Extract a validated recurrence config from a source record.

        Args:
            record: Source event record

        Returns:
            Immutable RecurrenceConfig

        Raises:
            ValidationError: If the rule is not usable
        """
        if not record.repeat_enabled:
            raise MissingField('Repeat not enabled')

        fields = record.fields
        cadence = self._extract_cadence(fields.get(REPEAT_TYPE))
        interval = self._extract_interval(fields.get(REPEAT_INTERVAL))
        start_date, end_date = self._extract_dates(
            fields.get(START_DATE), fields.get(END_DATE)
        )
        repeat_end_date = self._extract_repeat_end_date(fields.get(REPEAT_END_DATE))
        repeat_count = self._extract_repeat_count(fields.get(REPEAT_COUNT))

        if repeat_end_date is None and repeat_count is None:
            raise MissingStopCondition('Must specify either repeat count or end date')

        if self.settings.strict and repeat_end_date is not None and repeat_count is not None:
            raise AmbiguousStopCondition(
                'Specify either repeat count or end date, not both'
            )

        return RecurrenceConfig(
            start_date=start_date,
            end_date=end_date,
            duration_seconds=int((end_date - start_date).total_seconds()),
            cadence=cadence,
            interval=self._clamp(interval, self.settings.max_repeat_interval),
            repeat_end_date=repeat_end_date,
            repeat_count=(
                self._clamp(repeat_count, self.settings.max_repeat_count)
                if repeat_count is not None else None
            ),
        )

    def _extract_cadence(self, raw: Any) -> Cadence:
        if _is_empty(raw):
            raise MissingField('Missing repeat type')
        value = strip_markup(str(raw)).lower()
        try:
            return Cadence(value)
        except ValueError:
            raise InvalidCadence(f"Invalid repeat type: {value!r}")

    def _extract_interval(self, raw: Any) -> int:
        if _is_empty(raw):
            raise MissingField('Missing repeat interval')
        try:
            interval = int(raw)
        except (TypeError, ValueError):
            raise InvalidInterval(f"Invalid repeat interval: {raw!r}")

        if interval < 1 or interval > self.settings.max_repeat_interval:
            if self.settings.strict:
                raise InvalidInterval(
                    f"Repeat interval must be between 1 and "
                    f"{self.settings.max_repeat_interval}, got {interval}"
                )
            logger.warning(f"Clamping out-of-range repeat interval {interval}")
        return interval

    def _extract_dates(self, raw_start: Any, raw_end: Any):
        if _is_empty(raw_start):
            raise MissingField('Missing start date')

        if _is_empty(raw_end):
            if self.settings.strict:
                raise MissingField('Missing end date')
            raw_end = raw_start

        try:
            start_date = parse_datetime(raw_start)
            end_date = parse_datetime(raw_end)
        except ValueError as e:
            raise InvalidDate(f"Invalid date format: {e}")

        if start_date > end_date:
            raise InvalidRange('Start date must be before end date')

        if self.settings.strict:
            max_future = self.clock() + relativedelta(
                years=self.settings.max_years_in_future
            )
            if start_date > max_future:
                raise DateTooFarFuture(
                    f"Start date {start_date.isoformat()} is more than "
                    f"{self.settings.max_years_in_future} years in the future"
                )

        return start_date, end_date

    def _extract_repeat_end_date(self, raw: Any) -> Optional[datetime]:
        if _is_empty(raw):
            return None
        try:
            return parse_datetime(raw)
        except ValueError as e:
            if self.settings.strict:
                raise InvalidDate(f"Invalid repeat end date: {e}")
            logger.error(f"Repeat end date parsing error: {e}")
            return None

    def _extract_repeat_count(self, raw: Any) -> Optional[int]:
        if _is_empty(raw):
            return None
        try:
            count = int(raw)
        except (TypeError, ValueError):
            raise InvalidCount(f"Invalid repeat count: {raw!r}")

        if count < 1 or count > self.settings.max_repeat_count:
            if self.settings.strict:
                raise InvalidCount(
                    f"Repeat count must be between 1 and "
                    f"{self.settings.max_repeat_count}, got {count}"
                )
            logger.warning(f"Clamping out-of-range repeat count {count}")
        return count

    @staticmethod
    def _clamp(value: int, upper: int) -> int:
        return max(1, min(upper, value))
