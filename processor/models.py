"""Data models for recurring event expansion."""
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional


class Cadence(str, Enum):
    """Supported repeat units."""
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'


# Field names of the recurrence rule embedded in a source record
REPEAT_ENABLED = 'repeat_enabled'
REPEAT_TYPE = 'repeat_type'
REPEAT_INTERVAL = 'repeat_interval'
REPEAT_END_DATE = 'repeat_end_date'
REPEAT_COUNT = 'repeat_count'
START_DATE = 'start_date'
END_DATE = 'end_date'
PARENT_EVENT_ID = 'parent_event_id'

REPEAT_FIELDS = frozenset({
    REPEAT_ENABLED, REPEAT_TYPE, REPEAT_INTERVAL, REPEAT_END_DATE, REPEAT_COUNT
})

DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'



def _as_bool(value: Any) -> bool:
    """Interpret flags that arrive as strings ('true', '0', 'off'...) or native values."""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


@dataclass
class Record:
    """A stored event record, either a source event or a generated occurrence."""
    record_id: Optional[str]
    record_type: str
    title: str
    owner_id: str
    published: bool = True
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def parent_event_id(self) -> Optional[str]:
        return self.fields.get(PARENT_EVENT_ID)

    @property
    def is_generated(self) -> bool:
        return bool(self.parent_event_id)

    @property
    def repeat_enabled(self) -> bool:
        return _as_bool(self.fields.get(REPEAT_ENABLED))

    def to_attributes(self) -> Dict[str, Any]:
        """Flatten the record into the attribute map handed to storage."""
        attributes = dict(self.fields)
        attributes.update({
            'title': self.title,
            'owner_id': self.owner_id,
            'published': self.published,
        })
        return attributes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Record':
        """Build a record from a flat dict (as sent in a lifecycle event)."""
        data = dict(data)
        event_id = data.pop('event_id', None)
        record_id = data.pop('record_id', None) or event_id
        return cls(
            record_id=record_id,
            record_type=data.pop('record_type', 'event'),
            title=data.pop('title', ''),
            owner_id=str(data.pop('owner_id', '')),
            published=_as_bool(data.pop('published', True)),
            fields=data,
        )


@dataclass(frozen=True)
class RecordSchema:
    """Field names that exist on each record type."""
    fields_by_type: Dict[str, FrozenSet[str]]

    def has_field(self, record_type: str, field_name: str) -> bool:
        return field_name in self.fields_by_type.get(record_type, frozenset())


DEFAULT_SCHEMA = RecordSchema(fields_by_type={
    'event': frozenset({
        START_DATE, END_DATE, PARENT_EVENT_ID,
        'description', 'location', 'category', 'url', 'tags',
        'organizer', 'contact_email', 'capacity', 'image_url',
        *REPEAT_FIELDS,
    }),
})


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf the engine acts."""
    actor_id: str
    capabilities: FrozenSet[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'actor_id': self.actor_id,
            'capabilities': sorted(self.capabilities),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Actor':
        return cls(
            actor_id=str(data.get('actor_id', '')),
            capabilities=frozenset(data.get('capabilities') or []),
        )


@dataclass(frozen=True)
class EngineSettings:
    """Safety caps and behaviour switches for the recurrence engine."""
    max_repeat_count: int = 100
    max_repeat_interval: int = 365
    max_years_in_future: int = 5
    batch_threshold: int = 50
    flush_every: int = 10
    title_max_length: int = 255
    strict: bool = True

    # Hard ceiling on sequencer advances; not configurable
    MAX_ITERATIONS: ClassVar[int] = 100

    @classmethod
    def from_env(cls) -> 'EngineSettings':
        """
        Read settings from environment variables.

        Returns:
            EngineSettings with defaults for any variable that is unset
        """
        return cls(
            max_repeat_count=int(os.environ.get('MAX_REPEAT_COUNT', '100')),
            max_repeat_interval=int(os.environ.get('MAX_REPEAT_INTERVAL', '365')),
            max_years_in_future=int(os.environ.get('MAX_YEARS_IN_FUTURE', '5')),
            batch_threshold=int(os.environ.get('BATCH_THRESHOLD', '50')),
            strict=os.environ.get('STRICT_MODE', 'true').strip().lower()
            not in ('0', 'false', 'no', 'off'),
        )


@dataclass(frozen=True)
class RecurrenceConfig:
    """Validated, normalized recurrence rule plus the source interval."""
    start_date: datetime
    end_date: datetime
    duration_seconds: int
    cadence: Cadence
    interval: int
    repeat_end_date: Optional[datetime] = None
    repeat_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_date': self.start_date.strftime(DATE_FORMAT),
            'end_date': self.end_date.strftime(DATE_FORMAT),
            'duration_seconds': self.duration_seconds,
            'cadence': self.cadence.value,
            'interval': self.interval,
            'repeat_end_date': (
                self.repeat_end_date.strftime(DATE_FORMAT)
                if self.repeat_end_date else None
            ),
            'repeat_count': self.repeat_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecurrenceConfig':
        repeat_end_date = data.get('repeat_end_date')
        repeat_count = data.get('repeat_count')
        return cls(
            start_date=datetime.strptime(data['start_date'], DATE_FORMAT),
            end_date=datetime.strptime(data['end_date'], DATE_FORMAT),
            duration_seconds=int(data['duration_seconds']),
            cadence=Cadence(data['cadence']),
            interval=int(data['interval']),
            repeat_end_date=(
                datetime.strptime(repeat_end_date, DATE_FORMAT)
                if repeat_end_date else None
            ),
            repeat_count=int(repeat_count) if repeat_count is not None else None,
        )


@dataclass(frozen=True)
class OccurrenceInterval:
    """Start and end of one generated occurrence."""
    start: datetime
    end: datetime


@dataclass
class DeletionReport:
    """Result of removing the generated occurrences of a source record."""
    deleted: int = 0
    skipped: List[str] = field(default_factory=list)


@dataclass
class ResyncResult:
    """Result of a resync operation."""
    generated: int = 0
    deleted: int = 0
    deferred: bool = False
    skipped_deletions: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
