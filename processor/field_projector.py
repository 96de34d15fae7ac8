"""Projection of source record fields onto generated occurrences."""
import logging
from datetime import datetime
from typing import Any

from access.access_gate import AccessGate
from processor.models import (
    DATE_FORMAT,
    END_DATE,
    PARENT_EVENT_ID,
    REPEAT_FIELDS,
    START_DATE,
    Actor,
    EngineSettings,
    OccurrenceInterval,
    Record,
    RecordSchema,
)
from processor.sanitizer import sanitize_markup, sanitize_title

logger = logging.getLogger(__name__)

# Never copied from the source onto an occurrence
EXCLUDED_FIELDS = frozenset({
    'record_id', 'vid', 'title', START_DATE, END_DATE,
    'created', 'changed', PARENT_EVENT_ID,
}) | REPEAT_FIELDS


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0
    return False


class FieldProjector:
    """Builds occurrence drafts from a source record."""

    def __init__(
        self,
        access_gate: AccessGate,
        schema: RecordSchema,
        settings: EngineSettings
    ):
        self.access_gate = access_gate
        self.schema = schema
        self.settings = settings

    def build_title(self, source: Record, start: datetime) -> str:
        """
        Build the title of an occurrence starting at ``start``.

        Args:
            source: Source event record
            start: Occurrence start

        Returns:
            Sanitized title like "Yoga (Jan 2, 2024)", truncated to the
            configured maximum length
        """
        label = f"{start:%b} {start.day}, {start.year}"
        return sanitize_title(
            f"{source.title} ({label})", self.settings.title_max_length
        )

    def build_draft(self, source: Record, interval: OccurrenceInterval) -> Record:
        """Create an unsaved occurrence record for one interval."""
        return Record(
            record_id=None,
            record_type=source.record_type,
            title=self.build_title(source, interval.start),
            owner_id=source.owner_id,
            published=source.published,
            fields={
                START_DATE: interval.start.strftime(DATE_FORMAT),
                END_DATE: interval.end.strftime(DATE_FORMAT),
                PARENT_EVENT_ID: source.record_id,
            },
        )

    def project(self, actor: Actor, source: Record, draft: Record) -> None:
        """
        Copy the non-recurrence fields of ``source`` onto ``draft`` in place.

        Fields that are empty, missing from the draft's record type, or not
        viewable by ``actor`` are skipped. A failure on one field is logged
        and does not stop the others.

        Args:
            actor: Acting user
            source: Source event record
            draft: Occurrence draft to mutate
        """
        for field_name, value in source.fields.items():
            if field_name in EXCLUDED_FIELDS or _is_empty(value):
                continue

            if not self.schema.has_field(draft.record_type, field_name):
                continue

            if not self.access_gate.can_copy_field(actor, source, field_name):
                logger.debug(
                    f"Skipping field '{field_name}': no view access for "
                    f"actor {actor.actor_id}"
                )
                continue

            try:
                draft.fields[field_name] = self._sanitize_value(value)
            except Exception as e:
                logger.warning(f"Failed to copy field {field_name}: {e}")

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return sanitize_markup(value)
        if isinstance(value, list):
            return [
                sanitize_markup(item) if isinstance(item, str) else item
                for item in value
            ]
        return value
