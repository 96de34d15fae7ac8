"""Entry points called when a source event record is created, updated or deleted."""
import logging

from processor.errors import InvalidConfiguration, PermissionDenied
from processor.models import Actor, Record
from sync.occurrence_synchronizer import OccurrenceSynchronizer

logger = logging.getLogger(__name__)


class LifecycleHooks:
    """
    Translate record lifecycle events into synchronizer calls.

    Hooks never raise: engine errors are logged and reported as False so the
    save or delete that triggered them still succeeds.
    """

    def __init__(self, synchronizer: OccurrenceSynchronizer, record_type: str = 'event'):
        self.synchronizer = synchronizer
        self.record_type = record_type

    def on_source_record_created(self, record: Record, actor: Actor) -> bool:
        if not self._applies_to(record) or not record.repeat_enabled:
            return False
        return self._resync(record, actor)

    def on_source_record_updated(self, record: Record, actor: Actor) -> bool:
        if not self._applies_to(record):
            return False
        if record.repeat_enabled:
            return self._resync(record, actor)
        return self._cleanup(record, actor)

    def on_source_record_deleted(self, record: Record, actor: Actor) -> bool:
        if not self._applies_to(record):
            return False
        return self._cleanup(record, actor)

    def _applies_to(self, record: Record) -> bool:
        # Generated occurrences are derived data and never expand themselves
        return record.record_type == self.record_type and not record.is_generated

    def _resync(self, record: Record, actor: Actor) -> bool:
        try:
            self.synchronizer.resync(actor, record)
            return True
        except (PermissionDenied, InvalidConfiguration) as e:
            logger.warning(
                f"Repeats not generated for record {record.record_id}: {e}",
                extra={'error_type': type(e).__name__}
            )
        except Exception as e:
            logger.error(
                f"Repeat generation failed for record {record.record_id}: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
        return False

    def _cleanup(self, record: Record, actor: Actor) -> bool:
        try:
            report = self.synchronizer.delete_occurrences(actor, record)
            return not report.skipped
        except Exception as e:
            logger.error(
                f"Failed to delete repeats of record {record.record_id}: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return False
