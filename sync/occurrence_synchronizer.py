"""Keeps the generated occurrences of a recurring event in sync with it."""
import logging
from typing import Callable, List, Optional

from access.access_gate import AccessGate
from processor.config_extractor import ConfigExtractor
from processor.date_sequencer import estimate_count, sequence
from processor.errors import (
    GenerationFailed,
    InvalidConfiguration,
    PerOccurrenceFailure,
    PermissionDenied,
    ValidationError,
)
from processor.field_projector import FieldProjector
from processor.models import (
    END_DATE,
    PARENT_EVENT_ID,
    START_DATE,
    Actor,
    DeletionReport,
    EngineSettings,
    OccurrenceInterval,
    RecurrenceConfig,
    Record,
    ResyncResult,
)
from storage.batch_queue import SQSBatchQueue
from storage.dynamodb_storage import DynamoDBStorage

logger = logging.getLogger(__name__)


class OccurrenceSynchronizer:
    """Delete-then-regenerate engine for generated occurrences."""

    def __init__(
        self,
        storage: DynamoDBStorage,
        access_gate: AccessGate,
        extractor: ConfigExtractor,
        projector: FieldProjector,
        settings: EngineSettings,
        batch_queue: Optional[SQSBatchQueue] = None,
        flush_callback: Optional[Callable[[int], None]] = None
    ):
        """
        Initialize the synchronizer.

        Args:
            storage: Record store with a transaction boundary
            access_gate: Authorization checks
            extractor: Recurrence config extractor
            projector: Builds occurrence drafts from the source record
            settings: Safety caps and strictness mode
            batch_queue: Queue for large expansions; without one every
                expansion is materialized inline
            flush_callback: Called with the running created count after
                every ``settings.flush_every`` creations
        """
        self.storage = storage
        self.access_gate = access_gate
        self.extractor = extractor
        self.projector = projector
        self.settings = settings
        self.batch_queue = batch_queue
        self.flush_callback = flush_callback

    def resync(self, actor: Actor, record: Record) -> ResyncResult:
        """
        Regenerate all occurrences of a recurring source record.

        Existing generated occurrences are deleted and the series is rebuilt
        from the current rule inside one transaction boundary. Expansions
        larger than the batch threshold are handed to the batch queue.

        Args:
            actor: Acting user
            record: Source event record

        Returns:
            ResyncResult with created/deleted counts and per-occurrence errors

        Raises:
            PermissionDenied: If the gate check fails (nothing is changed)
            InvalidConfiguration: If the rule is invalid (nothing is changed)
            GenerationFailed: If generation failed and was rolled back
        """
        if not self.access_gate.can_generate(actor, record):
            logger.warning(
                f"User {actor.actor_id} attempted to create repeats without "
                f"permission for record {record.record_id}"
            )
            raise PermissionDenied(
                f"User {actor.actor_id} may not create repeats for "
                f"record {record.record_id}"
            )

        try:
            self.extractor.validate(record)
        except ValidationError as e:
            logger.error(
                f"Invalid repeat parameters for record {record.record_id}: {e}",
                extra={'error_type': type(e).__name__}
            )
            raise InvalidConfiguration(e) from e

        result = ResyncResult()
        self.storage.begin()

        try:
            # Deletion precedes re-extraction; both sit inside the same
            # rollback scope
            report = self._delete_generated(actor, record)
            result.deleted = report.deleted
            result.skipped_deletions = report.skipped

            config = self.extractor.extract(record)

            if self.batch_queue and estimate_count(config) > self.settings.batch_threshold:
                self.batch_queue.enqueue(record.record_id, config, actor)
                result.deferred = True
            else:
                result.generated = self._materialize(
                    actor, record, sequence(config), result.errors
                )

            self.storage.commit()

        except Exception as e:
            self.storage.rollback()
            logger.error(
                f"Failed to generate repeats for record {record.record_id}: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            raise GenerationFailed(str(e)) from e

        logger.info(
            f"Resync complete for record {record.record_id}",
            extra={
                'generated': result.generated,
                'deleted': result.deleted,
                'deferred': result.deferred,
                'skipped_deletions': len(result.skipped_deletions),
                'errors': len(result.errors),
            }
        )
        return result

    def delete_occurrences(self, actor: Actor, record: Record) -> DeletionReport:
        """
        Remove every generated occurrence of a source record.

        Occurrences the actor may not delete are left in place and reported.
        A storage failure restores the occurrences already removed.

        Args:
            actor: Acting user
            record: Source event record

        Returns:
            DeletionReport with the deleted count and skipped IDs
        """
        self.storage.begin()
        try:
            report = self._delete_generated(actor, record)
            self.storage.commit()
        except Exception:
            self.storage.rollback()
            raise

        logger.info(
            f"Deleted {report.deleted} repeat events for record {record.record_id}",
            extra={'skipped': len(report.skipped)}
        )
        return report

    def materialize_batch(
        self,
        source_id: str,
        config: RecurrenceConfig,
        actor: Actor
    ) -> int:
        """
        Batch worker entry point: create the occurrences of a deferred resync.

        Occurrences left by an earlier delivery of the same job are cleared
        first, so a redelivered message does not duplicate the series.

        Args:
            source_id: ID of the source event record
            config: Recurrence config captured at resync time
            actor: User the job runs as

        Returns:
            Number of occurrences created

        Raises:
            GenerationFailed: If the batch failed and was rolled back
        """
        source = self.storage.load(source_id)
        if source is None:
            logger.warning(f"Source record {source_id} no longer exists, skipping batch")
            return 0

        errors: List[str] = []
        self.storage.begin()

        try:
            self._delete_generated(actor, source)
            created = self._materialize(actor, source, sequence(config), errors)
            self.storage.commit()
        except Exception as e:
            self.storage.rollback()
            logger.error(
                f"Batch materialization failed for record {source_id}: {e}",
                exc_info=True
            )
            raise GenerationFailed(str(e)) from e

        if errors:
            logger.warning(
                f"Batch for record {source_id} finished with {len(errors)} errors"
            )
        return created

    def _delete_generated(self, actor: Actor, record: Record) -> DeletionReport:
        report = DeletionReport()
        if not record.record_id:
            return report

        occurrence_ids = self.storage.query(
            record.record_type, {PARENT_EVENT_ID: record.record_id}
        )
        if not occurrence_ids:
            return report

        for occurrence in self.storage.load_many(occurrence_ids):
            if not self.access_gate.can_delete(actor, occurrence):
                logger.warning(
                    f"User {actor.actor_id} may not delete repeat event "
                    f"{occurrence.record_id}, leaving it in place"
                )
                report.skipped.append(occurrence.record_id)
                continue

            self.storage.delete(occurrence.record_id)
            report.deleted += 1

        return report

    def _materialize(
        self,
        actor: Actor,
        source: Record,
        intervals: List[OccurrenceInterval],
        errors: List[str]
    ) -> int:
        created_count = 0

        for interval in intervals:
            if not self.access_gate.can_create(actor):
                logger.warning(
                    f"User {actor.actor_id} lost permission to create events, "
                    f"stopping after {created_count} repeats"
                )
                break

            try:
                draft = self.projector.build_draft(source, interval)
                self.projector.project(actor, source, draft)
                self._validate_draft(draft)
                self.storage.create(draft.record_type, draft.to_attributes())
                created_count += 1
            except Exception as e:
                message = (
                    f"Failed to create repeat event starting "
                    f"{interval.start.isoformat()}: {e}"
                )
                logger.error(message)
                errors.append(message)
                continue

            if self.flush_callback and created_count % self.settings.flush_every == 0:
                self.flush_callback(created_count)

        logger.info(f"Created {created_count} repeat events for record {source.record_id}")
        return created_count

    @staticmethod
    def _validate_draft(draft: Record) -> None:
        if not draft.title:
            raise PerOccurrenceFailure('Repeat event has an empty title')
        if not draft.fields.get(START_DATE) or not draft.fields.get(END_DATE):
            raise PerOccurrenceFailure('Repeat event is missing its dates')
        if not draft.parent_event_id:
            raise PerOccurrenceFailure('Repeat event has no parent reference')
