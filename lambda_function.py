"""AWS Lambda handler for recurring event expansion."""
import json
import logging
import os
import time
from typing import Any, Dict

from access.access_gate import AccessGate, CapabilityAccessControl
from processor.config_extractor import ConfigExtractor
from processor.field_projector import FieldProjector
from processor.models import DEFAULT_SCHEMA, Actor, EngineSettings, Record
from storage.batch_queue import SQSBatchQueue, parse_message
from storage.dynamodb_storage import DynamoDBStorage
from sync.lifecycle_hooks import LifecycleHooks
from sync.occurrence_synchronizer import OccurrenceSynchronizer

# Attributes every LogRecord carries; anything else came in through `extra`
_STANDARD_LOG_ATTRIBUTES = set(
    logging.LogRecord('', 0, '', 0, '', (), None).__dict__
) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any `extra` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOG_ATTRIBUTES and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    body['duration_seconds'] = round(time.time() - start_time, 2)
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _is_sqs_event(event: Dict[str, Any]) -> bool:
    records = event.get('Records') or []
    return bool(records) and all(r.get('eventSource') == 'aws:sqs' for r in records)


def handle_batch_messages(
    event: Dict[str, Any],
    synchronizer: OccurrenceSynchronizer,
    start_time: float
) -> Dict[str, Any]:
    """
    Materialize deferred occurrences for each queued job.

    Failed messages are returned in ``batchItemFailures`` so SQS redelivers
    only those.
    """
    logger = logging.getLogger(__name__)
    failures = []
    created_total = 0

    for message in event['Records']:
        message_id = message.get('messageId')
        try:
            source_id, config, actor = parse_message(message['body'])
            created_total += synchronizer.materialize_batch(source_id, config, actor)
        except Exception as e:
            logger.error(
                f"Batch job {message_id} failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            failures.append({'itemIdentifier': message_id})

    response = _response(200, {
        'message': 'Batch materialization finished',
        'statistics': {
            'jobs_received': len(event['Records']),
            'jobs_failed': len(failures),
            'occurrences_created': created_total,
        },
    }, start_time)
    response['batchItemFailures'] = failures
    return response


def handle_lifecycle_event(
    event: Dict[str, Any],
    hooks: LifecycleHooks,
    storage: DynamoDBStorage,
    start_time: float
) -> Dict[str, Any]:
    """
    Dispatch a created/updated/deleted notification for a source record.

    The record is taken from ``event['record']`` when present, otherwise
    loaded by ``event['record_id']``. Deleted records that can no longer be
    loaded are identified by ID alone.
    """
    action = event.get('action')
    actor = Actor.from_dict(event.get('actor') or {})

    if action not in ('created', 'updated', 'deleted'):
        return _response(400, {'message': f"Unsupported action: {action!r}"}, start_time)

    if event.get('record'):
        record = Record.from_dict(event['record'])
    elif event.get('record_id'):
        record = storage.load(event['record_id'])
        if record is None and action == 'deleted':
            record = Record(
                record_id=event['record_id'],
                record_type=event.get('record_type', 'event'),
                title='',
                owner_id='',
            )
    else:
        record = None

    if record is None:
        return _response(404, {'message': 'Source record not found'}, start_time)

    if action == 'created':
        synced = hooks.on_source_record_created(record, actor)
    elif action == 'updated':
        synced = hooks.on_source_record_updated(record, actor)
    else:
        synced = hooks.on_source_record_deleted(record, actor)

    return _response(200, {
        'message': 'Lifecycle event processed',
        'action': action,
        'record_id': record.record_id,
        'occurrences_synced': synced,
    }, start_time)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for recurring event expansion.

    Args:
        event: Lifecycle event payload or SQS batch of materialization jobs
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'events')
    queue_url = os.environ.get('QUEUE_URL')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    restricted_fields = [
        name.strip()
        for name in os.environ.get('RESTRICTED_FIELDS', '').split(',')
        if name.strip()
    ]

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={'table_name': table_name, 'batch_enabled': bool(queue_url)}
    )

    try:
        settings = EngineSettings.from_env()

        # Instantiate components
        storage = DynamoDBStorage(table_name=table_name)
        batch_queue = SQSBatchQueue(queue_url=queue_url) if queue_url else None
        access_gate = AccessGate(
            CapabilityAccessControl(restricted_fields), strict=settings.strict
        )
        synchronizer = OccurrenceSynchronizer(
            storage=storage,
            access_gate=access_gate,
            extractor=ConfigExtractor(settings),
            projector=FieldProjector(access_gate, DEFAULT_SCHEMA, settings),
            settings=settings,
            batch_queue=batch_queue,
        )

        if _is_sqs_event(event):
            response = handle_batch_messages(event, synchronizer, start_time)
        else:
            response = handle_lifecycle_event(
                event, LifecycleHooks(synchronizer), storage, start_time
            )

        logger.info(
            "Lambda execution completed",
            extra={
                'status_code': response['statusCode'],
                'duration_seconds': round(time.time() - start_time, 2)
            }
        )
        return response

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Recurring event sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
        }, start_time)
