"""SQS queue for deferred occurrence materialization."""
import json
import logging
from typing import Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from processor.models import Actor, RecurrenceConfig

logger = logging.getLogger(__name__)


class SQSBatchQueue:
    """Producer for batch materialization jobs."""

    def __init__(self, queue_url: str, region_name: Optional[str] = None):
        """
        Initialize SQS client.

        Args:
            queue_url: URL of the SQS queue consumed by the batch worker
            region_name: AWS region; the environment default when omitted
        """
        self.queue_url = queue_url
        self.sqs = boto3.client('sqs', region_name=region_name)
        logger.info(f"Initialized SQSBatchQueue for queue: {queue_url}")

    def enqueue(self, source_id: str, config: RecurrenceConfig, actor: Actor) -> str:
        """
        Schedule materialization of a source record's occurrences.

        Args:
            source_id: ID of the source event record
            config: Recurrence config to expand
            actor: User the job runs as

        Returns:
            SQS message ID
        """
        body = json.dumps({
            'source_id': source_id,
            'config': config.to_dict(),
            'actor': actor.to_dict(),
        })

        try:
            response = self.sqs.send_message(QueueUrl=self.queue_url, MessageBody=body)
        except ClientError as e:
            logger.error(f"Error queueing batch job for record {source_id}: {e}")
            raise

        message_id = response['MessageId']
        logger.info(
            f"Queued batch materialization for record {source_id}",
            extra={'message_id': message_id}
        )
        return message_id


def parse_message(body: str) -> Tuple[str, RecurrenceConfig, Actor]:
    """
    Decode a job message produced by enqueue().

    Raises:
        KeyError, ValueError: If the message is malformed
    """
    payload = json.loads(body)
    return (
        payload['source_id'],
        RecurrenceConfig.from_dict(payload['config']),
        Actor.from_dict(payload['actor']),
    )
