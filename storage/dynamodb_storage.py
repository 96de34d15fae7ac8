"""DynamoDB-backed record storage with a compensating transaction log."""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from processor.errors import TransactionError
from processor.models import Record

logger = logging.getLogger(__name__)

KEY_ATTRIBUTE = 'event_id'
RECORD_ATTRIBUTES = ('record_type', 'title', 'owner_id', 'published')


def _to_dynamodb(value: Any) -> Any:
    """Convert Python values into types boto3 can serialize."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, list):
        return [_to_dynamodb(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_dynamodb(item) for key, item in value.items()}
    return value


def _from_dynamodb(value: Any) -> Any:
    """Convert boto3 Decimals back into ints and floats."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, list):
        return [_from_dynamodb(item) for item in value]
    if isinstance(value, dict):
        return {key: _from_dynamodb(item) for key, item in value.items()}
    return value


class DynamoDBStorage:
    """Record store for source events and generated occurrences."""

    BATCH_GET_SIZE = 100  # DynamoDB BatchGetItem limit

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region; the environment default when omitted
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self._undo_log: Optional[List[Tuple[str, Any]]] = None
        logger.info(f"Initialized DynamoDBStorage for table: {table_name}")

    @property
    def in_transaction(self) -> bool:
        return self._undo_log is not None

    def begin(self) -> None:
        """
        Open a transaction boundary.

        DynamoDB has no long-lived transactions, so every write made until
        commit() or rollback() is recorded together with its compensation.

        Raises:
            TransactionError: If a transaction is already open
        """
        if self.in_transaction:
            raise TransactionError('Transaction already open')
        self._undo_log = []

    def commit(self) -> None:
        if not self.in_transaction:
            raise TransactionError('No open transaction to commit')
        self._undo_log = None

    def rollback(self) -> None:
        """
        Undo every write made since begin(), newest first.

        Compensation failures are logged and the remaining entries are still
        replayed.
        """
        if not self.in_transaction:
            raise TransactionError('No open transaction to roll back')

        undo_log, self._undo_log = self._undo_log, None
        logger.warning(f"Rolling back {len(undo_log)} writes")

        for action, payload in reversed(undo_log):
            try:
                if action == 'delete':
                    self.table.delete_item(Key={KEY_ATTRIBUTE: payload})
                else:
                    self.table.put_item(Item=payload)
            except ClientError as e:
                logger.error(f"Error compensating {action} during rollback: {e}")

    def create(self, record_type: str, attributes: Dict[str, Any]) -> str:
        """
        Store a new record.

        Args:
            record_type: Record type, e.g. 'event'
            attributes: Record attributes (title, owner_id, published, fields)

        Returns:
            Generated record ID
        """
        record_id = str(uuid.uuid4())
        item = {
            key: _to_dynamodb(value)
            for key, value in attributes.items()
            if value is not None and key != KEY_ATTRIBUTE
        }
        item[KEY_ATTRIBUTE] = record_id
        item['record_type'] = record_type

        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error creating {record_type} record: {e}")
            raise

        if self.in_transaction:
            self._undo_log.append(('delete', record_id))
        return record_id

    def load(self, record_id: str) -> Optional[Record]:
        """
        Load a single record.

        Returns:
            Record or None if it does not exist
        """
        try:
            response = self.table.get_item(Key={KEY_ATTRIBUTE: record_id})
        except ClientError as e:
            logger.error(f"Error loading record {record_id}: {e}")
            raise

        item = response.get('Item')
        return self._item_to_record(item) if item else None

    def load_many(self, record_ids: List[str]) -> List[Record]:
        """
        Load several records, in the order of ``record_ids``.

        Missing IDs are left out of the result.
        """
        items: Dict[str, dict] = {}

        for i in range(0, len(record_ids), self.BATCH_GET_SIZE):
            batch = record_ids[i:i + self.BATCH_GET_SIZE]
            request = {
                self.table_name: {'Keys': [{KEY_ATTRIBUTE: rid} for rid in batch]}
            }

            try:
                while request:
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                    for item in response.get('Responses', {}).get(self.table_name, []):
                        items[item[KEY_ATTRIBUTE]] = item
                    request = response.get('UnprocessedKeys') or None
            except ClientError as e:
                logger.error(
                    f"Error loading batch {i // self.BATCH_GET_SIZE + 1}: {e}"
                )
                raise

        return [
            self._item_to_record(items[rid]) for rid in record_ids if rid in items
        ]

    def delete(self, record_id: str) -> None:
        """
        Delete a record.

        Inside a transaction the item is read first so rollback can restore it.
        """
        try:
            snapshot = None
            if self.in_transaction:
                snapshot = self.table.get_item(
                    Key={KEY_ATTRIBUTE: record_id}
                ).get('Item')
            self.table.delete_item(Key={KEY_ATTRIBUTE: record_id})
        except ClientError as e:
            logger.error(f"Error deleting record {record_id}: {e}")
            raise

        if snapshot is not None:
            self._undo_log.append(('put', snapshot))

    def query(self, record_type: str, conditions: Dict[str, Any]) -> List[str]:
        """
        Find the IDs of records matching all equality ``conditions``.

        Args:
            record_type: Record type to match
            conditions: Attribute name to required value

        Returns:
            Matching record IDs
        """
        filter_expression = Attr('record_type').eq(record_type)
        for name, value in conditions.items():
            filter_expression = filter_expression & Attr(name).eq(_to_dynamodb(value))

        try:
            response = self.table.scan(FilterExpression=filter_expression)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    FilterExpression=filter_expression,
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error querying {record_type} records: {e}")
            raise

        return [item[KEY_ATTRIBUTE] for item in items]

    def _item_to_record(self, item: dict) -> Record:
        """Convert a DynamoDB item into a Record."""
        data = _from_dynamodb(item)
        fields = {
            key: value for key, value in data.items()
            if key != KEY_ATTRIBUTE and key not in RECORD_ATTRIBUTES
        }
        return Record(
            record_id=data[KEY_ATTRIBUTE],
            record_type=data.get('record_type', 'event'),
            title=data.get('title', ''),
            owner_id=str(data.get('owner_id', '')),
            published=bool(data.get('published', True)),
            fields=fields,
        )

