"""Shared fixtures for recurring event tests."""
from datetime import datetime

import boto3
import pytest
from moto import mock_aws

from access.access_gate import (
    CREATE_EVENT,
    CREATE_RECURRING,
    DELETE_OWN_EVENT,
    EDIT_OWN_EVENT,
    AccessGate,
    CapabilityAccessControl,
)
from processor.config_extractor import ConfigExtractor
from processor.field_projector import FieldProjector
from processor.models import DEFAULT_SCHEMA, Actor, EngineSettings, Record
from storage.dynamodb_storage import DynamoDBStorage
from sync.occurrence_synchronizer import OccurrenceSynchronizer

TABLE_NAME = 'test-events'
FIXED_NOW = datetime(2024, 1, 1, 0, 0, 0)


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never talks to a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table():
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


@pytest.fixture
def storage(dynamodb_table):
    """Create DynamoDBStorage instance with mock table."""
    return DynamoDBStorage(TABLE_NAME, region_name='us-east-1')


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def owner():
    """Owner of the source events with every capability generation needs."""
    return Actor(
        actor_id='user-1',
        capabilities=frozenset({
            CREATE_EVENT, CREATE_RECURRING, EDIT_OWN_EVENT, DELETE_OWN_EVENT
        }),
    )


@pytest.fixture
def access_control():
    return CapabilityAccessControl(restricted_fields=['contact_email'])


@pytest.fixture
def access_gate(access_control):
    return AccessGate(access_control, strict=True)


@pytest.fixture
def extractor(settings):
    return ConfigExtractor(settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def projector(access_gate, settings):
    return FieldProjector(access_gate, DEFAULT_SCHEMA, settings)


@pytest.fixture
def synchronizer(storage, access_gate, extractor, projector, settings):
    return OccurrenceSynchronizer(
        storage=storage,
        access_gate=access_gate,
        extractor=extractor,
        projector=projector,
        settings=settings,
    )


@pytest.fixture
def make_source(storage):
    """Store a recurring source event and return it with its new ID."""
    def _make_source(**overrides):
        fields = {
            'start_date': '2024-01-01T09:00:00',
            'end_date': '2024-01-01T10:00:00',
            'repeat_enabled': True,
            'repeat_type': 'daily',
            'repeat_interval': 1,
            'repeat_count': 3,
            'location': 'Community Hall',
            'description': 'Morning stretch',
        }
        fields.update(overrides.pop('fields', {}))
        record = Record(
            record_id=None,
            record_type='event',
            title=overrides.pop('title', 'Yoga'),
            owner_id=overrides.pop('owner_id', 'user-1'),
            published=overrides.pop('published', True),
            fields={k: v for k, v in fields.items() if v is not None},
        )
        record.record_id = storage.create(record.record_type, record.to_attributes())
        return record

    return _make_source


def occurrence_intervals(storage, source_id):
    """(start_date, end_date) pairs of the occurrences generated for a source."""
    ids = storage.query('event', {'parent_event_id': source_id})
    return sorted(
        (record.fields['start_date'], record.fields['end_date'])
        for record in storage.load_many(ids)
    )
