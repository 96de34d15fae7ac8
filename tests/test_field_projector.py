"""Unit tests for FieldProjector."""
from datetime import datetime

import pytest

from access.access_gate import AccessGate, CapabilityAccessControl
from processor.field_projector import FieldProjector
from processor.models import (
    DEFAULT_SCHEMA,
    Actor,
    EngineSettings,
    OccurrenceInterval,
    Record,
    RecordSchema,
)


@pytest.fixture
def source():
    return Record(
        record_id='event-1',
        record_type='event',
        title='Line Dancing',
        owner_id='user-1',
        published=True,
        fields={
            'start_date': '2024-01-01T18:00:00',
            'end_date': '2024-01-01T19:30:00',
            'repeat_enabled': True,
            'repeat_type': 'weekly',
            'repeat_interval': 1,
            'repeat_count': 4,
            'created': 1704067200,
            'location': 'Savannah Center',
            'description': '<p>All levels</p><script>track()</script>',
            'tags': ['dance', '<b>fun</b>'],
            'capacity': 40,
            'category': '',
            'contact_email': 'instructor@example.com',
            'internal_notes': 'not in the schema',
        },
    )


@pytest.fixture
def projector():
    gate = AccessGate(CapabilityAccessControl(restricted_fields=['contact_email']))
    return FieldProjector(gate, DEFAULT_SCHEMA, EngineSettings())


@pytest.fixture
def interval():
    return OccurrenceInterval(
        start=datetime(2024, 1, 8, 18, 0),
        end=datetime(2024, 1, 8, 19, 30),
    )


class TestBuildDraft:
    """Test cases for occurrence drafts."""

    def test_draft_fields(self, projector, source, interval):
        draft = projector.build_draft(source, interval)

        assert draft.record_id is None
        assert draft.record_type == 'event'
        assert draft.title == 'Line Dancing (Jan 8, 2024)'
        assert draft.owner_id == 'user-1'
        assert draft.published is True
        assert draft.fields == {
            'start_date': '2024-01-08T18:00:00',
            'end_date': '2024-01-08T19:30:00',
            'parent_event_id': 'event-1',
        }

    def test_title_is_sanitized_and_truncated(self, source, interval):
        gate = AccessGate(CapabilityAccessControl())
        projector = FieldProjector(gate, DEFAULT_SCHEMA, EngineSettings(title_max_length=20))
        source.title = '<script>x()</script>Very Long Event Name Here'

        title = projector.build_title(source, interval.start)

        assert '<' not in title
        assert len(title) <= 20
        assert title.startswith('Very Long Event')


class TestProject:
    """Test cases for field projection."""

    def test_copies_allowed_fields(self, projector, source, interval):
        draft = projector.build_draft(source, interval)

        projector.project(Actor('user-1'), source, draft)

        assert draft.fields['location'] == 'Savannah Center'
        assert draft.fields['capacity'] == 40

    def test_skips_excluded_fields(self, projector, source, interval):
        draft = projector.build_draft(source, interval)

        projector.project(Actor('user-1'), source, draft)

        for name in ('repeat_enabled', 'repeat_type', 'repeat_interval',
                     'repeat_count', 'created'):
            assert name not in draft.fields
        assert draft.fields['start_date'] == '2024-01-08T18:00:00'

    def test_skips_empty_and_unknown_fields(self, projector, source, interval):
        draft = projector.build_draft(source, interval)

        projector.project(Actor('user-1'), source, draft)

        assert 'category' not in draft.fields
        assert 'internal_notes' not in draft.fields

    def test_sanitizes_strings(self, projector, source, interval):
        draft = projector.build_draft(source, interval)

        projector.project(Actor('user-1'), source, draft)

        assert 'script' not in draft.fields['description']
        assert 'All levels' in draft.fields['description']
        assert draft.fields['tags'] == ['dance', 'fun']

    def test_restricted_field_depends_on_actor(self, projector, source, interval):
        """Test a field without view capability is copied only for actors that have it."""
        plain_draft = projector.build_draft(source, interval)
        projector.project(Actor('user-1'), source, plain_draft)

        privileged_draft = projector.build_draft(source, interval)
        projector.project(
            Actor('user-1', frozenset({'view field contact_email'})),
            source,
            privileged_draft
        )

        assert 'contact_email' not in plain_draft.fields
        assert privileged_draft.fields['contact_email'] == 'instructor@example.com'

    def test_target_type_without_schema_gets_nothing(self, source, interval):
        gate = AccessGate(CapabilityAccessControl())
        projector = FieldProjector(gate, RecordSchema({}), EngineSettings())
        draft = projector.build_draft(source, interval)

        projector.project(Actor('user-1'), source, draft)

        assert set(draft.fields) == {'start_date', 'end_date', 'parent_event_id'}

    def test_field_failure_does_not_stop_projection(self, projector, source, interval, monkeypatch):
        """Test one failing field is skipped and the rest are still copied."""
        original = projector._sanitize_value

        def flaky(value):
            if value == 'Savannah Center':
                raise ValueError('boom')
            return original(value)

        monkeypatch.setattr(projector, '_sanitize_value', flaky)
        draft = projector.build_draft(source, interval)

        projector.project(Actor('user-1'), source, draft)

        assert 'location' not in draft.fields
        assert draft.fields['capacity'] == 40
