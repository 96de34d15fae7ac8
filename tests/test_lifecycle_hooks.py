"""Tests for LifecycleHooks."""
from unittest.mock import Mock

import pytest

from conftest import occurrence_intervals
from processor.errors import GenerationFailed, InvalidConfiguration, MissingField
from processor.models import Actor, DeletionReport, Record
from sync.lifecycle_hooks import LifecycleHooks


@pytest.fixture
def hooks(synchronizer):
    return LifecycleHooks(synchronizer)


class TestWithStorage:
    """End-to-end hook behaviour against the mock table."""

    def test_created_generates_occurrences(self, hooks, storage, owner, make_source):
        source = make_source()

        assert hooks.on_source_record_created(source, owner) is True
        assert len(occurrence_intervals(storage, source.record_id)) == 3

    def test_updated_regenerates(self, hooks, storage, owner, make_source):
        source = make_source()
        hooks.on_source_record_created(source, owner)

        source.fields['repeat_count'] = 5
        assert hooks.on_source_record_updated(source, owner) is True

        assert len(occurrence_intervals(storage, source.record_id)) == 5

    def test_disabling_repeat_removes_occurrences(self, hooks, storage, owner, make_source):
        source = make_source()
        hooks.on_source_record_created(source, owner)

        source.fields['repeat_enabled'] = False
        hooks.on_source_record_updated(source, owner)

        assert occurrence_intervals(storage, source.record_id) == []

    def test_deleted_removes_occurrences(self, hooks, storage, owner, make_source):
        source = make_source(fields={'repeat_count': 5})
        hooks.on_source_record_created(source, owner)

        assert hooks.on_source_record_deleted(source, owner) is True

        assert occurrence_intervals(storage, source.record_id) == []

    def test_created_without_repeat_does_nothing(self, hooks, storage, owner, make_source):
        source = make_source(fields={'repeat_enabled': False})

        assert hooks.on_source_record_created(source, owner) is False
        assert occurrence_intervals(storage, source.record_id) == []

    def test_permission_failure_does_not_raise(self, hooks, storage, make_source):
        source = make_source()

        assert hooks.on_source_record_created(source, Actor('user-1')) is False
        assert occurrence_intervals(storage, source.record_id) == []


class TestDispatch:
    """Hook dispatch with a mocked synchronizer."""

    @pytest.fixture
    def synchronizer_mock(self):
        mock = Mock()
        mock.delete_occurrences.return_value = DeletionReport(deleted=2)
        return mock

    @pytest.fixture
    def source(self):
        return Record(
            record_id='event-1',
            record_type='event',
            title='Shuffleboard',
            owner_id='user-1',
            fields={'repeat_enabled': True},
        )

    def test_generated_occurrences_are_ignored(self, synchronizer_mock):
        hooks = LifecycleHooks(synchronizer_mock)
        occurrence = Record(
            record_id='occ-1',
            record_type='event',
            title='Shuffleboard (Jan 2, 2024)',
            owner_id='user-1',
            fields={'parent_event_id': 'event-1', 'repeat_enabled': True},
        )

        assert hooks.on_source_record_updated(occurrence, Actor('user-1')) is False
        assert hooks.on_source_record_deleted(occurrence, Actor('user-1')) is False
        synchronizer_mock.resync.assert_not_called()
        synchronizer_mock.delete_occurrences.assert_not_called()

    def test_other_record_types_are_ignored(self, synchronizer_mock, source):
        hooks = LifecycleHooks(synchronizer_mock)
        source.record_type = 'article'

        assert hooks.on_source_record_created(source, Actor('user-1')) is False
        synchronizer_mock.resync.assert_not_called()

    @pytest.mark.parametrize('error', [
        InvalidConfiguration(MissingField('Missing start date')),
        GenerationFailed('table not found'),
        RuntimeError('unexpected'),
    ])
    def test_engine_errors_are_swallowed(self, synchronizer_mock, source, error):
        """Test the triggering save never fails because of the engine."""
        synchronizer_mock.resync.side_effect = error
        hooks = LifecycleHooks(synchronizer_mock)

        assert hooks.on_source_record_updated(source, Actor('user-1')) is False

    def test_cleanup_failure_is_swallowed(self, synchronizer_mock, source):
        synchronizer_mock.delete_occurrences.side_effect = RuntimeError('boom')
        hooks = LifecycleHooks(synchronizer_mock)

        assert hooks.on_source_record_deleted(source, Actor('user-1')) is False

    def test_skipped_deletions_report_false(self, synchronizer_mock, source):
        synchronizer_mock.delete_occurrences.return_value = DeletionReport(
            deleted=1, skipped=['occ-2']
        )
        hooks = LifecycleHooks(synchronizer_mock)

        assert hooks.on_source_record_deleted(source, Actor('user-1')) is False
