"""
Concurrency helper tests

Row locks are only taken on PostgreSQL; SQLite serialises writers itself.
Exclusion-constraint violations are told apart from other integrity errors.
"""

from unittest.mock import MagicMock

from sqlalchemy.exc import IntegrityError

from facility_booking.models import Facility
from facility_booking.utils.db_helpers import acquire_row_lock, is_overlap_violation, is_postgres


class TestRowLock:

    def test_acquire_row_lock_uses_for_update_on_postgres(self):
        db = MagicMock()
        db.bind.dialect.name = 'postgresql'

        query_mock = MagicMock()
        filter_mock = MagicMock()
        for_update_mock = MagicMock()
        query_mock.filter.return_value = filter_mock
        filter_mock.with_for_update.return_value = for_update_mock
        for_update_mock.first.return_value = MagicMock()
        db.query.return_value = query_mock

        acquire_row_lock(db, Facility, Facility.id == 'facility-1')

        filter_mock.with_for_update.assert_called_once_with()
        for_update_mock.first.assert_called_once()

    def test_acquire_row_lock_skips_locking_on_sqlite(self):
        db = MagicMock()
        db.bind.dialect.name = 'sqlite'

        query_mock = MagicMock()
        filter_mock = MagicMock()
        query_mock.filter.return_value = filter_mock
        filter_mock.first.return_value = MagicMock()
        db.query.return_value = query_mock

        acquire_row_lock(db, Facility, Facility.id == 'facility-1')

        filter_mock.with_for_update.assert_not_called()
        filter_mock.first.assert_called_once()

    def test_is_postgres_without_bind(self):
        db = MagicMock()
        db.bind = None
        assert is_postgres(db) is False


class TestOverlapViolation:

    def test_exclusion_constraint_detected(self):
        exc = IntegrityError(
            "INSERT", {},
            Exception('conflicting key value violates exclusion constraint "no_active_facility_request_overlap"')
        )
        assert is_overlap_violation(exc)

    def test_other_integrity_errors_ignored(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: facility_requests.request_number"))
        assert not is_overlap_violation(exc)
