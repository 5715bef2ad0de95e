"""Tests for the data access layer: retries, fallbacks and demo data."""

from unittest import mock

import pytest
from django.db import DatabaseError, IntegrityError, InterfaceError, OperationalError

from bookings import demo_data
from bookings.db import (
    QueryPolicy, check_database_connection, classify_error, execute_sql, is_transient,
    run_query, safe_query,
)
from bookings.exceptions import DatabaseUnavailable

FAST = QueryPolicy(timeout=None, retries=2, backoff_base=0, backoff_max=0)


class TestQueryPolicy:

    def test_backoff_doubles_up_to_cap(self):
        policy = QueryPolicy(backoff_base=1.0, backoff_max=10.0)
        assert policy.backoff(0) == 1.0
        assert policy.backoff(1) == 2.0
        assert policy.backoff(2) == 4.0
        assert policy.backoff(4) == 10.0

    def test_default_reads_settings(self, settings):
        settings.QUERY_POLICY = {'TIMEOUT': 3.0, 'RETRIES': 4, 'BACKOFF_BASE': 0.5, 'BACKOFF_MAX': 2.0}
        policy = QueryPolicy.default(fallback=[])
        assert policy.timeout == 3.0
        assert policy.retries == 4
        assert policy.backoff_max == 2.0
        assert policy.fallback == []

    def test_replace_returns_new_policy(self):
        policy = QueryPolicy(retries=2)
        assert policy.replace(retries=0).retries == 0
        assert policy.retries == 2


class TestClassifyError:

    @pytest.mark.parametrize("exc, kind", [
        (OperationalError("could not connect to server: Connection refused"), "connection"),
        (OperationalError("server closed the connection unexpectedly"), "connection"),
        (OperationalError("canceling statement due to statement timeout"), "timeout"),
        (OperationalError("database is locked"), "timeout"),
        (IntegrityError("UNIQUE constraint failed: bookings_booking.booking_reference"), "constraint"),
        (InterfaceError("cursor already closed"), "connection"),
        (DatabaseError("syntax error at or near SELEKT"), "unknown"),
    ])
    def test_kinds(self, exc, kind):
        assert classify_error(exc) == kind

    def test_only_connection_and_timeout_are_transient(self):
        assert is_transient(OperationalError("connection refused"))
        assert is_transient(OperationalError("query timed out"))
        assert not is_transient(IntegrityError("unique"))


class TestRunQuery:

    @pytest.mark.django_db(transaction=True)
    def test_transient_error_is_retried(self):
        """A dropped connection is retried and the later result returned."""
        func = mock.Mock(side_effect=[OperationalError("server closed the connection unexpectedly"), "ok"])
        assert run_query(func, policy=FAST) == "ok"
        assert func.call_count == 2

    def test_arguments_are_forwarded(self):
        func = mock.Mock(return_value=3)
        assert run_query(func, 1, 2, key="value", policy=FAST) == 3
        func.assert_called_once_with(1, 2, key="value")

    @pytest.mark.django_db(transaction=True)
    def test_exhausted_retries_raise_database_unavailable(self):
        func = mock.Mock(side_effect=OperationalError("connection refused"))
        with pytest.raises(DatabaseUnavailable) as excinfo:
            run_query(func, policy=FAST)
        assert func.call_count == 3
        assert excinfo.value.kind == "connection"
        assert excinfo.value.status_code == 503

    def test_timeout_message(self):
        func = mock.Mock(side_effect=OperationalError("canceling statement due to statement timeout"))
        with pytest.raises(DatabaseUnavailable) as excinfo:
            run_query(func, policy=FAST.replace(retries=0))
        assert excinfo.value.kind == "timeout"
        assert "timed out" in excinfo.value.message

    def test_non_transient_error_is_not_retried(self):
        func = mock.Mock(side_effect=IntegrityError("UNIQUE constraint failed"))
        with pytest.raises(IntegrityError):
            run_query(func, policy=FAST)
        assert func.call_count == 1

    @pytest.mark.django_db(transaction=True)
    def test_backoff_sleeps_between_attempts(self):
        func = mock.Mock(side_effect=[OperationalError("connection refused")] * 2 + ["ok"])
        policy = QueryPolicy(timeout=None, retries=2, backoff_base=1.0, backoff_max=10.0)
        with mock.patch("bookings.db.time.sleep") as sleep:
            assert run_query(func, policy=policy) == "ok"
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.django_db
    def test_no_retry_inside_transaction(self):
        """The test transaction is already broken after a failure, so give up at once."""
        func = mock.Mock(side_effect=OperationalError("connection refused"))
        with pytest.raises(DatabaseUnavailable):
            run_query(func, policy=FAST)
        assert func.call_count == 1


class TestSafeQuery:

    def test_returns_fallback_on_failure(self):
        func = mock.Mock(side_effect=DatabaseError("relation does not exist"))
        assert safe_query(func, policy=FAST.replace(fallback=[])) == []

    @pytest.mark.django_db(transaction=True)
    def test_returns_fallback_after_retries(self):
        func = mock.Mock(side_effect=OperationalError("connection refused"))
        assert safe_query(func, policy=FAST.replace(fallback=0)) == 0
        assert func.call_count == 3

    def test_demo_data_only_in_demo_mode(self, settings):
        func = mock.Mock(side_effect=OperationalError("connection refused"))
        policy = FAST.replace(fallback=[], demo_dataset='ships', retries=0)

        settings.DEMO_MODE = False
        assert safe_query(func, policy=policy) == []

        settings.DEMO_MODE = True
        assert safe_query(func, policy=policy) == demo_data.DATASETS['ships']

    def test_demo_rows_are_copies(self, settings):
        settings.DEMO_MODE = True
        func = mock.Mock(side_effect=OperationalError("connection refused"))
        rows = safe_query(func, policy=FAST.replace(demo_dataset='ships', retries=0))
        rows[0]['name'] = "Changed"
        assert demo_data.DATASETS['ships'][0]['name'] != "Changed"

    def test_success_passes_through(self):
        assert safe_query(lambda: [1, 2], policy=FAST.replace(fallback=[])) == [1, 2]


@pytest.mark.django_db
class TestConnectionCheck:

    def test_execute_sql_returns_dicts(self):
        assert execute_sql("SELECT 1 AS value") == [{"value": 1}]

    def test_connected(self):
        status = check_database_connection()
        assert status == {"connected": True, "message": "Database connection successful", "isDemo": False}

    def test_failure_reports_message(self, settings):
        settings.DEMO_MODE = True
        with mock.patch("bookings.db.execute_sql", side_effect=DatabaseUnavailable(kind="connection")):
            status = check_database_connection()
        assert status["connected"] is False
        assert status["message"].startswith("Database connection failed")
        assert status["isDemo"] is True
