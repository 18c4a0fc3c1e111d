from unittest import mock

from django.db import OperationalError
from django.test import SimpleTestCase, override_settings
from rest_framework.exceptions import ValidationError as DRFValidationError

from apps.common.db import STATEMENT_TIMEOUT_SQLSTATE, run_with_retry
from apps.common.exceptions import InsufficientStockError, TransientError, api_exception_handler


class _DriverError(Exception):
    def __init__(self, sqlstate=None):
        super().__init__("driver error")
        self.sqlstate = sqlstate


def _operational_error(sqlstate=None):
    try:
        raise OperationalError("db error") from _DriverError(sqlstate)
    except OperationalError as exc:
        return exc


@mock.patch("apps.common.db.transaction.get_connection")
class RunWithRetryTests(SimpleTestCase):
    def test_transient_error_is_retried_until_success(self, get_connection):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise _operational_error()
            return "ok"

        self.assertEqual(run_with_retry(flaky, attempts=3, backoff=0), "ok")
        self.assertEqual(len(calls), 3)
        self.assertEqual(get_connection.return_value.close_if_unusable_or_obsolete.call_count, 2)

    def test_exhausted_retries_surface_as_transient_error(self, get_connection):
        def always_fails():
            raise _operational_error()

        with self.assertRaises(TransientError):
            run_with_retry(always_fails, attempts=2, backoff=0)

    def test_statement_timeout_is_not_retried(self, get_connection):
        calls = []

        def times_out():
            calls.append(1)
            raise _operational_error(STATEMENT_TIMEOUT_SQLSTATE)

        with self.assertRaises(TransientError) as ctx:
            run_with_retry(times_out, attempts=3, backoff=0)
        self.assertEqual(len(calls), 1)
        self.assertEqual(ctx.exception.default_code, "retry_later")

    def test_zero_attempts_still_runs_once(self, get_connection):
        calls = []
        with override_settings(DB_RETRY_ATTEMPTS=0):
            result = run_with_retry(lambda: calls.append(1) or "done", backoff=0)
        self.assertEqual(result, "done")
        self.assertEqual(len(calls), 1)


class ExceptionHandlerTests(SimpleTestCase):
    def test_domain_error_payload_carries_code_and_facts(self):
        exc = InsufficientStockError(facts={"available": 0, "requested": 1})
        response = api_exception_handler(exc, {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_stock")
        self.assertEqual(response.data["facts"], {"available": 0, "requested": 1})
        self.assertEqual(response.data["fields"], {})

    def test_serializer_errors_are_reported_as_fields(self):
        response = api_exception_handler(DRFValidationError({"items": ["This field is required."]}), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertIn("items", response.data["fields"])
        self.assertEqual(response.data["facts"], {})
