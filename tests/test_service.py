from SharePointExpenses.core import service
from SharePointExpenses.core.auth import AuthExpiredError
from SharePointExpenses.core.signals import signals
from SharePointExpenses.status import status
from tests.base import BaseTestCase


class Flaky:
    """Raises ServiceUnavailableException a given number of times, then returns."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise status.ServiceUnavailableException('HTTP 503: busy')
        return value


class AsyncWorkerTests(BaseTestCase):

    def run_worker(self, func, *args, **kwargs):
        worker = service.AsyncWorker(func, *args, **kwargs)
        results, errors = [], []
        worker.resultReady.connect(results.append)
        worker.errorOccurred.connect(errors.append)
        # Runs in the calling thread
        worker.run()
        return results, errors

    def test_result(self):
        results, errors = self.run_worker(lambda a, b=0: a + b, 1, b=2)
        self.assertEqual(results, [3])
        self.assertEqual(errors, [])

    def test_auth_expired_requests_authentication(self):
        requested = []

        def _slot() -> None:
            requested.append(True)

        signals.authenticationRequested.connect(_slot)
        self.addCleanup(signals.authenticationRequested.disconnect, _slot)

        def func():
            raise AuthExpiredError('no account')

        results, errors = self.run_worker(func)
        self.assertTrue(requested)
        self.assertIsInstance(errors[0], AuthExpiredError)

    def test_retries_service_unavailable_only(self):
        flaky = Flaky(2)
        results, errors = self.run_worker(flaky, 'ok', max_attempts=3, wait_seconds=0)
        self.assertEqual(results, ['ok'])
        self.assertEqual(flaky.calls, 3)

        flaky = Flaky(5)
        results, errors = self.run_worker(flaky, 'ok', max_attempts=3, wait_seconds=0)
        self.assertEqual(results, [])
        self.assertIsInstance(errors[0], status.ServiceUnavailableException)
        self.assertEqual(flaky.calls, 3)

    def test_no_retry_by_default(self):
        flaky = Flaky(1)
        results, errors = self.run_worker(flaky, 'ok', wait_seconds=0)
        self.assertEqual(flaky.calls, 1)
        self.assertIsInstance(errors[0], status.ServiceUnavailableException)

    def test_other_errors_are_not_retried(self):
        calls = []

        def func():
            calls.append(1)
            raise status.RemoteRejectedException('HTTP 400', status_code=400)

        results, errors = self.run_worker(func, max_attempts=3, wait_seconds=0)
        self.assertEqual(len(calls), 1)
        self.assertIsInstance(errors[0], status.RemoteRejectedException)


class StartAsynchronousTests(BaseTestCase):

    def test_returns_result(self):
        self.assertEqual(service.start_asynchronous(lambda: 42), 42)

    def test_status_exceptions_propagate(self):
        def func():
            raise status.ListNotFoundException('Empresas')

        with self.assertRaises(status.ListNotFoundException):
            service.start_asynchronous(func)

    def test_argument_errors_propagate(self):
        def func():
            raise ValueError('Unknown gastos field(s): importe')

        with self.assertRaises(ValueError):
            service.start_asynchronous(func)

    def test_auth_expired_becomes_auth_required(self):
        def func():
            raise AuthExpiredError('no account')

        with self.assertRaises(status.AuthRequiredException):
            service.start_asynchronous(func)

    def test_unknown_errors(self):
        def func():
            raise RuntimeError('boom')

        with self.assertRaises(status.UnknownException):
            service.start_asynchronous(func)

    def test_retries(self):
        flaky = Flaky(1)
        self.assertEqual(service.start_asynchronous(flaky, 'ok', max_attempts=2, wait_seconds=0), 'ok')
        self.assertEqual(flaky.calls, 2)
