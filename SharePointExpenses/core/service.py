"""Running blocking remote calls off the main thread.

:func:`start_asynchronous` runs a function on an :class:`AsyncWorker` thread and
spins a local event loop until it finishes, so the UI keeps repainting while the
caller still gets a plain return value or exception.
"""

import logging
import time
from typing import Any, Callable, Dict

from PySide6 import QtCore

from .auth import AuthExpiredError
from ..status import status

TOTAL_TIMEOUT: int = 180
MAX_RETRIES: int = 1


class AsyncWorker(QtCore.QThread):
    """
    Worker thread running a blocking function.

    Only :class:`status.ServiceUnavailableException` is retried, and only when
    ``max_attempts`` is above one. Callers should only allow retries for reads.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args

        self.max_attempts = kwargs.pop('max_attempts', MAX_RETRIES)
        self.wait_seconds = kwargs.pop('wait_seconds', 2.0)
        self.kwargs = kwargs

    def run(self) -> None:
        attempts = 0
        last_exception = None
        while attempts < self.max_attempts:
            attempts += 1
            try:
                result = self.func(*self.args, **self.kwargs)
                self.resultReady.emit(result)
                return
            except AuthExpiredError as ex:
                # Notify the GUI that interactive authentication is required
                from .signals import signals
                signals.authenticationRequested.emit()
                self.errorOccurred.emit(ex)
                return
            except status.ServiceUnavailableException as ex:
                last_exception = ex
                if attempts < self.max_attempts:
                    logging.debug(f'Attempt {attempts}/{self.max_attempts} failed, retrying: {ex}')
                    time.sleep(self.wait_seconds)
            except Exception as ex:
                self.errorOccurred.emit(ex)
                return
        # All retries exhausted
        self.errorOccurred.emit(last_exception)


def start_asynchronous(func: Callable[..., Any], *args: Any, total_timeout: int = TOTAL_TIMEOUT,
                       **kwargs: Any) -> Any:
    """
    Run a blocking function on a worker thread and wait for it in a local event loop.

    Without a Qt application instance the function is called directly.

    Args:
        func: The blocking function to run.
        *args, **kwargs: Arguments passed to func. ``max_attempts`` and ``wait_seconds``
            are consumed by the worker.
        total_timeout (int): Seconds to wait before giving up.

    Returns:
        The result of the function on success.

    Raises:
        status.BaseStatusException: Status errors raised by the function, unchanged.
        status.AuthRequiredException: If interactive sign-in is required.
        status.ServiceUnavailableException: If the operation timed out.
        ValueError, TypeError: Argument errors raised by the function, unchanged.
        status.UnknownException: For any other error.
    """
    if QtCore.QCoreApplication.instance() is None:
        kwargs.pop('max_attempts', None)
        kwargs.pop('wait_seconds', None)
        return func(*args, **kwargs)

    worker: AsyncWorker = AsyncWorker(func, *args, **kwargs)

    result: Dict[str, Any] = {'data': None, 'error': None, 'done': False}
    loop: QtCore.QEventLoop = QtCore.QEventLoop()

    worker.resultReady.connect(lambda d: (result.update({'data': d, 'done': True}), loop.quit()))
    worker.errorOccurred.connect(lambda err: (result.update({'error': err, 'done': True}), loop.quit()))

    timer: QtCore.QTimer = QtCore.QTimer()
    timer.setSingleShot(True)
    timer.setInterval(total_timeout * 1000)
    timer.timeout.connect(loop.quit)

    # Start the worker from inside the loop so a quick result cannot quit it before it runs
    QtCore.QTimer.singleShot(0, worker.start)
    timer.start()
    loop.exec()
    timer.stop()

    if not result['done']:
        worker.terminate()
        worker.wait()
        raise status.ServiceUnavailableException('Operation timed out.')
    worker.wait()

    if result['error']:
        err = result['error']

        # Propagate known status exceptions directly
        if isinstance(err, (status.BaseStatusException, ValueError, TypeError)):
            raise err

        if isinstance(err, AuthExpiredError):
            raise status.AuthRequiredException(str(err))

        # Unknown errors
        raise status.UnknownException(str(err))
    return result['data']
