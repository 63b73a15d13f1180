import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

LOG_LEVELS = (logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL)

# Most recent records kept by the tank
TANK_SIZE = 5000

# Third-party loggers that are too chatty at DEBUG
QUIET_LOGGERS = ('msal', 'urllib3')

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """Set the level of the root logger and its handlers.

    Raises:
        ValueError: If ``level`` is not one of the standard logging levels.
    """
    if not isinstance(level, int) or level not in LOG_LEVELS:
        raise ValueError(f'Invalid logging level {level!r}, use one of the standard levels, e.g. logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    logging.getLogger('Qt').log(QT_LEVELS.get(mode, logging.WARNING), message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """Configure the root logger.

    A :class:`TankHandler` is always installed so sync failures can be browsed later.
    Output goes to stdout only when ``enable_stream_handler`` is set.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(log_level)
    root_logger.addHandler(tank_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank_handler():
    """Return the installed :class:`TankHandler`, or None if logging is not set up."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """Keeps the most recent formatted records in memory.

    Attributes:
        tank (collections.deque[tuple[int, str]]): (level, message) pairs, oldest first.
    """

    def __init__(self, size=TANK_SIZE):
        super().__init__()
        self.tank = collections.deque(maxlen=size)

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET):
        """Return the stored messages at or above ``level``."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
