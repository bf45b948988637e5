"""Logging for CashTag.

Everything logs through the root logger with plain ``logging.debug(...)`` style
calls. :func:`setup_logging` runs once on package import and installs:

- an optional stdout handler,
- the :class:`TankHandler`, which keeps the most recent records in memory so a
  log view can be filled after the fact,
- a bridge that forwards Qt's own warnings into the same logger.

An ERROR record in the tank emits ``signals.showLogs``.
"""
import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..signals import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

#: Number of records the tank keeps before dropping the oldest.
TANK_SIZE = 5000

LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """Apply `level` to the root logger and every handler attached to it.

    Raises:
        ValueError: If `level` is not one of the standard int levels.
    """
    if not isinstance(level, int):
        raise ValueError(f'Expected an int logging level, got {type(level).__name__}.')
    if level not in LEVELS:
        raise ValueError(f'{level} is not a standard logging level.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Forward a Qt message to the 'Qt' logger. A fatal Qt message exits."""
    level = QT_LEVELS.get(mode, logging.DEBUG)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """Reset the root logger's handlers and install CashTag's.

    Args:
        enable_stream_handler (bool): Echo records to stdout.
        enable_qt_handler (bool): Install :func:`qt_message_handler`.
        log_level (int): Level for the root logger and the new handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Repeated calls must not stack handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = []
    if enable_stream_handler:
        handlers.append(logging.StreamHandler(sys.stdout))
    handlers.append(TankHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """The :class:`TankHandler` of the root logger, or None before :func:`setup_logging`."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """Keeps formatted records in memory, newest last.

    Attributes:
        tank (collections.deque[tuple[int, str]]): ``(levelno, message)`` pairs,
            at most `maxlen` of them.
    """

    def __init__(self, maxlen=TANK_SIZE):
        super().__init__()
        self.tank = collections.deque(maxlen=maxlen)

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)
            return
        if record.levelno >= logging.ERROR:
            signals.showLogs.emit()

    def get_logs(self, level=logging.NOTSET):
        """Formatted messages at `level` or above, oldest first."""
        return [message for levelno, message in self.tank if levelno >= level]

    def clear_logs(self):
        self.tank.clear()
