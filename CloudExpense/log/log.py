"""Logging setup for CloudExpense.

Records go to stdout and to an in-memory :class:`TankHandler`, so recent messages can be
inspected at runtime. Qt's own messages are routed through Python logging. The initial level
can be set with the ``CLOUDEXPENSE_LOG_LEVEL`` environment variable, e.g. ``INFO``.
"""
import logging
import os
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL_ENV_KEY = 'CLOUDEXPENSE_LOG_LEVEL'
LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)


def level_from_env(default=LOG_LEVEL):
    """Return the level named by ``CLOUDEXPENSE_LOG_LEVEL``, or ``default`` when unset or invalid."""
    name = os.environ.get(LOG_LEVEL_ENV_KEY, '').strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    if level not in LEVELS:
        return default
    return level


def set_logging_level(level):
    """
    Sets the level of the root logger and of its handlers.

    Args:
        level (int): One of the standard logging levels, e.g. logging.INFO.

    Raises:
        ValueError: If the level is not an int or not a standard level.
    """
    if not isinstance(level, int):
        raise ValueError('Logging level must be an integer.')
    if level not in LEVELS:
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def qt_message_handler(mode, context, message):
    """Forward a Qt message to the 'Qt' logger. Fatal messages exit the process."""
    level = QT_LEVELS.get(mode, logging.INFO)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=None):
    """
    Configures the root logger with a stream handler, the in-memory tank and the Qt bridge.

    Args:
        enable_stream_handler (bool): Log to stdout.
        enable_qt_handler (bool): Route Qt messages through Python logging.
        log_level (int, optional): Level for the logger and its handlers. Read from the
            environment when omitted.
    """
    if log_level is None:
        log_level = level_from_env()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear all handlers to avoid duplicate records when called again
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

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """Return the TankHandler installed on the root logger, or None."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps formatted log messages in memory, dropping the oldest beyond ``max_records``.

    Attributes:
        tank (list[tuple[int, str, str]]): Level, module and formatted message of each record.
        max_records (int): Size limit of the tank.
    """

    def __init__(self, max_records=10_000):
        super().__init__()
        self.tank = []
        self.max_records = max_records

    def emit(self, record):
        try:
            message = self.format(record)
            self.tank.append((record.levelno, record.module, message))
            if len(self.tank) > self.max_records:
                del self.tank[:len(self.tank) - self.max_records]
        except (Exception, KeyboardInterrupt):
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET, module=None):
        """
        Returns the stored messages at or above ``level``.

        Args:
            level (int, optional): The minimum logging level. Defaults to logging.NOTSET.
            module (str, optional): Only return messages logged from this module, e.g. 'repository'.

        Returns:
            list[str]: The formatted messages, oldest first.
        """
        return [msg for lvl, mod, msg in self.tank if lvl >= level and (module is None or mod == module)]

    def clear_logs(self):
        self.tank.clear()
