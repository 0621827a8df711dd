"""
Logging infrastructure for the HMM engine.

All loggers hang off the ``hmm_engine`` package logger. Its handlers are
built from the ``logging`` config section: a console handler on stdout and,
when ``file_logging`` is set, a file handler on ``log_file``. Call
``configure_logging`` again after loading a config file so the new settings
take effect.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from .config import get_config, LOG_LEVELS

ROOT_LOGGER_NAME = 'hmm_engine'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = 'hmm_engine.log'


def _level_value(level: str) -> int:
    name = str(level).upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {', '.join(LOG_LEVELS)}")
    return getattr(logging, name)


class _ConsoleHandler(logging.StreamHandler):
    """Stream handler that writes to whatever ``sys.stdout`` is at emit time."""

    def __init__(self):
        super().__init__(sys.stdout)

    def emit(self, record):
        self.stream = sys.stdout
        super().emit(record)


class HMMEngineLogger:
    """Owns the handlers of the ``hmm_engine`` package logger."""

    def __init__(self):
        self._loggers = {}
        self.configure()

    @property
    def root(self) -> logging.Logger:
        return logging.getLogger(ROOT_LOGGER_NAME)

    def configure(self):
        """
        Rebuild handlers from the ``logging`` config section.

        Raises:
            ValueError: If the configured level is not a known level name
        """
        settings = get_config('logging')
        level = _level_value(settings.get('level') or 'INFO')
        formatter = logging.Formatter(settings.get('format') or DEFAULT_FORMAT)

        root = self.root
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        root.setLevel(level)
        root.propagate = False

        console_handler = _ConsoleHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

        if settings.get('file_logging'):
            self.enable_file_logging(settings.get('log_file'))

    def get_logger(self, name: str) -> logging.Logger:
        if name.startswith(ROOT_LOGGER_NAME):
            full_name = name
        else:
            full_name = f'{ROOT_LOGGER_NAME}.{name}'

        if full_name not in self._loggers:
            self._loggers[full_name] = logging.getLogger(full_name)

        return self._loggers[full_name]

    def set_level(self, level: str):
        """Set the level of the package logger and all its handlers."""
        value = _level_value(level)
        self.root.setLevel(value)
        for handler in self.root.handlers:
            handler.setLevel(value)

    def enable_file_logging(self, log_file: Optional[str] = None):
        """Send log records to ``log_file``, replacing any previous log file."""
        if log_file is None:
            log_file = get_config('logging', 'log_file') or DEFAULT_LOG_FILE

        self.disable_file_logging()

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(self.root.level)
        file_handler.setFormatter(logging.Formatter(get_config('logging', 'format') or DEFAULT_FORMAT))
        self.root.addHandler(file_handler)

    def disable_file_logging(self):
        for handler in [h for h in self.root.handlers if isinstance(h, logging.FileHandler)]:
            self.root.removeHandler(handler)
            handler.close()


_logger_manager = HMMEngineLogger()


def get_logger(name: str = 'main') -> logging.Logger:
    """Get a logger below the ``hmm_engine`` package logger."""
    return _logger_manager.get_logger(name)


def configure_logging():
    """Re-read the ``logging`` config section and rebuild handlers."""
    _logger_manager.configure()


def set_log_level(level: str):
    _logger_manager.set_level(level)


def enable_file_logging(log_file: Optional[str] = None):
    _logger_manager.enable_file_logging(log_file)


def disable_file_logging():
    _logger_manager.disable_file_logging()
