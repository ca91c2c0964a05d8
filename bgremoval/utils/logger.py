import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from bgremoval.utils.constants import LOGS_DIR, LOG_FILE_NAME

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


def parse_size(value, default: int = DEFAULT_MAX_BYTES) -> int:
    """Turn a rotation size such as "5MB", "512KB" or 1048576 into bytes."""
    if isinstance(value, int):
        return value if value > 0 else default

    text = str(value).strip().upper()
    multiplier = 1
    if text.endswith('MB'):
        multiplier = 1024 * 1024
        text = text[:-2]
    elif text.endswith('KB'):
        multiplier = 1024
        text = text[:-2]
    elif text.endswith('B'):
        text = text[:-1]

    try:
        size = int(text) * multiplier
    except ValueError:
        return default
    return size if size > 0 else default


class Logger:
    """Named logger sharing one console + rotating file configuration."""

    _configured = False

    @classmethod
    def setup(cls, settings: dict, log_dir: Optional[Path] = None):
        """
        Global configuration for all Logger instances.

        Args:
            settings: Dictionary containing 'level', 'rotation', 'backup_count', 'file'
            log_dir: Directory for the rotating log file (defaults to <project>/logs)
        """
        if cls._configured:
            return

        level_name = str(settings.get('level', 'INFO')).upper()
        level = getattr(logging, level_name, logging.INFO)

        root = logging.getLogger()
        root.setLevel(level)

        if not root.handlers:
            formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            root.addHandler(console_handler)

            if settings.get('file', True):
                try:
                    target_dir = Path(log_dir) if log_dir else LOGS_DIR
                    target_dir.mkdir(parents=True, exist_ok=True)

                    file_handler = RotatingFileHandler(
                        target_dir / LOG_FILE_NAME,
                        maxBytes=parse_size(settings.get('rotation', '5MB')),
                        backupCount=int(settings.get('backup_count', 5)),
                    )
                    file_handler.setFormatter(formatter)
                    root.addHandler(file_handler)
                except OSError as e:
                    root.warning(f"File logging disabled: {e}")

        cls._configured = True

    @classmethod
    def reset(cls):
        """Allow setup() to run again (used by tests)."""
        cls._configured = False

    def __init__(self, name: str = "BgRemoval"):
        self.logger = logging.getLogger(name)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def debug(self, message: str):
        self.logger.debug(message)

    def critical(self, message: str):
        self.logger.critical(message)
