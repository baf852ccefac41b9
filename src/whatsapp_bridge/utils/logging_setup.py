"""
Logging setup for WhatsApp Bridge

Console output for the operator, a rotating detailed file for debugging.
Every record carries the WhatsApp session id so logs from several bridges
sharing one credential store can be told apart.
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER = 'whatsapp_bridge'

# Third-party loggers that flood DEBUG output (PIL logs every PNG chunk of a QR image)
QUIET_LOGGERS = ('discord', 'discord.http', 'discord.gateway', 'pymongo', 'asyncio', 'PIL')

_SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 ** 2,
    "GB": 1024 ** 3,
}


def parse_size(value: str) -> int:
    """Convert a human size such as '10MB' into bytes"""
    match = re.fullmatch(r'\s*(\d+)\s*([KMG]?B)?\s*', str(value).upper())
    if not match:
        raise ValueError(f"Invalid size value: {value!r}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit or "B"]


def parse_level(level: str) -> int:
    """Map a level name to its logging constant"""
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Invalid log level: {level!r}")
    return value


class SessionContextFilter(logging.Filter):
    """Stamps the WhatsApp session id onto every record"""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = self.session_id
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    session_id: str = "default"
) -> logging.Logger:
    """Setup application logging with console and file handlers"""
    numeric_level = parse_level(level)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric_level)

    # Called again (config reload): keep handlers, apply the new level
    if logger.handlers:
        for handler in logger.handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(numeric_level)
        return logger

    detailed_formatter = logging.Formatter(
        '%(asctime)s - [%(session_id)s] %(name)s - %(levelname)s - '
        '%(filename)s:%(lineno)d - %(message)s'
    )
    simple_formatter = logging.Formatter(
        '%(asctime)s - [%(session_id)s] %(levelname)s - %(message)s'
    )
    session_filter = SessionContextFilter(session_id)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(simple_formatter)
    console_handler.addFilter(session_filter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(session_filter)
        logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging initialized for session {session_id}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger with the given name"""
    return logging.getLogger(f'{ROOT_LOGGER}.{name}')
