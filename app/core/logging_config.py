import os
import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Optional


class SecurityFilter(logging.Filter):
    """Filter to remove tokens and secrets from logs while preserving context"""

    SENSITIVE_PATTERNS = [
        # JWT tokens (eyJ...)
        (r'eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*', '[JWT_TOKEN]'),
        # Bearer tokens
        (r'Bearer\s+[A-Za-z0-9._-]+', 'Bearer [TOKEN]'),
        # Secret keys
        (r'secret["\s]*[:=]["\s]*[^,}\s]+', 'secret: [HIDDEN]'),
        # Database credentials inside URLs
        (r'://([^:/@\s]+):[^@\s]+@', r'://\1:[HIDDEN]@'),
    ]

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = str(record.msg)
            for pattern, replacement in self.SENSITIVE_PATTERNS:
                msg = re.sub(pattern, replacement, msg, flags=re.IGNORECASE)
            record.msg = msg
        return True


def setup_logging():
    """Configure application logging based on environment variables"""

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    sql_log_level = os.getenv("SQL_LOG_LEVEL", "WARNING").upper()
    log_format = os.getenv("LOG_FORMAT", "text").lower()

    # Resolve default log file within logs/app.log regardless of CWD
    default_log_path = Path(__file__).resolve().parents[2] / "logs" / "app.log"
    log_file_path = os.getenv("LOG_FILE_PATH", str(default_log_path))
    log_to_file = os.getenv("LOG_TO_FILE", "true").lower() == "true"
    booking_log_events = os.getenv("BOOKING_LOG_EVENTS", "true").lower() == "true"
    enable_security_filter = os.getenv("ENABLE_SECURITY_FILTER", "false").lower() == "true"

    if log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"module": "%(name)s", "message": "%(message)s", '
            '"line": %(lineno)d, "function": "%(funcName)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))
    root_logger.handlers.clear()

    security_filter = SecurityFilter() if enable_security_filter else None

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level, logging.INFO))
    console_handler.setFormatter(formatter)
    if security_filter:
        console_handler.addFilter(security_filter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(formatter)
        if security_filter:
            file_handler.addFilter(security_filter)
        root_logger.addHandler(file_handler)

    logging.getLogger('sqlalchemy.engine').setLevel(
        getattr(logging, sql_log_level, logging.WARNING)
    )
    logging.getLogger('app').setLevel(getattr(logging, log_level, logging.INFO))
    logging.getLogger('app.booking').setLevel(
        logging.INFO if booking_log_events else logging.ERROR
    )

    root_logger.info(
        "Logging initialized level=%s sql=%s file=%s",
        log_level,
        sql_log_level,
        log_file_path if log_to_file else "-",
    )
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given module name"""
    return logging.getLogger(f"app.{name}")


def log_booking_event(event_type: str, outcome: str, *,
                      owner_id: Optional[int] = None,
                      member_id: Optional[int] = None,
                      class_id: Optional[int] = None,
                      slot_id: Optional[int] = None):
    """Record the outcome of a booking operation"""
    booking_logger = get_logger("booking")
    parts = [f"{key}={value}" for key, value in (
        ("owner", owner_id), ("member", member_id),
        ("class", class_id), ("slot", slot_id),
    ) if value is not None]
    level = logging.INFO if outcome in ("ok", "noop") else logging.WARNING
    booking_logger.log(level, "Booking %s %s %s", event_type, outcome, " ".join(parts))
