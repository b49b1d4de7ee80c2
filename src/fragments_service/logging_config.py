import logging
import os
import re
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MASK = "***MASKED***"

# Bearer credentials and `authorization=`/`token:` style key-value pairs
_SECRETS = re.compile(
    r"(?P<prefix>\bbearer\s+|\b(?:authorization|token)[\"']?\s*[:=]\s*[\"']?(?!bearer\b))"
    r"(?P<secret>[^\s,;\"'}]+)",
    re.IGNORECASE,
)


def mask_secrets(text: str) -> str:
    return _SECRETS.sub(lambda m: m.group("prefix") + MASK, text)


class SensitiveDataFilter(logging.Filter):
    """Rewrite each record's rendered message with credentials masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = mask_secrets(message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


def setup_logging(component_name: str, log_level: str | None = None) -> logging.Logger:
    """Attach a masked stdout handler to ``component_name`` once.

    The level comes from ``log_level``, then ``LOG_LEVEL``, then INFO.
    """
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler.addFilter(SensitiveDataFilter())
        logger.addHandler(handler)
        logger.propagate = False
    return logger
