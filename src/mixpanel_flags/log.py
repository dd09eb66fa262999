"""
Logging setup for the Mixpanel feature flags SDK.

The package logs through a single ``mixpanel_flags`` logger. A stream handler
with a redacting filter is attached once, unless the application has already
configured handlers for it.
"""

import logging
import re
from typing import Any

BRAND_NAME = 'Mixpanel'
LOGGER_NAME = 'mixpanel_flags'


def sanitize_log_data(data: Any) -> Any:
    """Sanitize data before logging to prevent log injection"""
    if isinstance(data, str):
        return data.replace('\n', '\\n').replace('\r', '\\r').replace('\t', '\\t')
    elif isinstance(data, dict):
        return {k: sanitize_log_data(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [sanitize_log_data(item) for item in data]
    else:
        return data


class SecurityFilter(logging.Filter):
    """Filter to keep project tokens and credentials out of log output"""

    SENSITIVE_PATTERNS = [
        re.compile(r'(token["\']?\s*[:=]\s*["\']?)([^"\'\s&]+)', re.IGNORECASE),
        re.compile(r'(secret["\']?\s*[:=]\s*["\']?)([^"\'\s&]+)', re.IGNORECASE),
        re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^"\'\s&]+)', re.IGNORECASE),
        re.compile(r'(authorization["\']?\s*[:=]\s*["\']?)([^"\'&]+)', re.IGNORECASE),
    ]

    def filter(self, record):
        if record.args:
            try:
                record.msg = record.getMessage()
                record.args = None
            except (TypeError, ValueError):
                pass

        message = str(record.msg)
        for pattern in self.SENSITIVE_PATTERNS:
            message = pattern.sub(r'\1[REDACTED]', message)
        record.msg = message

        return True


class MixpanelFormatter(logging.Formatter):
    def format(self, record):
        record.service = BRAND_NAME
        return super().format(record)


def get_logger() -> logging.Logger:
    """Return the SDK logger, attaching the default handler on first use"""
    sdk_logger = logging.getLogger(LOGGER_NAME)
    if not sdk_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(MixpanelFormatter(
            '%(asctime)s - %(service)s - %(levelname)s - %(message)s'
        ))
        handler.addFilter(SecurityFilter())
        sdk_logger.addHandler(handler)
        sdk_logger.setLevel(logging.INFO)
    return sdk_logger


def enable_debug_logging():
    get_logger().setLevel(logging.DEBUG)


logger = get_logger()
