"""
Configuration for the local and remote flag providers.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import urlparse

from .exceptions import MixpanelFlagsConfigError
from .log import enable_debug_logging, logger

DEFAULT_API_HOST = "api.mixpanel.com"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10
DEFAULT_POLLING_INTERVAL_SECONDS = 60
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 5.0

ALLOWED_URL_SCHEMES = {'http', 'https'}

ENV_PROJECT_TOKEN = 'MIXPANEL_PROJECT_TOKEN'
ENV_API_HOST = 'MIXPANEL_API_HOST'
ENV_REQUEST_TIMEOUT = 'MIXPANEL_REQUEST_TIMEOUT'
ENV_ENABLE_POLLING = 'MIXPANEL_FLAGS_POLLING'
ENV_POLLING_INTERVAL = 'MIXPANEL_FLAGS_POLLING_INTERVAL'


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def _env_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise MixpanelFlagsConfigError(f"{name} must be an integer, got {value!r}")


def build_base_url(api_host: str) -> str:
    """Validate ``api_host`` and turn it into a base URL without trailing slash.

    A bare host name is served over https; an explicit http(s) URL is kept.
    """
    if not api_host or not isinstance(api_host, str):
        raise MixpanelFlagsConfigError("API host must be a non-empty string")

    url = api_host.strip()
    if '://' not in url:
        url = f"https://{url}"

    parsed = urlparse(url)
    if parsed.scheme not in ALLOWED_URL_SCHEMES:
        raise MixpanelFlagsConfigError(f"Invalid URL scheme. Only {sorted(ALLOWED_URL_SCHEMES)} are allowed")
    if not parsed.netloc:
        raise MixpanelFlagsConfigError("Invalid API host: missing hostname")

    if parsed.hostname in ('localhost', '127.0.0.1', '0.0.0.0'):
        logger.warning("Mixpanel: Using localhost API host - ensure this is intended for development only")

    return url.rstrip('/')


@dataclass
class FlagsConfig:
    """Options shared by every flags provider"""
    project_token: str
    api_host: str = DEFAULT_API_HOST
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    debug: bool = False

    def __post_init__(self):
        if not self.project_token or not isinstance(self.project_token, str) or not self.project_token.strip():
            raise MixpanelFlagsConfigError("Mixpanel project_token is required")
        self.project_token = self.project_token.strip()

        if isinstance(self.request_timeout_seconds, bool) or not isinstance(self.request_timeout_seconds, int) \
                or self.request_timeout_seconds <= 0:
            raise MixpanelFlagsConfigError("request_timeout_seconds must be a positive integer")

        self.base_url = build_base_url(self.api_host)

        if self.debug:
            enable_debug_logging()

    @classmethod
    def _env_kwargs(cls) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if os.getenv(ENV_PROJECT_TOKEN):
            kwargs['project_token'] = os.getenv(ENV_PROJECT_TOKEN)
        if os.getenv(ENV_API_HOST):
            kwargs['api_host'] = os.getenv(ENV_API_HOST)
        if os.getenv(ENV_REQUEST_TIMEOUT):
            kwargs['request_timeout_seconds'] = _env_int(ENV_REQUEST_TIMEOUT, os.getenv(ENV_REQUEST_TIMEOUT))
        return kwargs

    @classmethod
    def from_env(cls, **overrides):
        """Build a config from MIXPANEL_* environment variables.

        Keyword arguments take precedence over the environment.
        """
        kwargs = cls._env_kwargs()
        kwargs.update(overrides)
        if 'project_token' not in kwargs:
            raise MixpanelFlagsConfigError(
                f"project_token is required (provide directly or via the {ENV_PROJECT_TOKEN} environment variable)"
            )
        return cls(**kwargs)


@dataclass
class LocalFlagsConfig(FlagsConfig):
    """Options for locally evaluated flags"""
    enable_polling: bool = True
    polling_interval_seconds: int = DEFAULT_POLLING_INTERVAL_SECONDS
    shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS

    def __post_init__(self):
        super().__post_init__()

        if isinstance(self.polling_interval_seconds, bool) or not isinstance(self.polling_interval_seconds, int) \
                or self.polling_interval_seconds < 1:
            raise MixpanelFlagsConfigError("polling_interval_seconds must be at least 1 second")

        if self.shutdown_timeout_seconds is None or self.shutdown_timeout_seconds < 0:
            raise MixpanelFlagsConfigError("shutdown_timeout_seconds must not be negative")

    @classmethod
    def _env_kwargs(cls) -> Dict[str, Any]:
        kwargs = super()._env_kwargs()
        if os.getenv(ENV_ENABLE_POLLING):
            kwargs['enable_polling'] = _env_bool(os.getenv(ENV_ENABLE_POLLING))
        if os.getenv(ENV_POLLING_INTERVAL):
            kwargs['polling_interval_seconds'] = _env_int(ENV_POLLING_INTERVAL, os.getenv(ENV_POLLING_INTERVAL))
        return kwargs


@dataclass
class RemoteFlagsConfig(FlagsConfig):
    """Options for server-evaluated flags"""
    pass


def config_warnings(config: FlagsConfig) -> List[str]:
    """Collect warnings about settings that are unwise in production"""
    warnings = []

    if config.debug:
        warnings.append("Debug mode is enabled - disable for production")

    if config.base_url.startswith('http://'):
        warnings.append("Using HTTP instead of HTTPS - the project token is sent in clear text")

    if config.request_timeout_seconds < 2:
        warnings.append("Request timeout too low - definition fetches may fail under load")

    if isinstance(config, LocalFlagsConfig) and config.enable_polling and config.polling_interval_seconds < 10:
        warnings.append("Polling interval below 10 seconds - this adds load without fresher flags")

    return warnings
