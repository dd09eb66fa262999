"""
HTTP transport shared by the flag providers and the event sender.
"""

import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.util.retry import Retry

from ._version import __version__
from .exceptions import (
    MixpanelFlagsAuthError,
    MixpanelFlagsNetworkError,
    MixpanelFlagsTimeoutError
)
from .log import BRAND_NAME, logger

SENSITIVE_HEADERS = {'Authorization'}


def generate_traceparent() -> str:
    """W3C trace context header value: 00-<trace id>-<span id>-01"""
    trace_id = uuid.uuid4().hex
    span_id = uuid.uuid4().hex[:16]
    return f"00-{trace_id}-{span_id}-01"


class HttpTransport:
    """Thin wrapper over a requests session.

    GET requests are never retried here; a failed definitions fetch simply
    waits for the next polling tick. POSTs carrying events get a small retry
    budget for throttling and server errors.
    """

    def __init__(
            self,
            project_token: str,
            timeout: int = 10,
            max_post_retries: int = 3,
            backoff_factor: float = 0.3,
            session: Optional[requests.Session] = None
    ):
        self.project_token = project_token
        self.timeout = timeout

        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=max_post_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            'X-Scheme': 'https',
            'X-Forwarded-Proto': 'https',
            'Content-Type': 'application/json',
            'traceparent': generate_traceparent(),
            'User-Agent': f'{BRAND_NAME}-Flags-Python/{__version__}',
        }

        if logger.isEnabledFor(logging.DEBUG):
            safe_headers = {k: v for k, v in headers.items() if k not in SENSITIVE_HEADERS}
            logger.debug(f"Mixpanel: Request headers (sanitized): {safe_headers}")

        return headers

    def _auth(self) -> HTTPBasicAuth:
        return HTTPBasicAuth(self.project_token, '')

    def get(self, url: str) -> str:
        """GET ``url`` and return the response body.

        Raises the SDK's network, timeout or auth errors on failure.
        """
        try:
            response = self.session.get(
                url,
                headers=self._get_headers(),
                auth=self._auth(),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise MixpanelFlagsTimeoutError("Request timeout")
        except requests.exceptions.ConnectionError as e:
            raise MixpanelFlagsNetworkError(f"Connection error: {e}")
        except requests.RequestException as e:
            raise MixpanelFlagsNetworkError(f"Request failed: {e}")

        self._raise_for_status(response)
        return response.text

    def post_json(self, url: str, payload: Any, params: Optional[Dict[str, str]] = None) -> requests.Response:
        try:
            response = self.session.post(
                url,
                json=payload,
                params=params,
                headers=self._get_headers(),
                auth=self._auth(),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise MixpanelFlagsTimeoutError("Request timeout")
        except requests.exceptions.ConnectionError as e:
            raise MixpanelFlagsNetworkError(f"Connection error: {e}")
        except requests.RequestException as e:
            raise MixpanelFlagsNetworkError(f"Request failed: {e}")

        self._raise_for_status(response)
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response):
        if response.status_code in (401, 403):
            raise MixpanelFlagsAuthError(f"Project token rejected (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise MixpanelFlagsNetworkError(
                f"Unexpected HTTP status {response.status_code}",
                status_code=response.status_code
            )

    def close(self):
        try:
            self.session.close()
        except Exception as e:
            logger.warning(f"Mixpanel: Error closing HTTP session: {e}")
