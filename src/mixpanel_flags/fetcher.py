"""
Fetching and parsing of flag definitions.
"""

import json
from typing import Any, Callable, Dict
from urllib.parse import urlencode

from ._version import LIB_NAME, __version__
from .exceptions import MixpanelFlagsParseError
from .log import logger, sanitize_log_data
from .models import ExperimentationFlag, FlagSnapshot

DEFINITIONS_PATH = "/flags/definitions"

HttpGet = Callable[[str], str]


def parse_definitions(document: Any) -> FlagSnapshot:
    """Build a snapshot from a decoded definitions document.

    A flag that fails to parse is logged and skipped; only a malformed top
    level aborts the whole document.
    """
    if not isinstance(document, dict):
        raise MixpanelFlagsParseError("Flag definitions response must be a JSON object")

    flags_data = document.get('flags')
    if flags_data is None:
        return FlagSnapshot.empty()
    if not isinstance(flags_data, list):
        raise MixpanelFlagsParseError("'flags' must be a list")

    flags: Dict[str, ExperimentationFlag] = {}
    for index, flag_data in enumerate(flags_data):
        if not isinstance(flag_data, dict):
            logger.error(f"Mixpanel: Skipping flag definition #{index}: not an object")
            continue

        try:
            flag = ExperimentationFlag.from_dict(flag_data)
        except Exception as e:
            logger.error(f"Mixpanel: Invalid flag data at #{index}: {e}")
            continue

        if not flag.key:
            logger.error(f"Mixpanel: Skipping flag definition #{index}: missing key")
            continue
        if flag.key in flags:
            logger.warning(f"Mixpanel: Duplicate flag key '{sanitize_log_data(flag.key)}', keeping the last one")

        flags[flag.key] = flag

    return FlagSnapshot(flags)


def parse_definitions_text(body: str) -> FlagSnapshot:
    try:
        document = json.loads(body)
    except (TypeError, ValueError) as e:
        raise MixpanelFlagsParseError(f"Flag definitions response is not valid JSON: {e}")
    return parse_definitions(document)


class DefinitionFetcher:
    """Performs one definitions GET per call to ``fetch``"""

    def __init__(self, base_url: str, project_token: str, http_get: HttpGet):
        self.base_url = base_url.rstrip('/')
        self.project_token = project_token
        self._http_get = http_get

    def definitions_url(self) -> str:
        query = urlencode({
            'mp_lib': LIB_NAME,
            'lib_version': __version__,
            'token': self.project_token,
        })
        return f"{self.base_url}{DEFINITIONS_PATH}?{query}"

    def fetch(self) -> FlagSnapshot:
        body = self._http_get(self.definitions_url())
        snapshot = parse_definitions_text(body)
        logger.debug(f"Mixpanel: Fetched {len(snapshot)} flag definitions")
        return snapshot
