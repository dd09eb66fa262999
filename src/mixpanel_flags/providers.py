"""
Mixpanel feature flag providers

Public entry points: ``LocalFlagsProvider`` evaluates cached definitions
in-process, ``RemoteFlagsProvider`` asks the API for every evaluation.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

from ._version import LIB_NAME, __version__
from .config import FlagsConfig, LocalFlagsConfig, RemoteFlagsConfig
from .evaluator import FlagEvaluator
from .exposure import EventSender, ExposureReporter
from .fetcher import DefinitionFetcher, HttpGet
from .log import logger, sanitize_log_data
from .models import SelectedVariant, _parse_experiment_id
from .store import DefinitionStore, OnDefinitionsUpdated
from .transport import HttpTransport

REMOTE_FLAGS_PATH = "/flags"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class BaseFlagsProvider:
    """Shared plumbing: HTTP access, exposure reporting and value helpers"""

    def __init__(
            self,
            config: FlagsConfig,
            event_sender: Optional[EventSender] = None,
            http_get: Optional[HttpGet] = None
    ):
        self.config = config
        self.project_token = config.project_token
        self.transport = HttpTransport(config.project_token, timeout=config.request_timeout_seconds)
        self.http_get: HttpGet = http_get or self.transport.get
        self.exposure_reporter = ExposureReporter(event_sender)

    def get_variant(
            self,
            flag_key: str,
            fallback: SelectedVariant,
            context: Mapping[str, Any],
            report_exposure: bool = True
    ) -> SelectedVariant:
        raise NotImplementedError

    def get_variant_value(self, flag_key: str, fallback_value: Any, context: Mapping[str, Any]) -> Any:
        """Return only the value of the selected variant, or ``fallback_value``"""
        result = self.get_variant(flag_key, SelectedVariant.fallback(fallback_value), context, True)
        return result.variant_value

    def is_enabled(self, flag_key: str, context: Mapping[str, Any]) -> bool:
        """True only when the selected variant's value is the boolean ``True``"""
        result = self.get_variant(flag_key, SelectedVariant.fallback(False), context, True)
        return result.variant_value is True

    def close(self):
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class LocalFlagsProvider(BaseFlagsProvider):
    """
    Evaluates feature flags locally from periodically fetched definitions.

    Call ``start_polling_for_definitions`` once (it blocks on the first fetch),
    then evaluate from any number of threads. Until a fetch succeeds every
    evaluation returns its fallback; ``are_flags_ready`` reports when that
    has happened.

    Example:
        >>> provider = LocalFlagsProvider(LocalFlagsConfig(project_token="token"))
        >>> provider.start_polling_for_definitions()
        >>> provider.is_enabled("new-checkout", {"distinct_id": "user-1"})
    """

    def __init__(
            self,
            config: LocalFlagsConfig,
            event_sender: Optional[EventSender] = None,
            http_get: Optional[HttpGet] = None,
            on_definitions_updated: Optional[OnDefinitionsUpdated] = None
    ):
        super().__init__(config, event_sender, http_get)

        self.fetcher = DefinitionFetcher(config.base_url, config.project_token, self.http_get)
        self.store = DefinitionStore(
            self.fetcher,
            enable_polling=config.enable_polling,
            polling_interval_seconds=config.polling_interval_seconds,
            shutdown_timeout_seconds=config.shutdown_timeout_seconds,
            on_definitions_updated=on_definitions_updated
        )
        self.evaluator = FlagEvaluator(lambda: self.store.snapshot, self.exposure_reporter)

    def start_polling_for_definitions(self):
        self.store.start_polling()

    def stop_polling_for_definitions(self):
        self.store.stop_polling()

    def are_flags_ready(self) -> bool:
        return self.store.is_ready()

    def get_variant(
            self,
            flag_key: str,
            fallback: SelectedVariant,
            context: Mapping[str, Any],
            report_exposure: bool = True
    ) -> SelectedVariant:
        return self.evaluator.evaluate(flag_key, fallback, context, report_exposure)

    def get_all_variants(self, context: Mapping[str, Any], report_exposure: bool = True) -> List[SelectedVariant]:
        """Evaluate every known flag; fallbacks are left out of the result"""
        return self.evaluator.evaluate_all(context, report_exposure)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.store.get_stats(),
            'configuration': {
                'api_host': self.config.base_url,
                'enable_polling': self.config.enable_polling,
                'polling_interval_seconds': self.config.polling_interval_seconds,
                'request_timeout_seconds': self.config.request_timeout_seconds
            }
        }

    def close(self):
        """Stop background polling and release the HTTP session"""
        if self.store.is_closed():
            return
        self.store.close()
        super().close()
        logger.info("Mixpanel: Local flags provider closed")


class RemoteFlagsProvider(BaseFlagsProvider):
    """Evaluates each flag on the server with one GET per call"""

    def __init__(
            self,
            config: RemoteFlagsConfig,
            event_sender: Optional[EventSender] = None,
            http_get: Optional[HttpGet] = None
    ):
        super().__init__(config, event_sender, http_get)

    def flags_url(self, flag_key: str, context: Mapping[str, Any]) -> str:
        query = urlencode({
            'mp_lib': LIB_NAME,
            'lib_version': __version__,
            'token': self.project_token,
            'flag_key': flag_key,
            'context': json.dumps(dict(context), default=str),
        })
        return f"{self.config.base_url}{REMOTE_FLAGS_PATH}?{query}"

    def get_variant(
            self,
            flag_key: str,
            fallback: SelectedVariant,
            context: Mapping[str, Any],
            report_exposure: bool = True
    ) -> SelectedVariant:
        start_time = _utc_timestamp()
        context = context or {}

        try:
            body = self.http_get(self.flags_url(flag_key, context))
            document = json.loads(body)
            flags = document.get('flags') if isinstance(document, dict) else None

            if not isinstance(flags, dict) or not isinstance(flags.get(flag_key), dict):
                logger.warning(f"Mixpanel: Flag not found in response: {sanitize_log_data(flag_key)}")
                return fallback

            flag_data = flags[flag_key]
            variant_key = flag_data.get('variant_key')
            if variant_key is None:
                return fallback

            selected = SelectedVariant(
                variant_key=str(variant_key),
                variant_value=flag_data.get('variant_value'),
                experiment_id=_parse_experiment_id(flag_data.get('experiment_id')),
                is_experiment_active=flag_data.get('is_experiment_active'),
                is_qa_tester=flag_data.get('is_qa_tester')
            )

            if report_exposure:
                self.exposure_reporter.track_remote_exposure(
                    context,
                    flag_key,
                    selected.variant_key,
                    start_time,
                    _utc_timestamp(),
                    selected.experiment_id,
                    selected.is_experiment_active,
                    selected.is_qa_tester
                )

            return selected

        except Exception as e:
            logger.warning(f"Mixpanel: Error evaluating flag remotely: {sanitize_log_data(flag_key)}: {e}")
            return fallback


def create_local_provider(
        project_token: str,
        event_sender: Optional[EventSender] = None,
        start_polling: bool = True,
        **kwargs
) -> LocalFlagsProvider:
    """Create a local provider and, by default, load definitions right away"""
    config = LocalFlagsConfig(project_token=project_token, **kwargs)
    provider = LocalFlagsProvider(config, event_sender=event_sender)
    if start_polling:
        provider.start_polling_for_definitions()
    return provider


def create_remote_provider(
        project_token: str,
        event_sender: Optional[EventSender] = None,
        **kwargs
) -> RemoteFlagsProvider:
    config = RemoteFlagsConfig(project_token=project_token, **kwargs)
    return RemoteFlagsProvider(config, event_sender=event_sender)
