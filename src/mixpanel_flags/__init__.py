"""
Mixpanel feature flags Python SDK

Deterministic local evaluation of Mixpanel feature flags and experiments,
with remote evaluation as an alternative and exposure tracking for both.
"""

from ._version import __version__
from .config import FlagsConfig, LocalFlagsConfig, RemoteFlagsConfig, config_warnings
from .evaluator import EvaluationOutcome, EvaluationResult, FlagEvaluator
from .exceptions import (
    MixpanelFlagsAuthError,
    MixpanelFlagsConfigError,
    MixpanelFlagsError,
    MixpanelFlagsNetworkError,
    MixpanelFlagsParseError,
    MixpanelFlagsTimeoutError,
    RuntimeEvaluationError
)
from .exposure import BufferedEventSender, EventSender, ExposureReporter
from .log import BRAND_NAME
from .models import (
    DeclarativeRuntimeEvaluation,
    ExperimentationFlag,
    FlagSnapshot,
    LegacyRuntimeEvaluation,
    Rollout,
    RuleSet,
    SelectedVariant,
    Variant,
    VariantOverride
)
from .providers import (
    LocalFlagsProvider,
    RemoteFlagsProvider,
    create_local_provider,
    create_remote_provider
)


def create_client(project_token: str, event_sender: EventSender = None, **kwargs) -> LocalFlagsProvider:
    """
    Factory function to create a local flags provider with sensible defaults

    Args:
        project_token: Your Mixpanel project token
        event_sender: Receives ``$experiment_started`` exposure events
        **kwargs: Additional LocalFlagsConfig options

    Returns:
        LocalFlagsProvider with definitions already loaded

    Example:
        >>> import mixpanel_flags
        >>> flags = mixpanel_flags.create_client("your-project-token")
        >>> enabled = flags.is_enabled("new_feature", {"distinct_id": "user123"})
    """
    return create_local_provider(project_token, event_sender=event_sender, **kwargs)


# Package metadata
__all__ = [
    # Providers
    'LocalFlagsProvider',
    'RemoteFlagsProvider',
    'FlagEvaluator',
    'EvaluationOutcome',
    'EvaluationResult',

    # Factory functions
    'create_client',
    'create_local_provider',
    'create_remote_provider',

    # Configuration
    'FlagsConfig',
    'LocalFlagsConfig',
    'RemoteFlagsConfig',
    'config_warnings',

    # Exposure tracking
    'EventSender',
    'ExposureReporter',
    'BufferedEventSender',

    # Exceptions
    'MixpanelFlagsError',
    'MixpanelFlagsAuthError',
    'MixpanelFlagsNetworkError',
    'MixpanelFlagsConfigError',
    'MixpanelFlagsTimeoutError',
    'MixpanelFlagsParseError',
    'RuntimeEvaluationError',

    # Models
    'ExperimentationFlag',
    'FlagSnapshot',
    'RuleSet',
    'Rollout',
    'Variant',
    'VariantOverride',
    'LegacyRuntimeEvaluation',
    'DeclarativeRuntimeEvaluation',
    'SelectedVariant',

    # Metadata
    '__version__',
    'BRAND_NAME'
]

__doc__ += """

Quick Start:

    import mixpanel_flags

    # Load definitions once, then keep them fresh in the background
    with mixpanel_flags.create_client("your-project-token") as flags:
        context = {"distinct_id": "user123", "custom_properties": {"plan": "premium"}}

        if flags.is_enabled("new_dashboard", context):
            pass

        theme = flags.get_variant_value("theme", "light", context)
"""
