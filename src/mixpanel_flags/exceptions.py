"""
Mixpanel feature flags SDK exceptions

All custom exceptions raised by the SDK.
"""


class MixpanelFlagsError(Exception):
    """Base exception for the Mixpanel feature flags SDK"""
    pass


class MixpanelFlagsAuthError(MixpanelFlagsError):
    """Project token rejected by the API"""
    pass


class MixpanelFlagsNetworkError(MixpanelFlagsError):
    """Network related errors"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class MixpanelFlagsConfigError(MixpanelFlagsError):
    """Configuration related errors"""
    pass


class MixpanelFlagsTimeoutError(MixpanelFlagsError):
    """Request timeout errors"""
    pass


class MixpanelFlagsParseError(MixpanelFlagsError):
    """Flag definitions document could not be parsed"""
    pass


class RuntimeEvaluationError(MixpanelFlagsError):
    """A rollout's runtime predicate failed while being evaluated"""

    def __init__(self, message: str, rule=None):
        super().__init__(message)
        self.rule = rule
