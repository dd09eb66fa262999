"""
Runtime predicates attached to rollouts.

Two shapes exist: the legacy flat equality map and JsonLogic rule documents.
Both compare strings case-insensitively, so rules and context data are
lowercased before they meet.
"""

from typing import Any, Mapping, Optional

from json_logic import jsonLogic

from .exceptions import RuntimeEvaluationError
from .log import logger
from .models import DeclarativeRuntimeEvaluation, LegacyRuntimeEvaluation, RuntimeEvaluation, thaw

CUSTOM_PROPERTIES_KEY = "custom_properties"


def lowercase_leaf_nodes(obj: Any) -> Any:
    """Lowercase string values of a rule document, leaving operator keys alone"""
    if isinstance(obj, str):
        return obj.lower()
    if isinstance(obj, Mapping):
        return {key: lowercase_leaf_nodes(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [lowercase_leaf_nodes(item) for item in obj]
    return obj


def lowercase_all_nodes(obj: Any) -> Any:
    """Lowercase string keys and string values of context data"""
    if isinstance(obj, str):
        return obj.lower()
    if isinstance(obj, Mapping):
        return {
            (key.lower() if isinstance(key, str) else key): lowercase_all_nodes(value)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [lowercase_all_nodes(item) for item in obj]
    return obj


def get_custom_properties(context: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    custom_properties = context.get(CUSTOM_PROPERTIES_KEY)
    if isinstance(custom_properties, Mapping):
        return custom_properties
    return None


def values_equal(expected: Any, actual: Any) -> bool:
    if expected is None or actual is None:
        return expected is actual
    if isinstance(expected, str) and isinstance(actual, str):
        return expected.lower() == actual.lower()
    return expected == actual


def matches_legacy(definition: Mapping[str, Any], custom_properties: Optional[Mapping[str, Any]]) -> bool:
    if custom_properties is None:
        return False

    for key, expected_value in definition.items():
        if not values_equal(thaw(expected_value), custom_properties.get(key)):
            return False
    return True


def matches_declarative(rule: Mapping[str, Any], custom_properties: Optional[Mapping[str, Any]]) -> bool:
    """Evaluate a JsonLogic rule against the caller's custom properties.

    Raises RuntimeEvaluationError when the engine itself fails, e.g. on an
    unknown operator.
    """
    if custom_properties is None:
        return False

    lowered_rule = lowercase_leaf_nodes(rule)
    lowered_data = lowercase_all_nodes(custom_properties)
    logger.debug(f"Mixpanel: Evaluating runtime rule {lowered_rule}")

    try:
        result = jsonLogic(lowered_rule, lowered_data)
    except Exception as e:
        raise RuntimeEvaluationError(f"Error evaluating runtime rule: {e}", rule=rule) from e

    return bool(result)


def matches_runtime_evaluation(evaluation: Optional[RuntimeEvaluation], context: Mapping[str, Any]) -> bool:
    if evaluation is None:
        return True

    custom_properties = get_custom_properties(context)
    if isinstance(evaluation, DeclarativeRuntimeEvaluation):
        return matches_declarative(evaluation.rule, custom_properties)
    if isinstance(evaluation, LegacyRuntimeEvaluation):
        return matches_legacy(evaluation.definition, custom_properties)

    raise RuntimeEvaluationError(f"Unsupported runtime evaluation type: {type(evaluation).__name__}")
