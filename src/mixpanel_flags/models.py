"""
Mixpanel feature flags SDK models

Immutable data models for flag definitions and evaluation results. Models are
built once from a definitions response and never mutated afterwards; a new
fetch replaces them wholesale.
"""

import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .log import logger, sanitize_log_data

DEFAULT_CONTEXT_PROPERTY = "distinct_id"


def freeze(value: Any) -> Any:
    """Deep read-only copy: mappings become proxies and lists become tuples"""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain mutable copy of a frozen value, as decoded JSON would look"""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _parse_experiment_id(value: Any) -> Optional[uuid.UUID]:
    if value is None or value == "":
        return None
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        logger.warning(f"Mixpanel: Invalid UUID for experiment_id: {sanitize_log_data(str(value))}")
        return None


def _parse_optional_bool(data: Dict, key: str) -> Optional[bool]:
    if key not in data or data[key] is None:
        return None
    return bool(data[key])


@dataclass(frozen=True)
class Variant:
    """One possible outcome of a flag"""
    key: str
    value: Any = None
    is_control: bool = False
    split: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'value', freeze(self.value))

    @classmethod
    def from_dict(cls, data: Dict) -> 'Variant':
        split = _as_float(data.get('split'))
        return cls(
            key=_as_str(data.get('key')),
            value=data.get('value'),
            is_control=bool(data.get('is_control', False)),
            split=max(split, 0.0)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'value': thaw(self.value),
            'is_control': self.is_control,
            'split': self.split
        }


@dataclass(frozen=True)
class VariantOverride:
    """Forces a rollout to serve one named variant"""
    key: str

    @classmethod
    def from_dict(cls, data: Any) -> Optional['VariantOverride']:
        if not isinstance(data, dict):
            return None
        key = _as_str(data.get('key'))
        return cls(key=key) if key else None

    def to_dict(self) -> Dict[str, Any]:
        return {'key': self.key}


@dataclass(frozen=True)
class LegacyRuntimeEvaluation:
    """Flat property equality map: every entry must match the context"""
    definition: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, 'definition', freeze(self.definition))

    def to_dict(self) -> Dict[str, Any]:
        return {'runtime_evaluation_definition': thaw(self.definition)}


@dataclass(frozen=True)
class DeclarativeRuntimeEvaluation:
    """JsonLogic rule document evaluated against the context"""
    rule: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, 'rule', freeze(self.rule))

    def to_dict(self) -> Dict[str, Any]:
        return {'runtime_evaluation_rule': thaw(self.rule)}


RuntimeEvaluation = Union[LegacyRuntimeEvaluation, DeclarativeRuntimeEvaluation]


def parse_runtime_evaluation(data: Dict) -> Optional[RuntimeEvaluation]:
    """Decide which runtime predicate a rollout carries.

    A non-empty ``runtime_evaluation_rule`` wins over a legacy
    ``runtime_evaluation_definition`` when a rollout has both.
    """
    rule = data.get('runtime_evaluation_rule')
    if isinstance(rule, dict) and rule:
        return DeclarativeRuntimeEvaluation(rule=rule)

    definition = data.get('runtime_evaluation_definition')
    if isinstance(definition, dict) and definition:
        return LegacyRuntimeEvaluation(definition=definition)

    return None


@dataclass(frozen=True)
class Rollout:
    """An ordered gate inside a ruleset"""
    rollout_percentage: float
    runtime_evaluation: Optional[RuntimeEvaluation] = None
    variant_override: Optional[VariantOverride] = None
    variant_splits: Optional[Mapping[str, float]] = None

    def __post_init__(self):
        if self.variant_splits is not None and not isinstance(self.variant_splits, MappingProxyType):
            object.__setattr__(self, 'variant_splits', MappingProxyType(dict(self.variant_splits)))

    @classmethod
    def from_dict(cls, data: Dict) -> 'Rollout':
        variant_splits = None
        splits_data = data.get('variant_splits')
        if isinstance(splits_data, dict):
            variant_splits = {
                str(key): max(_as_float(value), 0.0) for key, value in splits_data.items()
            }

        return cls(
            rollout_percentage=_as_float(data.get('rollout_percentage')),
            runtime_evaluation=parse_runtime_evaluation(data),
            variant_override=VariantOverride.from_dict(data.get('variant_override')),
            variant_splits=variant_splits
        )

    def has_runtime_evaluation(self) -> bool:
        return self.runtime_evaluation is not None

    def has_variant_override(self) -> bool:
        return self.variant_override is not None

    def has_variant_splits(self) -> bool:
        return bool(self.variant_splits)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'rollout_percentage': self.rollout_percentage}
        if self.runtime_evaluation is not None:
            data.update(self.runtime_evaluation.to_dict())
        if self.variant_override is not None:
            data['variant_override'] = self.variant_override.to_dict()
        if self.variant_splits is not None:
            data['variant_splits'] = dict(self.variant_splits)
        return data


@dataclass(frozen=True)
class RuleSet:
    """Variants, ordered rollouts and QA test-user overrides of a flag"""
    variants: Tuple[Variant, ...] = ()
    rollouts: Tuple[Rollout, ...] = ()
    test_user_overrides: Optional[Mapping[str, str]] = None

    def __post_init__(self):
        object.__setattr__(self, 'variants', tuple(sorted(self.variants, key=lambda v: v.key)))
        object.__setattr__(self, 'rollouts', tuple(self.rollouts))
        if self.test_user_overrides is not None and not isinstance(self.test_user_overrides, MappingProxyType):
            object.__setattr__(self, 'test_user_overrides', MappingProxyType(dict(self.test_user_overrides)))

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'RuleSet':
        if not isinstance(data, dict):
            return cls()

        variants = []
        seen_keys = set()
        for variant_data in data.get('variants') or []:
            if not isinstance(variant_data, dict):
                continue
            variant = Variant.from_dict(variant_data)
            if variant.key in seen_keys:
                logger.warning(f"Mixpanel: Duplicate variant key '{sanitize_log_data(variant.key)}' ignored")
                continue
            seen_keys.add(variant.key)
            variants.append(variant)

        rollouts = [
            Rollout.from_dict(rollout_data)
            for rollout_data in data.get('rollout') or []
            if isinstance(rollout_data, dict)
        ]

        test_user_overrides = None
        test_data = data.get('test')
        if isinstance(test_data, dict) and isinstance(test_data.get('users'), dict):
            test_user_overrides = {
                str(distinct_id): str(variant_key)
                for distinct_id, variant_key in test_data['users'].items()
                if variant_key is not None
            }

        return cls(
            variants=tuple(variants),
            rollouts=tuple(rollouts),
            test_user_overrides=test_user_overrides
        )

    def has_test_user_overrides(self) -> bool:
        return bool(self.test_user_overrides)

    def find_variant(self, key: str) -> Optional[Variant]:
        for variant in self.variants:
            if variant.key == key:
                return variant
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'variants': [variant.to_dict() for variant in self.variants],
            'rollout': [rollout.to_dict() for rollout in self.rollouts]
        }
        if self.test_user_overrides is not None:
            data['test'] = {'users': dict(self.test_user_overrides)}
        return data


@dataclass(frozen=True)
class ExperimentationFlag:
    """A flag definition as served by the definitions endpoint"""
    id: str
    name: str
    key: str
    status: str
    project_id: int
    ruleset: RuleSet
    context: str = DEFAULT_CONTEXT_PROPERTY
    experiment_id: Optional[uuid.UUID] = None
    is_experiment_active: Optional[bool] = None
    hash_salt: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'ExperimentationFlag':
        """Create a flag from its JSON representation.

        Optional fields fall back to empty values; a malformed experiment id is
        logged and dropped rather than rejecting the flag.
        """
        hash_salt = data.get('hash_salt')
        return cls(
            id=_as_str(data.get('id')),
            name=_as_str(data.get('name')),
            key=_as_str(data.get('key')),
            status=_as_str(data.get('status')),
            project_id=_as_int(data.get('project_id')),
            ruleset=RuleSet.from_dict(data.get('ruleset')),
            context=_as_str(data.get('context')) or DEFAULT_CONTEXT_PROPERTY,
            experiment_id=_parse_experiment_id(data.get('experiment_id')),
            is_experiment_active=_parse_optional_bool(data, 'is_experiment_active'),
            hash_salt=str(hash_salt) if hash_salt else None
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'key': self.key,
            'status': self.status,
            'project_id': self.project_id,
            'context': self.context,
            'ruleset': self.ruleset.to_dict()
        }
        if self.experiment_id is not None:
            data['experiment_id'] = str(self.experiment_id)
        if self.is_experiment_active is not None:
            data['is_experiment_active'] = self.is_experiment_active
        if self.hash_salt is not None:
            data['hash_salt'] = self.hash_salt
        return data


class FlagSnapshot:
    """Read-only view of every flag known after one successful fetch"""

    __slots__ = ('_flags',)

    def __init__(self, flags: Optional[Mapping[str, ExperimentationFlag]] = None):
        self._flags = MappingProxyType(dict(flags or {}))

    @classmethod
    def empty(cls) -> 'FlagSnapshot':
        return cls()

    @property
    def flags(self) -> Mapping[str, ExperimentationFlag]:
        return self._flags

    def get(self, flag_key: str) -> Optional[ExperimentationFlag]:
        return self._flags.get(flag_key)

    def keys(self) -> List[str]:
        return list(self._flags.keys())

    def to_dict(self) -> Dict[str, Any]:
        return {'flags': [flag.to_dict() for flag in self._flags.values()]}

    def __contains__(self, flag_key: object) -> bool:
        return flag_key in self._flags

    def __iter__(self) -> Iterator[ExperimentationFlag]:
        return iter(list(self._flags.values()))

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"FlagSnapshot(flags={sorted(self._flags.keys())!r})"


@dataclass(frozen=True)
class SelectedVariant:
    """Result of evaluating a flag; ``variant_key`` is None for a fallback"""
    variant_key: Optional[str] = None
    variant_value: Any = None
    experiment_id: Optional[uuid.UUID] = None
    is_experiment_active: Optional[bool] = None
    is_qa_tester: Optional[bool] = None

    @classmethod
    def fallback(cls, value: Any = None) -> 'SelectedVariant':
        return cls(variant_value=value)

    def is_success(self) -> bool:
        return self.variant_key is not None

    def is_fallback(self) -> bool:
        return self.variant_key is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'variant_key': self.variant_key,
            'variant_value': self.variant_value,
            'experiment_id': str(self.experiment_id) if self.experiment_id else None,
            'is_experiment_active': self.is_experiment_active,
            'is_qa_tester': self.is_qa_tester
        }
