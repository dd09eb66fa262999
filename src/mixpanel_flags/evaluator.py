"""
Local flag evaluation.

Evaluation works off one immutable snapshot per call and never performs
network I/O. Every failure degrades to the caller's fallback; nothing raised
while evaluating a flag escapes ``evaluate``.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence

from .exceptions import RuntimeEvaluationError
from .exposure import ExposureReporter
from .hashing import normalized_hash, rollout_salt, subject_key_of, variant_salt
from .log import logger, sanitize_log_data
from .models import (
    ExperimentationFlag,
    FlagSnapshot,
    SelectedVariant,
    Variant,
    thaw
)
from .rules import matches_runtime_evaluation

TEST_USER_CONTEXT_KEY = "distinct_id"


class EvaluationOutcome(Enum):
    FLAG_NOT_FOUND = "flag_not_found"
    CONTEXT_MISSING = "context_missing"
    TEST_USER = "test_user"
    ROLLOUT_MATCHED = "rollout_matched"
    NO_ROLLOUT_MATCHED = "no_rollout_matched"
    VARIANT_NOT_FOUND = "variant_not_found"
    PREDICATE_ERROR = "predicate_error"
    ERROR = "error"


@dataclass(frozen=True)
class EvaluationResult:
    selected: SelectedVariant
    outcome: EvaluationOutcome

    @property
    def is_fallback(self) -> bool:
        return self.outcome not in (EvaluationOutcome.TEST_USER, EvaluationOutcome.ROLLOUT_MATCHED)


def select_variant_by_split(
        variants: Sequence[Variant],
        variant_hash: float,
        splits_override: Optional[Mapping[str, float]] = None
) -> Optional[Variant]:
    """Pick the first variant whose cumulative split exceeds ``variant_hash``.

    Splits named in ``splits_override`` replace the flag-level split of that
    variant only. When rounding leaves the hash past the last boundary, the
    last variant is returned.
    """
    if not variants:
        return None

    cumulative = 0.0
    for variant in variants:
        split = variant.split
        if splits_override and variant.key in splits_override:
            split = splits_override[variant.key]
        cumulative += split
        if variant_hash < cumulative:
            return variant

    return variants[-1]


class FlagEvaluator:
    """Evaluates flags against the snapshot returned by ``snapshot_provider``"""

    def __init__(
            self,
            snapshot_provider: Callable[[], FlagSnapshot],
            exposure_reporter: Optional[ExposureReporter] = None
    ):
        self._snapshot_provider = snapshot_provider
        self.exposure_reporter = exposure_reporter

    def evaluate(
            self,
            flag_key: str,
            fallback: SelectedVariant,
            context: Mapping[str, Any],
            report_exposure: bool = True
    ) -> SelectedVariant:
        return self.evaluate_detailed(flag_key, fallback, context, report_exposure).selected

    def evaluate_detailed(
            self,
            flag_key: str,
            fallback: SelectedVariant,
            context: Mapping[str, Any],
            report_exposure: bool = True,
            snapshot: Optional[FlagSnapshot] = None
    ) -> EvaluationResult:
        started_at = time.perf_counter()
        try:
            if snapshot is None:
                snapshot = self._snapshot_provider()
            return self._evaluate(snapshot, flag_key, fallback, context or {}, report_exposure, started_at)
        except RuntimeEvaluationError as e:
            logger.warning(f"Mixpanel: Runtime rule failed for flag {sanitize_log_data(flag_key)}: {e}")
            return EvaluationResult(fallback, EvaluationOutcome.PREDICATE_ERROR)
        except Exception as e:
            logger.warning(f"Mixpanel: Error evaluating flag {sanitize_log_data(flag_key)}: {e}")
            return EvaluationResult(fallback, EvaluationOutcome.ERROR)

    def _evaluate(self, snapshot, flag_key, fallback, context, report_exposure, started_at) -> EvaluationResult:
        flag = snapshot.get(flag_key)
        if flag is None:
            logger.warning(f"Mixpanel: Flag not found: {sanitize_log_data(flag_key)}")
            return EvaluationResult(fallback, EvaluationOutcome.FLAG_NOT_FOUND)

        context_value = context.get(flag.context)
        if context_value is None:
            logger.warning(
                f"Mixpanel: Variant assignment key property '{sanitize_log_data(flag.context)}' "
                f"not found for flag: {sanitize_log_data(flag_key)}"
            )
            return EvaluationResult(fallback, EvaluationOutcome.CONTEXT_MISSING)
        subject_key = subject_key_of(context_value)

        test_variant = self._get_test_user_variant(flag, context)
        if test_variant is not None:
            selected = self._select(flag, test_variant, is_qa_tester=True)
            if report_exposure:
                self._report(context, flag, selected, (time.perf_counter() - started_at) * 1000)
            return EvaluationResult(selected, EvaluationOutcome.TEST_USER)

        hash_input = subject_key + flag.key
        for rollout_index, rollout in enumerate(flag.ruleset.rollouts):
            rollout_hash = normalized_hash(hash_input, rollout_salt(flag.hash_salt, rollout_index))
            if rollout_hash >= rollout.rollout_percentage:
                continue

            if not matches_runtime_evaluation(rollout.runtime_evaluation, context):
                continue

            if rollout.variant_override is not None:
                variant = flag.ruleset.find_variant(rollout.variant_override.key)
            else:
                variant_hash = normalized_hash(hash_input, variant_salt(flag.hash_salt))
                variant = select_variant_by_split(flag.ruleset.variants, variant_hash, rollout.variant_splits)

            if variant is None:
                logger.warning(
                    f"Mixpanel: Rollout #{rollout_index} of flag {sanitize_log_data(flag_key)} "
                    f"matched but resolved no variant"
                )
                return EvaluationResult(fallback, EvaluationOutcome.VARIANT_NOT_FOUND)

            selected = self._select(flag, variant, is_qa_tester=False)
            if report_exposure:
                self._report(context, flag, selected, (time.perf_counter() - started_at) * 1000)
            return EvaluationResult(selected, EvaluationOutcome.ROLLOUT_MATCHED)

        return EvaluationResult(fallback, EvaluationOutcome.NO_ROLLOUT_MATCHED)

    @staticmethod
    def _get_test_user_variant(flag: ExperimentationFlag, context: Mapping[str, Any]) -> Optional[Variant]:
        ruleset = flag.ruleset
        if not ruleset.has_test_user_overrides():
            return None

        distinct_id = context.get(TEST_USER_CONTEXT_KEY)
        if distinct_id is None:
            return None

        variant_key = ruleset.test_user_overrides.get(subject_key_of(distinct_id))
        if variant_key is None:
            return None

        variant = ruleset.find_variant(variant_key)
        if variant is None:
            logger.debug(
                f"Mixpanel: Test user variant '{sanitize_log_data(variant_key)}' does not exist "
                f"on flag {sanitize_log_data(flag.key)}"
            )
        return variant

    @staticmethod
    def _select(flag: ExperimentationFlag, variant: Variant, is_qa_tester: bool) -> SelectedVariant:
        return SelectedVariant(
            variant_key=variant.key,
            variant_value=thaw(variant.value),
            experiment_id=flag.experiment_id,
            is_experiment_active=flag.is_experiment_active,
            is_qa_tester=is_qa_tester
        )

    def _report(self, context, flag: ExperimentationFlag, selected: SelectedVariant, latency_ms: float):
        if self.exposure_reporter is None:
            return
        self.exposure_reporter.track_local_exposure(
            context,
            flag.key,
            selected.variant_key,
            round(latency_ms, 3),
            selected.experiment_id,
            selected.is_experiment_active,
            selected.is_qa_tester
        )

    def evaluate_all(self, context: Mapping[str, Any], report_exposure: bool = True) -> List[SelectedVariant]:
        """Evaluate every known flag, keeping only successful selections"""
        results = []
        snapshot = self._snapshot_provider()
        for flag_key in snapshot.keys():
            result = self.evaluate_detailed(
                flag_key, SelectedVariant.fallback(), context, report_exposure, snapshot=snapshot
            )
            if result.selected.is_success():
                results.append(result.selected)
        return results
