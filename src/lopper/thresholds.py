"""
Threshold values, optional overrides and their validation.

``Values`` is the fully defaulted configuration handed to analysis and
reporting. ``Overrides`` is one precedence layer (a policy document, a pack
or the command line); a field left as ``None`` is absent and never
overwrites a lower layer, while an explicit ``0`` does.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError

DEFAULT_FAIL_ON_INCREASE_PERCENT = 0
DEFAULT_LOW_CONFIDENCE_WARNING_PERCENT = 40
DEFAULT_MIN_USAGE_PERCENT_FOR_RECOMMENDATIONS = 40
DEFAULT_REMOVAL_CANDIDATE_WEIGHT_USAGE = 0.50
DEFAULT_REMOVAL_CANDIDATE_WEIGHT_IMPACT = 0.30
DEFAULT_REMOVAL_CANDIDATE_WEIGHT_CONFIDENCE = 0.20


class LockfileDriftPolicy(str, Enum):
    OFF = "off"
    WARN = "warn"
    FAIL = "fail"

    @classmethod
    def parse(cls, value: Any) -> "LockfileDriftPolicy":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValidationError(
                f"invalid threshold lockfile_drift_policy: {value!r} (must be one of off, warn, fail)",
                "lockfile_drift_policy",
            )
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValidationError(
            f"invalid threshold lockfile_drift_policy: {value!r} (must be one of off, warn, fail)",
            "lockfile_drift_policy",
        )


DEFAULT_LOCKFILE_DRIFT_POLICY = LockfileDriftPolicy.WARN

# Leaf names shared by documents, overrides and the report surface
INT_FIELDS: Tuple[str, ...] = (
    "fail_on_increase_percent",
    "low_confidence_warning_percent",
    "min_usage_percent_for_recommendations",
)
WEIGHT_FIELDS: Tuple[str, ...] = (
    "removal_candidate_weight_usage",
    "removal_candidate_weight_impact",
    "removal_candidate_weight_confidence",
)
THRESHOLD_FIELDS: Tuple[str, ...] = INT_FIELDS + WEIGHT_FIELDS + ("lockfile_drift_policy",)


@dataclass(frozen=True)
class Values:
    fail_on_increase_percent: int = DEFAULT_FAIL_ON_INCREASE_PERCENT
    low_confidence_warning_percent: int = DEFAULT_LOW_CONFIDENCE_WARNING_PERCENT
    min_usage_percent_for_recommendations: int = DEFAULT_MIN_USAGE_PERCENT_FOR_RECOMMENDATIONS
    removal_candidate_weight_usage: float = DEFAULT_REMOVAL_CANDIDATE_WEIGHT_USAGE
    removal_candidate_weight_impact: float = DEFAULT_REMOVAL_CANDIDATE_WEIGHT_IMPACT
    removal_candidate_weight_confidence: float = DEFAULT_REMOVAL_CANDIDATE_WEIGHT_CONFIDENCE
    lockfile_drift_policy: LockfileDriftPolicy = DEFAULT_LOCKFILE_DRIFT_POLICY

    @classmethod
    def defaults(cls) -> "Values":
        return cls()

    def validate(self) -> None:
        """Raise ``ValidationError`` for the first out-of-range value."""
        _validate_fail_on_increase(self.fail_on_increase_percent)
        _validate_percentage("low_confidence_warning_percent", self.low_confidence_warning_percent)
        _validate_percentage(
            "min_usage_percent_for_recommendations", self.min_usage_percent_for_recommendations
        )
        for name in WEIGHT_FIELDS:
            _validate_weight(name, getattr(self, name))
        if not _has_positive_weight(self.weights()):
            raise ValidationError(
                "invalid removal candidate weights: at least one weight must be greater than 0"
            )
        LockfileDriftPolicy.parse(self.lockfile_drift_policy)

    def weights(self) -> Tuple[float, float, float]:
        return (
            self.removal_candidate_weight_usage,
            self.removal_candidate_weight_impact,
            self.removal_candidate_weight_confidence,
        )

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {f.name: getattr(self, f.name) for f in fields(self)}
        out["lockfile_drift_policy"] = LockfileDriftPolicy.parse(self.lockfile_drift_policy).value
        return out


@dataclass(frozen=True)
class Overrides:
    fail_on_increase_percent: Optional[int] = None
    low_confidence_warning_percent: Optional[int] = None
    min_usage_percent_for_recommendations: Optional[int] = None
    removal_candidate_weight_usage: Optional[float] = None
    removal_candidate_weight_impact: Optional[float] = None
    removal_candidate_weight_confidence: Optional[float] = None
    lockfile_drift_policy: Optional[LockfileDriftPolicy] = None

    def set_fields(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def is_empty(self) -> bool:
        return not self.set_fields()

    def apply(self, base: Values) -> Values:
        """Layer the set fields of this overrides onto ``base``."""
        return replace(base, **self.set_fields())

    def merge(self, higher: "Overrides") -> "Overrides":
        """Return a layer where every field ``higher`` sets wins over ``self``."""
        return replace(self, **higher.set_fields())

    def validate(self) -> None:
        """Check only the fields that are set.

        If any weight is set, the weights merged onto the defaults must still
        contain a positive entry, so zeroing all three in one place fails.
        """
        if self.fail_on_increase_percent is not None:
            _validate_fail_on_increase(self.fail_on_increase_percent)
        if self.low_confidence_warning_percent is not None:
            _validate_percentage("low_confidence_warning_percent", self.low_confidence_warning_percent)
        if self.min_usage_percent_for_recommendations is not None:
            _validate_percentage(
                "min_usage_percent_for_recommendations", self.min_usage_percent_for_recommendations
            )
        weights_set = False
        for name in WEIGHT_FIELDS:
            value = getattr(self, name)
            if value is not None:
                weights_set = True
                _validate_weight(name, value)
        if self.lockfile_drift_policy is not None:
            LockfileDriftPolicy.parse(self.lockfile_drift_policy)
        if weights_set and not _has_positive_weight(self.apply(Values.defaults()).weights()):
            raise ValidationError(
                "invalid removal candidate weights: at least one weight must be greater than 0"
            )


def _validate_fail_on_increase(value: int) -> None:
    if value < 0:
        raise ValidationError(
            f"invalid threshold fail_on_increase_percent: {value} (must be >= 0)",
            "fail_on_increase_percent",
        )


def _validate_percentage(name: str, value: int) -> None:
    if value < 0 or value > 100:
        raise ValidationError(
            f"invalid threshold {name}: {value} (must be between 0 and 100)", name
        )


def _validate_weight(name: str, value: float) -> None:
    # NaN compares false against everything, so check finiteness first
    if not math.isfinite(value):
        raise ValidationError(f"invalid threshold {name}: {value} (must be a finite number)", name)
    if value < 0:
        raise ValidationError(f"invalid threshold {name}: {value} (must be >= 0)", name)


def _has_positive_weight(values: Tuple[float, ...]) -> bool:
    return any(value > 0 for value in values)


__all__: List[str] = [
    "LockfileDriftPolicy",
    "Values",
    "Overrides",
    "INT_FIELDS",
    "WEIGHT_FIELDS",
    "THRESHOLD_FIELDS",
]
