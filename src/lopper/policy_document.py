"""
Strict decoding of policy documents (.lopper.yml / .lopper.yaml / lopper.json
and imported packs).

Goals
- Reject unknown or misspelled keys at every level
- Keep "absent" and "present with a zero value" distinct (``None`` vs ``0``)
- Reject a threshold set both at the document root (legacy form) and under
  ``thresholds``
"""

from __future__ import annotations

import json
import os
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import DuplicateFieldError, ParseError
from .references import parse_remote_url
from .scope import PathScope
from .thresholds import THRESHOLD_FIELDS, WEIGHT_FIELDS, LockfileDriftPolicy, Overrides


class _StrictLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys."""


def _construct_unique_mapping(loader: _StrictLoader, node: yaml.MappingNode, deep: bool = False):
    loader.flatten_mapping(node)
    seen = set()
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if isinstance(key, Hashable):
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
    return loader.construct_mapping(node, deep=deep)


_StrictLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping
)


class ThresholdsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fail_on_increase_percent: Optional[StrictInt] = None
    low_confidence_warning_percent: Optional[StrictInt] = None
    min_usage_percent_for_recommendations: Optional[StrictInt] = None
    removal_candidate_weight_usage: Optional[float] = None
    removal_candidate_weight_impact: Optional[float] = None
    removal_candidate_weight_confidence: Optional[float] = None
    lockfile_drift_policy: Optional[LockfileDriftPolicy] = None

    @field_validator(*WEIGHT_FIELDS, mode="before")
    @classmethod
    def _number_only(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("must be a number")
        try:
            return float(value)
        except OverflowError:
            raise ValueError("number out of range") from None

    @field_validator("lockfile_drift_policy", mode="before")
    @classmethod
    def _drift_policy(cls, value: Any) -> Any:
        # PyYAML follows YAML 1.1, where an unquoted `off` loads as False
        if value is False:
            return LockfileDriftPolicy.OFF.value
        if isinstance(value, bool):
            raise ValueError("must be one of off, warn, fail")
        if isinstance(value, str):
            return value.strip().lower()
        return value


class PolicyModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    packs: Optional[List[StrictStr]] = None


class ScopeModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    include: Optional[List[StrictStr]] = None
    exclude: Optional[List[StrictStr]] = None


class PolicyDocumentModel(ThresholdsModel):
    """Document root: sections plus the legacy unnested threshold leaves."""

    policy: Optional[PolicyModel] = None
    scope: Optional[ScopeModel] = None
    thresholds: Optional[ThresholdsModel] = Field(default=None)


@dataclass(frozen=True)
class PolicyDocument:
    location: str
    packs: Tuple[str, ...] = ()
    scope: PathScope = PathScope()
    overrides: Overrides = Overrides()

    @classmethod
    def from_model(cls, location: str, model: PolicyDocumentModel) -> "PolicyDocument":
        values = {}
        for name in THRESHOLD_FIELDS:
            root_value = getattr(model, name)
            nested_value = getattr(model.thresholds, name) if model.thresholds else None
            if root_value is not None and nested_value is not None:
                raise DuplicateFieldError(name, location)
            values[name] = nested_value if nested_value is not None else root_value

        scope = model.scope or ScopeModel()
        packs = model.policy.packs if model.policy and model.policy.packs else []
        return cls(
            location=location,
            packs=tuple(packs),
            scope=PathScope.from_lists(scope.include, scope.exclude),
            overrides=Overrides(**values),
        )


def document_format(location: str) -> str:
    parsed = parse_remote_url(location)
    path = parsed.path if parsed is not None else location
    ext = os.path.splitext(path)[1].lower()
    return "json" if ext == ".json" else "yaml"


def parse_policy_document(location: str, data: bytes) -> PolicyDocument:
    """Decode ``data`` (read from ``location``) into a ``PolicyDocument``."""
    fmt = document_format(location)
    raw = _decode_json(location, data) if fmt == "json" else _decode_yaml(location, data)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ParseError(
            f"parse config file {location}: invalid {fmt.upper()} config: "
            f"top level must be a mapping, got {type(raw).__name__}"
        )
    try:
        model = PolicyDocumentModel.model_validate(raw)
    except PydanticValidationError as err:
        raise ParseError(
            f"parse config file {location}: invalid {fmt.upper()} config: {_describe(err)}"
        ) from err
    return PolicyDocument.from_model(location, model)


def _decode_json(location: str, data: bytes) -> Any:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise ParseError(f"parse config file {location}: invalid JSON config: {err}") from err
    decoder = json.JSONDecoder()
    start = len(text) - len(text.lstrip())
    try:
        value, end = decoder.raw_decode(text, start)
    except json.JSONDecodeError as err:
        raise ParseError(f"parse config file {location}: invalid JSON config: {err}") from err
    if text[end:].strip():
        raise ParseError(
            f"parse config file {location}: invalid JSON config: multiple JSON values"
        )
    return value


def _decode_yaml(location: str, data: bytes) -> Any:
    try:
        return yaml.load(data, Loader=_StrictLoader)  # noqa: S506 - SafeLoader subclass
    except yaml.YAMLError as err:
        raise ParseError(f"parse config file {location}: invalid YAML config: {err}") from err


def _describe(err: PydanticValidationError) -> str:
    parts: List[str] = []
    for item in err.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
        if item.get("type") == "extra_forbidden":
            parts.append(f"{loc}: unknown field")
        else:
            parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


__all__ = [
    "PolicyDocument",
    "PolicyDocumentModel",
    "ThresholdsModel",
    "document_format",
    "parse_policy_document",
]
