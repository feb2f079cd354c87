"""
配置加载器 - locate the repository policy document and resolve the full
policy (imported packs + document values + defaults) for one analysis run.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .errors import ConfigNotFoundError, ConfigReadError, ValidationError
from .pack_resolver import DEFAULT_POLICY_SOURCE, PackResolver
from .references import is_path_under_root
from .remote import RemoteFetcher
from .scope import PathScope
from .thresholds import Overrides, Values

log = getLogger(__name__)

# 按优先级查找配置文件
CONFIG_CANDIDATES: Tuple[str, ...] = (".lopper.yml", ".lopper.yaml", "lopper.json")


@dataclass(frozen=True)
class ResolutionResult:
    overrides: Overrides
    values: Values
    scope: PathScope
    config_path: Optional[str]
    policy_sources: Tuple[str, ...]

    @classmethod
    def defaults_only(cls) -> "ResolutionResult":
        return cls(
            overrides=Overrides(),
            values=Values.defaults(),
            scope=PathScope(),
            config_path=None,
            policy_sources=(DEFAULT_POLICY_SOURCE,),
        )

    def with_cli_overrides(self, cli: Overrides) -> "ResolutionResult":
        """Apply command-line flags as the final, highest-precedence layer."""
        cli.validate()
        values = cli.apply(self.values)
        values.validate()
        return ResolutionResult(
            overrides=self.overrides.merge(cli),
            values=values,
            scope=self.scope,
            config_path=self.config_path,
            policy_sources=self.policy_sources,
        )

    def effective_policy(self) -> Dict[str, Any]:
        """Report payload: ``effectiveThresholds`` and ``effectivePolicy``."""
        values = self.values.as_dict()
        thresholds = {
            "failOnIncreasePercent": values["fail_on_increase_percent"],
            "lowConfidenceWarningPercent": values["low_confidence_warning_percent"],
            "minUsagePercentForRecommendations": values["min_usage_percent_for_recommendations"],
        }
        return {
            "effectiveThresholds": dict(thresholds),
            "effectivePolicy": {
                "sources": list(self.policy_sources),
                "thresholds": thresholds,
                "removalCandidateWeights": {
                    "usage": values["removal_candidate_weight_usage"],
                    "impact": values["removal_candidate_weight_impact"],
                    "confidence": values["removal_candidate_weight_confidence"],
                },
                "lockfileDriftPolicy": values["lockfile_drift_policy"],
                "scope": {
                    "include": list(self.scope.include),
                    "exclude": list(self.scope.exclude),
                },
            },
        }


def resolve_repo_path(repo_path: Union[str, Path]) -> str:
    repo_abs = os.path.abspath(os.fspath(repo_path))
    try:
        os.stat(repo_abs)
    except OSError as err:
        raise ConfigReadError(f"resolve repo path: {err}") from err
    return repo_abs


def find_config_file(repo_path: Union[str, Path]) -> Optional[Path]:
    """
    按优先级查找配置文件

    Returns:
        Path: the first of ``CONFIG_CANDIDATES`` present in the repository,
        or None when there is none (not an error).
    """
    for name in CONFIG_CANDIDATES:
        candidate = Path(repo_path) / name
        try:
            os.stat(candidate)
        except FileNotFoundError:
            continue
        except OSError as err:
            raise ConfigReadError(f"read config file {candidate}: {err}") from err
        return candidate
    return None


def resolve_config_path(repo_path: Union[str, Path], explicit_path: str = "") -> Optional[Path]:
    explicit = (explicit_path or "").strip()
    if not explicit:
        return find_config_file(repo_path)

    candidate = explicit if os.path.isabs(explicit) else os.path.join(os.fspath(repo_path), explicit)
    candidate = os.path.normpath(candidate)
    try:
        os.stat(candidate)
    except FileNotFoundError:
        raise ConfigNotFoundError(f"config file not found: {candidate}") from None
    except OSError as err:
        raise ConfigReadError(f"read config file {candidate}: {err}") from err
    return Path(candidate)


def load_with_policy(
    repo_path: Union[str, Path],
    explicit_path: str = "",
    *,
    fetcher: Optional[RemoteFetcher] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ResolutionResult:
    """
    加载配置文件并解析全部 policy packs

    Args:
        repo_path: repository root; must exist
        explicit_path: config path (relative to the repository) or "" to
            auto-discover ``.lopper.yml``, ``.lopper.yaml``, ``lopper.json``
        fetcher: remote pack fetcher; a private one is created when needed
        cancel_event: set it to abort an in-flight remote fetch

    Returns:
        ResolutionResult: validated values, scope and precedence-ordered sources
    """
    repo_abs = resolve_repo_path(repo_path)
    explicit_provided = bool((explicit_path or "").strip())

    config_path = resolve_config_path(repo_abs, explicit_path)
    if config_path is None:
        log.debug("no policy config found under %s; using defaults", repo_abs)
        return ResolutionResult.defaults_only()

    location = os.fspath(config_path)
    outside_root = explicit_provided and not is_path_under_root(repo_abs, location)
    resolver = PackResolver(repo_abs, fetcher, cancel_event=cancel_event)
    try:
        merged = resolver.resolve_file(location, outside_root)
    finally:
        resolver.close()

    try:
        merged.overrides.validate()
        values = merged.overrides.apply(Values.defaults())
        values.validate()
    except ValidationError as err:
        raise ValidationError(f"parse config file {location}: {err}", err.field_name) from err

    sources = merged.policy_sources_high_to_low()
    log.info("policy sources: %s", " > ".join(sources))
    return ResolutionResult(
        overrides=merged.overrides,
        values=values,
        scope=merged.scope,
        config_path=location,
        policy_sources=tuple(sources),
    )


def load(repo_path: Union[str, Path], explicit_path: str = "") -> Tuple[Overrides, Optional[str]]:
    """Overrides and config path only, for callers that layer values themselves."""
    result = load_with_policy(repo_path, explicit_path)
    return result.overrides, result.config_path


__all__ = [
    "CONFIG_CANDIDATES",
    "ResolutionResult",
    "find_config_file",
    "resolve_config_path",
    "load_with_policy",
    "load",
]
