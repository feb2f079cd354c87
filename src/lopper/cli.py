#!/usr/bin/env python3
"""
lopper CLI entrypoint

Subcommands:
  - policy:   resolve the effective policy (config + packs + flags) and print it

Flags are the final, highest-precedence layer on top of the resolved config.
Only flags that are actually given override anything.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config_loader import ResolutionResult, load_with_policy
from .errors import PolicyError, ValidationError
from .log import configure_logging
from .thresholds import LockfileDriftPolicy, Overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lopper", description="Dependency usage analysis")
    sub = parser.add_subparsers(dest="command")

    p_policy = sub.add_parser("policy", help="Print the effective thresholds and policy sources")
    p_policy.add_argument("--repo", default=".", help="Repository path")
    p_policy.add_argument("--config", default="", help="Config file path (default: auto-discover)")
    p_policy.add_argument("--threshold-fail-on-increase", type=int, default=None, help="Waste increase threshold for CI failure")
    p_policy.add_argument("--fail-on-increase", type=int, default=None, help="Legacy alias of --threshold-fail-on-increase")
    p_policy.add_argument("--threshold-low-confidence-warning", type=int, default=None, help="Low-confidence warning threshold")
    p_policy.add_argument("--threshold-min-usage-percent", type=int, default=None, help="Minimum usage percent for recommendations")
    p_policy.add_argument("--score-weight-usage", type=float, default=None, help="Removal candidate weight for usage")
    p_policy.add_argument("--score-weight-impact", type=float, default=None, help="Removal candidate weight for impact")
    p_policy.add_argument("--score-weight-confidence", type=float, default=None, help="Removal candidate weight for confidence")
    p_policy.add_argument(
        "--lockfile-drift-policy",
        default=None,
        choices=[p.value for p in LockfileDriftPolicy],
        help="Lockfile drift handling",
    )
    p_policy.add_argument("--format", choices=["table", "json"], default="table", help="Output format")
    p_policy.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def overrides_from_args(args: argparse.Namespace) -> Overrides:
    fail_on_increase = args.fail_on_increase
    if args.threshold_fail_on_increase is not None:
        if fail_on_increase is not None and fail_on_increase != args.threshold_fail_on_increase:
            raise ValidationError(
                "--fail-on-increase and --threshold-fail-on-increase must match when both are provided"
            )
        fail_on_increase = args.threshold_fail_on_increase

    drift = args.lockfile_drift_policy
    return Overrides(
        fail_on_increase_percent=fail_on_increase,
        low_confidence_warning_percent=args.threshold_low_confidence_warning,
        min_usage_percent_for_recommendations=args.threshold_min_usage_percent,
        removal_candidate_weight_usage=args.score_weight_usage,
        removal_candidate_weight_impact=args.score_weight_impact,
        removal_candidate_weight_confidence=args.score_weight_confidence,
        lockfile_drift_policy=LockfileDriftPolicy.parse(drift) if drift is not None else None,
    )


def resolve_policy(args: argparse.Namespace) -> ResolutionResult:
    # 先解析 CLI 覆盖项，避免无效参数时仍去读取远程 pack
    cli = overrides_from_args(args)
    result = load_with_policy(args.repo.strip(), args.config.strip())
    return result.with_cli_overrides(cli)


def format_table(result: ResolutionResult) -> str:
    values = result.values
    lines = [
        "Effective thresholds:",
        f"- fail_on_increase_percent: {values.fail_on_increase_percent}",
        f"- low_confidence_warning_percent: {values.low_confidence_warning_percent}",
        f"- min_usage_percent_for_recommendations: {values.min_usage_percent_for_recommendations}",
        "",
        "Effective policy:",
        "- sources: " + " > ".join(result.policy_sources),
        f"- removal_candidate_weight_usage: {values.removal_candidate_weight_usage:.3f}",
        f"- removal_candidate_weight_impact: {values.removal_candidate_weight_impact:.3f}",
        f"- removal_candidate_weight_confidence: {values.removal_candidate_weight_confidence:.3f}",
        f"- lockfile_drift_policy: {LockfileDriftPolicy.parse(values.lockfile_drift_policy).value}",
    ]
    if result.scope.include:
        lines.append("- scope include: " + ", ".join(result.scope.include))
    if result.scope.exclude:
        lines.append("- scope exclude: " + ", ".join(result.scope.exclude))
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command == "policy":
        try:
            result = resolve_policy(args)
        except PolicyError as err:
            print(f"error: {err}", file=sys.stderr)
            return 1
        if args.format == "json":
            print(json.dumps(result.effective_policy(), indent=2))
        else:
            print(format_table(result))
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
