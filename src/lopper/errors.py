"""
Policy resolution error taxonomy.

Every error is terminal: resolution stops at the first failure and the
message is reported verbatim at the command boundary.
"""

from __future__ import annotations

from typing import List, Optional


class PolicyError(RuntimeError):
    """Base class for all policy resolution failures."""


class ConfigNotFoundError(PolicyError):
    """Raised when an explicitly requested config file does not exist."""


class ConfigReadError(PolicyError):
    """Raised when a config or pack file cannot be read."""


class ParseError(PolicyError):
    """Raised for malformed documents, unknown fields and bad pack references."""


class DuplicateFieldError(ParseError):
    """Raised when a threshold is set both at the document root and under ``thresholds``."""

    def __init__(self, field_name: str, location: Optional[str] = None):
        message = f"threshold {field_name} is defined more than once"
        if location:
            message = f"parse config file {location}: {message}"
        super().__init__(message)
        self.field_name = field_name
        self.location = location


class CycleError(PolicyError):
    """Raised when a policy pack transitively imports itself."""

    def __init__(self, chain: List[str]):
        super().__init__("policy pack cycle detected: " + " -> ".join(chain))
        self.chain = list(chain)


class RemoteFetchError(PolicyError):
    """Raised for network failures, non-2xx responses and oversize bodies."""


class IntegrityError(PolicyError):
    """Raised when a remote pack pin is missing, malformed or does not match."""


class ValidationError(PolicyError):
    """Raised when a resolved or partial threshold value is out of range."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name


__all__ = [
    "PolicyError",
    "ConfigNotFoundError",
    "ConfigReadError",
    "ParseError",
    "DuplicateFieldError",
    "CycleError",
    "RemoteFetchError",
    "IntegrityError",
    "ValidationError",
]
