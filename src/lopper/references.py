"""
Policy pack references and their canonical identities.

A reference is either a local path or an http(s) URL pinned with
``#sha256=<64 hex>``. Canonical identity: local -> absolute normalized
path; remote -> URL with the pin fragment lowercased. Two references are the
same import-graph node iff their canonical identities are equal.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import SplitResult, urljoin, urlsplit, urlunsplit

from .errors import IntegrityError, ParseError

PIN_KEY = "sha256"
_HEX64 = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class PolicyReference:
    location: str
    remote: bool

    @property
    def pin(self) -> Optional[str]:
        if not self.remote:
            return None
        return extract_pin(urlsplit(self.location).fragment)

    def __str__(self) -> str:
        return self.location


def parse_remote_url(raw: str) -> Optional[SplitResult]:
    """Return the split URL when ``raw`` is an http(s) URL with a host."""
    try:
        parsed = urlsplit(raw)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    if not parsed.netloc.strip():
        return None
    return parsed


def extract_pin(fragment: str) -> str:
    trimmed = fragment.strip()
    if not trimmed:
        raise IntegrityError(
            "remote policy packs must include a sha256 pin (example: #sha256=<hex>)"
        )
    key, sep, value = trimmed.partition("=")
    if not sep:
        raise IntegrityError(f"invalid remote policy pin {fragment!r}; expected sha256=<hex>")
    if key.strip().lower() != PIN_KEY:
        raise IntegrityError(f"unsupported remote policy pin key {key!r}; expected sha256")
    normalized = value.strip().lower()
    if len(normalized) != 64:
        raise IntegrityError(
            f"invalid remote policy sha256 pin length: got {len(normalized)}, expected 64"
        )
    if not _HEX64.match(normalized):
        raise IntegrityError(f"invalid remote policy sha256 pin: {value.strip()!r} is not hex")
    return normalized


def canonical_remote_url(raw: str) -> str:
    parsed = parse_remote_url(raw)
    if parsed is None:
        raise ParseError(f"invalid remote policy URL: {raw}")
    pin = extract_pin(parsed.fragment)
    return urlunsplit(parsed._replace(fragment=f"{PIN_KEY}={pin}"))


def strip_fragment(url: str) -> str:
    return urlunsplit(urlsplit(url)._replace(fragment=""))


def canonicalize(location: str) -> PolicyReference:
    if parse_remote_url(location) is not None:
        return PolicyReference(canonical_remote_url(location), remote=True)
    return PolicyReference(os.path.abspath(os.path.normpath(location)), remote=False)


def resolve_pack_ref(current: str, ref: str) -> str:
    """Resolve ``ref`` as imported by the document at canonical ``current``."""
    trimmed = ref.strip()
    if not trimmed:
        raise ParseError("pack reference must not be empty")

    if parse_remote_url(current) is not None:
        # 远程文档：相对引用基于去掉 fragment 的父 URL 解析
        return canonical_remote_url(urljoin(strip_fragment(current), trimmed))

    if parse_remote_url(trimmed) is not None:
        return canonical_remote_url(trimmed)
    if os.path.isabs(trimmed):
        return os.path.normpath(trimmed)
    return os.path.normpath(os.path.join(os.path.dirname(current), trimmed))


def is_path_under_root(root: str, target: str) -> bool:
    try:
        relative = os.path.relpath(target, root)
    except ValueError:
        # different drives on Windows
        return False
    return relative != os.pardir and not relative.startswith(os.pardir + os.sep)


__all__ = [
    "PolicyReference",
    "parse_remote_url",
    "extract_pin",
    "canonical_remote_url",
    "canonicalize",
    "resolve_pack_ref",
    "is_path_under_root",
    "strip_fragment",
]
