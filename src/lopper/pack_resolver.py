"""
Recursive resolution of ``policy.packs`` imports.

A document's packs are resolved in file order and left-folded, so a later
pack overrides an earlier one; the document's own values are then layered on
top. Sources are collected lowest precedence first and deduplicated stably.

Each ``PackResolver`` owns the stack of canonical identities currently being
expanded and is meant for exactly one top-level resolution. A pack reached
through two independent (non-cyclic) import paths is read and merged twice.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from logging import getLogger
from typing import Iterable, List, Optional, Tuple

from .errors import ConfigReadError, CycleError, IntegrityError, ParseError, RemoteFetchError
from .policy_document import PolicyDocument, parse_policy_document
from .references import PolicyReference, canonicalize, is_path_under_root, resolve_pack_ref
from .remote import RemoteFetcher
from .safeio import read_file, read_file_under
from .scope import PathScope
from .thresholds import Overrides

log = getLogger(__name__)

DEFAULT_POLICY_SOURCE = "defaults"
MAX_IMPORT_DEPTH = 64


@dataclass(frozen=True)
class MergeResult:
    overrides: Overrides = Overrides()
    scope: PathScope = PathScope()
    sources_low_to_high: Tuple[str, ...] = field(default_factory=tuple)

    def policy_sources_high_to_low(self) -> List[str]:
        """Highest precedence first, deduplicated, terminated by ``"defaults"``."""
        seen = {DEFAULT_POLICY_SOURCE}
        out: List[str] = []
        for source in reversed(self.sources_low_to_high):
            if source in seen:
                continue
            seen.add(source)
            out.append(source)
        out.append(DEFAULT_POLICY_SOURCE)
        return out


class PackResolver:
    def __init__(
        self,
        repo_path: str,
        fetcher: Optional[RemoteFetcher] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.repo_path = repo_path
        self.fetcher = fetcher
        self._owns_fetcher = False
        self.cancel_event = cancel_event
        self._stack: List[str] = []

    @property
    def stack(self) -> Tuple[str, ...]:
        return tuple(self._stack)

    def resolve_file(self, location: str, outside_root_allowed: bool = False) -> MergeResult:
        """Resolve one document and everything it imports.

        ``outside_root_allowed`` is true only for a chain rooted at an
        explicitly supplied config file that lives outside the repository;
        local imports along that chain skip the root sandbox.
        """
        ref = canonicalize(location)
        self._push(ref.location)
        try:
            data = self._read(ref, outside_root_allowed)
            doc = parse_policy_document(ref.location, data)
            log.debug("loaded policy document %s (%d packs)", ref.location, len(doc.packs))
            return self._merge(doc, outside_root_allowed)
        finally:
            self._pop(ref.location)

    def close(self) -> None:
        if self._owns_fetcher and self.fetcher is not None:
            self.fetcher.close()
            self.fetcher = None
            self._owns_fetcher = False

    def _merge(self, doc: PolicyDocument, outside_root_allowed: bool) -> MergeResult:
        merged = Overrides()
        merged_scope = PathScope()
        sources: List[str] = []
        for idx, pack_ref in enumerate(doc.packs):
            try:
                resolved_ref = resolve_pack_ref(doc.location, pack_ref)
            except IntegrityError as err:
                raise IntegrityError(f"{_pack_context(doc.location, idx)}: {err}") from err
            except ParseError as err:
                raise ParseError(f"{_pack_context(doc.location, idx)}: {err}") from err
            pack = self.resolve_file(resolved_ref, outside_root_allowed)
            log.debug("merging pack %s into %s", resolved_ref, doc.location)
            merged = merged.merge(pack.overrides)
            merged_scope = merged_scope.merge(pack.scope)
            sources.extend(pack.sources_low_to_high)

        # 文档自身的值总是高于它导入的所有 pack
        merged = merged.merge(doc.overrides)
        merged_scope = merged_scope.merge(doc.scope)
        sources.append(doc.location)
        return MergeResult(
            overrides=merged, scope=merged_scope, sources_low_to_high=_dedupe_stable(sources)
        )

    def _read(self, ref: PolicyReference, outside_root_allowed: bool) -> bytes:
        if ref.remote:
            if self.fetcher is None:
                self.fetcher = RemoteFetcher()
                self._owns_fetcher = True
            try:
                return self.fetcher.fetch(ref.location, self.cancel_event)
            except IntegrityError as err:
                raise IntegrityError(f"read remote policy file {ref.location}: {err}") from err
            except RemoteFetchError as err:
                raise RemoteFetchError(f"read remote policy file {ref.location}: {err}") from err
        try:
            if outside_root_allowed and not is_path_under_root(self.repo_path, ref.location):
                return read_file(ref.location)
            return read_file_under(self.repo_path, ref.location)
        except ConfigReadError as err:
            raise ConfigReadError(f"read config file {ref.location}: {err}") from err

    def _push(self, identity: str) -> None:
        if identity in self._stack:
            raise CycleError(self._stack + [identity])
        if len(self._stack) >= MAX_IMPORT_DEPTH:
            raise ParseError(
                f"policy pack imports nested deeper than {MAX_IMPORT_DEPTH} levels at {identity}"
            )
        self._stack.append(identity)

    def _pop(self, identity: str) -> None:
        if self._stack and self._stack[-1] == identity:
            self._stack.pop()
            return
        if identity in self._stack:
            self._stack.remove(identity)


def _pack_context(location: str, idx: int) -> str:
    return f"parse config file {location}: invalid policy.packs[{idx}]"


def _dedupe_stable(values: Iterable[str]) -> Tuple[str, ...]:
    seen: set = set()
    out: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return tuple(out)


__all__ = ["PackResolver", "MergeResult", "DEFAULT_POLICY_SOURCE", "MAX_IMPORT_DEPTH"]
