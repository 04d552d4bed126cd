"""
Reference registry.

The registry holds an ordered list of :class:`DocumentGuard` objects.  For
any request only the **first** guard whose ``check`` accepts the document is
consulted; its handlers are then tried in order.  The ordering of guards
(Helm > Argo/ConfigMap-aware > plain ConfigMap) is the priority rule, so
the list is built once in :mod:`argolsp.references.setup` and never mutated
at request time.

A handler that raises is logged and treated as "no result" for that
handler only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.references.handler import ReferenceHandler
from argolsp.references.types import ResolvedReference

logger = logging.getLogger(__name__)


@dataclass
class DocumentGuard:
    name: str
    check: Callable[[Document], bool]
    handlers: list[ReferenceHandler] = field(default_factory=list)


class ReferenceRegistry:

    def __init__(self, guards: list[DocumentGuard] | None = None):
        self._guards: list[DocumentGuard] = list(guards or [])

    @property
    def guards(self) -> tuple[DocumentGuard, ...]:
        return tuple(self._guards)

    def add_guard(self, guard: DocumentGuard) -> None:
        self._guards.append(guard)

    def match_guard(self, doc: Document) -> DocumentGuard | None:
        """Return the first guard accepting *doc*, or ``None``."""
        for guard in self._guards:
            try:
                if guard.check(doc):
                    return guard
            except Exception:
                logger.warning('guard %r check failed for %s', guard.name, doc.uri, exc_info=True)
        return None

    # ------------------------------------------------------------------
    # Position-based operations
    # ------------------------------------------------------------------

    def _detect(self, doc: Document, pos: lsp.Position):
        guard = self.match_guard(doc)
        if guard is None:
            return None, None
        for handler in guard.handlers:
            try:
                detected = handler.detect(doc, pos)
            except Exception:
                logger.warning('%r.detect failed at %s:%d:%d', handler, doc.uri,
                               pos.line, pos.character, exc_info=True)
                continue
            if detected is not None:
                return handler, detected
        return None, None

    async def detect_and_resolve(self, doc: Document, pos: lsp.Position) -> ResolvedReference | None:
        """Resolve the first reference detected at *pos* (first detection wins)."""
        handler, detected = self._detect(doc, pos)
        if detected is None:
            return None
        try:
            return await handler.resolve(doc, detected)
        except Exception:
            logger.warning('%r.resolve failed for %s', handler, doc.uri, exc_info=True)
            return None

    def provide_completions(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem]:
        """Return the first non-empty completion list offered by the matched guard's handlers."""
        guard = self.match_guard(doc)
        if guard is None:
            return []
        for handler in guard.handlers:
            if not handler.supports.completion:
                continue
            try:
                items = handler.complete(doc, pos)
            except Exception:
                logger.warning('%r.complete failed for %s', handler, doc.uri, exc_info=True)
                continue
            if items:
                return items
        return []

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        """Locate every occurrence of the symbol at *pos* across *documents*.

        The cursor may rest on a reference or on a definition, so each handler
        is asked in turn and the first non-empty answer wins.
        """
        guard = self.match_guard(doc)
        if guard is None:
            return []
        for handler in guard.handlers:
            try:
                found = handler.find_references(doc, pos, documents)
            except Exception:
                logger.warning('%r.find_references failed for %s', handler, doc.uri, exc_info=True)
                continue
            if found:
                return found
        return []

    # ------------------------------------------------------------------
    # Document-wide validation
    # ------------------------------------------------------------------

    async def validate_all(self, doc: Document) -> list[ResolvedReference]:
        """Return every reference in *doc* whose resolution reports ``exists is False``.

        Unlike :meth:`detect_and_resolve` this aggregates across **all**
        diagnostic-capable handlers of the matched guard.
        """
        guard = self.match_guard(doc)
        if guard is None:
            return []
        failures: list[ResolvedReference] = []
        for handler in guard.handlers:
            if not handler.supports.diagnostic:
                continue
            try:
                found = handler.find_all(doc)
            except Exception:
                logger.warning('%r.find_all failed for %s', handler, doc.uri, exc_info=True)
                continue
            for detected in found:
                try:
                    resolved = await handler.resolve(doc, detected)
                except Exception:
                    logger.warning('%r.resolve failed for %s', handler, doc.uri, exc_info=True)
                    continue
                if resolved.exists is False:
                    failures.append(resolved)
        logger.debug('validate_all: %s → %d failing references (guard=%s)',
                     doc.uri, len(failures), guard.name)
        return failures
