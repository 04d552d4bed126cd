"""
Handler contract.

One :class:`ReferenceHandler` per reference kind pairs a detector with a
resolver.  ``supports`` advertises which LSP features the handler takes part
in; the registry consults it before calling ``find_all`` or ``complete``.
"""
from __future__ import annotations

from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.references.types import DetectedReference, ResolvedReference


@dataclass(frozen=True)
class HandlerSupports:
    definition: bool = False
    hover: bool = False
    completion: bool = False
    diagnostic: bool = False


class ReferenceHandler:
    """Base class for all handlers.

    Subclasses override :meth:`detect` and :meth:`resolve`; ``find_all``,
    ``complete`` and ``find_references`` are optional.  ``detect`` must never
    raise: a miss is ``None``.  ``complete`` returns ``[]`` for "no
    completions here" and ``None`` when the cursor is not in its context.
    """

    kind: str = ''
    supports = HandlerSupports()

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        raise NotImplementedError

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        raise NotImplementedError

    def find_all(self, doc: Document) -> list[DetectedReference]:
        return []

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        return None

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        """Locations of the symbol at *pos* (a reference or a definition) across *documents*."""
        return []

    def __repr__(self) -> str:
        return f'<{type(self).__name__} kind={self.kind!r}>'


def unresolved(detected: DetectedReference) -> ResolvedReference:
    """A resolution that knows nothing (``exists=None``)."""
    return ResolvedReference(detected=detected)


def location(uri: str, rng: lsp.Range) -> lsp.Location:
    return lsp.Location(uri=uri, range=rng)
