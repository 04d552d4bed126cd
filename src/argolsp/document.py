"""
Per-document text store.

Each open (or scanned) file is held as a ``Document``: its URI, language id
and full text, with line access helpers used by every detector.  Helm
templates are not valid YAML, so detection works on raw lines rather than a
parse tree.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import PurePosixPath


# Language ids the server claims; anything else is ignored by every guard.
YAML_LANGUAGE_IDS = frozenset({'yaml', 'yml', 'helm'})


@dataclass
class Document:
    uri: str
    source: str
    language_id: str = 'yaml'
    version: int = 0

    @cached_property
    def lines(self) -> list[str]:
        return self.source.split('\n')

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line(self, index: int) -> str:
        """Return line *index* without its newline, or ``''`` when out of range."""
        if 0 <= index < len(self.lines):
            return self.lines[index].rstrip('\r')
        return ''

    def get_text(self, start_line: int, end_line: int) -> str:
        """Return lines ``start_line``..``end_line`` inclusive, joined with newlines."""
        start = max(0, start_line)
        end = min(len(self.lines) - 1, end_line)
        if end < start:
            return ''
        return '\n'.join(self.lines[start:end + 1])


def language_id_for(uri: str) -> str:
    """Guess a language id from *uri* (files read from disk carry none)."""
    suffix = PurePosixPath(uri).suffix.lower()
    if suffix == '.tpl':
        return 'helm'
    if suffix in ('.yaml', '.yml'):
        return 'yaml'
    return suffix.lstrip('.') or 'plaintext'


def make_document(uri: str, source: str, language_id: str | None = None,
                  version: int = 0) -> Document:
    """Build a :class:`Document`, inferring the language id from *uri* when not given."""
    return Document(
        uri=uri,
        source=source,
        language_id=language_id or language_id_for(uri),
        version=version,
    )


def read_document(uri: str) -> Document | None:
    """Load *uri* from disk; return ``None`` if it cannot be read."""
    from argolsp.services.scanner import read_text
    source = read_text(uri)
    if source is None:
        return None
    return make_document(uri, source)
