"""Shared Markdown helpers for hover text."""
from __future__ import annotations

import re

_LEADING_HASHES = re.compile(r'^(#+)')


def build_description(above_comment: str | None = None,
                      inline_comment: str | None = None) -> str | None:
    """Join YAML comments into a hover description.

    Leading ``#`` runs are escaped so Markdown does not render them as headings.
    """
    comments = [c for c in (above_comment, inline_comment) if c]
    if not comments:
        return None
    text = '\n\n'.join(comments)
    return '\n'.join(_LEADING_HASHES.sub(r'\\\1', line) for line in text.split('\n'))


def code_block(lines: list[str], language: str = 'yaml') -> list[str]:
    return [f'```{language}', *lines, '```']
