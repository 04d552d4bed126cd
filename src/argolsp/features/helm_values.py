"""
``.Values`` references in Helm templates.

Recognises ``{{ .Values.image.repository }}``, piped and conditional uses
(``{{ .Values.x | quote }}``, ``{{ if .Values.enabled }}``) and any other
``.Values.a.b`` path on a line.  The range covers ``.Values.`` plus the path.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.yaml_text import extract_full_expression
from argolsp.references.types import make_range, range_contains

_VALUES_RE = re.compile(r'\.Values\.([a-zA-Z0-9_-]+(?:\.[a-zA-Z0-9_-]+)*)')
_PATH_CHAR_RE = re.compile(r'[a-zA-Z0-9_.-]')
_PREFIX = '.Values.'


@dataclass(frozen=True)
class ValuesReference:
    value_path: str
    range: lsp.Range
    full_expression: str


def _references_in_line(line: str, line_no: int) -> list[ValuesReference]:
    return [
        ValuesReference(m.group(1), make_range(line_no, m.start(), m.end()),
                        extract_full_expression(line, m.start()))
        for m in _VALUES_RE.finditer(line)
    ]


def find_values_reference_at(lines: list[str], pos: lsp.Position) -> ValuesReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    for ref in _references_in_line(lines[pos.line], pos.line):
        if range_contains(ref.range, pos):
            return ref
    return None


def find_all_values_references(lines: list[str]) -> list[ValuesReference]:
    refs: list[ValuesReference] = []
    for line_no, line in enumerate(lines):
        refs.extend(_references_in_line(line, line_no))
    return refs


def value_path_for_completion(line: str, character: int) -> str | None:
    """Partial path typed after ``.Values.`` up to *character*, or ``None``.

    ``'{{ .Values.ima'`` gives ``'ima'``; ``'{{ .Values.'`` gives ``''``.
    """
    start = min(character, len(line))
    while start > 0 and _PATH_CHAR_RE.match(line[start - 1]):
        start -= 1
    typed = line[start:character]
    if typed.startswith(_PREFIX):
        return typed[len(_PREFIX):]
    return None
