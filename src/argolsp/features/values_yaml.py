"""
``values.yaml`` parsing.

The file is loaded with PyYAML and flattened into one
:class:`ValueDefinition` per mapping key (``image``, ``image.repository``,
...).  Lists are leaves: their items are not given paths.  Source positions
come from a separate indentation walk over the raw lines, since
``yaml.safe_load`` keeps none.
"""
from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass
from typing import Any

import yaml
from lsprotocol import types as lsp

from argolsp.features.yaml_text import above_comment, indent_of, is_blank_or_comment
from argolsp.references.types import make_range

logger = logging.getLogger(__name__)

_KEY_LINE_RE = re.compile(r'''^(\s*)(?:"([^"]+)"|'([^']+)'|([^\s'"#:-][^:#]*?)):(?:\s|$)''')
_TRAILING_COMMENT_RE = re.compile(r'\s#\s*(.*)$')


@dataclass
class ValueDefinition:
    path: str
    value: Any
    value_type: str                 # string | number | boolean | null | object | array
    uri: str
    range: lsp.Range
    parent_path: str | None = None
    above_comment: str | None = None
    inline_comment: str | None = None

    @property
    def key(self) -> str:
        return self.path.rsplit('.', 1)[-1]


def infer_type(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, list):
        return 'array'
    if isinstance(value, dict):
        return 'object'
    return 'string'


def _json_safe(value: Any) -> Any:
    """Dates (which ``safe_load`` produces for unquoted ISO strings) become strings."""
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


def key_positions(lines: list[str]) -> dict[str, tuple[int, int, int]]:
    """Map each dotted mapping path to ``(line, start_col, end_col)`` of its key.

    List items (``- ...``) are not mapping keys and reset nothing; keys nested
    below them get paths that never match a flattened value.
    """
    positions: dict[str, tuple[int, int, int]] = {}
    stack: list[tuple[int, str]] = []
    for i, line in enumerate(lines):
        if is_blank_or_comment(line) or line.lstrip().startswith('-'):
            continue
        m = _KEY_LINE_RE.match(line)
        if not m:
            continue
        indent = indent_of(line)
        key = m.group(2) or m.group(3) or m.group(4).strip()
        while stack and stack[-1][0] >= indent:
            stack.pop()
        path = '.'.join([k for _, k in stack] + [key])
        col = line.find(key, indent)
        positions.setdefault(path, (i, col, col + len(key)))
        stack.append((indent, key))
    return positions


def _trailing_comment(line: str) -> str | None:
    m = _TRAILING_COMMENT_RE.search(line)
    if not m or line.lstrip().startswith('#'):
        return None
    return m.group(1).strip() or None


def parse_values_yaml(text: str, uri: str) -> list[ValueDefinition]:
    """Flatten *text* into value definitions; malformed YAML gives ``[]``."""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        logger.warning('parse_values_yaml: %s is not valid YAML: %s', uri, exc)
        return []
    if not isinstance(parsed, dict):
        return []

    lines = text.split('\n')
    positions = key_positions(lines)
    definitions: list[ValueDefinition] = []

    def _walk(mapping: dict, parent: str | None) -> None:
        for raw_key, value in mapping.items():
            key = str(raw_key)
            path = f'{parent}.{key}' if parent else key
            line_no, start, end = positions.get(path, (0, 0, 0))
            located = path in positions
            definitions.append(ValueDefinition(
                path=path,
                value=_json_safe(value),
                value_type=infer_type(value),
                uri=uri,
                range=make_range(line_no, start, end),
                parent_path=parent,
                above_comment=above_comment(lines, line_no) if located else None,
                inline_comment=_trailing_comment(lines[line_no]) if located else None,
            ))
            if isinstance(value, dict):
                _walk(value, path)

    _walk(parsed, None)
    return definitions


def find_values_by_prefix(definitions: list[ValueDefinition], prefix: str) -> list[ValueDefinition]:
    """Definitions whose path starts with *prefix*, compared case-insensitively."""
    folded = prefix.lower()
    return [d for d in definitions if d.path.lower().startswith(folded)]


def find_value_by_path(definitions: list[ValueDefinition], path: str) -> ValueDefinition | None:
    for d in definitions:
        if d.path == path:
            return d
    return None
