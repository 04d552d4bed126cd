"""
Argo loop variables: ``{{item}}`` and ``{{item.<property>}}``.

The loop source is the ``withItems:`` or ``withParam:`` key of the step or
task that encloses the reference.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

import yaml
from lsprotocol import types as lsp

from argolsp.features.yaml_text import indent_of, is_blank_or_comment, unquote
from argolsp.references.types import make_range

logger = logging.getLogger(__name__)

# Property form first: a cursor inside {{item.name}} must never match bare {{item}}.
_ITEM_PATTERNS = (
    ('item.property', re.compile(r'\{\{\s*item\.([\w-]+)\s*\}\}')),
    ('item', re.compile(r'\{\{\s*item\s*\}\}')),
)

_STEP_NAME_RE = re.compile(r'^(\s*)-\s+(?:-\s+)?name:\s')
_NUMBER_RE = re.compile(r'^-?\d+(\.\d+)?$')


@dataclass(frozen=True)
class ItemVariableMatch:
    type: str
    range: lsp.Range
    property_name: str | None = None


@dataclass
class ItemValue:
    value: str
    value_type: str                      # string | number | boolean | object
    properties: list[str] = field(default_factory=list)


@dataclass
class ItemSource:
    type: str                            # 'withItems' | 'withParam'
    range: lsp.Range
    items: list[ItemValue] = field(default_factory=list)
    param_expression: str | None = None


def find_item_variable_at(lines: list[str], pos: lsp.Position) -> ItemVariableMatch | None:
    if not 0 <= pos.line < len(lines):
        return None
    line = lines[pos.line]
    for kind, pattern in _ITEM_PATTERNS:
        for m in pattern.finditer(line):
            if m.start() <= pos.character <= m.end():
                prop = m.group(1) if kind == 'item.property' else None
                return ItemVariableMatch(kind, make_range(pos.line, m.start(), m.end()), prop)
    return None


def _enclosing_step(lines: list[str], line_no: int) -> tuple[int, int] | None:
    """``(start, end)`` of the innermost step/task item containing *line_no*.

    A ``- name:`` item counts as a step or task when it has a ``template:``,
    ``withItems:`` or ``withParam:`` child.
    """
    for i in range(min(line_no, len(lines) - 1), -1, -1):
        line = lines[i]
        if is_blank_or_comment(line):
            continue
        m = _STEP_NAME_RE.match(line)
        if not m:
            continue
        base = len(m.group(1))
        end = i
        qualifies = False
        for j in range(i + 1, len(lines)):
            body = lines[j]
            if is_blank_or_comment(body):
                end = j
                continue
            if indent_of(body) <= base:
                break
            end = j
            if body.strip().startswith(('template:', 'withItems:', 'withParam:')):
                qualifies = True
        if qualifies and i <= line_no <= end:
            return i, end
    return None


def _classify(value) -> ItemValue:
    if isinstance(value, dict):
        return ItemValue(json.dumps(value), 'object', [str(k) for k in value])
    if isinstance(value, bool):
        return ItemValue(str(value).lower(), 'boolean')
    if isinstance(value, (int, float)):
        return ItemValue(str(value), 'number')
    return ItemValue(str(value), 'string')


def parse_inline_items(text: str) -> list[ItemValue]:
    """Parse a flow sequence such as ``["a", {"x": 1}]``."""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError:
        logger.debug('withItems flow sequence is not valid YAML: %r', text)
        inner = text.strip().lstrip('[').rstrip(']')
        return [ItemValue(unquote(part), 'string') for part in inner.split(',') if part.strip()]
    if not isinstance(parsed, list):
        return []
    return [_classify(v) for v in parsed]


def _flow_mapping_keys(text: str) -> list[str]:
    keys = []
    for pair in text.strip().lstrip('{').rstrip('}').split(','):
        colon = pair.find(':')
        if colon > 0:
            key = unquote(pair[:colon].strip())
            if key:
                keys.append(key)
    return keys


def parse_block_items(lines: list[str], header: int) -> list[ItemValue]:
    """Parse the ``- value`` list below a ``withItems:`` header."""
    base = indent_of(lines[header])
    items: list[ItemValue] = []
    for i in range(header + 1, len(lines)):
        line = lines[i]
        if is_blank_or_comment(line):
            continue
        if indent_of(line) < base or (indent_of(line) == base and not line.lstrip().startswith('-')):
            break
        m = re.match(r'^-\s+(.*)', line.strip())
        if not m:
            continue
        value = m.group(1).strip()
        if value.startswith('{') and value.endswith('}'):
            items.append(ItemValue(value, 'object', _flow_mapping_keys(value)))
        elif _NUMBER_RE.match(value):
            items.append(ItemValue(value, 'number'))
        elif value in ('true', 'false'):
            items.append(ItemValue(value, 'boolean'))
        else:
            items.append(ItemValue(unquote(value), 'string'))
    return items


def find_item_source(lines: list[str], line_no: int) -> ItemSource | None:
    """Find the ``withItems``/``withParam`` feeding the step that holds *line_no*."""
    block = _enclosing_step(lines, line_no)
    if block is None:
        return None
    start, end = block
    for i in range(start, end + 1):
        line = lines[i]
        trimmed = line.strip()
        m = re.match(r'^withItems:\s*(.*)$', trimmed)
        if m:
            col = line.find('withItems')
            inline = m.group(1).strip()
            if inline.startswith('['):
                items = parse_inline_items(inline)
            else:
                items = parse_block_items(lines, i)
            return ItemSource('withItems', make_range(i, col, col + len('withItems')), items)
        m = re.match(r'''^withParam:\s*['"]?(.+?)['"]?\s*$''', trimmed)
        if m:
            col = line.find('withParam')
            return ItemSource('withParam', make_range(i, col, col + len('withParam')),
                              param_expression=m.group(1))
    return None
