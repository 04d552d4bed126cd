"""
ConfigMap / Secret definitions and the references that point at them.

References are the ``name``/``key`` values inside ``configMapKeyRef``,
``secretKeyRef``, ``configMapRef``, ``secretRef`` and the ``configMap`` /
``secret`` volume sources.  The reference type is taken from the nearest
enclosing block found by walking *ancestors* (a strictly decreasing indent
ceiling), so a sibling block, or the ``name`` of an unrelated
``templateRef``, is never taken for a ConfigMap or Secret.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from lsprotocol import types as lsp

from argolsp.features.yaml_text import (
    block_end, indent_of, is_blank_or_comment, is_document_separator, iter_ancestors,
    iter_children, mapping_key, strip_inline_comment, unquote, value_column,
)
from argolsp.references.types import make_range

ANCESTOR_LIMIT = 20
SIBLING_WINDOW = 5
VOLUME_WINDOW = 15

_NAME_AT_RE = re.compile(r'^-?\s*(name|secretName):\s*(.+)')
_KEY_AT_RE = re.compile(r'^-?\s*key:\s*(.+)')
# The document sweep only looks at plain "name:"/"secretName:"/"key:" lines,
# so "- key:" items under volumes.*.items are not swept.
_SWEEP_RE = re.compile(r'^(name|secretName|key):\s*(.+)')
_SIBLING_NAME_RE = re.compile(r'^(?:name|secretName):\s*(.+)')
_KIND_RE = re.compile(r'^kind:\s*(ConfigMap|Secret)\b')
_DATA_KEY_RE = re.compile(r'^([a-zA-Z0-9_.-]+):\s*(.*)')


@dataclass
class ConfigMapReference:
    type: str                   # configMapKeyRef | secretKeyRef | configMapRef | secretRef | volume*
    reference_type: str         # 'name' | 'key'
    name: str
    kind: str                   # 'ConfigMap' | 'Secret'
    range: lsp.Range
    key_name: str | None = None


@dataclass
class KeyDefinition:
    key: str
    uri: str
    range: lsp.Range
    value: str | None = None


@dataclass
class ConfigMapDefinition:
    name: str
    kind: str
    uri: str
    name_range: lsp.Range
    keys: list[KeyDefinition] = field(default_factory=list)

    def find_key(self, key: str) -> KeyDefinition | None:
        for k in self.keys:
            if k.key == key:
                return k
        return None


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def ancestor_reference_type(lines: list[str], line_no: int) -> tuple[str, str] | None:
    """``(type, kind)`` of the first ConfigMap/Secret block enclosing *line_no*."""
    for _i, line in iter_ancestors(lines, line_no, limit=ANCESTOR_LIMIT):
        trimmed = line.strip()
        if 'configMapKeyRef:' in trimmed:
            return 'configMapKeyRef', 'ConfigMap'
        if 'secretKeyRef:' in trimmed:
            return 'secretKeyRef', 'Secret'
        if 'configMapRef:' in trimmed:
            return 'configMapRef', 'ConfigMap'
        if 'secretRef:' in trimmed:
            return 'secretRef', 'Secret'
        if 'configMap:' in trimmed:
            return 'volumeConfigMap', 'ConfigMap'
        if trimmed.startswith('secret:') or trimmed.endswith('secret:'):
            return 'volumeSecret', 'Secret'
    return None


def _sibling_name(lines: list[str], line_no: int) -> str | None:
    base = indent_of(lines[line_no])
    backward = range(line_no - 1, max(0, line_no - SIBLING_WINDOW) - 1, -1)
    forward = range(line_no + 1, min(len(lines), line_no + SIBLING_WINDOW))
    for window in (backward, forward):
        for i in window:
            line = lines[i]
            if is_blank_or_comment(line):
                continue
            indent = indent_of(line)
            if indent < base:
                break
            if indent != base:
                continue
            m = _SIBLING_NAME_RE.match(line.strip())
            if m:
                return strip_inline_comment(m.group(1))
    return None


def _volume_name(lines: list[str], line_no: int) -> str | None:
    """``name``/``secretName`` child of the enclosing ``configMap:``/``secret:`` volume source."""
    base = indent_of(lines[line_no])
    for i in range(line_no - 1, max(0, line_no - VOLUME_WINDOW) - 1, -1):
        line = lines[i]
        if is_blank_or_comment(line):
            continue
        if is_document_separator(line):
            return None
        indent = indent_of(line)
        if indent >= base:
            continue
        trimmed = line.strip()
        if 'configMap:' in trimmed or trimmed.startswith('secret:') or trimmed.endswith('secret:'):
            for j in range(i + 1, min(len(lines), i + 10)):
                child = lines[j]
                if is_blank_or_comment(child):
                    continue
                child_indent = indent_of(child)
                if child_indent <= indent:
                    break
                if indent + 2 <= child_indent <= indent + 4:
                    m = _SIBLING_NAME_RE.match(child.strip())
                    if m:
                        return strip_inline_comment(m.group(1))
            return None
    return None


def associated_name(lines: list[str], line_no: int) -> str | None:
    """The ConfigMap/Secret name a ``key:`` line belongs to."""
    return _sibling_name(lines, line_no) or _volume_name(lines, line_no)


def _name_reference(lines: list[str], line_no: int, name: str, col: int,
                    field_name: str) -> ConfigMapReference | None:
    rng = make_range(line_no, col, col + len(name))
    if field_name == 'secretName':
        return ConfigMapReference('volumeSecret', 'name', name, 'Secret', rng)
    found = ancestor_reference_type(lines, line_no)
    if found is None:
        return None
    return ConfigMapReference(found[0], 'name', name, found[1], rng)


def _key_reference(lines: list[str], line_no: int, key: str, col: int) -> ConfigMapReference | None:
    found = ancestor_reference_type(lines, line_no)
    if found is None:
        return None
    name = associated_name(lines, line_no)
    if not name:
        return None
    return ConfigMapReference(found[0], 'key', name, found[1],
                              make_range(line_no, col, col + len(key)), key_name=key)


def find_configmap_reference_at(lines: list[str], pos: lsp.Position) -> ConfigMapReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    line = lines[pos.line]
    trimmed = line.strip()

    m = _NAME_AT_RE.match(trimmed)
    if m:
        value = strip_inline_comment(m.group(2))
        col = value_column(line, value)
        if value and col <= pos.character <= col + len(value):
            return _name_reference(lines, pos.line, value, col, m.group(1))

    m = _KEY_AT_RE.match(trimmed)
    if m:
        value = strip_inline_comment(m.group(1))
        col = value_column(line, value)
        if value and col <= pos.character <= col + len(value):
            return _key_reference(lines, pos.line, value, col)
    return None


def find_all_configmap_references(lines: list[str]) -> list[ConfigMapReference]:
    refs: list[ConfigMapReference] = []
    for line_no, line in enumerate(lines):
        m = _SWEEP_RE.match(line.strip())
        if not m:
            continue
        value = strip_inline_comment(m.group(2))
        if not value:
            continue
        col = value_column(line, value)
        if m.group(1) == 'key':
            ref = _key_reference(lines, line_no, value, col)
        else:
            ref = _name_reference(lines, line_no, value, col, m.group(1))
        if ref is not None:
            refs.append(ref)
    return refs


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

def _data_keys(lines: list[str], header: int, uri: str) -> list[KeyDefinition]:
    keys: list[KeyDefinition] = []
    for i, line in iter_children(lines, header):
        m = _DATA_KEY_RE.match(line.strip())
        if not m:
            continue
        key, raw = m.group(1), m.group(2).strip()
        col = line.find(key)
        value: str | None
        if raw[:1] in ('|', '>'):
            end = block_end(lines, i)
            body = [lines[j].strip() for j in range(i + 1, end + 1) if lines[j].strip()]
            value = '\n'.join(body) or None
        else:
            value = unquote(raw) or None
        keys.append(KeyDefinition(key, uri, make_range(i, col, col + len(key)), value))
    return keys


def find_configmap_definitions(lines: list[str], uri: str) -> list[ConfigMapDefinition]:
    """Return every ``kind: ConfigMap``/``kind: Secret`` resource, one per ``---`` section."""
    definitions: list[ConfigMapDefinition] = []
    start = 0
    for end in [i for i, line in enumerate(lines) if is_document_separator(line)] + [len(lines)]:
        found = _definition_in_section(lines, start, end, uri)
        if found is not None:
            definitions.append(found)
        start = end + 1
    return definitions


def _definition_in_section(lines: list[str], start: int, end: int, uri: str) -> ConfigMapDefinition | None:
    kind = None
    name = name_range = None
    key_headers: list[int] = []
    for i in range(start, end):
        line = lines[i]
        if indent_of(line) != 0 or is_blank_or_comment(line):
            continue
        found = mapping_key(line)
        if found is None:
            continue
        key, _value = found
        if key == 'kind':
            m = _KIND_RE.match(line)
            kind = m.group(1) if m else None
        elif key == 'metadata':
            for j, child in iter_children(lines, i):
                child_key = mapping_key(child)
                if child_key and child_key[0] == 'name' and child_key[1]:
                    name = strip_inline_comment(child_key[1])
                    col = value_column(child, name)
                    name_range = make_range(j, col, col + len(name))
                    break
        elif key in ('data', 'stringData'):
            key_headers.append(i)
    if kind is None or not name:
        return None
    definition = ConfigMapDefinition(name, kind, uri, name_range)
    for header in key_headers:
        definition.keys.extend(_data_keys(lines, header, uri))
    return definition
