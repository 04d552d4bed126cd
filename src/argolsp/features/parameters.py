"""
Argo parameter and artifact expressions.

References are recognised through a single table mapping a reference type
to its pattern; the first capturing group is the step or task name for the
``steps.*``/``tasks.*`` forms, and the last group is the parameter name.
Definitions are read structurally from each template's ``inputs`` and
``outputs`` blocks.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.argo_templates import TemplateDefinition, find_template_definitions
from argolsp.features.yaml_text import (
    above_comment, inline_comment, is_blank_or_comment, iter_children, mapping_key,
    strip_inline_comment,
)
from argolsp.references.types import make_range

_NAME = r'([\w-]+)'

# Ordered: the qualified step/task forms before the bare ones.
PARAMETER_PATTERNS: tuple[tuple[str, re.Pattern], ...] = tuple(
    (kind, re.compile(r'\{\{\s*' + body + r'\s*\}\}')) for kind, body in (
        ('steps.outputs.parameters', rf'steps\.{_NAME}\.outputs\.parameters\.{_NAME}'),
        ('tasks.outputs.parameters', rf'tasks\.{_NAME}\.outputs\.parameters\.{_NAME}'),
        ('steps.outputs.artifacts', rf'steps\.{_NAME}\.outputs\.artifacts\.{_NAME}'),
        ('tasks.outputs.artifacts', rf'tasks\.{_NAME}\.outputs\.artifacts\.{_NAME}'),
        ('steps.outputs.result', rf'steps\.{_NAME}\.outputs\.(result)'),
        ('tasks.outputs.result', rf'tasks\.{_NAME}\.outputs\.(result)'),
        ('inputs.parameters', rf'inputs\.parameters\.{_NAME}'),
        ('outputs.parameters', rf'outputs\.parameters\.{_NAME}'),
        ('inputs.artifacts', rf'inputs\.artifacts\.{_NAME}'),
        ('outputs.artifacts', rf'outputs\.artifacts\.{_NAME}'),
        ('workflow.parameters', rf'workflow\.parameters\.{_NAME}'),
    )
)

# Reference types checked by diagnostics; the rest cannot be proven missing.
LOCAL_TYPES = ('inputs.parameters', 'outputs.parameters', 'inputs.artifacts', 'outputs.artifacts')


@dataclass
class ParameterReference:
    type: str
    parameter_name: str
    range: lsp.Range
    step_or_task_name: str | None = None


@dataclass
class ParameterDefinition:
    name: str
    type: str                           # 'input' | 'output'
    template_name: str | None
    range: lsp.Range
    value: str | None = None
    above_comment: str | None = None
    inline_comment: str | None = None
    value_above_comment: str | None = None
    value_inline_comment: str | None = None


@dataclass
class ArtifactDefinition:
    name: str
    type: str                           # 'input' | 'output'
    template_name: str | None
    range: lsp.Range
    path: str | None = None
    above_comment: str | None = None
    inline_comment: str | None = None


@dataclass
class ScriptDefinition:
    line: int
    language: str | None = None


def _reference(kind: str, m: re.Match, line_no: int) -> ParameterReference:
    if kind.startswith(('steps.', 'tasks.')):
        return ParameterReference(kind, m.group(2), make_range(line_no, m.start(), m.end()), m.group(1))
    return ParameterReference(kind, m.group(1), make_range(line_no, m.start(), m.end()))


def find_parameter_reference_at(lines: list[str], pos: lsp.Position) -> ParameterReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    line = lines[pos.line]
    for kind, pattern in PARAMETER_PATTERNS:
        for m in pattern.finditer(line):
            if m.start() <= pos.character <= m.end():
                return _reference(kind, m, pos.line)
    return None


def find_all_parameter_references(lines: list[str]) -> list[ParameterReference]:
    """Every parameter/artifact reference, skipping comment lines."""
    refs: list[ParameterReference] = []
    for line_no, line in enumerate(lines):
        if line.lstrip().startswith('#') or '{{' not in line:
            continue
        for kind, pattern in PARAMETER_PATTERNS:
            refs.extend(_reference(kind, m, line_no) for m in pattern.finditer(line))
    return refs


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

def _io_items(lines: list[str], template: TemplateDefinition, section: str):
    """Yield ``(io_type, line_no)`` for ``- name:`` items of ``inputs|outputs.<section>``."""
    for io_line, io in iter_children(lines, template.line):
        io_key = mapping_key(io)
        if not io_key or io_key[0] not in ('inputs', 'outputs'):
            continue
        io_type = 'input' if io_key[0] == 'inputs' else 'output'
        for sec_line, sec in iter_children(lines, io_line):
            sec_key = mapping_key(sec)
            if not sec_key or sec_key[0] != section:
                continue
            for item_line, item in iter_children(lines, sec_line):
                found = mapping_key(item)
                if found and found[0] == 'name' and item.lstrip().startswith('-'):
                    yield io_type, item_line


def _item_attribute(lines: list[str], item_line: int, key: str) -> int | None:
    for i, line in iter_children(lines, item_line):
        found = mapping_key(line)
        if found and found[0] == key:
            return i
    return None


def _name_range(lines: list[str], line_no: int) -> tuple[str, lsp.Range]:
    line = lines[line_no]
    name = strip_inline_comment(mapping_key(line)[1])
    col = line.find(name, line.find(':') + 1)
    return name, make_range(line_no, col, col + len(name))


def find_parameter_definitions(lines: list[str], templates: list[TemplateDefinition] | None = None
                               ) -> list[ParameterDefinition]:
    if templates is None:
        templates = find_template_definitions(lines, '')
    definitions: list[ParameterDefinition] = []
    for template in templates:
        for io_type, item_line in _io_items(lines, template, 'parameters'):
            name, rng = _name_range(lines, item_line)
            definition = ParameterDefinition(
                name=name,
                type=io_type,
                template_name=template.name,
                range=rng,
                above_comment=above_comment(lines, item_line),
                inline_comment=inline_comment(lines[item_line]),
            )
            value_line = _item_attribute(lines, item_line, 'value')
            if value_line is not None:
                definition.value = strip_inline_comment(mapping_key(lines[value_line])[1]) or None
                definition.value_above_comment = above_comment(lines, value_line)
                definition.value_inline_comment = inline_comment(lines[value_line])
            definitions.append(definition)
    return definitions


def find_artifact_definitions(lines: list[str], templates: list[TemplateDefinition] | None = None
                              ) -> list[ArtifactDefinition]:
    if templates is None:
        templates = find_template_definitions(lines, '')
    definitions: list[ArtifactDefinition] = []
    for template in templates:
        for io_type, item_line in _io_items(lines, template, 'artifacts'):
            name, rng = _name_range(lines, item_line)
            path_line = _item_attribute(lines, item_line, 'path')
            path = strip_inline_comment(mapping_key(lines[path_line])[1]) if path_line is not None else None
            definitions.append(ArtifactDefinition(
                name=name,
                type=io_type,
                template_name=template.name,
                range=rng,
                path=path or None,
                above_comment=above_comment(lines, item_line),
                inline_comment=inline_comment(lines[item_line]),
            ))
    return definitions


def find_script_in_template(lines: list[str], template: TemplateDefinition) -> ScriptDefinition | None:
    """The template's ``script:`` block, with the interpreter from ``command`` if given."""
    for i, line in iter_children(lines, template.line):
        found = mapping_key(line)
        if not found or found[0] != 'script':
            continue
        language = None
        for j, child in iter_children(lines, i):
            key = mapping_key(child)
            if key and key[0] == 'command':
                inline = key[1].strip('[] ')
                if inline:
                    language = inline.split(',')[0].strip().strip('"\'')
                else:
                    for _k, entry in iter_children(lines, j):
                        if not is_blank_or_comment(entry) and entry.lstrip().startswith('-'):
                            language = entry.strip()[1:].strip().strip('"\'')
                            break
        return ScriptDefinition(i, language)
    return None
