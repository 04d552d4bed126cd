"""
Argo ``{{workflow.*}}`` global variables.

Detects ``{{workflow.name}}``-style expressions and the dotted sub-property
forms (``workflow.labels.X``, ``workflow.annotations.X``,
``workflow.parameters.X``, ``workflow.outputs.parameters.X``,
``workflow.outputs.artifacts.X``), and locates the manifest fields they
read from.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.yaml_text import indent_of, is_blank_or_comment, unquote, value_column
from argolsp.references.types import make_range


@dataclass(frozen=True)
class WorkflowVariableInfo:
    name: str
    description: str
    example: str | None = None


def _info(short: str, description: str) -> WorkflowVariableInfo:
    return WorkflowVariableInfo(f'workflow.{short}', description, f'{{{{workflow.{short}}}}}')


WORKFLOW_VARIABLES: dict[str, WorkflowVariableInfo] = {
    v.name: v for v in (
        _info('name', 'Name of the Workflow'),
        _info('namespace', 'Namespace where the Workflow is running'),
        _info('uid', 'UID of the Workflow'),
        _info('serviceAccountName', 'Service account name of the Workflow'),
        _info('creationTimestamp', 'Creation timestamp of the Workflow (RFC 3339 format)'),
        _info('duration', 'Duration of the Workflow execution in seconds'),
        _info('priority', 'Priority of the Workflow'),
        _info('status', 'Status of the Workflow (Running, Succeeded, Failed, etc.)'),
    )
}

# Prefix after "workflow." -> sub-property type; longest first.
SUB_PROPERTY_PREFIXES = (
    ('outputs.parameters.', 'outputs.parameters'),
    ('outputs.artifacts.', 'outputs.artifacts'),
    ('labels.', 'labels'),
    ('annotations.', 'annotations'),
    ('parameters.', 'parameters'),
)

_WORKFLOW_VAR_RE = re.compile(r'\{\{\s*workflow\.([\w.-]+?)\s*\}\}')
_PARAM_NAME_RE = re.compile(r'''^\s*-\s*name:\s*['"]?([\w.-]+)['"]?''')


@dataclass(frozen=True)
class WorkflowVariableMatch:
    variable: WorkflowVariableInfo
    range: lsp.Range
    sub_property: str | None = None
    sub_property_type: str | None = None


def classify_workflow_variable(suffix: str) -> WorkflowVariableMatch | None:
    """Split ``suffix`` (the part after ``workflow.``) into catalogue info and sub-property.

    The returned match has a placeholder range; callers replace it.
    """
    placeholder = make_range(0, 0, 0)
    for prefix, kind in SUB_PROPERTY_PREFIXES:
        if suffix.startswith(prefix) and len(suffix) > len(prefix):
            info = WorkflowVariableInfo(
                f'workflow.{suffix}',
                f'Workflow {kind} entry `{suffix[len(prefix):]}`',
                f'{{{{workflow.{suffix}}}}}',
            )
            return WorkflowVariableMatch(info, placeholder, suffix[len(prefix):], kind)
    info = WORKFLOW_VARIABLES.get(f'workflow.{suffix}')
    if info is None:
        return None
    return WorkflowVariableMatch(info, placeholder)


def find_workflow_variable_at(lines: list[str], pos: lsp.Position) -> WorkflowVariableMatch | None:
    """Return the workflow variable whose ``{{ }}`` span contains *pos* (inclusive)."""
    if not 0 <= pos.line < len(lines):
        return None
    line = lines[pos.line]
    for m in _WORKFLOW_VAR_RE.finditer(line):
        if not m.start() <= pos.character <= m.end():
            continue
        found = classify_workflow_variable(m.group(1))
        if found is None:
            return None
        return WorkflowVariableMatch(found.variable, make_range(pos.line, m.start(), m.end()),
                                     found.sub_property, found.sub_property_type)
    return None


# ---------------------------------------------------------------------------
# Definition lookups
# ---------------------------------------------------------------------------

def find_metadata_field(lines: list[str], field_name: str) -> lsp.Range | None:
    """Range of the value of ``metadata.<field_name>`` (direct child only)."""
    field_re = re.compile(rf'^\s*{re.escape(field_name)}:\s*(\S.*)')
    in_metadata = False
    metadata_indent = 0
    for i, line in enumerate(lines):
        if is_blank_or_comment(line):
            continue
        indent = indent_of(line)
        if re.match(r'^\s*metadata:', line):
            in_metadata = True
            metadata_indent = indent
            continue
        if in_metadata and indent <= metadata_indent:
            in_metadata = False
        if not in_metadata or indent != metadata_indent + 2:
            continue
        m = field_re.match(line)
        if m:
            value = unquote(m.group(1).strip())
            col = value_column(line, value)
            return make_range(i, col, col + len(value))
    return None


def find_metadata_key(lines: list[str], section: str, key: str) -> lsp.Range | None:
    """Range of *key* under ``metadata.<section>`` (labels or annotations)."""
    key_re = re.compile(rf'^\s*({re.escape(key)})\s*:')
    section_re = re.compile(rf'^\s*{section}:')
    in_metadata = in_section = False
    metadata_indent = section_indent = 0
    for i, line in enumerate(lines):
        if is_blank_or_comment(line):
            continue
        indent = indent_of(line)
        if re.match(r'^\s*metadata:', line):
            in_metadata, in_section = True, False
            metadata_indent = indent
            continue
        if in_metadata and indent <= metadata_indent:
            in_metadata = in_section = False
        if not in_metadata:
            continue
        if section_re.match(line) and indent > metadata_indent:
            in_section = True
            section_indent = indent
            continue
        if in_section and indent <= section_indent:
            in_section = False
        if in_section:
            m = key_re.match(line)
            if m:
                return make_range(i, m.start(1), m.end(1))
    return None


def iter_list_names(lines: list[str], parent: str, child: str):
    """Yield ``(line_no, name, indent)`` for ``- name:`` items under ``<parent>.<child>``."""
    parent_re = re.compile(rf'^\s*{parent}:')
    child_re = re.compile(rf'^\s*{child}:')
    in_parent = in_child = False
    parent_indent = 0
    for i, line in enumerate(lines):
        if is_blank_or_comment(line):
            continue
        indent = indent_of(line)
        if parent_re.match(line):
            in_parent, in_child = True, False
            parent_indent = indent
            continue
        if in_parent and indent <= parent_indent:
            in_parent = in_child = False
        if not in_parent:
            continue
        if child_re.match(line) and indent > parent_indent:
            in_child = True
            continue
        if in_child:
            m = _PARAM_NAME_RE.match(line)
            if m:
                yield i, m.group(1), indent


def find_workflow_parameter(lines: list[str], name: str) -> tuple[lsp.Range, dict[str, str]] | None:
    """Locate ``spec.arguments.parameters[name]``.

    Returns the name range and a dict with any ``value``/``description``
    found among the item's children.
    """
    for i, found, indent in iter_list_names(lines, 'arguments', 'parameters'):
        if found != name:
            continue
        attrs: dict[str, str] = {}
        for j in range(i + 1, len(lines)):
            line = lines[j]
            if is_blank_or_comment(line):
                continue
            if indent_of(line) <= indent:
                break
            m = re.match(r'''^\s*(value|description):\s*['"]?(.+?)['"]?\s*$''', line)
            if m:
                attrs[m.group(1)] = m.group(2)
        col = lines[i].find(name, lines[i].find(':') + 1)
        return make_range(i, col, col + len(name)), attrs
    return None


def find_workflow_output(lines: list[str], name: str, kind: str) -> lsp.Range | None:
    """Locate ``outputs.parameters[name]`` or ``outputs.artifacts[name]``."""
    child = 'parameters' if kind == 'outputs.parameters' else 'artifacts'
    for i, found, _indent in iter_list_names(lines, 'outputs', child):
        if found == name:
            col = lines[i].find(name, lines[i].find(':') + 1)
            return make_range(i, col, col + len(name))
    return None
