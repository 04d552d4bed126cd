"""
Argo template definitions and references.

Definitions are the ``- name:`` items directly under ``spec.templates``.
References come in two forms:

* ``template: <name>`` inside a step or DAG task: a *direct* reference to
  a template of the same document;
* a ``templateRef:`` block holding ``name``, ``template`` and optionally
  ``clusterScope``, which points into a (Cluster)WorkflowTemplate.  The three
  keys are associated by block scope, so ``clusterScope: true`` may appear on
  any line of the block.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.yaml_text import (
    above_comment, block_end, indent_of, inline_comment, is_blank_or_comment,
    is_document_separator, iter_ancestors, iter_children, mapping_key, unquote,
)
from argolsp.references.types import make_range

ARGO_KINDS = ('ClusterWorkflowTemplate', 'WorkflowTemplate', 'CronWorkflow', 'Workflow')

_KIND_RE = re.compile(r'''^kind:\s*['"]?(ClusterWorkflowTemplate|WorkflowTemplate|CronWorkflow|Workflow)['"]?''')
_METADATA_NAME_RE = re.compile(r'''^\s*name:\s*['"]?([\w-]+)['"]?\s*$''')
_TEMPLATES_RE = re.compile(r'^(\s*)templates:')
_ITEM_NAME_RE = re.compile(r'''^(\s*)-\s*name:\s*['"]?([\w-]+)['"]?''')
_TEMPLATE_KEY_RE = re.compile(r'''^(\s*(?:-\s+)?)template:\s*['"]?([\w-]+)['"]?''')


@dataclass
class TemplateDefinition:
    name: str
    kind: str
    uri: str
    range: lsp.Range
    workflow_name: str | None = None
    above_comment: str | None = None
    inline_comment: str | None = None

    @property
    def line(self) -> int:
        return self.range.start.line


@dataclass
class TemplateReference:
    type: str                               # 'direct' | 'templateRef'
    template_name: str
    range: lsp.Range
    workflow_template_name: str | None = None
    cluster_scope: bool = False


def _is_metadata_name(lines: list[str], line_no: int) -> bool:
    for _, parent in iter_ancestors(lines, line_no):
        return indent_of(parent) == 0 and parent.strip() == 'metadata:'
    return False


def find_template_definitions(lines: list[str], uri: str) -> list[TemplateDefinition]:
    """Return every template defined under a ``templates:`` list, across all ``---`` sections.

    Template items share the indent of the first ``-`` line below
    ``templates:``, which may equal the indent of ``templates:`` itself.
    """
    definitions: list[TemplateDefinition] = []
    kind = None
    workflow_name = None
    in_templates = False
    templates_indent = 0
    item_indent = None

    for line_no, line in enumerate(lines):
        if is_document_separator(line):
            kind = workflow_name = None
            in_templates = False
            continue

        if in_templates:
            if is_blank_or_comment(line):
                continue
            indent = indent_of(line)
            is_item = line.lstrip().startswith('-')
            if item_indent is None and is_item and indent >= templates_indent:
                item_indent = indent
            if item_indent is None or indent < item_indent or (indent == item_indent and not is_item):
                in_templates = False
            else:
                m = _ITEM_NAME_RE.match(line)
                if m and len(m.group(1)) == item_indent:
                    name = m.group(2)
                    col = line.find(name, line.find(':') + 1)
                    definitions.append(TemplateDefinition(
                        name=name,
                        kind=kind or 'Workflow',
                        uri=uri,
                        range=make_range(line_no, col, col + len(name)),
                        workflow_name=workflow_name,
                        above_comment=above_comment(lines, line_no),
                        inline_comment=inline_comment(line),
                    ))
                continue

        m = _KIND_RE.match(line)
        if m:
            kind = m.group(1)
            continue

        m = _METADATA_NAME_RE.match(line)
        if m and _is_metadata_name(lines, line_no):
            # Templated names such as {{ .Release.Name }} are not usable keys.
            if '{{' not in line:
                workflow_name = m.group(1)
            continue

        m = _TEMPLATES_RE.match(line)
        if m:
            in_templates = True
            templates_indent = len(m.group(1))
            item_indent = None
    return definitions


def template_block(lines: list[str], definition: TemplateDefinition) -> tuple[int, int]:
    """``(start, end)`` line numbers of the template item holding *definition*."""
    return definition.line, block_end(lines, definition.line)


def enclosing_template(lines: list[str], definitions: list[TemplateDefinition],
                       line_no: int) -> TemplateDefinition | None:
    for definition in definitions:
        start, end = template_block(lines, definition)
        if start <= line_no <= end:
            return definition
    return None


def document_kind_at(lines: list[str], line_no: int) -> str | None:
    """The Argo ``kind`` of the ``---`` section holding *line_no*."""
    kind = None
    for i, line in enumerate(lines):
        if i > line_no and is_document_separator(line):
            break
        if is_document_separator(line):
            kind = None
            continue
        m = _KIND_RE.match(line)
        if m:
            kind = m.group(1)
    return kind


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def _template_ref_header(lines: list[str], line_no: int) -> int | None:
    """Line of the ``templateRef:`` block that *line_no* is a direct child of."""
    for i, line in iter_ancestors(lines, line_no):
        found = mapping_key(line)
        if found and found[0] == 'templateRef' and not found[1]:
            return i
        return None
    return None


def _read_template_ref(lines: list[str], header: int) -> tuple[dict[str, str], dict[str, int]]:
    values: dict[str, str] = {}
    rows: dict[str, int] = {}
    for i, line in iter_children(lines, header):
        found = mapping_key(line)
        if found and found[0] in ('name', 'template', 'clusterScope'):
            values[found[0]] = unquote(found[1].split(' #')[0])
            rows[found[0]] = i
    return values, rows


def _value_range(line_no: int, line: str, value: str) -> lsp.Range:
    col = line.find(value, line.find(':') + 1)
    return make_range(line_no, col, col + len(value))


def _reference_on_line(lines: list[str], line_no: int) -> TemplateReference | None:
    line = lines[line_no]
    if line.lstrip().startswith('#'):
        return None
    header = _template_ref_header(lines, line_no)
    if header is not None:
        values, rows = _read_template_ref(lines, header)
        if not (values.get('name') and values.get('template')):
            return None
        if rows.get('template') == line_no:
            target = values['template']
        elif rows.get('name') == line_no:
            target = values['name']
        else:
            return None
        return TemplateReference(
            type='templateRef',
            template_name=values['template'],
            range=_value_range(line_no, line, target),
            workflow_template_name=values['name'],
            cluster_scope=values.get('clusterScope', '').lower() == 'true',
        )
    m = _TEMPLATE_KEY_RE.match(line)
    if m:
        name = m.group(2)
        return TemplateReference('direct', name, _value_range(line_no, line, name))
    return None


def find_template_reference_at(lines: list[str], pos: lsp.Position) -> TemplateReference | None:
    """Return the template reference whose name token contains *pos* (inclusive)."""
    if not 0 <= pos.line < len(lines):
        return None
    ref = _reference_on_line(lines, pos.line)
    if ref is None:
        return None
    if ref.range.start.character <= pos.character <= ref.range.end.character:
        return ref
    return None


def find_all_template_references(lines: list[str]) -> list[TemplateReference]:
    """Every ``template:`` reference in the document (one per referencing line)."""
    refs: list[TemplateReference] = []
    for line_no, line in enumerate(lines):
        if is_blank_or_comment(line) or 'template:' not in line:
            continue
        ref = _reference_on_line(lines, line_no)
        if ref is not None:
            refs.append(ref)
    return refs
