"""Step and DAG task definitions (``steps:`` / ``dag.tasks:`` items)."""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.yaml_text import indent_of, is_document_separator
from argolsp.references.types import make_range

_STEP_NAME_RE = re.compile(r'''^\s*-\s*-?\s*name:\s*['"]?([\w-]+)['"]?''')
_TASK_NAME_RE = re.compile(r'''^\s*-\s*name:\s*['"]?([\w-]+)['"]?''')
_TEMPLATE_RE = re.compile(r'''^\s*template:\s*['"]?([\w-]+)['"]?''')


@dataclass
class StepDefinition:
    type: str                   # 'step' | 'task'
    name: str
    template_name: str
    range: lsp.Range            # the name token


def _scan(lines: list[str], section: str, name_re: re.Pattern, kind: str) -> list[StepDefinition]:
    section_re = re.compile(rf'^(\s*){section}:')
    found: list[StepDefinition] = []
    in_section = False
    section_indent = 0
    item_indent = None
    pending: tuple[str, lsp.Range] | None = None

    for line_no, line in enumerate(lines):
        if is_document_separator(line):
            in_section = False
            pending = None
            continue
        m = section_re.match(line)
        if m:
            in_section = True
            section_indent = len(m.group(1))
            item_indent = None
            continue
        if not in_section:
            continue
        stripped = line.strip()
        if stripped and indent_of(line) <= section_indent and not stripped.startswith('-'):
            in_section = False
            pending = None
            continue
        m = name_re.match(line)
        # Parameter items under a step's arguments are deeper than the steps themselves.
        if m and (item_indent is None or indent_of(line) <= item_indent + 2):
            if item_indent is None:
                item_indent = indent_of(line)
            name = m.group(1)
            col = line.find(name, line.find(':') + 1)
            pending = (name, make_range(line_no, col, col + len(name)))
            continue
        if pending is not None:
            m = _TEMPLATE_RE.match(line)
            if m:
                found.append(StepDefinition(kind, pending[0], m.group(1), pending[1]))
                pending = None
    return found


def find_step_definitions(lines: list[str]) -> list[StepDefinition]:
    return _scan(lines, 'steps', _STEP_NAME_RE, 'step')


def find_task_definitions(lines: list[str]) -> list[StepDefinition]:
    return _scan(lines, 'tasks', _TASK_NAME_RE, 'task')


def find_step_or_task(lines: list[str], kind: str, name: str) -> StepDefinition | None:
    defs = find_step_definitions(lines) if kind == 'step' else find_task_definitions(lines)
    for definition in defs:
        if definition.name == name:
            return definition
    return None


def find_step_definition_at(lines: list[str], pos: lsp.Position) -> StepDefinition | None:
    """The step or task whose name token contains *pos* (inclusive)."""
    for definition in find_step_definitions(lines) + find_task_definitions(lines):
        rng = definition.range
        if rng.start.line == pos.line and rng.start.character <= pos.character <= rng.end.character:
            return definition
    return None
