"""
Reference data model.

A :class:`DetectedReference` is a located occurrence of a recognised
template expression.  Its ``details`` is one of the per-kind dataclasses
below; the handler that detected it is the only one that resolves it.
A :class:`ResolvedReference` carries the outcome: where the target is
defined, hover text, and ``exists``, which is ``True``, ``False`` (a
diagnostic) or ``None`` (unknown; never reported).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from lsprotocol import types as lsp


# ---------------------------------------------------------------------------
# Per-kind payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TemplateRefDetails:
    type: str                               # 'direct' | 'templateRef'
    template_name: str
    workflow_template_name: str | None = None
    cluster_scope: bool = False
    workflow_kind: str | None = None        # kind of the referring document


@dataclass(frozen=True)
class ParameterDetails:
    type: str                               # e.g. 'inputs.parameters', 'steps.outputs.result'
    parameter_name: str
    step_or_task_name: str | None = None


@dataclass(frozen=True)
class StepDetails:
    type: str                               # 'step' | 'task'
    name: str


@dataclass(frozen=True)
class WorkflowVariableDetails:
    variable_name: str
    description: str = ''
    example: str | None = None
    sub_property: str | None = None
    sub_property_type: str | None = None    # labels | annotations | parameters | outputs.*


@dataclass(frozen=True)
class ItemVariableDetails:
    type: str                               # 'item' | 'item.property'
    property_name: str | None = None


@dataclass(frozen=True)
class ConfigMapDetails:
    type: str                               # configMapKeyRef | secretKeyRef | configMapRef | ...
    reference_type: str                     # 'name' | 'key'
    name: str
    resource_kind: str                      # 'ConfigMap' | 'Secret'
    key_name: str | None = None


@dataclass(frozen=True)
class ValuesDetails:
    value_path: str
    full_expression: str = ''


@dataclass(frozen=True)
class HelmTemplateDetails:
    type: str                               # 'include' | 'template' | 'define'
    template_name: str
    full_expression: str = ''


@dataclass(frozen=True)
class ChartVariableDetails:
    variable_name: str


@dataclass(frozen=True)
class ReleaseCapabilitiesDetails:
    type: str                               # 'release' | 'capabilities'
    variable_name: str


@dataclass(frozen=True)
class GoKeywordDetails:
    keyword_name: str


@dataclass(frozen=True)
class HelmFunctionDetails:
    function_name: str


ReferenceDetails = Union[
    TemplateRefDetails, ParameterDetails, StepDetails, WorkflowVariableDetails,
    ItemVariableDetails, ConfigMapDetails, ValuesDetails, HelmTemplateDetails,
    ChartVariableDetails, ReleaseCapabilitiesDetails, GoKeywordDetails, HelmFunctionDetails,
]


# ---------------------------------------------------------------------------
# Detection / resolution results
# ---------------------------------------------------------------------------

@dataclass
class DetectedReference:
    kind: str
    range: lsp.Range
    details: ReferenceDetails


@dataclass
class ResolvedReference:
    detected: DetectedReference
    definition_location: lsp.Location | None = None
    hover_markdown: str | None = None
    diagnostic_message: str | None = None
    exists: bool | None = None


def make_range(line: int, start: int, end: int, end_line: int | None = None) -> lsp.Range:
    """Shorthand for a range on *line* (or spanning to *end_line*)."""
    return lsp.Range(
        start=lsp.Position(line=line, character=start),
        end=lsp.Position(line=line if end_line is None else end_line, character=end),
    )


def range_contains(rng: lsp.Range, pos: lsp.Position) -> bool:
    """Inclusive containment on both ends."""
    start, end = rng.start, rng.end
    if (pos.line, pos.character) < (start.line, start.character):
        return False
    if (pos.line, pos.character) > (end.line, end.character):
        return False
    return True
