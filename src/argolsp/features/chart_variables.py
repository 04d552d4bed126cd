"""``.Chart.*`` built-in objects of Helm templates."""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.references.types import make_range, range_contains

_CHART_RE = re.compile(r'\.Chart\.([A-Z][a-zA-Z]*)')
_COMPLETION_RE = re.compile(r'\.Chart\.([A-Za-z]*)$')
_PREFIX_LEN = len('.Chart.')


@dataclass(frozen=True)
class ChartVariableInfo:
    name: str
    description: str

    @property
    def full_path(self) -> str:
        return f'.Chart.{self.name}'

    @property
    def chart_yaml_key(self) -> str:
        """The ``Chart.yaml`` field backing this variable (``ApiVersion`` -> ``apiVersion``)."""
        return self.name[:1].lower() + self.name[1:]


CHART_VARIABLES: dict[str, ChartVariableInfo] = {
    v.name: v for v in (
        ChartVariableInfo('Name', 'The name of the chart'),
        ChartVariableInfo('Version', 'The version of the chart'),
        ChartVariableInfo('Description', 'The description from Chart.yaml'),
        ChartVariableInfo('ApiVersion', 'The API version of the chart'),
        ChartVariableInfo('AppVersion', 'The version of the application contained in the chart'),
        ChartVariableInfo('Type', 'The chart type (application or library)'),
        ChartVariableInfo('KubeVersion', 'The required Kubernetes version'),
        ChartVariableInfo('Keywords', 'Keywords associated with the chart'),
        ChartVariableInfo('Home', 'The URL of the project home page'),
        ChartVariableInfo('Sources', 'A list of URLs to source code for the project'),
        ChartVariableInfo('Icon', 'A URL to an SVG or PNG image to be used as an icon'),
        ChartVariableInfo('Deprecated', 'Whether the chart is deprecated'),
        ChartVariableInfo('Annotations', 'Annotations for the chart'),
    )
}


@dataclass(frozen=True)
class ChartReference:
    variable_name: str
    range: lsp.Range            # the variable name after ".Chart."


def find_chart_reference_at(lines: list[str], pos: lsp.Position) -> ChartReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    for m in _CHART_RE.finditer(lines[pos.line]):
        rng = make_range(pos.line, m.start() + _PREFIX_LEN, m.end())
        if range_contains(rng, pos):
            return ChartReference(m.group(1), rng)
    return None


def chart_prefix_for_completion(line: str, character: int) -> str | None:
    m = _COMPLETION_RE.search(line[:character])
    return m.group(1) if m else None
