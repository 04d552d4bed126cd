"""
Helm chart discovery and the chart index.

A chart root is a directory holding ``Chart.yaml`` (or ``Chart.yml``) plus ``values.yaml`` or
a ``templates/`` directory.  Discovery walks each workspace folder depth
first up to a bounded depth, prunes :data:`~argolsp.services.scanner.SKIP_DIRS`
and does not descend into a chart root, so subcharts vendored below a chart
are not indexed as charts of their own.

``Chart.yaml`` is read line by line rather than with a YAML parser: chart
metadata occasionally carries template syntax, and only top-level scalars
are needed.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from argolsp.detection import CHART_MARKERS
from argolsp.services.scanner import SKIP_DIRS, path_to_uri, uri_to_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 5

_FIELD_RE = re.compile(r'^(\w+):\s*(.+)$')
_REQUIRED = ('name', 'version', 'apiVersion')


@dataclass
class ChartMetadata:
    name: str
    version: str
    api_version: str
    description: str | None = None
    type: str | None = None
    app_version: str | None = None
    # Every top-level scalar field, keyed as written in Chart.yaml.
    fields: dict[str, str] = field(default_factory=dict)
    key_lines: dict[str, int] = field(default_factory=dict)


@dataclass
class HelmChart:
    name: str
    root_dir: Path
    chart_yaml_uri: str
    values_yaml_uri: str | None = None
    templates_dir: Path | None = None
    metadata: ChartMetadata | None = None

    def contains(self, path: Path) -> bool:
        return path == self.root_dir or self.root_dir in path.parents


def parse_chart_yaml(text: str) -> ChartMetadata | None:
    """Return the chart metadata, or ``None`` when a required field is missing."""
    fields: dict[str, str] = {}
    key_lines: dict[str, int] = {}
    for i, line in enumerate(text.split('\n')):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith('#') or '{{' in trimmed:
            continue
        m = _FIELD_RE.match(line.rstrip())
        if not m:
            continue
        value = m.group(2).strip().strip('"\'')
        fields.setdefault(m.group(1), value)
        key_lines.setdefault(m.group(1), i)
    if not all(fields.get(k) for k in _REQUIRED):
        return None
    return ChartMetadata(
        name=fields['name'],
        version=fields['version'],
        api_version=fields['apiVersion'],
        description=fields.get('description'),
        type=fields.get('type'),
        app_version=fields.get('appVersion'),
        fields=fields,
        key_lines=key_lines,
    )


def chart_marker(directory: Path) -> Path | None:
    """The chart metadata file in *directory*, ``Chart.yaml`` before ``Chart.yml``."""
    for name in CHART_MARKERS:
        candidate = directory / name
        try:
            if candidate.is_file():
                return candidate
        except OSError:
            return None
    return None


def is_chart_root(directory: Path) -> bool:
    try:
        return chart_marker(directory) is not None and (
            (directory / 'values.yaml').is_file() or (directory / 'templates').is_dir())
    except OSError:
        return False


def load_chart(root_dir: Path) -> HelmChart | None:
    """Build a :class:`HelmChart` for *root_dir*; ``None`` if it is not a usable chart."""
    chart_yaml = chart_marker(root_dir) or root_dir / 'Chart.yaml'
    try:
        metadata = parse_chart_yaml(chart_yaml.read_text(encoding='utf-8', errors='replace'))
    except OSError:
        logger.debug('load_chart: cannot read %s', chart_yaml, exc_info=True)
        return None
    if metadata is None:
        logger.info('load_chart: %s lacks name/version/apiVersion, skipped', chart_yaml)
        return None
    values = root_dir / 'values.yaml'
    templates = root_dir / 'templates'
    return HelmChart(
        name=metadata.name,
        root_dir=root_dir,
        chart_yaml_uri=path_to_uri(chart_yaml),
        values_yaml_uri=path_to_uri(values) if values.is_file() else None,
        templates_dir=templates if templates.is_dir() else None,
        metadata=metadata,
    )


def find_helm_charts(roots: list[str | os.PathLike], max_depth: int = DEFAULT_MAX_DEPTH) -> list[HelmChart]:
    charts: list[HelmChart] = []

    def _visit(directory: Path, depth: int) -> None:
        if is_chart_root(directory):
            chart = load_chart(directory)
            if chart is not None:
                charts.append(chart)
            return
        if depth >= max_depth:
            return
        try:
            children = sorted(p for p in directory.iterdir() if p.is_dir())
        except OSError:
            logger.debug('find_helm_charts: cannot list %s', directory, exc_info=True)
            return
        for child in children:
            if child.name not in SKIP_DIRS:
                _visit(child, depth + 1)

    for root in roots:
        _visit(Path(root).absolute(), 0)
    return charts


class HelmChartIndex:

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self._charts: dict[Path, HelmChart] = {}

    def __len__(self) -> int:
        return len(self._charts)

    def initialize(self, roots: list[str | os.PathLike]) -> None:
        self._charts = {c.root_dir: c for c in find_helm_charts(roots, self.max_depth)}
        logger.info('HelmChartIndex: %d chart(s) found', len(self._charts))
        for chart in self._charts.values():
            logger.debug('HelmChartIndex:   %s at %s', chart.name, chart.root_dir)

    def clear(self) -> None:
        self._charts.clear()

    def get_all_charts(self) -> list[HelmChart]:
        return list(self._charts.values())

    def find_chart_for_file(self, uri: str) -> HelmChart | None:
        """The chart whose root is the longest prefix of *uri*'s path."""
        path = uri_to_path(uri).absolute()
        best = None
        for chart in self._charts.values():
            if chart.contains(path) and (best is None or len(chart.root_dir.parts) > len(best.root_dir.parts)):
                best = chart
        return best

    def find_chart_by_name(self, name: str) -> HelmChart | None:
        for chart in self._charts.values():
            if chart.name == name:
                return chart
        return None

    def update_chart(self, root_dir: str | os.PathLike) -> HelmChart | None:
        """Re-read the chart at *root_dir*; drops it if it is no longer a chart root."""
        root = Path(root_dir).absolute()
        chart = load_chart(root) if is_chart_root(root) else None
        if chart is None:
            self.remove_chart(root)
            return None
        self._charts[root] = chart
        logger.debug('HelmChartIndex: updated %s at %s', chart.name, root)
        return chart

    def remove_chart(self, root_dir: str | os.PathLike) -> HelmChart | None:
        removed = self._charts.pop(Path(root_dir).absolute(), None)
        if removed is not None:
            logger.debug('HelmChartIndex: removed %s', removed.root_dir)
        return removed
