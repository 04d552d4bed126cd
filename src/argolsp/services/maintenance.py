"""
Incremental index maintenance.

File-system notifications are turned into :class:`FileChange` events and
pushed onto a :class:`MaintenanceQueue`.  ``drain`` consumes the queue one
event at a time, in arrival order, routing each to the ``update_file`` /
``remove_file`` calls of the indices it affects:

* ``Chart.yaml``: the chart index, the chart-marker cache, and a full
  re-index of that chart's values and named templates;
* ``values.yaml`` of a chart: the values index;
* files below a chart's ``templates/``: the named-template index;
* every YAML file: the Argo template and ConfigMap indices.

Any change inside a chart also drops that chart's rendered output.
Processing an event twice gives the same state as processing it once.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from lsprotocol import types as lsp

from argolsp.detection import CHART_MARKERS, ChartMarkerCache
from argolsp.services.chart_index import HelmChart, HelmChartIndex
from argolsp.services.configmap_index import ConfigMapIndex
from argolsp.services.helm_template_index import TEMPLATE_SUFFIXES, HelmTemplateIndex
from argolsp.services.rendered_index import RenderedArgoIndexCache
from argolsp.services.scanner import is_yaml_uri, uri_to_path
from argolsp.services.template_index import ArgoTemplateIndex
from argolsp.services.values_index import ValuesIndex

logger = logging.getLogger(__name__)

CREATED, CHANGED, DELETED = 'created', 'changed', 'deleted'

_KINDS = {
    lsp.FileChangeType.Created: CREATED,
    lsp.FileChangeType.Changed: CHANGED,
    lsp.FileChangeType.Deleted: DELETED,
}


@dataclass(frozen=True)
class FileChange:
    uri: str
    kind: str                       # created | changed | deleted
    text: str | None = None         # in-memory content, when the editor has it

    @classmethod
    def from_lsp(cls, event: lsp.FileEvent) -> 'FileChange':
        return cls(event.uri, _KINDS.get(event.type, CHANGED))


class MaintenanceQueue:

    def __init__(self, template_index: ArgoTemplateIndex, configmap_index: ConfigMapIndex,
                 chart_index: HelmChartIndex | None = None, values_index: ValuesIndex | None = None,
                 helm_template_index: HelmTemplateIndex | None = None,
                 marker_cache: ChartMarkerCache | None = None,
                 rendered_cache: RenderedArgoIndexCache | None = None):
        self.template_index = template_index
        self.configmap_index = configmap_index
        self.chart_index = chart_index
        self.values_index = values_index
        self.helm_template_index = helm_template_index
        self.marker_cache = marker_cache
        self.rendered_cache = rendered_cache
        self._queue: deque[FileChange] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    def push(self, change: FileChange) -> None:
        self._queue.append(change)

    def drain(self) -> int:
        """Process every queued event in arrival order; returns how many were handled."""
        handled = 0
        while self._queue:
            change = self._queue.popleft()
            try:
                self.process(change)
            except Exception:
                logger.warning('maintenance: failed to apply %s %s', change.kind, change.uri, exc_info=True)
            handled += 1
        return handled

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def process(self, change: FileChange) -> None:
        logger.debug('maintenance: %s %s', change.kind, change.uri)
        path = uri_to_path(change.uri).absolute()

        if path.name in CHART_MARKERS:
            self._chart_marker_changed(path, change)
        elif self.chart_index is not None:
            chart = self.chart_index.find_chart_for_file(change.uri)
            if chart is not None:
                self._chart_file_changed(chart, path, change)
            elif path.name == 'values.yaml' and change.kind == CREATED:
                # values.yaml may turn a bare Chart.yaml directory into a chart
                self._refresh_chart(path.parent)

        if is_yaml_uri(change.uri):
            if change.kind == DELETED:
                self.template_index.remove_file(change.uri)
                self.configmap_index.remove_file(change.uri)
            else:
                self.template_index.update_file(change.uri, change.text)
                self.configmap_index.update_file(change.uri, change.text)

    def _chart_marker_changed(self, path: Path, change: FileChange) -> None:
        if self.marker_cache is not None and change.kind in (CREATED, DELETED):
            self.marker_cache.clear()
        if self.chart_index is not None:
            self._refresh_chart(path.parent)

    def _refresh_chart(self, root_dir: Path) -> None:
        """Re-read the chart at *root_dir* and rebuild everything indexed for it."""
        old = self.chart_index.remove_chart(root_dir)
        if old is not None:
            self._forget_chart(old)
        chart = self.chart_index.update_chart(root_dir)
        if chart is not None:
            if self.values_index is not None:
                self.values_index.index_values_file(chart)
            if self.helm_template_index is not None:
                self.helm_template_index.index_chart_templates(chart)
        self._invalidate_render(root_dir)

    def _forget_chart(self, chart: HelmChart) -> None:
        if self.values_index is not None:
            self.values_index.remove_chart(chart.name)
        if self.helm_template_index is not None:
            self.helm_template_index.remove_chart(chart.name)

    def _chart_file_changed(self, chart: HelmChart, path: Path, change: FileChange) -> None:
        if path.parent == chart.root_dir and path.name == 'values.yaml':
            if change.kind == CHANGED and chart.values_yaml_uri is not None:
                if self.values_index is not None:
                    self.values_index.update_file(chart.values_yaml_uri, change.text)
            else:
                # appearance or removal changes the chart's own shape
                self._refresh_chart(chart.root_dir)
                return
        elif (chart.templates_dir is not None and chart.templates_dir in path.parents
              and path.name.lower().endswith(TEMPLATE_SUFFIXES)
              and self.helm_template_index is not None):
            if change.kind == DELETED:
                self.helm_template_index.remove_file(change.uri)
            else:
                self.helm_template_index.update_file(change.uri, change.text, chart_name=chart.name)
        self._invalidate_render(chart.root_dir)

    def _invalidate_render(self, chart_dir: Path) -> None:
        if self.rendered_cache is not None:
            self.rendered_cache.invalidate(chart_dir)
