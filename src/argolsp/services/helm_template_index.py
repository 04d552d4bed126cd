"""
Index of Helm named templates (``{{ define "name" }}``) per chart.

Every ``.yaml``, ``.yml`` and ``.tpl`` file below a chart's ``templates/``
directory is scanned.  Each file's definitions are kept separately so that
re-scanning or removing one file never drops a same-named definition that
another file of the chart still provides.
"""
from __future__ import annotations

import logging

from argolsp.features.helm_templates import HelmTemplateDefinition, find_define_blocks
from argolsp.services.chart_index import HelmChart
from argolsp.services.scanner import path_to_uri, read_text, walk_files

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = ('.yaml', '.yml', '.tpl')


class HelmTemplateIndex:

    def __init__(self):
        # uri -> (chart name, definitions from that file)
        self._by_uri: dict[str, tuple[str, list[HelmTemplateDefinition]]] = {}
        self._index: dict[str, dict[str, HelmTemplateDefinition]] = {}

    def __len__(self) -> int:
        return len(self._index)

    def initialize(self, charts: list[HelmChart]) -> None:
        self.clear()
        for chart in charts:
            self.index_chart_templates(chart)
        logger.info('HelmTemplateIndex: %d template(s) from %d chart(s)',
                    sum(len(t) for t in self._index.values()), len(self._index))

    def clear(self) -> None:
        self._by_uri.clear()
        self._index.clear()

    def index_chart_templates(self, chart: HelmChart) -> None:
        self.remove_chart(chart.name)
        self._index[chart.name] = {}
        if chart.templates_dir is None:
            return
        for path in walk_files(chart.templates_dir, TEMPLATE_SUFFIXES):
            self.update_file(path_to_uri(path), chart_name=chart.name)

    def update_file(self, uri: str, text: str | None = None, chart_name: str | None = None) -> bool:
        """Re-scan *uri*; ``False`` when it belongs to no known chart."""
        if chart_name is None:
            known = self._by_uri.get(uri)
            if known is None:
                logger.debug('HelmTemplateIndex: %s is not part of an indexed chart', uri)
                return False
            chart_name = known[0]
        if text is None:
            text = read_text(uri)
        definitions: list[HelmTemplateDefinition] = []
        if text is not None:
            try:
                definitions = find_define_blocks(text.split('\n'), uri)
            except Exception:
                logger.warning('HelmTemplateIndex: failed to scan %s', uri, exc_info=True)
        self._by_uri[uri] = (chart_name, definitions)
        self._rebuild(chart_name)
        return True

    def remove_file(self, uri: str) -> None:
        known = self._by_uri.pop(uri, None)
        if known is not None:
            self._rebuild(known[0])

    def remove_chart(self, chart_name: str) -> None:
        for uri in [u for u, (name, _) in self._by_uri.items() if name == chart_name]:
            del self._by_uri[uri]
        self._index.pop(chart_name, None)

    def _rebuild(self, chart_name: str) -> None:
        templates: dict[str, HelmTemplateDefinition] = {}
        for uri in sorted(self._by_uri):
            name, definitions = self._by_uri[uri]
            if name != chart_name:
                continue
            for d in definitions:
                templates.setdefault(d.name, d)
        self._index[chart_name] = templates

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_template(self, chart_name: str, template_name: str) -> HelmTemplateDefinition | None:
        return self._index.get(chart_name, {}).get(template_name)

    def get_all_templates(self, chart_name: str) -> list[HelmTemplateDefinition]:
        return list(self._index.get(chart_name, {}).values())
