"""
Index of ``values.yaml`` definitions, one entry list per chart.

Charts are looked up by name.  Exact lookups compare paths case-sensitively;
prefix lookups (completion) fold case.
"""
from __future__ import annotations

import logging

from argolsp.features.values_yaml import (
    ValueDefinition, find_value_by_path, find_values_by_prefix, parse_values_yaml,
)
from argolsp.services.chart_index import HelmChart
from argolsp.services.scanner import read_text

logger = logging.getLogger(__name__)


class ValuesIndex:

    def __init__(self):
        self._values: dict[str, list[ValueDefinition]] = {}
        self._chart_for_uri: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._values)

    def initialize(self, charts: list[HelmChart]) -> None:
        self.clear()
        for chart in charts:
            self.index_values_file(chart)
        logger.info('ValuesIndex: %d chart(s), %d value(s)',
                    len(self._values), sum(len(v) for v in self._values.values()))

    def clear(self) -> None:
        self._values.clear()
        self._chart_for_uri.clear()

    def index_values_file(self, chart: HelmChart, text: str | None = None) -> None:
        """(Re)build *chart*'s entries from its ``values.yaml``."""
        self._forget_chart(chart.name)
        if chart.values_yaml_uri is None:
            self._values[chart.name] = []
            return
        self._chart_for_uri[chart.values_yaml_uri] = chart.name
        if text is None:
            text = read_text(chart.values_yaml_uri)
        definitions = parse_values_yaml(text, chart.values_yaml_uri) if text is not None else []
        self._values[chart.name] = definitions
        logger.debug('ValuesIndex: %d value(s) from %s', len(definitions), chart.name)

    def update_file(self, uri: str, text: str | None = None) -> bool:
        """Re-parse a known ``values.yaml``; ``False`` if *uri* belongs to no indexed chart."""
        chart_name = self._chart_for_uri.get(uri)
        if chart_name is None:
            logger.debug('ValuesIndex: %s is not the values file of an indexed chart', uri)
            return False
        if text is None:
            text = read_text(uri)
        self._values[chart_name] = parse_values_yaml(text, uri) if text is not None else []
        return True

    def remove_file(self, uri: str) -> None:
        chart_name = self._chart_for_uri.get(uri)
        if chart_name is not None:
            self._values[chart_name] = []

    def remove_chart(self, chart_name: str) -> None:
        self._forget_chart(chart_name)
        self._values.pop(chart_name, None)

    def _forget_chart(self, chart_name: str) -> None:
        for uri in [u for u, name in self._chart_for_uri.items() if name == chart_name]:
            del self._chart_for_uri[uri]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_value(self, chart_name: str, path: str) -> ValueDefinition | None:
        return find_value_by_path(self._values.get(chart_name, []), path)

    def find_values_by_prefix(self, chart_name: str, prefix: str) -> list[ValueDefinition]:
        return find_values_by_prefix(self._values.get(chart_name, []), prefix)

    def get_all_values(self, chart_name: str) -> list[ValueDefinition]:
        return list(self._values.get(chart_name, []))
