"""
Document classification.

Two predicates decide which guard handles a document:

``is_argo_workflow_document``
    YAML whose text declares an ``argoproj.io/`` apiVersion *and* one of the
    Argo workflow kinds.

``is_helm_template``
    ``languageId == 'helm'``, or a YAML file below a ``templates/`` directory
    that has ``Chart.yaml`` (or ``Chart.yml``) in one of its ancestors.

The ancestor lookup hits the file system, so results are memoised in a
:class:`ChartMarkerCache`.  The cache is owned by whoever builds the registry
and is cleared by the maintenance queue whenever a chart-marker file is
created or deleted.
"""
from __future__ import annotations

import re
from pathlib import Path

from argolsp.document import Document, YAML_LANGUAGE_IDS
from argolsp.services.scanner import uri_to_path

ARGO_WORKFLOW_KINDS = ('Workflow', 'CronWorkflow', 'WorkflowTemplate', 'ClusterWorkflowTemplate')

CHART_MARKERS = ('Chart.yaml', 'Chart.yml')

_ARGO_API_RE = re.compile(r'''apiVersion:\s*['"]?argoproj\.io/''')
_ARGO_KIND_RE = re.compile(
    r'''kind:\s*['"]?(ClusterWorkflowTemplate|WorkflowTemplate|CronWorkflow|Workflow)['"]?'''
)


class ChartMarkerCache:
    """Memoises "does this file sit below a ``Chart.yaml``?" per file path."""

    def __init__(self):
        self._by_path: dict[str, bool] = {}

    def has_chart_ancestor(self, path: Path) -> bool:
        key = str(path)
        cached = self._by_path.get(key)
        if cached is not None:
            return cached

        found = False
        for parent in path.parents:
            try:
                if any((parent / marker).is_file() for marker in CHART_MARKERS):
                    found = True
                    break
            except OSError:
                continue
        self._by_path[key] = found
        return found

    def clear(self) -> None:
        self._by_path.clear()

    def __len__(self) -> int:
        return len(self._by_path)


def is_chart_marker(uri: str) -> bool:
    return uri_to_path(uri).name in CHART_MARKERS


def extract_argo_kind(text: str) -> str | None:
    """Return the first Argo workflow kind declared in *text*, if any."""
    m = _ARGO_KIND_RE.search(text)
    return m.group(1) if m else None


def is_argo_workflow_document(doc: Document) -> bool:
    if doc.language_id not in YAML_LANGUAGE_IDS:
        return False
    return bool(_ARGO_API_RE.search(doc.source)) and extract_argo_kind(doc.source) is not None


def is_helm_template(doc: Document, cache: ChartMarkerCache | None = None) -> bool:
    if doc.language_id == 'helm':
        return True
    if doc.language_id not in YAML_LANGUAGE_IDS:
        return False
    path = uri_to_path(doc.uri)
    if 'templates' not in path.parts[:-1]:
        return False
    if cache is None:
        cache = ChartMarkerCache()
    return cache.has_chart_ancestor(path)
