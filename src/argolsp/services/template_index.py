"""
Workspace index of Argo WorkflowTemplate / ClusterWorkflowTemplate templates.

Only templates defined in a (Cluster)WorkflowTemplate with a literal
``metadata.name`` are indexed; they are what ``templateRef`` can point at.
Entries are keyed ``"<kind>:<workflowTemplateName>"`` and each file's
contribution is replaced as a whole on every update.
"""
from __future__ import annotations

import logging

from argolsp.detection import is_argo_workflow_document
from argolsp.document import make_document, read_document
from argolsp.features.argo_templates import TemplateDefinition, find_template_definitions
from argolsp.services.scanner import find_yaml_files

logger = logging.getLogger(__name__)

INDEXED_KINDS = ('WorkflowTemplate', 'ClusterWorkflowTemplate')


def make_key(workflow_template_name: str, kind: str) -> str:
    return f'{kind}:{workflow_template_name}'


class ArgoTemplateIndex:

    def __init__(self):
        self._by_uri: dict[str, list[TemplateDefinition]] = {}
        self._index: dict[str, dict[str, TemplateDefinition]] = {}

    def __len__(self) -> int:
        return len(self._index)

    def initialize(self, roots: list[str]) -> None:
        for root in roots:
            for uri in find_yaml_files(root):
                self.update_file(uri)
        logger.info('ArgoTemplateIndex: %d WorkflowTemplates indexed', len(self._index))

    def clear(self) -> None:
        self._by_uri.clear()
        self._index.clear()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def update_file(self, uri: str, text: str | None = None) -> None:
        """Re-index *uri* from *text* (or from disk), replacing its previous entries."""
        if text is None:
            doc = read_document(uri)
            if doc is None:
                self.remove_file(uri)
                return
            text = doc.source
        self.index_document(uri, text)

    def index_document(self, uri: str, text: str) -> None:
        doc = make_document(uri, text)
        definitions: list[TemplateDefinition] = []
        if is_argo_workflow_document(doc):
            try:
                definitions = [
                    d for d in find_template_definitions(doc.lines, uri)
                    if d.kind in INDEXED_KINDS and d.workflow_name
                ]
            except Exception:
                logger.warning('ArgoTemplateIndex: failed to scan %s', uri, exc_info=True)
                definitions = []
        self._replace(uri, definitions)

    def remove_file(self, uri: str) -> None:
        if uri in self._by_uri:
            self._replace(uri, [])
            logger.debug('ArgoTemplateIndex: removed %s', uri)

    def _replace(self, uri: str, definitions: list[TemplateDefinition]) -> None:
        stale = {make_key(d.workflow_name, d.kind) for d in self._by_uri.get(uri, [])}
        if definitions:
            self._by_uri[uri] = definitions
        else:
            self._by_uri.pop(uri, None)
        fresh = {make_key(d.workflow_name, d.kind) for d in definitions}
        for key in stale | fresh:
            self._rebuild_key(key)

    def _rebuild_key(self, key: str) -> None:
        templates: dict[str, TemplateDefinition] = {}
        for uri in sorted(self._by_uri):
            for d in self._by_uri[uri]:
                if make_key(d.workflow_name, d.kind) == key:
                    templates.setdefault(d.name, d)
        if templates:
            self._index[key] = templates
        else:
            self._index.pop(key, None)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_template(self, workflow_template_name: str, template_name: str,
                      cluster_scope: bool = False) -> TemplateDefinition | None:
        kind = 'ClusterWorkflowTemplate' if cluster_scope else 'WorkflowTemplate'
        return self._index.get(make_key(workflow_template_name, kind), {}).get(template_name)

    def find_workflow_template(self, workflow_template_name: str,
                               cluster_scope: bool = False) -> dict[str, TemplateDefinition]:
        kind = 'ClusterWorkflowTemplate' if cluster_scope else 'WorkflowTemplate'
        return dict(self._index.get(make_key(workflow_template_name, kind), {}))

    def find_template_by_name(self, template_name: str,
                              cluster_scope: bool = False) -> TemplateDefinition | None:
        prefix = ('ClusterWorkflowTemplate' if cluster_scope else 'WorkflowTemplate') + ':'
        for key, templates in self._index.items():
            if key.startswith(prefix) and template_name in templates:
                return templates[template_name]
        return None

    def get_all(self) -> list[TemplateDefinition]:
        return [d for templates in self._index.values() for d in templates.values()]
