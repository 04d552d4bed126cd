"""Tests for argolsp.references.registry — guard priority and handler fan-out."""
from __future__ import annotations

import asyncio

from lsprotocol import types as lsp

from argolsp.document import make_document
from argolsp.references.handler import HandlerSupports, ReferenceHandler
from argolsp.references.types import (
    DetectedReference, GoKeywordDetails, ResolvedReference, make_range,
)


class _StubHandler(ReferenceHandler):
    """Detects everywhere; resolves to a fixed ``exists`` value."""

    def __init__(self, kind, exists=True, diagnostic=True, completion=True, found=1):
        self.kind = kind
        self.exists = exists
        self.found = found
        self.supports = HandlerSupports(hover=True, completion=completion, diagnostic=diagnostic)
        self.resolved = 0

    def _ref(self, line=0):
        return DetectedReference(self.kind, make_range(line, 0, 1), GoKeywordDetails(self.kind))

    def detect(self, doc, pos):
        return self._ref(pos.line)

    def find_all(self, doc):
        return [self._ref(i) for i in range(self.found)]

    async def resolve(self, doc, detected):
        self.resolved += 1
        return ResolvedReference(detected=detected, hover_markdown=self.kind, exists=self.exists)

    def complete(self, doc, pos):
        return [lsp.CompletionItem(label=self.kind)]

    def find_references(self, doc, pos, documents):
        return [lsp.Location(uri=d.uri, range=make_range(0, 0, 1)) for d in documents]


class _Silent(ReferenceHandler):
    kind = 'silent'
    supports = HandlerSupports(completion=True)

    def detect(self, doc, pos):
        return None

    def complete(self, doc, pos):
        return []


class _Broken(ReferenceHandler):
    kind = 'broken'
    supports = HandlerSupports(completion=True, diagnostic=True)

    def detect(self, doc, pos):
        raise RuntimeError('boom')

    def find_all(self, doc):
        raise RuntimeError('boom')

    def complete(self, doc, pos):
        raise RuntimeError('boom')

    def find_references(self, doc, pos, documents):
        raise RuntimeError('boom')


def _doc():
    return make_document('file:///ws/a.yaml', 'a: 1\n', 'yaml')


POS = lsp.Position(line=0, character=0)


class TestGuardSelection:
    def test_first_accepting_guard_wins(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        first, second = _StubHandler('first'), _StubHandler('second')
        registry = ReferenceRegistry([
            DocumentGuard('a', lambda d: True, [first]),
            DocumentGuard('b', lambda d: True, [second]),
        ])
        result = asyncio.run(registry.detect_and_resolve(_doc(), POS))
        assert result.hover_markdown == 'first'
        assert second.resolved == 0

    def test_rejecting_guard_skipped(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([
            DocumentGuard('a', lambda d: False, [_StubHandler('first')]),
            DocumentGuard('b', lambda d: True, [_StubHandler('second')]),
        ])
        assert registry.match_guard(_doc()).name == 'b'

    def test_raising_guard_check_is_skipped(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry

        def _explode(doc):
            raise ValueError('bad guard')

        registry = ReferenceRegistry([
            DocumentGuard('a', _explode, [_StubHandler('first')]),
            DocumentGuard('b', lambda d: True, [_StubHandler('second')]),
        ])
        assert registry.match_guard(_doc()).name == 'b'

    def test_no_guard_gives_empty_results(self):
        from argolsp.references.registry import ReferenceRegistry
        registry = ReferenceRegistry()
        assert asyncio.run(registry.detect_and_resolve(_doc(), POS)) is None
        assert registry.provide_completions(_doc(), POS) == []
        assert registry.find_references(_doc(), POS, [_doc()]) == []
        assert asyncio.run(registry.validate_all(_doc())) == []

    def test_add_guard_appends(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry()
        registry.add_guard(DocumentGuard('x', lambda d: True))
        assert [g.name for g in registry.guards] == ['x']


class TestHandlerOrder:
    def test_first_detection_wins(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _Silent(), _StubHandler('one'), _StubHandler('two'),
        ])])
        result = asyncio.run(registry.detect_and_resolve(_doc(), POS))
        assert result.detected.kind == 'one'

    def test_raising_detect_is_swallowed(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _Broken(), _StubHandler('ok'),
        ])])
        result = asyncio.run(registry.detect_and_resolve(_doc(), POS))
        assert result.hover_markdown == 'ok'

    def test_first_non_empty_completion(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _Broken(), _Silent(), _StubHandler('later'),
        ])])
        items = registry.provide_completions(_doc(), POS)
        assert [i.label for i in items] == ['later']

    def test_completion_skips_handlers_without_support(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _StubHandler('off', completion=False), _StubHandler('on'),
        ])])
        assert [i.label for i in registry.provide_completions(_doc(), POS)] == ['on']

    def test_find_references_first_non_empty(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _Broken(), _Silent(), _StubHandler('refs'),
        ])])
        docs = [_doc(), make_document('file:///ws/b.yaml', '', 'yaml')]
        found = registry.find_references(_doc(), POS, docs)
        assert [loc.uri for loc in found] == ['file:///ws/a.yaml', 'file:///ws/b.yaml']


class TestValidateAll:
    def test_only_failures_are_reported(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _StubHandler('missing', exists=False, found=2),
            _StubHandler('present', exists=True),
            _StubHandler('unknown', exists=None),
        ])])
        failures = asyncio.run(registry.validate_all(_doc()))
        assert [f.detected.kind for f in failures] == ['missing', 'missing']

    def test_aggregates_across_handlers(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [
            _StubHandler('a', exists=False),
            _Broken(),
            _StubHandler('b', exists=False),
        ])])
        failures = asyncio.run(registry.validate_all(_doc()))
        assert sorted(f.detected.kind for f in failures) == ['a', 'b']

    def test_non_diagnostic_handlers_ignored(self):
        from argolsp.references.registry import DocumentGuard, ReferenceRegistry
        quiet = _StubHandler('quiet', exists=False, diagnostic=False)
        registry = ReferenceRegistry([DocumentGuard('g', lambda d: True, [quiet])])
        assert asyncio.run(registry.validate_all(_doc())) == []
        assert quiet.resolved == 0


class TestRegistrySetup:
    def _registry(self, tmp_path):
        from argolsp.detection import ChartMarkerCache
        from argolsp.references.setup import create_reference_registry
        from argolsp.services.chart_index import HelmChartIndex
        from argolsp.services.configmap_index import ConfigMapIndex
        from argolsp.services.helm_template_index import HelmTemplateIndex
        from argolsp.services.template_index import ArgoTemplateIndex
        from argolsp.services.values_index import ValuesIndex
        return create_reference_registry(ArgoTemplateIndex(), ConfigMapIndex(), HelmChartIndex(),
                                         ValuesIndex(), HelmTemplateIndex(), marker_cache=ChartMarkerCache())

    def test_guard_order(self, tmp_path):
        registry = self._registry(tmp_path)
        assert [g.name for g in registry.guards] == ['helm', 'argo', 'configMap']

    def test_helm_handler_order(self, tmp_path):
        registry = self._registry(tmp_path)
        kinds = [h.kind for h in registry.guards[0].handlers]
        assert kinds == ['helmValues', 'helmTemplate', 'renderedTemplateRef',
                         'chartVariable', 'releaseCapabilities', 'goKeyword', 'helmFunction']

    def test_configmap_before_templates_in_argo_guard(self, tmp_path):
        registry = self._registry(tmp_path)
        kinds = [h.kind for h in registry.guards[1].handlers]
        assert kinds == ['configMap', 'argoTemplate', 'argoParameter', 'workflowVariable', 'itemVariable']

    def test_helm_document_never_reaches_argo_guard(self, tmp_path):
        registry = self._registry(tmp_path)
        text = 'apiVersion: argoproj.io/v1alpha1\nkind: Workflow\n'
        doc = make_document('file:///x/templates/wf.yaml', text, 'helm')
        assert registry.match_guard(doc).name == 'helm'

    def test_plain_yaml_goes_to_configmap_guard(self, tmp_path):
        registry = self._registry(tmp_path)
        doc = make_document('file:///ws/deploy.yaml', 'kind: Deployment\n', 'yaml')
        assert registry.match_guard(doc).name == 'configMap'

    def test_argo_only_registry(self):
        from argolsp.references.setup import create_argo_only_registry
        from argolsp.services.template_index import ArgoTemplateIndex
        registry = create_argo_only_registry(ArgoTemplateIndex())
        assert [g.name for g in registry.guards] == ['argo', 'configMap']
        doc = make_document('file:///rendered/templates/cm.yaml', 'kind: ConfigMap\n', 'yaml')
        assert registry.match_guard(doc).name == 'configMap'


BOUNDARY_WORKFLOW = """\
apiVersion: argoproj.io/v1alpha1
kind: Workflow
metadata:
  generateName: edge-
spec:
  templates:
    - name: main
      steps:
        - - name: one
            template: echo
    - name: echo
      container:
        image: alpine
"""


class TestRangeBoundaries:
    LINE = 9

    def _registry(self):
        from argolsp.references.setup import create_reference_registry
        from argolsp.services.chart_index import HelmChartIndex
        from argolsp.services.configmap_index import ConfigMapIndex
        from argolsp.services.helm_template_index import HelmTemplateIndex
        from argolsp.services.template_index import ArgoTemplateIndex
        from argolsp.services.values_index import ValuesIndex
        return create_reference_registry(ArgoTemplateIndex(), ConfigMapIndex(), HelmChartIndex(),
                                         ValuesIndex(), HelmTemplateIndex())

    def _at(self, line, character):
        doc = make_document('file:///ws/edge.yaml', BOUNDARY_WORKFLOW, 'yaml')
        return asyncio.run(self._registry().detect_and_resolve(doc, lsp.Position(line=line, character=character)))

    def _start(self):
        return BOUNDARY_WORKFLOW.split('\n')[self.LINE].index('echo')

    def test_cursor_at_range_start(self):
        result = self._at(self.LINE, self._start())
        assert result.detected.kind == 'argoTemplate'
        assert result.detected.range.start.character == self._start()
        assert result.exists is True

    def test_cursor_at_range_end(self):
        result = self._at(self.LINE, self._start() + len('echo'))
        assert result.detected.range.end.character == self._start() + len('echo')
        assert result.definition_location.range.start.line == 10

    def test_one_character_before_start(self):
        assert self._at(self.LINE, self._start() - 1) is None

    def test_one_character_after_end(self):
        assert self._at(self.LINE, self._start() + len('echo') + 1) is None

    def test_positions_outside_every_reference(self):
        assert self._at(0, 0) is None
        assert self._at(5, 4) is None
        assert self._at(40, 0) is None
