"""Tests for helm rendering, the render cache and rendered-output resolution."""
from __future__ import annotations

import asyncio
import json

from lsprotocol import types as lsp

from argolsp.document import make_document
from argolsp.services.scanner import path_to_uri

CHART_YAML = 'apiVersion: v2\nname: wf\nversion: 0.1.0\n'

CALLER = """\
apiVersion: argoproj.io/v1alpha1
kind: Workflow
metadata:
  generateName: caller-
spec:
  templates:
    - name: main
      steps:
        - - name: build
            templateRef:
              name: {{ .Release.Name }}-lib
              template: build-image
"""

LIB = """\
apiVersion: argoproj.io/v1alpha1
kind: WorkflowTemplate
metadata:
  name: {{ .Release.Name }}-lib
spec:
  templates:
    - name: build-image
      container:
        image: docker
"""

RENDERED = """\
---
# Source: wf/templates/caller.yaml
apiVersion: argoproj.io/v1alpha1
kind: Workflow
metadata:
  generateName: caller-
spec:
  templates:
    - name: main
      steps:
        - - name: build
            templateRef:
              name: lsp-preview-lib
              template: build-image
---
# Source: wf/templates/lib.yaml
apiVersion: argoproj.io/v1alpha1
kind: WorkflowTemplate
metadata:
  name: lsp-preview-lib
spec:
  templates:
    - name: build-image
      container:
        image: docker
"""

STDERR = ('Error: template: wf/templates/caller.yaml:11:20: executing "wf/templates/caller.yaml" '
          'at <.Release.Name>: nil pointer evaluating interface {}.Name\n')


class _FakeRenderer:
    """Stands in for HelmRenderer with a fixed result."""

    def __init__(self, output=RENDERED, stderr=None, available=True):
        self.output = output
        self.stderr = stderr
        self.available = available
        self.calls = 0

    async def is_available(self):
        return self.available

    async def render(self, chart_dir, template_path=None):
        from argolsp.services.render import RenderResult, split_rendered_output
        self.calls += 1
        if self.stderr:
            return RenderResult(success=False, error=self.stderr.strip(), stderr=self.stderr)
        return RenderResult(success=True, output=self.output,
                            documents=split_rendered_output(self.output, 'wf'))


def _chart(tmp_path):
    root = tmp_path / 'wf'
    (root / 'templates').mkdir(parents=True)
    (root / 'Chart.yaml').write_text(CHART_YAML)
    (root / 'values.yaml').write_text('image: docker\n')
    (root / 'templates' / 'caller.yaml').write_text(CALLER)
    (root / 'templates' / 'lib.yaml').write_text(LIB)
    return root


def _rendered_index(renderer, render_cache=None):
    from argolsp.references.setup import create_argo_only_registry
    from argolsp.services.rendered_index import RenderedArgoIndexCache
    return RenderedArgoIndexCache(renderer, create_argo_only_registry, render_cache)


class TestRenderOutput:
    def test_parse_render_errors(self):
        from argolsp.services.render import parse_render_errors
        (error,) = parse_render_errors(STDERR)
        assert error.file == 'templates/caller.yaml'
        assert (error.line, error.column) == (11, 20)
        assert error.message.startswith('executing')

    def test_parse_render_errors_without_column(self):
        from argolsp.services.render import parse_render_errors
        (error,) = parse_render_errors('Error: template: wf/templates/a.yaml:3: unexpected EOF')
        assert (error.line, error.column, error.message) == (3, 0, 'unexpected EOF')

    def test_unstructured_errors(self):
        from argolsp.services.render import parse_render_errors
        assert parse_render_errors('Error: Chart.yaml file is missing') == []
        assert parse_render_errors(None) == []

    def test_split_rendered_output(self):
        from argolsp.services.render import split_rendered_output
        output = ('---\n# Source: demo/templates/a.yaml\nkind: ConfigMap\n'
                  '---\n# Source: demo/templates/b.yaml\nkind: Secret\n'
                  '---\n# Source: demo/charts/sub/values.yaml\nx: 1\n')
        docs = split_rendered_output(output, 'demo')
        assert [(d.source_template_path, d.content, d.start_line) for d in docs] == [
            ('templates/a.yaml', 'kind: ConfigMap', 2),
            ('templates/b.yaml', 'kind: Secret', 5),
        ]
        assert split_rendered_output('  \n', 'demo') == []

    def test_extract_template_path(self):
        from argolsp.services.render import extract_template_path
        assert extract_template_path('demo/templates/x.yaml', 'demo') == 'templates/x.yaml'
        assert extract_template_path('other/templates/x.yaml', 'demo') == 'templates/x.yaml'
        assert extract_template_path('templates/x.yaml', 'demo') == 'templates/x.yaml'
        assert extract_template_path('demo/Chart.yaml', 'demo') is None

    def test_chart_name_from_output(self):
        from argolsp.services.render import chart_name_from_output
        assert chart_name_from_output(RENDERED, '/charts/elsewhere') == 'wf'
        assert chart_name_from_output('', '/charts/elsewhere') == 'elsewhere'


class TestHelmRenderer:
    def test_missing_binary(self, tmp_path):
        from argolsp.services.render import HelmRenderer
        renderer = HelmRenderer(helm_path=str(tmp_path / 'no-helm'))
        result = asyncio.run(renderer.render(tmp_path))
        assert result.success is False
        assert result.error.startswith('cannot run')
        assert asyncio.run(renderer.is_available()) is False


class TestRenderCache:
    def _result(self):
        from argolsp.services.render import RenderResult, split_rendered_output
        return RenderResult(success=True, output=RENDERED, documents=split_rendered_output(RENDERED, 'wf'))

    def test_save_and_load(self, tmp_path):
        from argolsp.services.render_cache import RenderCache
        chart = _chart(tmp_path)
        cache = RenderCache(tmp_path / 'cache')
        assert cache.save(chart, None, self._result())
        assert cache.load(chart, None) == self._result()
        assert cache.load(chart, 'templates/lib.yaml') is None

    def test_changed_source_invalidates(self, tmp_path):
        from argolsp.services.render_cache import RenderCache, cache_key
        chart = _chart(tmp_path)
        cache = RenderCache(tmp_path / 'cache')
        cache.save(chart, None, self._result())
        (chart / 'values.yaml').write_text('image: docker\nreplicas: 3\n')
        assert cache.load(chart, None) is None
        assert not (tmp_path / 'cache' / cache_key(chart, None)).exists()

    def test_unreadable_entry_removed(self, tmp_path):
        from argolsp.services.render_cache import RESULT_FILE, RenderCache, cache_key
        chart = _chart(tmp_path)
        cache = RenderCache(tmp_path / 'cache')
        cache.save(chart, None, self._result())
        (tmp_path / 'cache' / cache_key(chart, None) / RESULT_FILE).write_text('{not json')
        assert cache.load(chart, None) is None

    def test_invalidate_chart(self, tmp_path):
        from argolsp.services.render_cache import RenderCache
        chart = _chart(tmp_path)
        cache = RenderCache(tmp_path / 'cache')
        cache.save(chart, None, self._result())
        cache.save(chart, 'templates/lib.yaml', self._result())
        cache.invalidate(chart)
        assert cache.load(chart, None) is None
        assert cache.load(chart, 'templates/lib.yaml') is None

    def test_checksums_recorded(self, tmp_path):
        from argolsp.services.render_cache import CHECKSUM_FILE, RenderCache, cache_key
        chart = _chart(tmp_path)
        cache = RenderCache(tmp_path / 'cache')
        cache.save(chart, 'templates/lib.yaml', self._result())
        saved = json.loads((tmp_path / 'cache' / cache_key(chart, 'templates/lib.yaml') / CHECKSUM_FILE).read_text())
        assert [c['file'].rsplit('/', 1)[-1] for c in saved] == ['lib.yaml', 'values.yaml', 'Chart.yaml']


class TestRenderedIndex:
    def test_rendered_uris(self):
        from argolsp.services.rendered_index import rendered_uri, source_path_of
        assert rendered_uri('templates/a.yaml') == 'file:///rendered/templates/a.yaml'
        assert source_path_of('file:///rendered/templates/a.yaml') == 'templates/a.yaml'
        assert source_path_of('file:///ws/a.yaml') is None

    def test_rendered_chart_is_indexed(self, tmp_path):
        chart = _chart(tmp_path)
        index = _rendered_index(_FakeRenderer())
        entry = asyncio.run(index.get_chart(chart))
        assert sorted(entry.documents) == ['templates/caller.yaml', 'templates/lib.yaml']
        template = entry.index.find_template('lsp-preview-lib', 'build-image')
        assert template.uri == 'file:///rendered/templates/lib.yaml'

    def test_same_output_reuses_entry(self, tmp_path):
        chart = _chart(tmp_path)
        index = _rendered_index(_FakeRenderer())
        first = asyncio.run(index.get_chart(chart))
        assert asyncio.run(index.get_chart(chart)) is first
        index.reset()
        assert asyncio.run(index.get_chart(chart)) is not first

    def test_render_cache_short_circuits_renderer(self, tmp_path):
        from argolsp.services.render_cache import RenderCache
        chart = _chart(tmp_path)
        renderer = _FakeRenderer()
        index = _rendered_index(renderer, RenderCache(tmp_path / 'cache'))
        asyncio.run(index.get_chart(chart))
        index.reset()
        asyncio.run(index.get_chart(chart))
        assert renderer.calls == 1

    def test_failed_render_records_errors(self, tmp_path):
        chart = _chart(tmp_path)
        index = _rendered_index(_FakeRenderer(stderr=STDERR))
        assert asyncio.run(index.get_chart(chart)) is None
        assert [e.line for e in index.errors_for(chart, 'templates/caller.yaml')] == [11]
        assert index.errors_for(chart, 'templates/lib.yaml') == []

    def test_disabled_or_unavailable(self, tmp_path):
        chart = _chart(tmp_path)
        assert asyncio.run(_rendered_index(_FakeRenderer(available=False)).get_chart(chart)) is None
        index = _rendered_index(_FakeRenderer())
        index.enabled = False
        assert asyncio.run(index.get_chart(chart)) is None


class TestRenderedResolution:
    def _registry(self, chart, renderer):
        from argolsp.references.setup import create_reference_registry
        from argolsp.services.chart_index import HelmChartIndex
        from argolsp.services.configmap_index import ConfigMapIndex
        from argolsp.services.helm_template_index import HelmTemplateIndex
        from argolsp.services.template_index import ArgoTemplateIndex
        from argolsp.services.values_index import ValuesIndex
        charts = HelmChartIndex()
        charts.update_chart(chart)
        return create_reference_registry(ArgoTemplateIndex(), ConfigMapIndex(), charts, ValuesIndex(),
                                         HelmTemplateIndex(), rendered_index=_rendered_index(renderer))

    def _caller(self, chart):
        return make_document(path_to_uri(chart / 'templates' / 'caller.yaml'), CALLER)

    def test_templated_template_ref_resolves_through_render(self, tmp_path):
        chart = _chart(tmp_path)
        registry = self._registry(chart, _FakeRenderer())
        doc = self._caller(chart)
        pos = lsp.Position(line=11, character=doc.line(11).find('build-image') + 1)
        result = asyncio.run(registry.detect_and_resolve(doc, pos))
        assert result.detected.kind == 'renderedTemplateRef'
        assert result.exists is True
        assert result.definition_location.uri == path_to_uri(chart / 'templates' / 'lib.yaml')
        assert result.definition_location.range.start.line == 6
        assert result.hover_markdown.endswith('**Rendered as**: `build-image`')

    def test_render_errors_shown_in_hover(self, tmp_path):
        chart = _chart(tmp_path)
        registry = self._registry(chart, _FakeRenderer(stderr=STDERR))
        doc = self._caller(chart)
        pos = lsp.Position(line=11, character=doc.line(11).find('build-image') + 1)
        result = asyncio.run(registry.detect_and_resolve(doc, pos))
        assert result.exists is None
        assert result.hover_markdown.startswith('**Rendering failed**')
        assert '- line 11: executing' in result.hover_markdown
