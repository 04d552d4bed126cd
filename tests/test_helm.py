"""Tests for the Helm side: values.yaml, named templates, chart discovery and built-ins."""
from __future__ import annotations

import asyncio

import pytest
from lsprotocol import types as lsp

from argolsp.document import make_document
from argolsp.services.scanner import path_to_uri

CHART_YAML = """\
apiVersion: v2
name: demo
description: A demo chart
version: 0.1.0
appVersion: "1.2.3"
"""

VALUES = """\
# Container image settings
image:
  repository: nginx   # upstream image
  tag: "1.25"
replicas: 2
enabled: true
servers:
  - a
  - b
"""

HELPERS = """\
{{/* Common labels */}}
{{- define "demo.labels" -}}
app: {{ .Chart.Name }}
{{- if .Values.enabled }}
enabled: "true"
{{- end }}
{{- end }}
"""

DEPLOY = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {{ .Release.Name }}
  labels:
    {{- include "demo.labels" . | nindent 4 }}
spec:
  replicas: {{ .Values.replicas }}
  template:
    spec:
      containers:
        - image: "{{ .Values.image.repository }}:{{ .Values.image.tag }}"
          env:
            - name: MISSING
              value: {{ .Values.nope | quote }}
            - name: HELPER
              value: {{ include "demo.missing" . }}
"""


def _write_chart(root, chart_yaml=CHART_YAML, values=VALUES, templates=None):
    root.mkdir(parents=True, exist_ok=True)
    (root / 'Chart.yaml').write_text(chart_yaml)
    if values is not None:
        (root / 'values.yaml').write_text(values)
    if templates is not None:
        (root / 'templates').mkdir(exist_ok=True)
        for name, text in templates.items():
            (root / 'templates' / name).write_text(text)
    return root


def _pos(doc, needle, line, offset=1):
    return lsp.Position(line=line, character=doc.line(line).find(needle) + offset)


@pytest.fixture
def chart_dir(tmp_path):
    return _write_chart(tmp_path / 'demo', templates={'_helpers.tpl': HELPERS, 'deploy.yaml': DEPLOY})


@pytest.fixture
def indices(chart_dir):
    from argolsp.services.chart_index import HelmChartIndex
    from argolsp.services.helm_template_index import HelmTemplateIndex
    from argolsp.services.values_index import ValuesIndex
    charts = HelmChartIndex()
    charts.initialize([chart_dir.parent])
    values = ValuesIndex()
    values.initialize(charts.get_all_charts())
    templates = HelmTemplateIndex()
    templates.initialize(charts.get_all_charts())
    return charts, values, templates


@pytest.fixture
def registry(indices):
    from argolsp.references.setup import create_reference_registry
    from argolsp.services.configmap_index import ConfigMapIndex
    from argolsp.services.template_index import ArgoTemplateIndex
    charts, values, templates = indices
    return create_reference_registry(ArgoTemplateIndex(), ConfigMapIndex(), charts, values, templates)


def _template_doc(chart_dir, name, text):
    return make_document(path_to_uri(chart_dir / 'templates' / name), text)


class TestValuesYaml:
    def test_paths_are_flattened(self):
        from argolsp.features.values_yaml import parse_values_yaml
        paths = [d.path for d in parse_values_yaml(VALUES, 'file:///c/values.yaml')]
        assert paths == ['image', 'image.repository', 'image.tag', 'replicas', 'enabled', 'servers']

    def test_types_and_positions(self):
        from argolsp.features.values_yaml import find_value_by_path, parse_values_yaml
        defs = parse_values_yaml(VALUES, 'file:///c/values.yaml')
        repo = find_value_by_path(defs, 'image.repository')
        assert repo.value == 'nginx'
        assert repo.value_type == 'string'
        assert repo.parent_path == 'image'
        assert (repo.range.start.line, repo.range.start.character, repo.range.end.character) == (2, 2, 12)
        assert find_value_by_path(defs, 'replicas').value_type == 'number'
        assert find_value_by_path(defs, 'enabled').value_type == 'boolean'
        assert find_value_by_path(defs, 'servers').value_type == 'array'
        assert find_value_by_path(defs, 'image').value_type == 'object'

    def test_comments(self):
        from argolsp.features.values_yaml import find_value_by_path, parse_values_yaml
        defs = parse_values_yaml(VALUES, 'file:///c/values.yaml')
        assert find_value_by_path(defs, 'image').above_comment == 'Container image settings'
        assert find_value_by_path(defs, 'image.repository').inline_comment == 'upstream image'
        assert find_value_by_path(defs, 'replicas').inline_comment is None

    def test_list_items_have_no_paths(self):
        from argolsp.features.values_yaml import parse_values_yaml
        text = 'jobs:\n  - name: a\n    image: x\n'
        assert [d.path for d in parse_values_yaml(text, 'file:///c/values.yaml')] == ['jobs']

    def test_same_key_under_different_parents(self):
        from argolsp.features.values_yaml import key_positions
        lines = ['a:', '  name: one', 'b:', '  name: two']
        positions = key_positions(lines)
        assert positions['a.name'][0] == 1
        assert positions['b.name'][0] == 3

    def test_invalid_yaml_gives_nothing(self):
        from argolsp.features.values_yaml import parse_values_yaml
        assert parse_values_yaml('image: [unclosed\n', 'file:///c/values.yaml') == []
        assert parse_values_yaml('- just\n- a list\n', 'file:///c/values.yaml') == []

    def test_prefix_lookup_folds_case(self):
        from argolsp.features.values_yaml import find_values_by_prefix, parse_values_yaml
        defs = parse_values_yaml(VALUES, 'file:///c/values.yaml')
        assert [d.path for d in find_values_by_prefix(defs, 'IMAGE.')] == ['image.repository', 'image.tag']

    def test_values_reference_detection(self):
        from argolsp.features.helm_values import find_all_values_references, value_path_for_completion
        refs = find_all_values_references(DEPLOY.split('\n'))
        assert [r.value_path for r in refs] == ['replicas', 'image.repository', 'image.tag', 'nope']
        assert value_path_for_completion('{{ .Values.ima', 14) == 'ima'
        assert value_path_for_completion('{{ .Values.', 11) == ''
        assert value_path_for_completion('{{ .Chart.', 10) is None


class TestHelmTemplates:
    def test_define_block(self):
        from argolsp.features.helm_templates import find_define_blocks
        (d,) = find_define_blocks(HELPERS.split('\n'), 'file:///c/templates/_helpers.tpl')
        assert d.name == 'demo.labels'
        assert (d.range.start.line, d.range.end.line) == (1, 6)
        assert (d.name_range.start.character, d.name_range.end.character) == (11, 24)
        assert d.description == 'Common labels'
        assert d.content.startswith('app: {{ .Chart.Name }}')
        assert d.content.endswith('{{- end }}')

    def test_nested_blocks_on_one_line(self):
        from argolsp.features.helm_templates import find_define_blocks
        line = '{{ define "a" }}{{ if .x }}y{{ end }}{{ end }}'
        (d,) = find_define_blocks([line], 'file:///c/t.tpl')
        assert d.range.end.character == len(line)
        assert d.content == '{{ if .x }}y{{ end }}'

    def test_two_defines_on_one_line(self):
        from argolsp.features.helm_templates import find_define_blocks
        found = find_define_blocks(['{{ define "a" }}A{{ end }}{{ define "b" }}B{{ end }}'], 'file:///c/t.tpl')
        assert [(d.name, d.content) for d in found] == [('a', 'A'), ('b', 'B')]

    def test_multi_line_comment_description(self):
        from argolsp.features.helm_templates import describe_define
        lines = ['{{/*', 'Build labels.', '*/}}', '{{ define "x" }}']
        assert describe_define(lines, 3) == 'Build labels.'
        assert describe_define(['name: x', '{{ define "x" }}'], 1) is None

    def test_innermost_define(self):
        from argolsp.features.helm_templates import find_define_blocks, innermost_define_at
        lines = ['{{ define "outer" }}', '{{ define "inner" }}', 'x', '{{ end }}', '{{ end }}']
        found = find_define_blocks(lines, 'file:///c/t.tpl')
        assert innermost_define_at(found, lsp.Position(line=2, character=0)).name == 'inner'
        assert innermost_define_at(found, lsp.Position(line=4, character=2)).name == 'outer'

    def test_nested_defines_on_one_line(self):
        from argolsp.features.helm_templates import find_define_blocks, innermost_define_at
        line = '{{ define "a" }}{{ define "b" }}X{{ end }}{{ end }}'
        found = find_define_blocks([line], 'file:///c/t.tpl')
        by_name = {d.name: d for d in found}
        assert by_name['b'].content == 'X'
        assert by_name['a'].range.end.character == len(line)
        assert innermost_define_at(found, lsp.Position(line=0, character=line.index('X'))).name == 'b'
        outer_end = line.rindex('{{ end }}') + 3
        assert innermost_define_at(found, lsp.Position(line=0, character=outer_end)).name == 'a'

    def test_references(self):
        from argolsp.features.helm_templates import find_all_helm_template_references
        refs = find_all_helm_template_references(DEPLOY.split('\n'))
        assert [(r.type, r.template_name) for r in refs] == [('include', 'demo.labels'), ('include', 'demo.missing')]
        assert refs[0].full_expression == '{{- include "demo.labels" . | nindent 4 }}'


class TestChartDiscovery:
    def test_parse_chart_yaml(self):
        from argolsp.services.chart_index import parse_chart_yaml
        meta = parse_chart_yaml(CHART_YAML)
        assert (meta.name, meta.version, meta.api_version) == ('demo', '0.1.0', 'v2')
        assert meta.app_version == '1.2.3'
        assert meta.key_lines['name'] == 1

    def test_chart_yaml_requires_fields(self):
        from argolsp.services.chart_index import parse_chart_yaml
        assert parse_chart_yaml('apiVersion: v2\nname: demo\n') is None

    def test_templated_lines_ignored(self):
        from argolsp.services.chart_index import parse_chart_yaml
        meta = parse_chart_yaml(CHART_YAML + 'home: {{ .Values.home }}\n')
        assert 'home' not in meta.fields

    def test_discovery(self, tmp_path):
        from argolsp.services.chart_index import find_helm_charts
        _write_chart(tmp_path / 'alpha', chart_yaml=CHART_YAML.replace('demo', 'alpha'))
        _write_chart(tmp_path / 'alpha' / 'charts' / 'sub', chart_yaml=CHART_YAML.replace('demo', 'sub'))
        _write_chart(tmp_path / 'node_modules' / 'x', chart_yaml=CHART_YAML.replace('demo', 'x'))
        _write_chart(tmp_path / 'bad', chart_yaml='apiVersion: v2\nname: bad\n')
        (tmp_path / 'empty').mkdir()
        (tmp_path / 'empty' / 'Chart.yaml').write_text(CHART_YAML)
        assert [c.name for c in find_helm_charts([tmp_path])] == ['alpha']

    def test_chart_yml_marker(self, tmp_path):
        from argolsp.services.chart_index import HelmChartIndex, find_helm_charts, is_chart_root
        root = tmp_path / 'short'
        (root / 'templates').mkdir(parents=True)
        (root / 'Chart.yml').write_text(CHART_YAML.replace('demo', 'short'))
        assert is_chart_root(root)
        (chart,) = find_helm_charts([tmp_path])
        assert chart.name == 'short'
        assert chart.chart_yaml_uri.endswith('/short/Chart.yml')
        index = HelmChartIndex()
        assert index.update_chart(root).name == 'short'

    def test_discovery_depth(self, tmp_path):
        from argolsp.services.chart_index import find_helm_charts
        _write_chart(tmp_path / '1' / '2' / '3' / '4' / '5' / '6', chart_yaml=CHART_YAML.replace('demo', 'deep'))
        assert find_helm_charts([tmp_path]) == []
        assert [c.name for c in find_helm_charts([tmp_path], max_depth=6)] == ['deep']

    def test_chart_for_file_prefers_deepest_root(self, tmp_path):
        from argolsp.services.chart_index import HelmChartIndex
        outer = _write_chart(tmp_path / 'outer', chart_yaml=CHART_YAML.replace('demo', 'outer'))
        inner = _write_chart(outer / 'charts' / 'inner', chart_yaml=CHART_YAML.replace('demo', 'inner'))
        index = HelmChartIndex()
        index.update_chart(outer)
        index.update_chart(inner)
        assert index.find_chart_for_file(path_to_uri(inner / 'templates' / 'x.yaml')).name == 'inner'
        assert index.find_chart_for_file(path_to_uri(outer / 'templates' / 'x.yaml')).name == 'outer'
        assert index.find_chart_for_file(path_to_uri(tmp_path / 'x.yaml')) is None

    def test_update_chart_drops_broken_chart(self, chart_dir):
        from argolsp.services.chart_index import HelmChartIndex
        index = HelmChartIndex()
        index.initialize([chart_dir.parent])
        assert len(index) == 1
        (chart_dir / 'Chart.yaml').unlink()
        assert index.update_chart(chart_dir) is None
        assert len(index) == 0


class TestIndices:
    def test_values_index(self, indices):
        charts, values, _ = indices
        assert values.find_value('demo', 'image.tag').value == '1.25'
        assert values.update_file('file:///elsewhere/values.yaml', 'a: 1') is False
        uri = charts.find_chart_by_name('demo').values_yaml_uri
        assert values.update_file(uri, 'image:\n  tag: latest\n') is True
        assert values.find_value('demo', 'image.tag').value == 'latest'
        assert values.find_value('demo', 'replicas') is None

    def test_template_index(self, indices, chart_dir):
        _, _, templates = indices
        assert templates.find_template('demo', 'demo.labels') is not None
        assert templates.update_file('file:///elsewhere/x.tpl', '') is False

    def test_same_template_in_two_files(self, indices, chart_dir):
        _, _, templates = indices
        other = path_to_uri(chart_dir / 'templates' / 'z.tpl')
        templates.update_file(other, HELPERS, chart_name='demo')
        templates.remove_file(path_to_uri(chart_dir / 'templates' / '_helpers.tpl'))
        assert templates.find_template('demo', 'demo.labels').uri == other
        templates.remove_file(other)
        assert templates.find_template('demo', 'demo.labels') is None


class TestHelmHandlers:
    def test_values_hover(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'image.repository', 11)))
        assert result.exists is True
        assert result.definition_location.range.start.line == 2
        assert '**Default**: `"nginx"`' in result.hover_markdown
        assert '**Chart**: demo' in result.hover_markdown
        assert 'upstream image' in result.hover_markdown

    def test_missing_value(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'nope', 14)))
        assert result.exists is False
        assert result.diagnostic_message == "Value '.Values.nope' not found in values.yaml (demo)"

    def test_outside_any_chart_is_unknown(self, indices):
        from argolsp.references.handlers import HelmValuesHandler
        charts, values, _ = indices
        doc = make_document('file:///nowhere/templates/x.yaml', '{{ .Values.nope }}', 'helm')
        handler = HelmValuesHandler(charts, values)
        result = asyncio.run(handler.resolve(doc, handler.detect(doc, lsp.Position(line=0, character=5))))
        assert result.exists is None

    def test_include_hover(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'demo.labels', 5)))
        assert result.exists is True
        assert result.definition_location.uri.endswith('/templates/_helpers.tpl')
        assert result.definition_location.range.start.line == 1
        assert '**File**: _helpers.tpl' in result.hover_markdown
        assert 'Common labels' in result.hover_markdown

    def test_missing_template(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'demo.missing', 16)))
        assert result.diagnostic_message == "Template 'demo.missing' not found (Helm include, demo)"

    def test_validate_all(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        failures = asyncio.run(registry.validate_all(doc))
        assert sorted(f.detected.range.start.line for f in failures) == [14, 16]

    def test_template_references_from_define(self, registry, chart_dir):
        helpers = _template_doc(chart_dir, '_helpers.tpl', HELPERS)
        deploy = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        found = registry.find_references(helpers, lsp.Position(line=4, character=0), [helpers, deploy])
        assert [(loc.uri.rsplit('/', 1)[-1], loc.range.start.line) for loc in found] == [('deploy.yaml', 5)]

    def test_chart_variable(self, registry, chart_dir):
        doc = _template_doc(chart_dir, '_helpers.tpl', HELPERS)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'Name', 2)))
        assert result.detected.kind == 'chartVariable'
        assert '**Value**: `"demo"`' in result.hover_markdown
        assert result.definition_location.uri.endswith('/demo/Chart.yaml')
        assert result.definition_location.range.start.line == 1

    def test_release_and_capabilities(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'x.yaml', 'a: {{ .Release.Name }}\nb: {{ .Capabilities.KubeVersion.Major }}\n'
                                                  'c: {{ .Release.Bogus }}')
        release = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'Name', 0)))
        assert release.hover_markdown.startswith('**Release Variable**: `.Release.Name`')
        caps = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'Major', 1)))
        assert '`.Capabilities.KubeVersion.Major`' in caps.hover_markdown
        assert asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'Bogus', 2))) is None

    def test_keywords(self):
        from argolsp.features.go_keywords import find_keyword_at, in_keyword_context
        lines = ['{{- if .Values.a }}', '{{ else   if .Values.b }}', '# {{ if .x }}']
        assert find_keyword_at(lines, lsp.Position(line=0, character=5)).keyword_name == 'if'
        assert find_keyword_at(lines, lsp.Position(line=1, character=4)).keyword_name == 'else if'
        assert find_keyword_at(lines, lsp.Position(line=2, character=6)) is None
        assert in_keyword_context('{{ ', 3)
        assert in_keyword_context('{{- ra', 6)
        assert not in_keyword_context('{{ if .Values', 13)

    def test_keyword_hover(self, registry, chart_dir):
        doc = _template_doc(chart_dir, '_helpers.tpl', HELPERS)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'end', 5)))
        assert result.hover_markdown.startswith('**Keyword**: `end`')


class TestHelmCompletion:
    def _complete(self, registry, chart_dir, line):
        doc = _template_doc(chart_dir, 'x.yaml', line)
        return [i.label for i in registry.provide_completions(doc, lsp.Position(line=0, character=len(line)))]

    def test_values(self, registry, chart_dir):
        assert self._complete(registry, chart_dir, 'a: {{ .Values.ima') == ['image', 'image.repository', 'image.tag']

    def test_all_values_after_dot(self, registry, chart_dir):
        assert len(self._complete(registry, chart_dir, 'a: {{ .Values.')) == 6

    def test_template_names(self, registry, chart_dir):
        assert self._complete(registry, chart_dir, '{{ include "') == ['demo.labels']

    def test_chart_variables(self, registry, chart_dir):
        assert self._complete(registry, chart_dir, '{{ .Chart.App') == ['AppVersion']

    def test_release_variables(self, registry, chart_dir):
        assert len(self._complete(registry, chart_dir, '{{ .Release.')) == 6

    def test_keywords(self, registry, chart_dir):
        labels = self._complete(registry, chart_dir, '{{ ')
        assert labels[0] == 'if'
        assert 'else if' in labels

    def test_functions_after_pipe(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'x.yaml', 'tag: {{ .Values.image.tag | ')
        items = registry.provide_completions(doc, lsp.Position(line=0, character=len(doc.line(0))))
        labels = [i.label for i in items]
        assert 'default' in labels
        assert 'toYaml' in labels
        assert {i.kind for i in items} == {lsp.CompletionItemKind.Function}

    def test_functions_while_typing_name(self, registry, chart_dir):
        assert 'toYaml' in self._complete(registry, chart_dir, 'r: {{ .Values.resources | to')


FUNCTIONS = """\
spec:
  tag: {{ .Values.image.tag | default "latest" }}
  resources:
    {{- toYaml .Values.resources | nindent 4 }}
  script: echo hi | cat
# {{ .Values.x | quote }}
"""


class TestHelmFunctions:
    def test_call_positions(self):
        from argolsp.features.helm_functions import find_all_helm_function_references
        line = '{{ if not (empty .Values.x) }}{{ .Values.y | default "a" | quote }}{{ end }}'
        refs = find_all_helm_function_references([line])
        assert [r.function_name for r in refs] == ['not', 'empty', 'default', 'quote']
        assert refs[0].range.start.character == line.index('not')

    def test_only_inside_actions(self):
        from argolsp.features.helm_functions import find_all_helm_function_references
        refs = find_all_helm_function_references(FUNCTIONS.split('\n'))
        assert [(r.function_name, r.range.start.line) for r in refs] == [
            ('default', 1), ('toYaml', 3), ('nindent', 3)]

    def test_function_at(self):
        from argolsp.features.helm_functions import find_helm_function_at
        lines = FUNCTIONS.split('\n')
        col = lines[3].index('toYaml')
        assert find_helm_function_at(lines, lsp.Position(line=3, character=col)).function_name == 'toYaml'
        assert find_helm_function_at(lines, lsp.Position(line=3, character=col + 6)).function_name == 'toYaml'
        assert find_helm_function_at(lines, lsp.Position(line=3, character=col - 1)) is None
        assert find_helm_function_at(lines, lsp.Position(line=5, character=17)) is None
        assert find_helm_function_at(lines, lsp.Position(line=20, character=0)) is None

    def test_pipe_context(self):
        from argolsp.features.helm_functions import in_pipe_context
        assert in_pipe_context('{{ .Values.a | ', 15)
        assert in_pipe_context('{{ .Values.a | def', 18)
        assert not in_pipe_context('{{ .Values.a ', 13)
        assert not in_pipe_context('script: a | b', 13)
        assert not in_pipe_context('{{ .Values.a }} | ', 18)

    def test_to_yaml_hover(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'fn.yaml', FUNCTIONS)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'toYaml', 3)))
        assert result.detected.kind == 'helmFunction'
        assert result.hover_markdown.startswith('**Function**: `toYaml`')
        assert '**Category**: conversion' in result.hover_markdown
        assert 'Converts a value to YAML format' in result.hover_markdown
        assert result.definition_location is None

    def test_default_hover(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'fn.yaml', FUNCTIONS)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'default', 1)))
        assert result.hover_markdown.startswith('**Function**: `default`')
        assert '**Signature**: `default DEFAULT_VALUE GIVEN_VALUE`' in result.hover_markdown
        assert '**Examples**:' in result.hover_markdown

    def test_pipe_after_include(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'deploy.yaml', DEPLOY)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'nindent', 5)))
        assert result.detected.kind == 'helmFunction'
        assert '`nindent COUNT STRING`' in result.hover_markdown

    def test_values_path_still_wins(self, registry, chart_dir):
        doc = _template_doc(chart_dir, 'fn.yaml', FUNCTIONS)
        result = asyncio.run(registry.detect_and_resolve(doc, _pos(doc, 'image', 1)))
        assert result.detected.kind == 'helmValues'


BLOCKS = """\
{{- define "demo.env" }}
{{- if .Values.enabled }}
{{- range .Values.servers }}
- {{ . }}
{{- end }}
{{- else if .Values.fallback }}
fallback: true
{{- else }}
disabled: true
{{- end }}
{{- end }}
"""


class TestBlockHighlights:
    def _lines(self, pos_line, needle, text=BLOCKS):
        from argolsp.features.helm_templates import matching_block_tags
        lines = text.split('\n')
        pos = lsp.Position(line=pos_line, character=lines[pos_line].find(needle) + 1)
        return [(t.keyword, t.range.start.line) for t in matching_block_tags(lines, pos)]

    def test_block_tags(self):
        from argolsp.features.helm_templates import find_block_tags
        tags = find_block_tags(BLOCKS.split('\n'))
        assert [t.keyword for t in tags] == [
            'define', 'if', 'range', 'end', 'else if', 'else', 'end', 'end']
        assert tags[0].range.start.character == 0
        assert tags[0].range.end.character == len('{{- define "demo.env" }}')

    def test_if_with_else_branches(self):
        expected = [('if', 1), ('else if', 5), ('else', 7), ('end', 9)]
        assert self._lines(1, 'if') == expected
        assert self._lines(7, 'else') == expected
        assert self._lines(9, 'end') == expected

    def test_nested_range(self):
        assert self._lines(2, 'range') == [('range', 2), ('end', 4)]
        assert self._lines(4, 'end') == [('range', 2), ('end', 4)]

    def test_outer_define(self):
        assert self._lines(10, 'end') == [('define', 0), ('end', 10)]

    def test_off_any_tag(self):
        assert self._lines(3, '{{') == []
        assert self._lines(6, 'fallback') == []

    def test_unbalanced_block(self):
        assert self._lines(0, 'end', text='{{ end }}\n') == []
        assert self._lines(0, 'if', text='{{ if .x }}\nno end\n') == []

    def test_blocks_on_one_line(self):
        from argolsp.features.helm_templates import matching_block_tags
        line = '{{ define "a" }}{{ if .x }}y{{ end }}{{ end }}'
        tags = matching_block_tags([line], lsp.Position(line=0, character=line.rindex('end')))
        assert [t.range.start.character for t in tags] == [0, line.rindex('{{ end }}')]
