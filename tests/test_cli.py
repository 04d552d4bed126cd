"""Tests for argolsp.cli — argument parsing and the settings it hands to the server."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest


class TestParser:
    def test_defaults(self):
        from argolsp.cli import _build_parser, settings_overrides
        args = _build_parser().parse_args([])
        assert (args.stdio, args.tcp) == (False, None)
        assert settings_overrides(args) == {}

    def test_tcp_port(self):
        from argolsp.cli import _build_parser
        assert _build_parser().parse_args(['--tcp', '2087']).tcp == 2087

    def test_stdio_and_tcp_are_exclusive(self):
        from argolsp.cli import _build_parser
        with pytest.raises(SystemExit):
            _build_parser().parse_args(['--stdio', '--tcp', '2087'])

    def test_log_level_case_insensitive(self):
        from argolsp.cli import _build_parser
        assert _build_parser().parse_args(['--log-level', 'debug']).log_level == 'DEBUG'
        with pytest.raises(SystemExit):
            _build_parser().parse_args(['--log-level', 'LOUD'])

    def test_render_options(self):
        from argolsp.cli import _build_parser, settings_overrides
        args = _build_parser().parse_args([
            '--helm-path', '/opt/helm', '--no-render', '--render-timeout', '30',
            '--cache-dir', '/tmp/argolsp-cache', '--max-chart-depth', '2',
        ])
        assert settings_overrides(args) == {
            'helm_path': '/opt/helm', 'render_enabled': False, 'render_timeout': 30.0,
            'cache_dir': Path('/tmp/argolsp-cache'), 'max_chart_depth': 2,
        }

    def test_version(self, capsys):
        from argolsp.cli import main
        with pytest.raises(SystemExit) as exc:
            main(['--version'])
        assert exc.value.code == 0
        assert capsys.readouterr().out.startswith('argolsp ')


class TestConfigure:
    @pytest.fixture(autouse=True)
    def _restore(self):
        import argolsp.server as srv
        root = logging.getLogger()
        level, roots, settings = root.level, srv._roots, srv._settings
        yield
        srv._roots, srv._settings, srv._command_line = roots, settings, {}
        srv._apply_settings(settings.resolve())
        root.setLevel(level)

    def test_settings_reach_server(self, tmp_path):
        import argolsp.server as srv
        srv.configure({'helm_path': '/opt/helm', 'cache_dir': tmp_path, 'render_enabled': False,
                       'max_chart_depth': 2})
        assert srv._rendered_index.renderer.helm_path == '/opt/helm'
        assert srv._rendered_index.render_cache.cache_dir == tmp_path
        assert srv._rendered_index.enabled is False
        assert srv._chart_index.max_depth == 2

    def test_log_level(self):
        import argolsp.server as srv
        srv.configure({'log_level': 'DEBUG'})
        assert logging.getLogger().level == logging.DEBUG

    def test_survives_initialize(self, tmp_path):
        import argolsp.server as srv
        from lsprotocol import types as lsp
        srv.configure({'helm_path': '/opt/helm'})
        srv.on_initialize(lsp.InitializeParams(
            capabilities=lsp.ClientCapabilities(), root_uri=tmp_path.as_uri(),
            initialization_options={'renderTimeout': 3}))
        settings = srv._settings.resolve()
        assert (settings.helm_path, settings.render_timeout) == ('/opt/helm', 3.0)
