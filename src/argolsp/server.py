"""
argolsp Language Server.

Registers LSP capabilities and wires them to the reference registry and the
workspace indices.
"""
from __future__ import annotations

import asyncio
import logging

from pygls.lsp.server import LanguageServer
from lsprotocol import types as lsp

logger = logging.getLogger(__name__)

from argolsp import __version__
from argolsp.detection import ChartMarkerCache, is_helm_template
from argolsp.document import Document, YAML_LANGUAGE_IDS, make_document, read_document
from argolsp.features.argo_templates import find_template_definitions
from argolsp.features.configmaps import find_configmap_definitions
from argolsp.features.helm_templates import find_define_blocks, matching_block_tags
from argolsp.references.setup import create_argo_only_registry, create_reference_registry
from argolsp.services.chart_index import HelmChartIndex
from argolsp.services.configmap_index import ConfigMapIndex
from argolsp.services.helm_template_index import HelmTemplateIndex
from argolsp.services.maintenance import CHANGED, FileChange, MaintenanceQueue
from argolsp.services.render import HelmRenderer
from argolsp.services.render_cache import RenderCache
from argolsp.services.rendered_index import RenderedArgoIndexCache
from argolsp.services.scanner import uri_to_path
from argolsp.services.template_index import ArgoTemplateIndex
from argolsp.services.values_index import ValuesIndex
from argolsp.settings import PROJECT_CONFIG, ServerSettings, SettingsResolver

# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'argolsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)

# Per-URI store of open documents (populated on open/change).
_docs: dict[str, Document] = {}

# Overrides from the command line; they survive the resolver swap on initialize.
_command_line: dict[str, object] = {}

# Settings resolver; replaced on initialize once the workspace root is known.
_settings = SettingsResolver()

# Workspace indices, shared by every handler.
_marker_cache = ChartMarkerCache()
_template_index = ArgoTemplateIndex()
_configmap_index = ConfigMapIndex()
_chart_index = HelmChartIndex()
_values_index = ValuesIndex()
_helm_template_index = HelmTemplateIndex()

# Rendered-chart collaborator; its renderer and cache follow the settings.
_rendered_index = RenderedArgoIndexCache(
    HelmRenderer(),
    lambda index: create_argo_only_registry(index, _configmap_index),
    RenderCache(),
)

_registry = create_reference_registry(
    _template_index, _configmap_index, _chart_index, _values_index, _helm_template_index,
    rendered_index=_rendered_index, marker_cache=_marker_cache,
)

_queue = MaintenanceQueue(
    _template_index, _configmap_index,
    chart_index=_chart_index, values_index=_values_index,
    helm_template_index=_helm_template_index, marker_cache=_marker_cache,
    rendered_cache=_rendered_index,
)

# Workspace roots (filesystem paths) scanned on ``initialized``.
_roots: list[str] = []

# Debounce state: pending asyncio tasks for each URI.
_pending_tasks: dict[str, asyncio.Task] = {}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _apply_settings(settings: ServerSettings) -> None:
    """Push resolved settings into the long-lived services."""
    renderer = _rendered_index.renderer
    if (renderer.helm_path, renderer.timeout) != (settings.helm_path, settings.render_timeout):
        _rendered_index.renderer = HelmRenderer(settings.helm_path, settings.render_timeout)
        _rendered_index.reset()
    if _rendered_index.render_cache is None or _rendered_index.render_cache.cache_dir != settings.cache_dir:
        _rendered_index.render_cache = RenderCache(settings.cache_dir)
        _rendered_index.reset()
    _rendered_index.enabled = settings.render_enabled
    _chart_index.max_depth = settings.max_chart_depth
    _apply_log_level(settings.log_level)


def configure(options: dict) -> None:
    """Install settings given on the command line before the server starts."""
    global _settings, _command_line
    _command_line = dict(options)
    _settings = SettingsResolver(workspace_root=_settings.workspace_root, command_line=_command_line)
    _apply_settings(_settings.resolve())


def _workspace_roots(params: lsp.InitializeParams) -> list[str]:
    if params.workspace_folders:
        return [str(uri_to_path(folder.uri)) for folder in params.workspace_folders]
    if params.root_uri:
        return [str(uri_to_path(params.root_uri))]
    if params.root_path:
        return [params.root_path]
    return []


def _scan_workspace() -> None:
    """(Re)build every index from the workspace roots."""
    _marker_cache.clear()
    _chart_index.initialize(_roots)
    charts = _chart_index.get_all_charts()
    _values_index.initialize(charts)
    _helm_template_index.initialize(charts)
    _template_index.clear()
    _template_index.initialize(_roots)
    _configmap_index.clear()
    _configmap_index.initialize(_roots)


def _get_document(uri: str) -> Document | None:
    return _docs.get(uri) or read_document(uri)


async def _diagnostics_for(doc: Document) -> list[lsp.Diagnostic]:
    try:
        failures = await _registry.validate_all(doc)
    except Exception:
        logger.warning('_diagnostics_for: validation failed for %s', doc.uri, exc_info=True)
        return []
    return [
        lsp.Diagnostic(
            range=failure.detected.range,
            message=failure.diagnostic_message or 'Unresolved reference',
            severity=lsp.DiagnosticSeverity.Error,
            source='argolsp',
        )
        for failure in failures
    ]


async def _publish_diagnostics(uri: str) -> None:
    doc = _docs.get(uri)
    if doc is None or doc.language_id not in YAML_LANGUAGE_IDS:
        return
    diags = await _diagnostics_for(doc)
    logger.debug('_publish_diagnostics: %s → %d diagnostics', uri, len(diags))
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, version=doc.version, diagnostics=diags)
    )


async def _debounced_update(uri: str, delay: float = 0.5) -> None:
    """Wait *delay* seconds, then publish diagnostics.

    Scheduled with ``asyncio.ensure_future`` so a newer edit can cancel it
    before the delay expires (debounce while typing).
    """
    await asyncio.sleep(delay)
    await _publish_diagnostics(uri)


def _schedule_update(uri: str, delay: float | None = None) -> None:
    """Cancel any pending update for *uri* and schedule a new debounced one."""
    if delay is None:
        delay = _settings.resolve().diagnostics_debounce
    existing = _pending_tasks.pop(uri, None)
    if existing is not None:
        existing.cancel()
    task = asyncio.ensure_future(_debounced_update(uri, delay))
    _pending_tasks[uri] = task

    def _forget(done: asyncio.Task) -> None:
        if _pending_tasks.get(uri) is done:
            del _pending_tasks[uri]

    task.add_done_callback(_forget)


def _apply_changes(changes: list[FileChange]) -> None:
    """Feed *changes* through the maintenance queue and refresh open documents."""
    for change in changes:
        _queue.push(change)
    handled = _queue.drain()
    logger.debug('_apply_changes: %d change(s) applied', handled)
    for uri in list(_docs):
        _schedule_update(uri)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    global _settings, _roots
    _roots = _workspace_roots(params)
    _settings = SettingsResolver(workspace_root=_roots[0] if _roots else None, command_line=_command_line)

    opts = getattr(params, 'initialization_options', None)
    _settings.set_initialization_options(opts if isinstance(opts, dict) else None)
    _apply_settings(_settings.resolve())


@server.feature(lsp.INITIALIZED)
def on_initialized(params: lsp.InitializedParams):
    logger.info('argolsp %s: scanning %s', __version__, ', '.join(_roots) or '(no workspace)')
    try:
        _scan_workspace()
    except Exception:
        logger.warning('on_initialized: workspace scan failed', exc_info=True)


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (e.g. the user edits ``argolsp.helmPath``)."""
    settings = getattr(params, 'settings', None) or {}
    if isinstance(settings, dict):
        previous = _settings.resolve()
        _settings.set_client_settings(settings.get('argolsp', {}))
        current = _settings.resolve()
        _apply_settings(current)
        if current.max_chart_depth != previous.max_chart_depth:
            _scan_workspace()
        for uri in list(_docs):
            _schedule_update(uri)


@server.feature(lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES)
def did_change_watched_files(params: lsp.DidChangeWatchedFilesParams):
    """Route file-system events into the maintenance queue."""
    changes = []
    for event in params.changes:
        if uri_to_path(event.uri).name == PROJECT_CONFIG:
            _settings.reload_project_config()
            _apply_settings(_settings.resolve())
            continue
        # Open documents are tracked from their buffers, not from disk.
        if event.uri in _docs and event.type == lsp.FileChangeType.Changed:
            continue
        changes.append(FileChange.from_lsp(event))
    _apply_changes(changes)


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    _docs[td.uri] = make_document(td.uri, td.text, td.language_id, td.version)
    # Publish promptly on open (not debounced; the file is already saved)
    _schedule_update(td.uri, delay=0.0)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    source = params.content_changes[-1].text
    previous = _docs.get(uri)
    language_id = previous.language_id if previous is not None else None
    _docs[uri] = make_document(uri, source, language_id, params.text_document.version)
    # Definitions in the buffer are visible to other documents before saving.
    _apply_changes([FileChange(uri, CHANGED, source)])


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    existing = _pending_tasks.pop(uri, None)
    if existing is not None:
        existing.cancel()
    _docs.pop(uri, None)
    server.text_document_publish_diagnostics(lsp.PublishDiagnosticsParams(uri=uri, diagnostics=[]))
    # Back to the on-disk content (unsaved edits are discarded by the editor).
    _apply_changes([FileChange(uri, CHANGED)])


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(trigger_characters=['.', ':', '"', ' ', '{']),
)
def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        items = _registry.provide_completions(doc, params.position)
    except Exception:
        logger.warning('completion failed for %s', doc.uri, exc_info=True)
        return None
    return lsp.CompletionList(is_incomplete=False, items=items)


# ---------------------------------------------------------------------------
# Hover / go-to-definition
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_HOVER)
async def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        resolved = await _registry.detect_and_resolve(doc, params.position)
    except Exception:
        logger.warning('hover failed for %s', doc.uri, exc_info=True)
        return None
    if resolved is None or not resolved.hover_markdown:
        return None
    return lsp.Hover(
        contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=resolved.hover_markdown),
        range=resolved.detected.range,
    )


@server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
async def definition(params: lsp.DefinitionParams) -> lsp.Location | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        resolved = await _registry.detect_and_resolve(doc, params.position)
    except Exception:
        logger.warning('definition failed for %s', doc.uri, exc_info=True)
        return None
    return resolved.definition_location if resolved is not None else None


# ---------------------------------------------------------------------------
# Find references
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_REFERENCES)
def references(params: lsp.ReferenceParams) -> list[lsp.Location] | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    try:
        return _registry.find_references(doc, params.position, list(_docs.values()))
    except Exception:
        logger.warning('references failed for %s', doc.uri, exc_info=True)
        return []


# ---------------------------------------------------------------------------
# Document symbols
# ---------------------------------------------------------------------------

def _symbol(name: str, kind: lsp.SymbolKind, rng: lsp.Range, detail: str | None = None,
            children: list[lsp.DocumentSymbol] | None = None) -> lsp.DocumentSymbol:
    return lsp.DocumentSymbol(name=name, kind=kind, range=rng, selection_range=rng,
                              detail=detail, children=children or None)


def document_symbols(doc: Document) -> list[lsp.DocumentSymbol]:
    """Argo templates, ConfigMap/Secret definitions and Helm ``define`` blocks in *doc*."""
    if is_helm_template(doc, _marker_cache):
        return [
            _symbol(d.name, lsp.SymbolKind.Function, d.range, 'define')
            for d in find_define_blocks(doc.lines, doc.uri)
        ]
    symbols = [
        _symbol(t.name, lsp.SymbolKind.Function, t.range, t.kind)
        for t in find_template_definitions(doc.lines, doc.uri)
    ]
    for cm in find_configmap_definitions(doc.lines, doc.uri):
        keys = [_symbol(k.key, lsp.SymbolKind.Key, k.range) for k in cm.keys]
        symbols.append(_symbol(cm.name, lsp.SymbolKind.Object, cm.name_range, cm.kind, keys))
    return symbols


@server.feature(lsp.TEXT_DOCUMENT_DOCUMENT_SYMBOL)
def document_symbol(params: lsp.DocumentSymbolParams) -> list[lsp.DocumentSymbol] | None:
    doc = _get_document(params.text_document.uri)
    if doc is None:
        return None
    try:
        return document_symbols(doc)
    except Exception:
        logger.warning('documentSymbol failed for %s', doc.uri, exc_info=True)
        return []


# ---------------------------------------------------------------------------
# Document highlight
# ---------------------------------------------------------------------------

def block_highlights(doc: Document, position: lsp.Position) -> list[lsp.DocumentHighlight] | None:
    """Highlight the template block tag under *position* with its ``else`` and ``end`` tags."""
    tags = matching_block_tags(doc.lines, position)
    if not tags:
        return None
    return [
        lsp.DocumentHighlight(
            range=tag.range,
            kind=lsp.DocumentHighlightKind.Read if tag.keyword.startswith('else')
            else lsp.DocumentHighlightKind.Write,
        )
        for tag in tags
    ]


@server.feature(lsp.TEXT_DOCUMENT_DOCUMENT_HIGHLIGHT)
def document_highlight(params: lsp.DocumentHighlightParams) -> list[lsp.DocumentHighlight] | None:
    doc = _get_document(params.text_document.uri)
    if doc is None:
        return None
    try:
        return block_highlights(doc, params.position)
    except Exception:
        logger.warning('documentHighlight failed for %s', doc.uri, exc_info=True)
        return None
