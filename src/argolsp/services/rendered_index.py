"""
Argo indices built from rendered chart output.

For a chart whose templates produce Argo manifests, references inside the
templates can often only be resolved after rendering (template names built
from ``.Values``, ``.Release.Name`` ...).  :class:`RenderedArgoIndexCache`
renders the chart, indexes every rendered manifest in a private
:class:`~argolsp.services.template_index.ArgoTemplateIndex` and builds an
Argo-only registry over it.  Rendered documents get
``file:///rendered/<templates/...>`` URIs; the entry is rebuilt only when
the rendered output changes.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from argolsp.document import Document, make_document
from argolsp.services.render import HelmRenderer, RenderError, RenderResult, parse_render_errors
from argolsp.services.render_cache import RenderCache
from argolsp.services.template_index import ArgoTemplateIndex

logger = logging.getLogger(__name__)

RENDERED_URI_PREFIX = 'file:///rendered/'


def rendered_uri(template_path: str) -> str:
    return RENDERED_URI_PREFIX + template_path


def source_path_of(uri: str) -> str | None:
    """``file:///rendered/templates/x.yaml`` -> ``templates/x.yaml``."""
    if uri.startswith(RENDERED_URI_PREFIX):
        return uri[len(RENDERED_URI_PREFIX):]
    return None


@dataclass
class RenderedChart:
    output_hash: str
    index: ArgoTemplateIndex
    registry: object                            # ReferenceRegistry
    documents: dict[str, Document] = field(default_factory=dict)


class RenderedArgoIndexCache:

    def __init__(self, renderer: HelmRenderer, registry_factory: Callable[[ArgoTemplateIndex], object],
                 render_cache: RenderCache | None = None):
        self.renderer = renderer
        self.registry_factory = registry_factory
        self.render_cache = render_cache
        self.enabled = True
        self._charts: dict[Path, RenderedChart] = {}
        self._errors: dict[Path, list[RenderError]] = {}

    async def _render(self, chart_dir: Path) -> RenderResult:
        if self.render_cache is not None:
            cached = self.render_cache.load(chart_dir, None)
            if cached is not None:
                return cached
        result = await self.renderer.render(chart_dir)
        if result.success and self.render_cache is not None:
            self.render_cache.save(chart_dir, None, result)
        return result

    async def get_chart(self, chart_dir: str | Path) -> RenderedChart | None:
        """Render *chart_dir* (or reuse the cached render); ``None`` when unavailable."""
        chart_dir = Path(chart_dir)
        if not self.enabled or not await self.renderer.is_available():
            return None
        result = await self._render(chart_dir)
        if not result.success:
            self._errors[chart_dir] = parse_render_errors(result.stderr or result.error)
            logger.info('RenderedArgoIndexCache: render of %s failed: %s', chart_dir, result.error)
            return None
        self._errors.pop(chart_dir, None)
        if not result.documents:
            return None

        output_hash = hashlib.sha256((result.output or '').encode('utf-8')).hexdigest()
        cached = self._charts.get(chart_dir)
        if cached is not None and cached.output_hash == output_hash:
            return cached

        grouped: dict[str, list[str]] = {}
        for rendered in result.documents:
            grouped.setdefault(rendered.source_template_path, []).append(rendered.content)
        index = ArgoTemplateIndex()
        documents: dict[str, Document] = {}
        for template_path, contents in grouped.items():
            uri = rendered_uri(template_path)
            text = '\n---\n'.join(contents)
            index.index_document(uri, text)
            documents[template_path] = make_document(uri, text, 'yaml')

        entry = RenderedChart(output_hash, index, self.registry_factory(index), documents)
        self._charts[chart_dir] = entry
        logger.debug('RenderedArgoIndexCache: %s rendered into %d document(s)', chart_dir, len(documents))
        return entry

    def errors_for(self, chart_dir: str | Path, template_path: str | None = None) -> list[RenderError]:
        errors = self._errors.get(Path(chart_dir), [])
        if template_path is None:
            return list(errors)
        return [e for e in errors if e.file == template_path]

    def reset(self) -> None:
        """Forget every in-memory render; the on-disk cache is kept."""
        self._charts.clear()
        self._errors.clear()

    def invalidate(self, chart_dir: str | Path | None = None) -> None:
        if chart_dir is None:
            self._charts.clear()
            self._errors.clear()
            if self.render_cache is not None:
                self.render_cache.clear()
            return
        chart_dir = Path(chart_dir)
        self._charts.pop(chart_dir, None)
        self._errors.pop(chart_dir, None)
        if self.render_cache is not None:
            self.render_cache.invalidate(chart_dir)
