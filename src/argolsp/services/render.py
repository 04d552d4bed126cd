"""
Chart rendering through ``helm template``.

:class:`HelmRenderer` runs the ``helm`` binary as an asyncio subprocess and
never raises: a missing binary, a timeout or a non-zero exit all come back
as ``RenderResult(success=False, error=...)``.  Rendered output is split
into one :class:`RenderedDocument` per ``# Source:`` section.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

RELEASE_NAME = 'lsp-preview'
DEFAULT_TIMEOUT = 10.0

_SOURCE_RE = re.compile(r'^# Source:\s+(.+)$')
_CHART_NAME_RE = re.compile(r'^# Source:\s+([^/]+)/', re.MULTILINE)
_ERROR_RE = re.compile(r'template:\s+\S+/templates/(\S+?):(\d+)(?::(\d+))?:\s*(.+)')


@dataclass
class RenderedDocument:
    source_template_path: str       # e.g. 'templates/workflow.yaml'
    content: str
    start_line: int                 # first content line in the full output
    end_line: int


@dataclass
class RenderError:
    file: str
    line: int
    column: int
    message: str


@dataclass
class RenderResult:
    success: bool
    output: str | None = None
    documents: list[RenderedDocument] = field(default_factory=list)
    error: str | None = None
    stderr: str | None = None
    execution_time: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'RenderResult':
        documents = [RenderedDocument(**d) for d in data.get('documents') or []]
        return cls(
            success=data['success'],
            output=data.get('output'),
            documents=documents,
            error=data.get('error'),
            stderr=data.get('stderr'),
            execution_time=data.get('execution_time', 0.0),
        )


def parse_render_errors(text: str | None) -> list[RenderError]:
    """Structured errors from ``helm template`` stderr; text that does not match gives ``[]``."""
    if not text:
        return []
    return [
        RenderError(
            file=f'templates/{m.group(1)}',
            line=int(m.group(2)),
            column=int(m.group(3)) if m.group(3) else 0,
            message=m.group(4).strip(),
        )
        for m in _ERROR_RE.finditer(text)
    ]


def extract_template_path(source_path: str, chart_name: str) -> str | None:
    """``mychart/templates/x.yaml`` -> ``templates/x.yaml``; ``None`` outside ``templates/``."""
    prefix = f'{chart_name}/'
    if source_path.startswith(prefix):
        remaining = source_path[len(prefix):]
        return remaining if remaining.startswith('templates/') else None
    if source_path.startswith('templates/'):
        return source_path
    idx = source_path.find('/templates/')
    if idx != -1:
        return source_path[idx + 1:]
    return None


def chart_name_from_output(output: str, chart_dir: str | os.PathLike) -> str:
    m = _CHART_NAME_RE.search(output)
    return m.group(1) if m else Path(chart_dir).name


def split_rendered_output(output: str, chart_name: str) -> list[RenderedDocument]:
    if not output.strip():
        return []
    documents: list[RenderedDocument] = []
    lines = output.split('\n')
    current: tuple[str, int, list[str]] | None = None

    for i, line in enumerate(lines):
        if line.strip() == '---':
            if current is not None:
                path, start, body = current
                documents.append(RenderedDocument(path, '\n'.join(body), start, i - 1))
                current = None
            continue
        m = _SOURCE_RE.match(line)
        if m:
            path = extract_template_path(m.group(1).strip(), chart_name)
            if path is not None:
                current = (path, i + 1, [])
            continue
        if current is not None:
            current[2].append(line)

    if current is not None:
        path, start, body = current
        documents.append(RenderedDocument(path, '\n'.join(body), start, len(lines) - 1))
    return documents


class HelmRenderer:

    def __init__(self, helm_path: str = 'helm', timeout: float = DEFAULT_TIMEOUT):
        self.helm_path = helm_path
        self.timeout = timeout
        self._available: bool | None = None

    async def _run(self, *args: str) -> tuple[int, str, str]:
        process = await asyncio.create_subprocess_exec(
            self.helm_path, *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        return (process.returncode,
                stdout.decode('utf-8', errors='replace'),
                stderr.decode('utf-8', errors='replace'))

    async def is_available(self) -> bool:
        if self._available is None:
            try:
                code, out, _ = await self._run('version', '--short')
                self._available = code == 0
                if self._available:
                    logger.info('HelmRenderer: using %s %s', self.helm_path, out.strip())
            except (OSError, asyncio.TimeoutError):
                logger.info('HelmRenderer: %s not available, rendering disabled', self.helm_path)
                self._available = False
        return self._available

    def reset(self) -> None:
        """Forget the cached availability check (e.g. after ``helm_path`` changes)."""
        self._available = None

    async def render(self, chart_dir: str | os.PathLike, template_path: str | None = None) -> RenderResult:
        args = ['template', RELEASE_NAME, str(chart_dir)]
        if template_path:
            args += ['--show-only', template_path]
        started = time.monotonic()
        try:
            code, stdout, stderr = await self._run(*args)
        except asyncio.TimeoutError:
            return RenderResult(success=False, error=f'helm template timed out after {self.timeout}s',
                                execution_time=time.monotonic() - started)
        except OSError as exc:
            return RenderResult(success=False, error=f'cannot run {self.helm_path}: {exc}',
                                execution_time=time.monotonic() - started)
        elapsed = time.monotonic() - started
        if code != 0:
            logger.debug('HelmRenderer: %s exited %d: %s', chart_dir, code, stderr.strip())
            return RenderResult(success=False, error=stderr.strip() or f'helm exited with {code}',
                                stderr=stderr or None, execution_time=elapsed)
        documents = split_rendered_output(stdout, chart_name_from_output(stdout, chart_dir))
        return RenderResult(success=True, output=stdout, documents=documents,
                            stderr=stderr or None, execution_time=elapsed)
