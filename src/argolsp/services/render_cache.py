"""
On-disk cache of render results.

Each entry lives in ``<cache_dir>/<key>/`` where *key* is the first 16 hex
digits of ``sha256("<chart_dir>::<template_path>")``.  Alongside
``result.json`` the entry stores ``checksums.json``: ``(file, mtime_ms,
size)`` for every source the render depends on.  An entry is only served
when every checksum still matches the file on disk; a stale entry is
deleted on load.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
from pathlib import Path

from argolsp.services.render import RenderResult
from argolsp.services.scanner import walk_files

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / '.cache' / 'argolsp'

RESULT_FILE = 'result.json'
CHECKSUM_FILE = 'checksums.json'


def cache_key(chart_dir: str | os.PathLike, template_path: str | None) -> str:
    return hashlib.sha256(f'{chart_dir}::{template_path or ""}'.encode('utf-8')).hexdigest()[:16]


def file_checksum(path: Path) -> dict:
    """``{file, mtime_ms, size}``; a missing file is recorded with zeros."""
    try:
        st = path.stat()
        return {'file': str(path), 'mtime_ms': st.st_mtime_ns // 1_000_000, 'size': st.st_size}
    except OSError:
        return {'file': str(path), 'mtime_ms': 0, 'size': 0}


def source_files(chart_dir: str | os.PathLike, template_path: str | None) -> list[Path]:
    root = Path(chart_dir)
    if template_path:
        templates = [root / template_path]
    else:
        templates = list(walk_files(root / 'templates', ('.yaml', '.yml', '.tpl')))
    return templates + [root / 'values.yaml', root / 'Chart.yaml']


def compute_checksums(chart_dir: str | os.PathLike, template_path: str | None) -> list[dict]:
    return [file_checksum(p) for p in source_files(chart_dir, template_path)]


class RenderCache:

    def __init__(self, cache_dir: str | os.PathLike | None = None):
        self.cache_dir = Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_DIR

    def _entry_dir(self, chart_dir, template_path) -> Path:
        return self.cache_dir / cache_key(chart_dir, template_path)

    def save(self, chart_dir: str | os.PathLike, template_path: str | None, result: RenderResult) -> bool:
        entry = self._entry_dir(chart_dir, template_path)
        try:
            entry.mkdir(parents=True, exist_ok=True)
            for name, payload in ((RESULT_FILE, result.to_dict()),
                                  (CHECKSUM_FILE, compute_checksums(chart_dir, template_path))):
                tmp = entry / (name + '.tmp')
                tmp.write_text(json.dumps(payload), encoding='utf-8')
                tmp.replace(entry / name)
            return True
        except OSError as exc:
            logger.debug('RenderCache: cannot save %s: %s', entry, exc)
            return False

    def load(self, chart_dir: str | os.PathLike, template_path: str | None) -> RenderResult | None:
        entry = self._entry_dir(chart_dir, template_path)
        result_file, checksum_file = entry / RESULT_FILE, entry / CHECKSUM_FILE
        if not (result_file.is_file() and checksum_file.is_file()):
            return None
        try:
            saved = json.loads(checksum_file.read_text(encoding='utf-8'))
            if saved != compute_checksums(chart_dir, template_path):
                logger.debug('RenderCache: stale entry %s removed', entry.name)
                self._remove(entry)
                return None
            return RenderResult.from_dict(json.loads(result_file.read_text(encoding='utf-8')))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug('RenderCache: unreadable entry %s (%s), removed', entry.name, exc)
            self._remove(entry)
            return None

    def invalidate(self, chart_dir: str | os.PathLike, template_path: str | None = None) -> None:
        """Drop one entry, or every entry whose sources lie under *chart_dir*."""
        if template_path:
            self._remove(self._entry_dir(chart_dir, template_path))
            return
        root = Path(chart_dir)
        try:
            entries = [p for p in self.cache_dir.iterdir() if p.is_dir()]
        except OSError:
            return
        for entry in entries:
            try:
                checksums = json.loads((entry / CHECKSUM_FILE).read_text(encoding='utf-8'))
            except (OSError, ValueError):
                continue
            if any(root in Path(c.get('file', '')).parents for c in checksums):
                self._remove(entry)

    def clear(self) -> None:
        self._remove(self.cache_dir)

    @staticmethod
    def _remove(path: Path) -> None:
        shutil.rmtree(path, ignore_errors=True)
