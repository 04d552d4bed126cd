"""
Workspace file scanning and URI/path conversion.

Every index is populated from the same walk: ``find_yaml_files`` yields each
``*.yaml``/``*.yml`` file under a root, pruning directories named in
:data:`SKIP_DIRS`.  Unreadable directories are skipped, never fatal.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

# Build/output/vendor-style directories never worth indexing.
SKIP_DIRS = frozenset({
    'node_modules', '.git', 'dist', 'build', 'out', 'vendor', 'target',
    '.venv', 'venv', '__pycache__', '.tox', 'charts-output',
})

YAML_SUFFIXES = ('.yaml', '.yml')


def uri_to_path(uri: str) -> Path:
    """Convert a ``file://`` URI (or a bare path) to a :class:`Path`."""
    if uri.startswith('file://'):
        return Path(unquote(urlparse(uri).path))
    return Path(uri)


def path_to_uri(path: str | os.PathLike) -> str:
    return Path(path).absolute().as_uri()


def is_yaml_uri(uri: str) -> bool:
    return uri.lower().endswith(YAML_SUFFIXES)


def walk_files(root: str | os.PathLike, suffixes: tuple[str, ...] = YAML_SUFFIXES):
    """Yield every file under *root* whose name ends with one of *suffixes*."""
    def _onerror(err: OSError) -> None:
        logger.debug('walk_files: skipping %s (%s)', err.filename, err.strerror)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for name in sorted(filenames):
            if name.lower().endswith(suffixes):
                yield Path(dirpath) / name


def find_yaml_files(root: str | os.PathLike) -> list[str]:
    """Return the URIs of every YAML file under *root*, honouring :data:`SKIP_DIRS`."""
    return [path_to_uri(p) for p in walk_files(root)]


def read_text(uri: str) -> str | None:
    """Read *uri* from disk, returning ``None`` when it is missing or unreadable."""
    try:
        return uri_to_path(uri).read_text(encoding='utf-8', errors='replace')
    except OSError:
        logger.debug('read_text: cannot read %s', uri, exc_info=True)
        return None
