"""``.Release.*`` and ``.Capabilities.*`` built-in objects of Helm templates."""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.references.types import make_range, range_contains


@dataclass(frozen=True)
class BuiltinVariableInfo:
    name: str
    category: str               # 'release' | 'capabilities'
    description: str

    @property
    def full_path(self) -> str:
        return f'.{self.category.capitalize()}.{self.name}'


RELEASE_VARIABLES: dict[str, BuiltinVariableInfo] = {
    v.name: v for v in (
        BuiltinVariableInfo('Name', 'release', 'The name of the release'),
        BuiltinVariableInfo('Namespace', 'release', 'The namespace to be released into'),
        BuiltinVariableInfo('Service', 'release', 'The service that is rendering the template (always "Helm")'),
        BuiltinVariableInfo('IsUpgrade', 'release', 'True if the current operation is an upgrade or rollback'),
        BuiltinVariableInfo('IsInstall', 'release', 'True if the current operation is an install'),
        BuiltinVariableInfo('Revision', 'release', 'The revision number for this release'),
    )
}

CAPABILITIES_VARIABLES: dict[str, BuiltinVariableInfo] = {
    v.name: v for v in (
        BuiltinVariableInfo('KubeVersion', 'capabilities', 'The Kubernetes version'),
        BuiltinVariableInfo('KubeVersion.Version', 'capabilities', 'The Kubernetes version in semver format'),
        BuiltinVariableInfo('KubeVersion.Major', 'capabilities', 'The Kubernetes major version'),
        BuiltinVariableInfo('KubeVersion.Minor', 'capabilities', 'The Kubernetes minor version'),
        BuiltinVariableInfo('APIVersions', 'capabilities', 'A set of versions available on the cluster'),
        BuiltinVariableInfo('HelmVersion', 'capabilities', 'The Helm version'),
    )
}

CATALOGUES = {'release': RELEASE_VARIABLES, 'capabilities': CAPABILITIES_VARIABLES}

_PATTERNS = (
    ('release', re.compile(r'\.Release\.([A-Z][a-zA-Z]*)')),
    ('capabilities', re.compile(r'\.Capabilities\.([A-Z][a-zA-Z.]*)')),
)
_COMPLETION_PATTERNS = (
    ('release', re.compile(r'\.Release\.([A-Za-z]*)$')),
    ('capabilities', re.compile(r'\.Capabilities\.([A-Za-z.]*)$')),
)


@dataclass(frozen=True)
class BuiltinReference:
    type: str                   # 'release' | 'capabilities'
    variable_name: str
    range: lsp.Range            # the name after ".Release." / ".Capabilities."


def find_builtin_reference_at(lines: list[str], pos: lsp.Position) -> BuiltinReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    line = lines[pos.line]
    for category, pattern in _PATTERNS:
        for m in pattern.finditer(line):
            name = m.group(1).rstrip('.')
            rng = make_range(pos.line, m.start(1), m.start(1) + len(name))
            if range_contains(rng, pos):
                return BuiltinReference(category, name, rng)
    return None


def builtin_prefix_for_completion(line: str, character: int) -> tuple[str, str] | None:
    """``(category, partial_name)`` when the cursor follows ``.Release.``/``.Capabilities.``."""
    prefix = line[:character]
    for category, pattern in _COMPLETION_PATTERNS:
        m = pattern.search(prefix)
        if m:
            return category, m.group(1)
    return None
