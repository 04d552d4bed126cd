"""
Go ``text/template`` action keywords (``if``, ``range``, ``define``, ...).

Only the keyword directly after ``{{`` / ``{{-`` is recognised; ``else if``
is reported as one keyword.  YAML comment lines are ignored.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.references.types import make_range, range_contains


@dataclass(frozen=True)
class GoKeyword:
    name: str
    syntax: str
    description: str
    examples: tuple[str, ...] = ()


GO_KEYWORDS: dict[str, GoKeyword] = {
    k.name: k for k in (
        GoKeyword(
            'if', '{{ if PIPELINE }}T1{{ else }}T0{{ end }}',
            'Conditional execution. If the value of the pipeline is empty (false, 0, nil, '
            'empty string, empty collection), T0 is executed; otherwise, T1 is executed.',
            ('{{ if .Values.enabled }}...{{ end }}',
             '{{ if eq .Values.env "production" }}...{{ end }}'),
        ),
        GoKeyword(
            'else', '{{ if PIPELINE }}T1{{ else }}T0{{ end }}',
            'Provides an alternative branch in an if or with block. Executed when the '
            'condition is empty.',
            ('{{ if .Values.enabled }}enabled{{ else }}disabled{{ end }}',),
        ),
        GoKeyword(
            'else if', '{{ if P1 }}T1{{ else if P2 }}T2{{ else }}T0{{ end }}',
            'Chains multiple conditions. Equivalent to nesting an if inside an else block.',
            ('{{ if eq .Values.env "prod" }}production{{ else if eq .Values.env "staging" }}'
             'staging{{ else }}development{{ end }}',),
        ),
        GoKeyword(
            'range', '{{ range PIPELINE }}T1{{ else }}T0{{ end }}',
            'Iterates over a collection (list, map, or channel). Inside the block, `.` is set '
            'to the current element. If the collection is empty and else is provided, T0 is '
            'executed.',
            ('{{ range .Values.servers }}  - {{ . }}{{ end }}',
             '{{ range $key, $val := .Values.labels }}{{ $key }}: {{ $val }}{{ end }}'),
        ),
        GoKeyword(
            'with', '{{ with PIPELINE }}T1{{ else }}T0{{ end }}',
            'Sets the dot (`.`) to the value of the pipeline. If the value is empty, the block '
            'is skipped (or else is executed).',
            ('{{ with .Values.ingress }}host: {{ .host }}{{ end }}',
             '{{ with .Values.optional }}{{ . }}{{ else }}default{{ end }}'),
        ),
        GoKeyword(
            'define', '{{ define "name" }}T1{{ end }}',
            'Defines a named template that can be invoked with `template` or `include`. '
            'Commonly used in `_helpers.tpl` files.',
            ('{{- define "mychart.labels" -}}\napp: {{ .Chart.Name }}\n{{- end }}',),
        ),
        GoKeyword(
            'template', '{{ template "name" PIPELINE }}',
            'Invokes a named template defined with `define`. The pipeline value becomes `.` '
            'inside the template. Unlike `include`, the output cannot be piped.',
            ('{{ template "mychart.labels" . }}',),
        ),
        GoKeyword(
            'block', '{{ block "name" PIPELINE }}T1{{ end }}',
            'Defines and immediately executes a named template. Equivalent to `define` '
            'followed by `template`. Useful for providing default content that can be '
            'overridden.',
            ('{{ block "title" . }}Default Title{{ end }}',),
        ),
        GoKeyword(
            'end', '{{ end }}',
            'Closes an `if`, `range`, `with`, `define`, or `block` action. Every control '
            'structure must be terminated with `end`.',
            ('{{ if .Values.enabled }}...{{ end }}',),
        ),
    )
}

_KEYWORD_RE = re.compile(
    r'\{\{-?\s*(else\s+if)\b|\{\{-?\s*(if|else|range|with|define|block|end|template)\b'
)
_ARGUMENT_RE = re.compile(r'\{\{-?\s*(if|else|range|with|define|block|end|template)\s+')
_CONTEXT_RES = (re.compile(r'\{\{-?\s*$'), re.compile(r'\{\{-?\s+\S*$'))


@dataclass(frozen=True)
class KeywordReference:
    keyword_name: str
    range: lsp.Range


def find_keyword_at(lines: list[str], pos: lsp.Position) -> KeywordReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    line = lines[pos.line]
    if line.strip().startswith('#'):
        return None
    for m in _KEYWORD_RE.finditer(line):
        group = 1 if m.group(1) else 2
        rng = make_range(pos.line, m.start(group), m.end(group))
        if range_contains(rng, pos):
            # "else   if" is reported under its catalogue name
            name = 'else if' if group == 1 else m.group(2)
            return KeywordReference(name, rng)
    return None


def in_keyword_context(line: str, character: int) -> bool:
    """True right after ``{{`` or while typing the first word of an action."""
    prefix = line[:character]
    if _ARGUMENT_RE.search(prefix):
        return False
    return any(p.search(prefix) for p in _CONTEXT_RES)
