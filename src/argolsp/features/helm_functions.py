"""
Helm and Sprig template functions (``default``, ``toYaml``, ``nindent`` ...).

A function is recognised inside a ``{{ }}`` action where a call can start:
at the beginning of the action (also after ``if``/``with``/``range``), after
a pipe ``|``, after ``(`` and after ``:=``.  Only catalogued names are
reported.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.yaml_text import extract_full_expression
from argolsp.references.types import make_range, range_contains


@dataclass(frozen=True)
class HelmFunction:
    name: str
    signature: str
    description: str
    category: str
    examples: tuple[str, ...] = ()


def _fn(name, signature, description, category, *examples) -> HelmFunction:
    return HelmFunction(name, signature, description, category, examples)


HELM_FUNCTIONS: dict[str, HelmFunction] = {
    f.name: f for f in (
        # strings
        _fn('quote', 'quote VALUE', 'Wraps a string in double quotes', 'string',
            '{{ .Values.name | quote }}  # "myapp"'),
        _fn('squote', 'squote VALUE', 'Wraps a string in single quotes', 'string',
            "{{ .Values.name | squote }}  # 'myapp'"),
        _fn('cat', 'cat STRING1 STRING2 ...', 'Concatenates multiple strings with spaces', 'string',
            '{{ cat "hello" "world" }}  # "hello world"'),
        _fn('indent', 'indent COUNT STRING',
            'Indents every line in a string to the specified number of spaces', 'string',
            '{{ .Values.config | toYaml | indent 4 }}'),
        _fn('nindent', 'nindent COUNT STRING', 'Same as indent but prepends a new line', 'string',
            '{{ .Values.config | toYaml | nindent 4 }}'),
        _fn('trim', 'trim STRING', 'Removes whitespace from both sides of a string', 'string',
            '{{ trim "  hello  " }}  # "hello"'),
        _fn('trimSuffix', 'trimSuffix SUFFIX STRING', 'Removes a suffix from a string', 'string',
            '{{ "hello-world" | trimSuffix "-world" }}  # "hello"'),
        _fn('trimPrefix', 'trimPrefix PREFIX STRING', 'Removes a prefix from a string', 'string',
            '{{ "hello-world" | trimPrefix "hello-" }}  # "world"'),
        _fn('upper', 'upper STRING', 'Converts a string to uppercase', 'string',
            '{{ "hello" | upper }}  # "HELLO"'),
        _fn('lower', 'lower STRING', 'Converts a string to lowercase', 'string',
            '{{ "HELLO" | lower }}  # "hello"'),
        _fn('title', 'title STRING', 'Converts a string to title case', 'string',
            '{{ "hello world" | title }}  # "Hello World"'),
        _fn('repeat', 'repeat COUNT STRING', 'Repeats a string COUNT times', 'string',
            '{{ "hello" | repeat 3 }}  # "hellohellohello"'),
        _fn('replace', 'replace OLD NEW STRING', 'Replaces all occurrences of OLD with NEW in STRING',
            'string', '{{ "hello-world" | replace "-" "_" }}  # "hello_world"'),
        _fn('trunc', 'trunc LENGTH STRING', 'Truncates a string to the specified length', 'string',
            '{{ "hello world" | trunc 5 }}  # "hello"'),
        _fn('contains', 'contains SUBSTRING STRING', 'Checks if STRING contains SUBSTRING', 'string',
            '{{ contains "world" "hello world" }}  # true'),
        # conversion
        _fn('toYaml', 'toYaml VALUE', 'Converts a value to YAML format', 'conversion',
            '{{ .Values.config | toYaml }}'),
        _fn('toJson', 'toJson VALUE', 'Converts a value to JSON format', 'conversion',
            '{{ .Values.config | toJson }}'),
        _fn('fromYaml', 'fromYaml STRING', 'Parses a YAML string into a structure', 'conversion',
            '{{ .Files.Get "config.yaml" | fromYaml }}'),
        _fn('fromJson', 'fromJson STRING', 'Parses a JSON string into a structure', 'conversion',
            '{{ .Files.Get "config.json" | fromJson }}'),
        _fn('toString', 'toString VALUE', 'Converts a value to a string', 'conversion',
            '{{ 123 | toString }}  # "123"'),
        _fn('toDate', 'toDate FORMAT STRING', 'Converts a string to a date using the specified format',
            'conversion', '{{ "2006-01-02" | toDate "2020-01-01" }}'),
        _fn('int', 'int VALUE', 'Converts a value to an integer', 'conversion',
            '{{ "123" | int }}  # 123'),
        _fn('float64', 'float64 VALUE', 'Converts a value to a float64', 'conversion',
            '{{ "123.45" | float64 }}  # 123.45'),
        # defaults and required values
        _fn('default', 'default DEFAULT_VALUE GIVEN_VALUE',
            'Returns DEFAULT_VALUE if GIVEN_VALUE is empty, nil, 0, or false', 'default',
            '{{ .Values.image.tag | default "latest" }}'),
        _fn('required', 'required MESSAGE VALUE', 'Fails template rendering with MESSAGE if VALUE is empty',
            'default', '{{ required "image.repository is required" .Values.image.repository }}'),
        _fn('empty', 'empty VALUE', 'Returns true if VALUE is empty', 'default',
            '{{ if empty .Values.name }}...{{ end }}'),
        _fn('fail', 'fail MESSAGE', 'Unconditionally fails template rendering with MESSAGE', 'default',
            '{{ fail "Unsupported configuration" }}'),
        # lists
        _fn('list', 'list ITEM1 ITEM2 ...', 'Creates a list from arguments', 'list',
            '{{ list "a" "b" "c" }}  # [a, b, c]'),
        _fn('first', 'first LIST', 'Returns the first item of a list', 'list',
            '{{ list "a" "b" "c" | first }}  # "a"'),
        _fn('last', 'last LIST', 'Returns the last item of a list', 'list',
            '{{ list "a" "b" "c" | last }}  # "c"'),
        _fn('append', 'append LIST ITEM', 'Appends an item to a list', 'list',
            '{{ list "a" "b" | append "c" }}  # [a, b, c]'),
        _fn('prepend', 'prepend LIST ITEM', 'Prepends an item to a list', 'list',
            '{{ list "b" "c" | prepend "a" }}  # [a, b, c]'),
        _fn('slice', 'slice LIST FROM TO', 'Returns a slice of a list', 'list',
            '{{ list "a" "b" "c" "d" | slice 1 3 }}  # [b, c]'),
        _fn('has', 'has ITEM LIST', 'Checks if a list contains an item', 'list',
            '{{ has "b" (list "a" "b" "c") }}  # true'),
        _fn('compact', 'compact LIST', 'Removes empty/nil items from a list', 'list',
            '{{ list "a" "" "b" nil "c" | compact }}  # [a, b, c]'),
        _fn('uniq', 'uniq LIST', 'Removes duplicate items from a list', 'list',
            '{{ list "a" "b" "a" "c" | uniq }}  # [a, b, c]'),
        # dictionaries
        _fn('dict', 'dict KEY1 VALUE1 KEY2 VALUE2 ...', 'Creates a dictionary from key-value pairs', 'dict',
            '{{ dict "name" "myapp" "version" "1.0" }}'),
        _fn('get', 'get DICT KEY', 'Gets a value from a dictionary by key', 'dict',
            '{{ get $mydict "name" }}'),
        _fn('set', 'set DICT KEY VALUE', 'Sets a value in a dictionary', 'dict',
            '{{ $d := set $mydict "name" "newapp" }}'),
        _fn('unset', 'unset DICT KEY', 'Removes a key from a dictionary', 'dict',
            '{{ $d := unset $mydict "name" }}'),
        _fn('hasKey', 'hasKey DICT KEY', 'Checks if a dictionary has a key', 'dict',
            '{{ if hasKey $mydict "name" }}...{{ end }}'),
        _fn('pluck', 'pluck KEY DICT1 DICT2 ...', 'Extracts a specific key from multiple dictionaries', 'dict',
            '{{ pluck "name" $dict1 $dict2 }}'),
        _fn('merge', 'merge DEST SOURCE1 SOURCE2 ...', 'Merges dictionaries (last value wins)', 'dict',
            '{{ merge $defaults $overrides }}'),
        _fn('mergeOverwrite', 'mergeOverwrite DEST SOURCE1 SOURCE2 ...', 'Merges dictionaries recursively',
            'dict', '{{ mergeOverwrite $defaults $overrides }}'),
        # logic
        _fn('ternary', 'ternary TRUE_VALUE FALSE_VALUE CONDITION',
            'Returns TRUE_VALUE if CONDITION is true, else FALSE_VALUE', 'logic',
            '{{ ternary "enabled" "disabled" .Values.feature.enabled }}'),
        _fn('and', 'and ARG1 ARG2 ...', 'Returns true if all arguments are true', 'logic',
            '{{ and .Values.enabled .Values.ready }}'),
        _fn('or', 'or ARG1 ARG2 ...', 'Returns true if any argument is true', 'logic',
            '{{ or .Values.mode1 .Values.mode2 }}'),
        _fn('not', 'not ARG', 'Returns the boolean negation of ARG', 'logic',
            '{{ if not .Values.disabled }}...{{ end }}'),
        # math
        _fn('add', 'add NUM1 NUM2 ...', 'Adds numbers', 'math', '{{ add 1 2 3 }}  # 6'),
        _fn('sub', 'sub NUM1 NUM2', 'Subtracts NUM2 from NUM1', 'math', '{{ sub 10 3 }}  # 7'),
        _fn('mul', 'mul NUM1 NUM2 ...', 'Multiplies numbers', 'math', '{{ mul 2 3 4 }}  # 24'),
        _fn('div', 'div NUM1 NUM2', 'Divides NUM1 by NUM2', 'math', '{{ div 10 2 }}  # 5'),
        _fn('mod', 'mod NUM1 NUM2', 'Returns the modulus of NUM1 divided by NUM2', 'math',
            '{{ mod 10 3 }}  # 1'),
        _fn('max', 'max NUM1 NUM2 ...', 'Returns the maximum number', 'math', '{{ max 1 5 3 }}  # 5'),
        _fn('min', 'min NUM1 NUM2 ...', 'Returns the minimum number', 'math', '{{ min 1 5 3 }}  # 1'),
        # encoding and hashing
        _fn('b64enc', 'b64enc STRING', 'Encodes a string to Base64', 'encoding',
            '{{ "hello" | b64enc }}  # "aGVsbG8="'),
        _fn('b64dec', 'b64dec STRING', 'Decodes a Base64 string', 'encoding',
            '{{ "aGVsbG8=" | b64dec }}  # "hello"'),
        _fn('urlquery', 'urlquery STRING', 'URL-encodes a string', 'encoding',
            '{{ "hello world" | urlquery }}  # "hello+world"'),
        _fn('sha256sum', 'sha256sum STRING', 'Computes SHA256 hash', 'crypto', '{{ "hello" | sha256sum }}'),
        _fn('sha1sum', 'sha1sum STRING', 'Computes SHA1 hash', 'crypto', '{{ "hello" | sha1sum }}'),
        # dates
        _fn('now', 'now', 'Returns the current time', 'date', '{{ now }}'),
        _fn('date', 'date FORMAT TIME', 'Formats a time using the specified format', 'date',
            '{{ now | date "2006-01-02" }}'),
        _fn('dateInZone', 'dateInZone FORMAT TIME TIMEZONE', 'Formats a time in a specific timezone', 'date',
            '{{ now | dateInZone "2006-01-02" "UTC" }}'),
        # other
        _fn('uuidv4', 'uuidv4', 'Generates a random UUID v4', 'other',
            '{{ uuidv4 }}  # "550e8400-e29b-41d4-a716-446655440000"'),
    )
}

_ACTION_RE = re.compile(r'\{\{-?(.*?)-?\}\}')
_CALL_RE = re.compile(r'(?:^|[(|]|:=)\s*(?:(?:else\s+)?if\s+|with\s+|range\s+)?([A-Za-z]\w*)')
_PIPE_CONTEXT_RE = re.compile(r'\{\{[^}]*\|\s*\w*$')


@dataclass(frozen=True)
class HelmFunctionReference:
    function_name: str
    range: lsp.Range            # the function name
    full_expression: str


def _references_in_line(line: str, line_no: int) -> list[HelmFunctionReference]:
    if line.lstrip().startswith('#'):
        return []
    refs: list[HelmFunctionReference] = []
    for action in _ACTION_RE.finditer(line):
        body, offset = action.group(1), action.start(1)
        for m in _CALL_RE.finditer(body):
            name = m.group(1)
            if name not in HELM_FUNCTIONS:
                continue
            start = offset + m.start(1)
            refs.append(HelmFunctionReference(
                function_name=name,
                range=make_range(line_no, start, start + len(name)),
                full_expression=extract_full_expression(line, start),
            ))
    return refs


def find_all_helm_function_references(lines: list[str]) -> list[HelmFunctionReference]:
    refs: list[HelmFunctionReference] = []
    for line_no, line in enumerate(lines):
        refs.extend(_references_in_line(line, line_no))
    return refs


def find_helm_function_at(lines: list[str], pos: lsp.Position) -> HelmFunctionReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    for ref in _references_in_line(lines[pos.line], pos.line):
        if range_contains(ref.range, pos):
            return ref
    return None


def in_pipe_context(line: str, character: int) -> bool:
    """True right after ``|`` inside an action, or while typing the function name."""
    return bool(_PIPE_CONTEXT_RE.search(line[:character]))
