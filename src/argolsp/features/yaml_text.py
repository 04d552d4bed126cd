"""
Line-oriented YAML helpers shared by every detector.

Helm templates are not parseable YAML, so all structure is recovered from
indentation: a line's *ancestors* are the nearest preceding lines with a
strictly smaller indent, and a block ends at the first non-blank,
non-comment line whose indent is not greater than the block header's.
"""
from __future__ import annotations

import re

_INDENT_RE = re.compile(r'^(\s*)')
_INLINE_COMMENT_RE = re.compile(r'\s+#')


def indent_of(line: str) -> int:
    return len(_INDENT_RE.match(line).group(1))


def is_blank_or_comment(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith('#')


def is_document_separator(line: str) -> bool:
    return line.strip() == '---'


def strip_inline_comment(raw: str) -> str:
    """Return the scalar in *raw* without quotes or a trailing ``# comment``."""
    value = raw.strip()
    if value[:1] in ('"', "'"):
        end = value.find(value[0], 1)
        if end > 0:
            return value[1:end]
    m = _INLINE_COMMENT_RE.search(value)
    if m:
        return value[:m.start()]
    return value


def unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def value_column(line: str, value: str) -> int:
    """Column of *value* in *line*, searched after the first ``:``."""
    colon = line.find(':')
    col = line.find(value, colon + 1 if colon >= 0 else 0)
    return col if col >= 0 else line.find(value)


def section_bounds(lines: list[str], line_no: int) -> tuple[int, int]:
    """Return the ``(first, last)`` line numbers of the ``---`` section holding *line_no*."""
    first = 0
    for i in range(min(line_no, len(lines) - 1), -1, -1):
        if is_document_separator(lines[i]):
            first = i + 1
            break
    last = len(lines) - 1
    for i in range(line_no + 1, len(lines)):
        if is_document_separator(lines[i]):
            last = i - 1
            break
    return first, last


def iter_ancestors(lines: list[str], line_no: int, limit: int | None = None):
    """Yield ``(index, line)`` for each structural ancestor of *line_no*, nearest first.

    The indent ceiling strictly decreases, so siblings and their children are
    never reported.  Stops at a ``---`` separator or after *limit* lines.
    """
    if not 0 <= line_no < len(lines):
        return
    ceiling = indent_of(lines[line_no])
    i = line_no - 1
    while i >= 0 and ceiling > 0:
        if limit is not None and line_no - i >= limit:
            return
        line = lines[i]
        if is_document_separator(line):
            return
        if not is_blank_or_comment(line):
            indent = indent_of(line)
            if indent < ceiling:
                ceiling = indent
                yield i, line
        i -= 1


def block_end(lines: list[str], header: int) -> int:
    """Last line number belonging to the block opened at *header*."""
    base = indent_of(lines[header])
    # "key:" followed by an unindented "- item" list still belongs to key.
    header_is_item = lines[header].lstrip().startswith('-')
    last = header
    for i in range(header + 1, len(lines)):
        line = lines[i]
        if is_document_separator(line):
            break
        if is_blank_or_comment(line):
            continue
        indent = indent_of(line)
        if indent < base:
            break
        if indent == base and (header_is_item or not line.lstrip().startswith('-')):
            break
        last = i
    return last


def above_comment(lines: list[str], line_no: int) -> str | None:
    """Collect the ``#`` comment lines directly above *line_no* (blank lines skipped)."""
    collected: list[str] = []
    for i in range(line_no - 1, -1, -1):
        stripped = lines[i].strip()
        if stripped.startswith('#'):
            collected.insert(0, stripped[1:].strip())
        elif stripped:
            break
    return '\n'.join(collected) if collected else None


def inline_comment(line: str) -> str | None:
    idx = line.find('#')
    if idx == -1:
        return None
    text = line[idx + 1:].strip()
    return text or None


def extract_full_expression(line: str, start: int) -> str:
    """Return the ``{{ ... }}`` action surrounding column *start*, or ``''``."""
    open_pos = line.rfind('{{', 0, start + 2)
    if open_pos == -1:
        return ''
    close_pos = line.find('}}', start)
    if close_pos == -1:
        return ''
    return line[open_pos:close_pos + 2]


_KEY_RE = re.compile(r'''^\s*(?:-\s+)?['"]?([\w.-]+)['"]?:(?:\s+(.*))?$''')


def mapping_key(line: str) -> tuple[str, str] | None:
    """Split ``key: value`` (or ``- key: value``) into ``(key, raw_value)``."""
    m = _KEY_RE.match(line.rstrip())
    if not m:
        return None
    return m.group(1), (m.group(2) or '').strip()


def iter_children(lines: list[str], header: int):
    """Yield ``(index, line)`` for the direct children of the block at *header*.

    Children share the indent of the first non-blank line below the header.
    For a ``- key:`` item header the item's own first key is not yielded.
    """
    end = block_end(lines, header)
    child_indent = None
    for i in range(header + 1, end + 1):
        line = lines[i]
        if is_blank_or_comment(line):
            continue
        indent = indent_of(line)
        if child_indent is None:
            child_indent = indent
        if indent == child_indent:
            yield i, line


def find_child(lines: list[str], header: int, key: str) -> int | None:
    """Line number of the direct child ``key:`` of *header*, or ``None``."""
    for i, line in iter_children(lines, header):
        found = mapping_key(line)
        if found and found[0] == key:
            return i
    return None
