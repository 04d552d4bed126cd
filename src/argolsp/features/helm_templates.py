"""
Helm named templates: ``{{ define "name" }}`` blocks and the
``{{ include "name" . }}`` / ``{{ template "name" . }}`` calls that use them.

Block ends are found by scanning the template actions in document order
with a depth counter: every block-opening action (``define``, ``if``,
``range``, ``with``, ``block``) increments it and every ``end`` decrements
it, so both nested ``define`` blocks and control structures inside a
``define`` close correctly, also when several actions share a line.
The same kind of scan pairs block tags with their ``else`` branches and
``end`` for document highlights.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol import types as lsp

from argolsp.features.yaml_text import extract_full_expression
from argolsp.references.types import make_range, range_contains

_DEFINE_RE = re.compile(r'\{\{-?\s*define\s+"([^"]+)"\s*-?\}\}')
_ACTION_RE = re.compile(r'\{\{-?\s*(define|if|range|with|block|end)\b[^}]*\}\}')
_BLOCK_TAG_RE = re.compile(r'\{\{-?\s*(else\s+if|if|range|with|define|block|else|end)\b[^}]*\}\}')
_REFERENCE_RE = re.compile(r'\{\{-?\s*(include|template)\s+"([^"]+)"')
_COMMENT_RE = re.compile(r'\{\{-?\s*/\*\s*(.*?)\s*\*/\s*-?\}\}')
_COMMENT_OPEN_RE = re.compile(r'^\{\{-?\s*/\*\s*')
_COMMENT_CLOSE_RE = re.compile(r'\s*\*/\s*-?\}\}$')

BLOCK_OPENERS = frozenset({'define', 'if', 'range', 'with', 'block'})


@dataclass
class HelmTemplateDefinition:
    name: str
    uri: str
    range: lsp.Range            # from "{{ define" to the closing "{{ end }}"
    name_range: lsp.Range       # the quoted name
    content: str
    description: str | None = None


@dataclass(frozen=True)
class HelmTemplateReference:
    type: str                   # 'include' | 'template'
    template_name: str
    range: lsp.Range            # the quoted name, quotes included
    full_expression: str


def describe_define(lines: list[str], line_no: int) -> str | None:
    """Text of the ``{{/* ... */}}`` comment directly above a ``define`` line."""
    collected: list[str] = []
    in_comment = False
    for i in range(line_no - 1, -1, -1):
        stripped = lines[i].strip()
        if not in_comment:
            m = _COMMENT_RE.fullmatch(stripped)
            if m:
                collected.insert(0, m.group(1))
                continue
            if _COMMENT_CLOSE_RE.search(stripped) and '/*' not in stripped:
                # last line of a multi-line comment
                in_comment = True
                text = _COMMENT_CLOSE_RE.sub('', stripped)
                if text:
                    collected.insert(0, text)
                continue
            break
        if _COMMENT_OPEN_RE.match(stripped):
            text = _COMMENT_OPEN_RE.sub('', stripped)
            if text:
                collected.insert(0, text)
            in_comment = False
            continue
        collected.insert(0, stripped)
    return '\n'.join(collected) if collected else None


def _iter_actions(lines: list[str], start_line: int, start_col: int):
    """Yield ``(keyword, line, start, end)`` for block actions at or after a position."""
    for i in range(start_line, len(lines)):
        offset = start_col if i == start_line else 0
        for m in _ACTION_RE.finditer(lines[i], offset):
            yield m.group(1), i, m.start(), m.end()


def _content(lines: list[str], start: tuple[int, int], end: tuple[int, int]) -> str:
    (sl, sc), (el, ec) = start, end
    if sl == el:
        return lines[sl][sc:ec].strip()
    parts = [lines[sl][sc:]] + lines[sl + 1:el] + [lines[el][:ec]]
    return '\n'.join(parts).strip()


def find_define_blocks(lines: list[str], uri: str) -> list[HelmTemplateDefinition]:
    definitions: list[HelmTemplateDefinition] = []
    for line_no, line in enumerate(lines):
        for m in _DEFINE_RE.finditer(line):
            depth = 0
            end_line, end_col = len(lines) - 1, len(lines[-1])
            content_end = (end_line, end_col)
            for keyword, i, a_start, a_end in _iter_actions(lines, line_no, m.start()):
                if keyword in BLOCK_OPENERS:
                    depth += 1
                    continue
                depth -= 1
                if depth == 0:
                    end_line, end_col = i, a_end
                    content_end = (i, a_start)
                    break
            name_start = m.start(1) - 1
            definitions.append(HelmTemplateDefinition(
                name=m.group(1),
                uri=uri,
                range=make_range(line_no, m.start(), end_col, end_line=end_line),
                name_range=make_range(line_no, name_start, name_start + len(m.group(1)) + 2),
                content=_content(lines, (line_no, m.end()), content_end),
                description=describe_define(lines, line_no),
            ))
    return definitions


def _references_in_line(line: str, line_no: int) -> list[HelmTemplateReference]:
    refs: list[HelmTemplateReference] = []
    for m in _REFERENCE_RE.finditer(line):
        name_start = m.start(2) - 1
        refs.append(HelmTemplateReference(
            type=m.group(1),
            template_name=m.group(2),
            range=make_range(line_no, name_start, name_start + len(m.group(2)) + 2),
            full_expression=extract_full_expression(line, m.start()),
        ))
    return refs


def find_all_helm_template_references(lines: list[str]) -> list[HelmTemplateReference]:
    refs: list[HelmTemplateReference] = []
    for line_no, line in enumerate(lines):
        refs.extend(_references_in_line(line, line_no))
    return refs


def find_helm_template_reference_at(lines: list[str], pos: lsp.Position) -> HelmTemplateReference | None:
    if not 0 <= pos.line < len(lines):
        return None
    for ref in _references_in_line(lines[pos.line], pos.line):
        if range_contains(ref.range, pos):
            return ref
    return None


def innermost_define_at(definitions: list[HelmTemplateDefinition],
                        pos: lsp.Position) -> HelmTemplateDefinition | None:
    """The smallest ``define`` block that contains *pos*."""
    best = None
    for d in definitions:
        if not range_contains(d.range, pos):
            continue
        if best is None or (d.range.start.line, d.range.start.character) > (
                best.range.start.line, best.range.start.character):
            best = d
    return best


# ---------------------------------------------------------------------------
# Block tags (if/range/with/define/block ... else ... end)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockTag:
    keyword: str                # an opener, 'else', 'else if' or 'end'
    range: lsp.Range            # the whole {{ ... }} action


def find_block_tags(lines: list[str]) -> list[BlockTag]:
    tags: list[BlockTag] = []
    for line_no, line in enumerate(lines):
        for m in _BLOCK_TAG_RE.finditer(line):
            keyword = ' '.join(m.group(1).split())
            tags.append(BlockTag(keyword, make_range(line_no, m.start(), m.end())))
    return tags


def _matching_opener(tags: list[BlockTag], index: int) -> int | None:
    depth = 1
    for i in range(index - 1, -1, -1):
        keyword = tags[i].keyword
        if keyword == 'end':
            depth += 1
        elif keyword in BLOCK_OPENERS:
            depth -= 1
            if depth == 0:
                return i
    return None


def _block_members(tags: list[BlockTag], opener: int) -> list[BlockTag]:
    members = [tags[opener]]
    depth = 1
    for tag in tags[opener + 1:]:
        if tag.keyword in BLOCK_OPENERS:
            depth += 1
        elif tag.keyword == 'end':
            depth -= 1
            if depth == 0:
                members.append(tag)
                break
        elif depth == 1:
            members.append(tag)
    return members


def matching_block_tags(lines: list[str], pos: lsp.Position) -> list[BlockTag]:
    """Opener, ``else`` branches and ``end`` of the block whose tag contains *pos*.

    Returns ``[]`` when *pos* is not on a block tag or the block is unbalanced.
    """
    tags = find_block_tags(lines)
    index = next((i for i, tag in enumerate(tags) if range_contains(tag.range, pos)), None)
    if index is None:
        return []
    opener = index if tags[index].keyword in BLOCK_OPENERS else _matching_opener(tags, index)
    if opener is None:
        return []
    members = _block_members(tags, opener)
    return members if len(members) > 1 else []
