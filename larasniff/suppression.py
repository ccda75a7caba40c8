#!/usr/bin/env python3
"""
Comment markers that silence analyzers.

    // @larasniff-ignore-file                 whole file, every analyzer
    // @larasniff-ignore-file fat-model       whole file, one analyzer
    /** @larasniff-ignore */                  class that follows, every analyzer
    /** @larasniff-ignore id-a,id-b */        class that follows, named analyzers
    $x = foo(); // @larasniff-ignore id       this line and the next one

Markers are collected before any analyzer runs and attached to the scope
they annotate; the traversal and the runner apply them uniformly.
"""

import re
from typing import Dict, FrozenSet, Optional

from .ts_adapter import TSNode

ALL = '*'

_MARKER_RE = re.compile(
    r'@larasniff-ignore(?P<file>-file)?(?![\w-])'
    r'(?:[ \t]+(?P<ids>[\w-]+(?:[ \t]*,[ \t]*[\w-]+)*))?')

# May appear before the first declaration of a file
_PREAMBLE_TYPES = frozenset({
    'comment', 'php_tag', 'text', 'namespace_definition',
    'namespace_use_declaration', 'declare_statement',
})

NONE: FrozenSet[str] = frozenset()


def covers(rules: FrozenSet[str], analyzer_id: str) -> bool:
    return ALL in rules or analyzer_id in rules


def parse_markers(text: str, file_level: bool = False) -> FrozenSet[str]:
    """Analyzer ids named by the markers in `text` (ALL for a bare marker)."""
    rules = set()
    for m in _MARKER_RE.finditer(text):
        if bool(m.group('file')) != file_level:
            continue
        ids = m.group('ids')
        if ids:
            rules.update(i.strip() for i in ids.split(',') if i.strip())
        else:
            rules.add(ALL)
    return frozenset(rules)


def class_suppressions(class_node: TSNode) -> FrozenSet[str]:
    """Markers in the comments directly preceding a class declaration."""
    rules = set()
    sibling = class_node.prev_named_sibling
    while sibling is not None and sibling.type == 'comment':
        rules |= parse_markers(sibling.text)
        sibling = sibling.prev_named_sibling
    # comments between attributes and the `class` keyword
    for child in class_node.named_children:
        if child.type == 'comment':
            rules |= parse_markers(child.text)
        elif child.type == 'name':
            break
    return frozenset(rules)


def file_suppressions(root: TSNode) -> FrozenSet[str]:
    """File markers in the comments before the first declaration."""
    rules = set()
    for child in root.named_children:
        if child.type not in _PREAMBLE_TYPES:
            break
        if child.type == 'comment':
            rules |= parse_markers(child.text, file_level=True)
        elif child.type == 'namespace_definition':
            body = child.child_by_field('body')
            if body is None:
                continue
            for stmt in body.named_children:
                if stmt.type != 'comment':
                    break
                rules |= parse_markers(stmt.text, file_level=True)
            break
    return frozenset(rules)


class LineSuppressions:
    """Line markers: a marker silences its own lines and the line below."""

    def __init__(self, root: Optional[TSNode] = None):
        self._lines: Dict[int, FrozenSet[str]] = {}
        if root is not None:
            for comment in root.find_all('comment'):
                rules = parse_markers(comment.text)
                if not rules:
                    continue
                for line in range(comment.line, comment.end_line + 1):
                    self._lines[line] = self._lines.get(line, NONE) | rules

    def suppresses(self, line: int, analyzer_id: str) -> bool:
        for candidate in (line, line - 1):
            rules = self._lines.get(candidate)
            if rules and covers(rules, analyzer_id):
                return True
        return False

    def __bool__(self):
        return bool(self._lines)
