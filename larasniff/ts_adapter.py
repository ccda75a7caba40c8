#!/usr/bin/env python3
"""
Tree-sitter adapter for larasniff.
Wraps tree-sitter-php nodes with a small interface shared by the scope
tracker, the model registry and every analyzer.
"""

import threading
from typing import Iterator, List, Optional, Tuple

import tree_sitter_php as tsphp
from tree_sitter import Language, Parser

from .errors import ParseError


# Languages are immutable and shared; parsers are not thread-safe.
# The php_only grammar reads source without an opening tag.
_languages = {
    'php': Language(tsphp.language_php()),
    'php_only': Language(tsphp.language_php_only()),
}
_local = threading.local()


def _get_parser(name: str) -> Parser:
    parsers = getattr(_local, 'parsers', None)
    if parsers is None:
        parsers = _local.parsers = {}
    parser = parsers.get(name)
    if parser is None:
        parser = parsers[name] = Parser(_languages[name])
    return parser


class TSNode:
    """Lightweight wrapper around a tree-sitter node."""

    __slots__ = ('_node', '_code')

    def __init__(self, ts_node, code_bytes: bytes):
        self._node = ts_node
        self._code = code_bytes

    @property
    def type(self) -> str:
        return self._node.type

    @property
    def text(self) -> str:
        return self._code[self._node.start_byte:self._node.end_byte].decode('utf8', errors='replace')

    @property
    def line(self) -> int:
        """1-based line number."""
        return self._node.start_point[0] + 1

    @property
    def end_line(self) -> int:
        return self._node.end_point[0] + 1

    @property
    def column(self) -> int:
        return self._node.start_point[1] + 1

    @property
    def start_byte(self) -> int:
        return self._node.start_byte

    @property
    def end_byte(self) -> int:
        return self._node.end_byte

    def contains(self, other: 'TSNode') -> bool:
        return self.start_byte <= other.start_byte and other.end_byte <= self.end_byte

    @property
    def key(self) -> Tuple[int, int, str]:
        """Span identity, stable for the lifetime of the tree."""
        return (self._node.start_byte, self._node.end_byte, self._node.type)

    @property
    def is_named(self) -> bool:
        return self._node.is_named

    @property
    def has_error(self) -> bool:
        return self._node.has_error

    @property
    def children(self) -> List['TSNode']:
        """All children, including punctuation."""
        return [TSNode(c, self._code) for c in self._node.children]

    @property
    def named_children(self) -> List['TSNode']:
        """Named children only (skip punctuation/anonymous tokens)."""
        return [TSNode(c, self._code) for c in self._node.children if c.is_named]

    @property
    def parent(self) -> Optional['TSNode']:
        p = self._node.parent
        return TSNode(p, self._code) if p is not None else None

    @property
    def prev_named_sibling(self) -> Optional['TSNode']:
        s = self._node.prev_named_sibling
        return TSNode(s, self._code) if s is not None else None

    def child_by_field(self, name: str) -> Optional['TSNode']:
        """Get child by tree-sitter field name."""
        c = self._node.child_by_field_name(name)
        if c is not None:
            return TSNode(c, self._code)
        return None

    def first_child_of_type(self, *types: str) -> Optional['TSNode']:
        for c in self._node.children:
            if c.type in types:
                return TSNode(c, self._code)
        return None

    def has_token(self, token: str) -> bool:
        """True if an anonymous child token (operator, keyword) equals `token`."""
        return any(not c.is_named and c.type == token for c in self._node.children)

    def get_function_name(self) -> str:
        """Name of the called function or method, '' for dynamic calls."""
        if self.type == 'function_call_expression':
            func = self.child_by_field('function')
            if func and func.type in ('name', 'qualified_name'):
                return func.text.lstrip('\\')
        elif self.type in ('member_call_expression', 'nullsafe_member_call_expression',
                           'scoped_call_expression'):
            name = self.child_by_field('name')
            if name and name.type == 'name':
                return name.text
        return ''

    def get_arguments(self) -> List['TSNode']:
        """Get argument nodes from a call expression."""
        args_node = self.child_by_field('arguments')
        if args_node is None:
            return []
        return [TSNode(c, self._code) for c in args_node._node.children
                if c.is_named and c.type == 'argument']

    def walk_descendants(self) -> Iterator['TSNode']:
        """Yield all named descendant nodes (depth-first, document order)."""
        stack = list(reversed(self.named_children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.named_children))

    def find_all(self, *types: str) -> List['TSNode']:
        return [n for n in self.walk_descendants() if n.type in types]

    def first_error_line(self) -> int:
        for node in self._iter_all():
            if node.type == 'ERROR' or node._node.is_missing:
                return node.line
        return 0

    def _iter_all(self) -> Iterator['TSNode']:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def __repr__(self):
        text = self.text
        if len(text) > 40:
            text = text[:40] + '...'
        return f'TSNode({self.type}, line={self.line}, {repr(text)})'


def _grammar(code: str) -> str:
    return 'php' if '<?' in code else 'php_only'


def parse_php_ts(code: str) -> TSNode:
    """Parse PHP code with tree-sitter, return wrapped root node (errors kept)."""
    code_bytes = code.encode('utf8')
    tree = _get_parser(_grammar(code)).parse(code_bytes)
    return TSNode(tree.root_node, code_bytes)


def parse_php(code: str) -> TSNode:
    """Parse PHP code, raising ParseError when the tree contains syntax errors."""
    root = parse_php_ts(code)
    if root.has_error:
        line = root.first_error_line()
        raise ParseError(f'syntax error near line {line}', line)
    return root
