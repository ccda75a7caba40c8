#!/usr/bin/env python3
"""
Namespace and ``use`` import resolution for PHP class names.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from .ts_adapter import TSNode

RELATIVE_NAMES = frozenset({'self', 'static', 'parent'})


@dataclass
class NameContext:
    """The namespace and class imports in effect at some point of a file."""
    namespace: str = ''
    imports: Dict[str, str] = field(default_factory=dict)  # alias -> FQCN

    def resolve(self, written: str) -> str:
        """Fully-qualified form of a class name as written in source."""
        if not written or written in RELATIVE_NAMES:
            return written
        if written.startswith('\\'):
            return written.lstrip('\\')
        if written.lower().startswith('namespace\\'):
            rest = written[len('namespace\\'):]
            return f'{self.namespace}\\{rest}' if self.namespace else rest
        head, _, rest = written.partition('\\')
        if head in self.imports:
            return f'{self.imports[head]}\\{rest}' if rest else self.imports[head]
        if self.namespace:
            return f'{self.namespace}\\{written}'
        return written

    def add_use_declaration(self, node: TSNode) -> None:
        for fqcn, alias in use_clauses(node):
            self.imports[alias] = fqcn


def namespace_name(node: TSNode) -> str:
    name = node.child_by_field('name')
    if name is None:
        name = node.first_child_of_type('namespace_name')
    return name.text.lstrip('\\') if name is not None else ''


def use_clauses(node: TSNode) -> Iterator[Tuple[str, str]]:
    """Yield (FQCN, alias) for a class ``use`` declaration.

    Function and constant imports are skipped.
    """
    if node.type != 'namespace_use_declaration':
        return
    if node.has_token('function') or node.has_token('const'):
        return
    prefix = ''
    prefix_node = node.first_child_of_type('namespace_name')
    if prefix_node is not None:
        prefix = prefix_node.text.strip('\\')
    for clause in _clause_nodes(node):
        names = [c for c in clause.named_children if c.type in ('name', 'qualified_name')]
        if not names:
            continue
        full = names[0].text.strip('\\')
        alias_node = clause.child_by_field('alias')
        if alias_node is None and len(names) > 1:
            alias_node = names[1]
        if prefix:
            full = f'{prefix}\\{full}'
        alias = alias_node.text if alias_node is not None else full.rsplit('\\', 1)[-1]
        yield full, alias


def _clause_nodes(node: TSNode) -> Iterator[TSNode]:
    for child in node.named_children:
        if child.type in ('namespace_use_clause', 'namespace_use_group_clause'):
            yield child
        elif child.type == 'namespace_use_group':
            for clause in child.named_children:
                if clause.type in ('namespace_use_clause', 'namespace_use_group_clause'):
                    yield clause


def iter_declarations(root: TSNode) -> Iterator[Tuple[TSNode, NameContext]]:
    """Yield top-level statements with the name context in effect for each.

    Handles both ``namespace X;`` and braced ``namespace X { ... }`` forms.
    """
    ctx = NameContext()
    for child in root.named_children:
        if child.type == 'namespace_definition':
            body = child.child_by_field('body') or child.first_child_of_type('compound_statement')
            if body is None:
                ctx = NameContext(namespace_name(child))
                continue
            inner = NameContext(namespace_name(child))
            for stmt in body.named_children:
                if stmt.type == 'namespace_use_declaration':
                    inner.add_use_declaration(stmt)
                yield stmt, inner
            continue
        if child.type == 'namespace_use_declaration':
            ctx.add_use_declaration(child)
        yield child, ctx


def qualify(namespace: str, short: Optional[str]) -> str:
    if not short:
        return ''
    return f'{namespace}\\{short}' if namespace else short
