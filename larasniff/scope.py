#!/usr/bin/env python3
"""
Scope tracking for a single traversal of one file.

The tracker keeps an explicit stack of ``Scope`` frames: file, namespace,
class, anonymous class, function, method and closure.  Every analyzer sees
the same frames while the tree is walked once, so none of them needs to
re-walk the tree to learn which class or method it is in.

Variable bindings live on the innermost function-like frame.  A closure
starts with an empty table: it does not see the bindings of the code that
defines it, even through ``use``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, FrozenSet, List, Optional, Set

from . import php_ast
from .laravel import is_transaction_closure
from .model_registry import ORM_BASE_CLASSES, UNQUALIFIED_BASES, ModelRegistry
from .names import NameContext, iter_declarations, namespace_name, qualify
from .provenance import TRANSACTION_PROTECTED, UNKNOWN, Provenance, ProvenanceKind, infer
from .provenance import eager_load_paths
from .suppression import NONE, class_suppressions, covers
from .ts_adapter import TSNode

logger = logging.getLogger(__name__)


class ScopeKind(Enum):
    FILE = auto()
    NAMESPACE = auto()
    CLASS = auto()
    ANONYMOUS_CLASS = auto()
    FUNCTION = auto()
    METHOD = auto()
    CLOSURE = auto()


FUNCTION_SCOPES = frozenset({ScopeKind.FUNCTION, ScopeKind.METHOD, ScopeKind.CLOSURE})
BINDING_SCOPES = FUNCTION_SCOPES | {ScopeKind.FILE, ScopeKind.NAMESPACE}
CLASS_SCOPES = frozenset({ScopeKind.CLASS, ScopeKind.ANONYMOUS_CLASS})


# Pseudo-variable marking a frame that runs inside a transaction
_TRANSACTION_SLOT = '@transaction'


# ---------------------------------------------------------------------------
# Scope frames
# ---------------------------------------------------------------------------

@dataclass
class Scope:
    kind: ScopeKind
    name: Optional[str]
    node: Optional[TSNode]
    parent: Optional['Scope'] = field(default=None, repr=False)
    class_chain: List[str] = field(default_factory=list)
    bindings: Dict[str, Provenance] = field(default_factory=dict)
    suppressions: FrozenSet[str] = NONE

    @property
    def line(self) -> int:
        return self.node.line if self.node is not None else 0


class ScopeTracker:
    """Stack of lexical scopes for one file, driven by the traversal."""

    def __init__(self, registry: Optional[ModelRegistry] = None):
        self.registry = registry if registry is not None else ModelRegistry()
        self.names = NameContext()
        self._stack: List[Scope] = []
        self._local_parents: Dict[str, Optional[str]] = {}

    # -- file -----------------------------------------------------------------

    def begin_file(self, root: TSNode, suppressions: FrozenSet[str] = NONE) -> Scope:
        self._stack = []
        self.names = NameContext()
        self._local_parents = {}
        for stmt, ctx in iter_declarations(root):
            if stmt.type == 'class_declaration':
                name = qualify(ctx.namespace, php_ast.declared_name(stmt))
                parent = php_ast.parent_class_name(stmt)
                self._local_parents[name] = ctx.resolve(self._raw_parent(stmt)) if parent else None
        scope = Scope(ScopeKind.FILE, None, root, suppressions=suppressions)
        self._stack.append(scope)
        return scope

    def end_file(self) -> None:
        if len(self._stack) != 1:
            raise RuntimeError(f'unbalanced scopes at end of file: {len(self._stack)}')
        self._stack.pop()

    @staticmethod
    def _raw_parent(class_node: TSNode) -> str:
        base = class_node.first_child_of_type('base_clause')
        for c in base.named_children:
            if c.type in ('name', 'qualified_name'):
                return c.text
        return ''

    # -- enter / leave --------------------------------------------------------

    def enter_scope(self, node: TSNode) -> Optional[Scope]:
        """Push a frame if `node` opens a scope; also track namespaces and imports."""
        t = node.type
        if t == 'namespace_definition':
            ns = namespace_name(node)
            if node.child_by_field('body') is None:
                self.names = NameContext(ns)
                return None
            self.names = NameContext(ns)
            return self._push(ScopeKind.NAMESPACE, ns, node)
        if t == 'namespace_use_declaration':
            if self.current_function() is None and self.current_class() is None:
                self.names.add_use_declaration(node)
            return None
        if t in php_ast.CLASS_LIKE:
            name = qualify(self.names.namespace, php_ast.declared_name(node))
            scope = self._push(ScopeKind.CLASS, name, node, class_suppressions(node))
            scope.class_chain = self._resolve_chain(name)
            return scope
        if php_ast.is_anonymous_class(node):
            scope = self._push(ScopeKind.ANONYMOUS_CLASS, None, node)
            base = php_ast.parent_class_name(node)
            if base:
                first = self.names.resolve(base)
                scope.class_chain = [first] + self._resolve_chain(first)
            return scope
        if t == 'method_declaration':
            return self._push(ScopeKind.METHOD, php_ast.declared_name(node), node)
        if t == 'function_definition':
            return self._push(ScopeKind.FUNCTION, php_ast.declared_name(node), node)
        if t in php_ast.CLOSURE_TYPES:
            scope = self._push(ScopeKind.CLOSURE, None, node)
            if is_transaction_closure(node, self):
                scope.bindings[_TRANSACTION_SLOT] = TRANSACTION_PROTECTED
            return scope
        return None

    def leave_scope(self) -> Scope:
        if len(self._stack) <= 1:
            raise RuntimeError('leave_scope() without a matching enter_scope()')
        scope = self._stack.pop()
        if scope.kind == ScopeKind.NAMESPACE:
            self.names = NameContext()
        return scope

    def _push(self, kind: ScopeKind, name: Optional[str], node: TSNode,
              suppressions: FrozenSet[str] = NONE) -> Scope:
        scope = Scope(kind, name, node, parent=self._stack[-1] if self._stack else None,
                      suppressions=suppressions)
        self._stack.append(scope)
        return scope

    # -- class ancestry -------------------------------------------------------

    def _resolve_chain(self, name: str) -> List[str]:
        """Ancestors of `name`, nearest first; stops at an unknown class or a cycle."""
        chain: List[str] = []
        seen: Set[str] = {name}
        current = name
        while True:
            if current in self._local_parents:
                parent = self._local_parents[current]
            elif self.registry.knows(current):
                parent = self.registry.parent_of(current)
            else:
                break
            if parent is None or parent in seen:
                break
            chain.append(parent)
            seen.add(parent)
            current = parent
        return chain

    # -- queries --------------------------------------------------------------

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def current(self) -> Scope:
        return self._stack[-1]

    def frames(self) -> List[Scope]:
        return list(self._stack)

    def current_class(self) -> Optional[Scope]:
        for scope in reversed(self._stack):
            if scope.kind in CLASS_SCOPES:
                return scope
        return None

    def current_class_name(self) -> Optional[str]:
        """Name of the innermost class; None inside an anonymous class."""
        scope = self.current_class()
        return scope.name if scope is not None else None

    def current_class_chain(self) -> List[str]:
        scope = self.current_class()
        return list(scope.class_chain) if scope is not None else []

    def current_function(self) -> Optional[Scope]:
        """Innermost method, function or closure."""
        for scope in reversed(self._stack):
            if scope.kind in FUNCTION_SCOPES:
                return scope
        return None

    def current_method(self) -> Optional[Scope]:
        """Innermost named method or function (closures are looked through)."""
        for scope in reversed(self._stack):
            if scope.kind in (ScopeKind.METHOD, ScopeKind.FUNCTION):
                return scope
            if scope.kind in CLASS_SCOPES:
                return None
        return None

    def in_class(self) -> bool:
        return self.current_class() is not None

    def current_class_is_model(self) -> bool:
        """The registry decides for scanned classes; otherwise the ancestry or base name."""
        scope = self.current_class()
        if scope is None:
            return False
        if scope.name and self.registry.knows(scope.name):
            return self.registry.is_model(scope.name)
        if any(c in ORM_BASE_CLASSES for c in scope.class_chain):
            return True
        # topmost ancestor that could not be followed further
        top = scope.class_chain[-1] if scope.class_chain else php_ast.parent_class_name(scope.node)
        return bool(top) and php_ast.short_name(top) in UNQUALIFIED_BASES

    def resolve_class_name(self, written: Optional[str]) -> Optional[str]:
        if not written:
            return None
        if written in ('self', 'static'):
            return self.current_class_name()
        if written == 'parent':
            chain = self.current_class_chain()
            return chain[0] if chain else None
        return self.names.resolve(written)

    def is_suppressed(self, analyzer_id: str) -> bool:
        return any(s.suppressions and covers(s.suppressions, analyzer_id) for s in self._stack)

    # -- bindings -------------------------------------------------------------

    def _binding_scope(self) -> Scope:
        for scope in reversed(self._stack):
            if scope.kind in BINDING_SCOPES:
                return scope
        return self._stack[0]

    def bind(self, variable: str, provenance: Provenance) -> None:
        self._binding_scope().bindings[variable] = provenance

    def unbind(self, variable: str) -> None:
        self._binding_scope().bindings.pop(variable, None)

    def lookup(self, variable: Optional[str]) -> Provenance:
        if not variable:
            return UNKNOWN
        return self._binding_scope().bindings.get(variable, UNKNOWN)

    def observe(self, node: TSNode) -> None:
        """Update bindings after `node` has been fully visited.

        ``$x = <expr>`` rebinds ``$x``; a ``$x->with(..)``/``$x->load(..)``
        statement adds to the eager loads of whatever ``$x`` holds.
        """
        if node.type == 'assignment_expression':
            left = node.child_by_field('left')
            if left is None or left.type != 'variable_name':
                return
            provenance = infer(node.child_by_field('right'), self)
            if provenance.kind == ProvenanceKind.UNKNOWN:
                self.unbind(left.text)
            else:
                self.bind(left.text, provenance)
        elif node.type == 'expression_statement':
            call = node.named_children[0] if node.named_children else None
            if call is None or call.type != 'member_call_expression':
                return
            obj = call.child_by_field('object')
            if obj is None or obj.type != 'variable_name':
                return
            if call.get_function_name() not in ('load', 'loadMissing', 'with'):
                return
            current = self.lookup(obj.text)
            if current.model is not None:
                self.bind(obj.text, current.with_eager_loads(eager_load_paths(call.get_arguments())))

    def in_transaction(self) -> bool:
        """True inside a closure passed directly to a transaction call."""
        for scope in reversed(self._stack):
            if _TRANSACTION_SLOT in scope.bindings:
                return True
            if scope.kind in (ScopeKind.METHOD, ScopeKind.FUNCTION) or scope.kind in CLASS_SCOPES:
                return False
        return False
