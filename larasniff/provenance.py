#!/usr/bin/env python3
"""
Value provenance: what a variable holds, as far as queries are concerned.

``$posts = Post::with('user')->get()`` binds ``$posts`` to a collection of
``Post`` with the eager-load set ``{'user'}``; ``$q = DB::table('users')``
binds ``$q`` to a raw query builder on ``users``.  Tags propagate through
method-chain assignments and are only read by terminal operations.
"""

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, FrozenSet, Iterable, List, Optional, Set

from . import laravel, php_ast
from .ts_adapter import TSNode

if TYPE_CHECKING:
    from .scope import ScopeTracker


class ProvenanceKind(Enum):
    UNKNOWN = auto()
    MODEL_CLASS = auto()           # fetched models / collection of `name`
    ELOQUENT_BUILDER = auto()      # unexecuted Eloquent query on `name`
    QUERY_BUILDER = auto()         # DB::table(`name`)
    TRANSACTION_PROTECTED = auto()


@dataclass(frozen=True)
class Provenance:
    kind: ProvenanceKind
    name: Optional[str] = None
    eager_loads: FrozenSet[str] = frozenset()

    @classmethod
    def model_class(cls, name: str, eager_loads: Iterable[str] = ()) -> 'Provenance':
        return cls(ProvenanceKind.MODEL_CLASS, name, frozenset(eager_loads))

    @classmethod
    def eloquent_builder(cls, name: str, eager_loads: Iterable[str] = ()) -> 'Provenance':
        return cls(ProvenanceKind.ELOQUENT_BUILDER, name, frozenset(eager_loads))

    @classmethod
    def query_builder(cls, table: Optional[str]) -> 'Provenance':
        return cls(ProvenanceKind.QUERY_BUILDER, table)

    @property
    def is_unknown(self) -> bool:
        return self.kind == ProvenanceKind.UNKNOWN

    @property
    def model(self) -> Optional[str]:
        if self.kind in (ProvenanceKind.MODEL_CLASS, ProvenanceKind.ELOQUENT_BUILDER):
            return self.name
        return None

    @property
    def table(self) -> Optional[str]:
        return self.name if self.kind == ProvenanceKind.QUERY_BUILDER else None

    def with_eager_loads(self, paths: Iterable[str]) -> 'Provenance':
        return replace(self, eager_loads=self.eager_loads | frozenset(paths))


UNKNOWN = Provenance(ProvenanceKind.UNKNOWN)
TRANSACTION_PROTECTED = Provenance(ProvenanceKind.TRANSACTION_PROTECTED)

# Return a single model
SINGLE_FETCH_METHODS = frozenset({
    'first', 'firstOrFail', 'find', 'findOrFail', 'findOr', 'firstWhere', 'sole',
    'firstOrCreate', 'firstOrNew', 'updateOrCreate', 'create', 'forceCreate',
})

# Collection methods that keep the models (and their loaded relations)
COLLECTION_PASSTHROUGH = frozenset({
    'filter', 'reject', 'sortBy', 'sortByDesc', 'values', 'where', 'whereIn',
    'whereNotIn', 'unique', 'take', 'skip', 'reverse', 'slice', 'merge', 'keyBy',
    'shuffle', 'sort', 'load', 'loadMissing', 'loadCount', 'fresh', 'except', 'only',
    'items', 'collect', 'all',
})

# Builder methods whose result is not a builder or models
_SCALAR_RESULTS = frozenset({
    'count', 'sum', 'avg', 'min', 'max', 'exists', 'doesntExist', 'pluck', 'value',
    'toSql', 'update', 'delete', 'insert', 'increment', 'decrement', 'chunk',
    'chunkById', 'each',
})


# ---------------------------------------------------------------------------
# Eager-load sets
# ---------------------------------------------------------------------------

def _relation_path(value: str) -> str:
    # 'user:id,name' selects columns of `user`
    return value.split(':', 1)[0].strip()


def eager_load_paths(arguments: List[TSNode]) -> Set[str]:
    """Relationship paths named by the arguments of with()/load().

    Literal strings, arrays of literal strings and the string keys of an
    associative array count; closures and other dynamic values do not.
    """
    paths: Set[str] = set()
    for arg in arguments:
        value = php_ast.argument_value(arg)
        single = php_ast.string_value(value)
        if single is not None:
            if single:
                paths.add(_relation_path(single))
            continue
        for key, item in php_ast.array_items(value):
            literal = php_ast.string_value(key if key is not None else item)
            if literal:
                paths.add(_relation_path(literal))
    return paths


def covered(path: str, eager_loads: Iterable[str]) -> bool:
    """`path` is loaded when it, or a deeper path through it, is eager-loaded."""
    prefix = path + '.'
    return any(e == path or e.startswith(prefix) for e in eager_loads)


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

def model_name(written: Optional[str], scope: 'ScopeTracker') -> Optional[str]:
    """Registry name of a model class written in source, else None.

    Classes the registry knows are trusted; unknown classes fall back to a
    naming heuristic so single files can still be analysed.
    """
    if not written:
        return None
    resolved = scope.resolve_class_name(written)
    if not resolved:
        return None
    registry = scope.registry
    found = registry.find(resolved)
    if found is not None:
        return found if registry.is_model(found) else None
    if laravel.facade_name(written) or laravel.facade_name(resolved):
        return None
    return resolved if laravel.looks_like_model_class(resolved) else None


def infer(expr: Optional[TSNode], scope: 'ScopeTracker') -> Provenance:
    """Provenance of an expression, from its chain root and methods."""
    expr = php_ast.argument_value(expr)
    if expr is None:
        return UNKNOWN
    while expr.type == 'parenthesized_expression' and expr.named_children:
        expr = expr.named_children[0]
    if expr.type == 'variable_name':
        return scope.lookup(expr.text)

    chain = php_ast.unwind_chain(expr)
    if not chain.segments:
        return UNKNOWN
    segments = chain.segments
    if chain.static_class is not None:
        if laravel.is_db_facade(chain.static_class, scope):
            table = laravel.table_literal(chain, scope)
            if table is None:
                return UNKNOWN
            current = Provenance.query_builder(table)
            segments = segments[1:]
        else:
            if segments[0].name not in laravel.MODEL_QUERY_METHODS:
                return UNKNOWN
            model = model_name(chain.static_class, scope)
            if model is None:
                return UNKNOWN
            current = Provenance.eloquent_builder(model)
    elif chain.root_variable is not None:
        current = scope.lookup(chain.root_variable)
    else:
        return UNKNOWN
    return apply_segments(current, segments, scope)


def apply_segments(current: Provenance, segments, scope: 'ScopeTracker') -> Provenance:
    for seg in segments:
        if current.is_unknown or current.kind == ProvenanceKind.TRANSACTION_PROTECTED:
            return UNKNOWN
        if not seg.is_call:
            return UNKNOWN
        name = seg.name
        if current.kind == ProvenanceKind.QUERY_BUILDER:
            if name in laravel.QUERY_TERMINALS:
                return UNKNOWN
            continue
        if name in laravel.EAGER_LOAD_METHODS:
            current = current.with_eager_loads(eager_load_paths(seg.arguments))
            continue
        if current.kind == ProvenanceKind.ELOQUENT_BUILDER:
            if name in laravel.TO_BASE_METHODS:
                current = Provenance.query_builder(scope.registry.resolve_table(current.name))
            elif name in laravel.FETCH_ALL_METHODS or name in SINGLE_FETCH_METHODS:
                current = Provenance.model_class(current.name, current.eager_loads)
            elif name in _SCALAR_RESULTS:
                return UNKNOWN
        elif current.kind == ProvenanceKind.MODEL_CLASS:
            if name not in COLLECTION_PASSTHROUGH:
                return UNKNOWN
    return current
