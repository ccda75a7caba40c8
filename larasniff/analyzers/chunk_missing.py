#!/usr/bin/env python3
"""Unbounded ``->get()``/``->all()`` results iterated in a foreach."""

from typing import Dict, Optional, Tuple

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

SAFE_CHUNKING_METHODS = frozenset({
    'chunk', 'chunkById', 'cursor', 'lazy', 'lazyById', 'paginate',
    'simplePaginate', 'cursorPaginate',
})

SMALL_DATASET_METHODS = frozenset({
    'limit', 'take', 'first', 'firstOrFail', 'firstWhere', 'find', 'findOrFail',
    'findOr', 'sole', 'soleOrFail', 'value',
})


def is_unbounded_fetch(expr: Optional[TSNode]) -> bool:
    """``Model::all()``, ``Model::where(..)->get()`` without limit or chunking."""
    if expr is None or expr.type not in php_ast.CALL_TYPES:
        return False
    chain = php_ast.unwind_chain(expr)
    methods = chain.method_names
    if not methods or not ({'all', 'get'} & set(methods)):
        return False
    if len(methods) == 1 and chain.static_class is None:
        # $collection->all(), $request->get('x')
        return False
    static = chain.static_class
    if static is not None and not laravel.is_db_facade(static) and \
            (laravel.facade_name(static) or php_ast.short_name(static) in laravel.NON_MODEL_CLASSES):
        return False
    if chain.root_function:
        # collect(..)->all(), request()->get(..)
        return False
    return not (SAFE_CHUNKING_METHODS & set(methods) or SMALL_DATASET_METHODS & set(methods))


class ChunkVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.assigned: Dict[Tuple[Optional[str], str], TSNode] = {}

    @staticmethod
    def _frame(scope: ScopeTracker) -> Optional[str]:
        func = scope.current_function()
        return func.node.key if func is not None and func.node is not None else None

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type == 'assignment_expression':
            var = php_ast.variable(node.child_by_field('left'))
            if var is None:
                return
            key = (self._frame(scope), var)
            if is_unbounded_fetch(node.child_by_field('right')):
                self.assigned[key] = node.child_by_field('right')
            else:
                self.assigned.pop(key, None)
        elif node.type == 'foreach_statement':
            iterable, _value, _body = php_ast.foreach_parts(node)
            if iterable is None:
                return
            if is_unbounded_fetch(iterable):
                self.report(
                    node, 'chunk-missing',
                    'Looping over ->all() or ->get() without chunk() can cause memory '
                    'issues on large datasets',
                    Severity.HIGH,
                    'Use Model::chunk(200, function ($records) { ... }) or Model::cursor() '
                    'for memory-efficient iteration over large datasets.',
                    {'query': iterable.text},
                )
                return
            var = php_ast.variable(iterable)
            source = self.assigned.get((self._frame(scope), var)) if var else None
            if source is not None:
                self.report(
                    node, 'chunk-missing',
                    'Looping over a variable assigned with ->all() or ->get() can cause '
                    'memory issues on large datasets',
                    Severity.HIGH,
                    'Use Model::chunk(200, function ($records) { ... }), Model::cursor() '
                    'or Model::lazy() for memory-efficient iteration.',
                    {'variable': var, 'query': source.text},
                )


class ChunkMissingAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='chunk-missing',
        name='Missing Chunking',
        description='Detects iteration over unbounded query results that should use '
                    'chunk(), cursor() or lazy()',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('performance', 'memory', 'eloquent', 'database'),
        time_to_fix=15,
    )
    visitor_class = ChunkVisitor

    def summary(self, issues):
        n = len(issues)
        return f"Found {n} {'query' if n == 1 else 'queries'} that should use chunking"
