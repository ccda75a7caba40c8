#!/usr/bin/env python3
"""Model and table fetches that load every column."""

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..provenance import ProvenanceKind, model_name
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

FETCH_METHODS = frozenset({'all', 'get', 'first', 'find'})
# Position of the optional column list of each fetch
COLUMNS_ARGUMENT = {'all': 0, 'get': 0, 'first': 0, 'find': 1}
COLUMN_METHODS = frozenset({
    'select', 'addSelect', 'selectRaw', 'pluck', 'value', 'count', 'exists', 'sum',
    'avg', 'min', 'max',
})


class SelectAsteriskVisitor(NodeVisitor):

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type not in php_ast.MEMBER_CALLS and node.type != 'scoped_call_expression':
            return
        method = node.get_function_name()
        if method not in FETCH_METHODS:
            return
        chain = php_ast.unwind_chain(node)
        before = chain.method_names[:-1]
        if any(m in COLUMN_METHODS for m in before):
            return
        # a fetch earlier in the chain has already run the query
        if any(m in laravel.QUERY_TERMINALS for m in before):
            return
        if not self._is_query(chain, scope):
            return
        if len(node.get_arguments()) > COLUMNS_ARGUMENT[method]:
            return
        self.report(
            node, 'select-asterisk',
            f'Query using ->{method}() without ->select() fetches all columns',
            Severity.LOW,
            "Use ->select(['col1', 'col2']) to fetch only the columns you need. This "
            "reduces memory usage and network transfer, especially for tables with many "
            "columns or BLOB/TEXT fields.",
            {'method': method},
        )

    def _is_query(self, chain: php_ast.Chain, scope: ScopeTracker) -> bool:
        if chain.static_class is not None:
            if laravel.is_db_facade(chain.static_class, scope):
                return laravel.table_literal(chain, scope) is not None
            first = chain.segments[0].name
            return first in laravel.MODEL_QUERY_METHODS and \
                model_name(chain.static_class, scope) is not None
        if chain.root_variable is None or not chain.segments:
            return False
        kind = scope.lookup(chain.root_variable).kind
        return kind in (ProvenanceKind.ELOQUENT_BUILDER, ProvenanceKind.QUERY_BUILDER)


class SelectAsteriskAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='select-asterisk',
        name='Select Asterisk',
        description='Detects queries fetching all columns when only specific columns '
                    'are needed',
        category=Category.BEST_PRACTICES,
        severity=Severity.LOW,
        tags=('laravel', 'performance', 'database', 'optimization'),
        time_to_fix=15,
    )
    visitor_class = SelectAsteriskVisitor

    def summary(self, issues):
        return f'Found {len(issues)} query/queries that could benefit from column selection'
