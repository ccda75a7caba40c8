#!/usr/bin/env python3
"""
Query building inside controller methods.

Controllers are expected to delegate data access to repositories, services
or model scopes; simple lookups (``find``, ``all``, ``first``...) are
tolerated.  Each distinct query call is reported once per method.
"""

from typing import Optional, Set, Tuple

from .. import laravel, php_ast
from ..files import is_controller_file
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeKind, ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

ALLOWED_METHODS = frozenset({
    'find', 'findOrFail', 'findMany', 'findOr', 'all', 'get', 'first', 'firstOrFail',
    'count',
})

DB_METHODS = frozenset({'table', 'select', 'insert', 'update', 'delete', 'statement', 'raw'})

QUERY_METHODS = frozenset({
    'where', 'whereIn', 'whereNotIn', 'whereBetween', 'whereNull', 'whereNotNull',
    'whereHas', 'whereDoesntHave', 'orWhere', 'whereRaw', 'havingRaw',
    'join', 'leftJoin', 'rightJoin', 'crossJoin', 'joinSub',
    'groupBy', 'having', 'orderBy', 'orderByRaw',
    'select', 'selectRaw', 'addSelect',
    'limit', 'offset', 'skip', 'take',
    'union', 'unionAll',
    'when', 'unless',
    'with', 'withCount', 'withSum', 'withAvg', 'withMin', 'withMax',
    'sum', 'avg', 'min', 'max',
})

JOIN_METHODS = frozenset({'join', 'leftJoin', 'rightJoin', 'crossJoin', 'joinSub'})
RAW_METHODS = frozenset({'whereRaw', 'havingRaw', 'selectRaw', 'orderByRaw'})
AGGREGATE_METHODS = frozenset({'sum', 'avg', 'min', 'max', 'withCount', 'withSum', 'withAvg'})
WHERE_METHODS = frozenset({'where', 'whereIn', 'whereHas', 'orWhere'})

# Chains on these are not database queries
_NON_QUERY_VARIABLES = frozenset({'$request'})
_NON_QUERY_FUNCTIONS = frozenset({'request', 'collect', 'response', 'view', 'redirect', 'validator'})

SEVERITY_BY_TYPE = {
    'raw_query': Severity.HIGH,
    'join': Severity.HIGH,
    'complex_where': Severity.MEDIUM,
    'aggregation': Severity.MEDIUM,
}


def query_type(method: str) -> str:
    if method in JOIN_METHODS:
        return 'join'
    if method in RAW_METHODS:
        return 'raw_query'
    if method in AGGREGATE_METHODS:
        return 'aggregation'
    if method in WHERE_METHODS:
        return 'complex_where'
    return 'query_builder'


class QueryBuilderVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.seen: Set[Tuple[int, str]] = set()

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type not in php_ast.MEMBER_CALLS and node.type != 'scoped_call_expression':
            return
        method = scope.current_method()
        if method is None or method.kind != ScopeKind.METHOD:
            return
        found = self._classify(node, scope)
        if found is None:
            return
        query, kind = found
        key = (method.line, query)
        if key in self.seen:
            return
        self.seen.add(key)
        class_name = php_ast.short_name(scope.current_class_name() or 'Unknown')
        self.report(
            node, 'query-builder-in-controller',
            f"Direct database query '{query}' used in controller method '{method.name}'",
            SEVERITY_BY_TYPE.get(kind, Severity.LOW),
            f"Controller method '{method.name}' contains direct database query '{query}'. "
            f"Move data access to a repository, a service class or a model scope and keep "
            f"the controller focused on the HTTP request and response.",
            {'query': query, 'method': method.name, 'class': class_name, 'type': kind},
        )

    def _classify(self, node: TSNode, scope: ScopeTracker) -> Optional[Tuple[str, str]]:
        name = node.get_function_name()
        if node.type == 'scoped_call_expression':
            scope_class = php_ast.class_name(node.child_by_field('scope'))
            if laravel.is_db_facade(scope_class, scope):
                if name in DB_METHODS:
                    return f'DB::{name}()', 'raw_query' if name == 'raw' else 'db_facade'
                return None
        if name in ALLOWED_METHODS or name not in QUERY_METHODS:
            return None
        chain = php_ast.unwind_chain(node)
        if chain.root_variable in _NON_QUERY_VARIABLES or chain.root_function in _NON_QUERY_FUNCTIONS:
            return None
        return f'{name}()', query_type(name)


class QueryBuilderInControllerAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='query-builder-in-controller',
        name='Query Builder in Controller',
        description='Detects direct database query building in controllers that should '
                    'use repositories or services',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('architecture', 'separation-of-concerns', 'maintainability', 'repository-pattern'),
        time_to_fix=30,
    )
    visitor_class = QueryBuilderVisitor

    def applies_to(self, relative_path):
        return is_controller_file(relative_path) and super().applies_to(relative_path)

    def summary(self, issues):
        return f'Found {len(issues)} direct database query/queries in controllers'
