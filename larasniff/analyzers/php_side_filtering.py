#!/usr/bin/env python3
"""Collections filtered in PHP right after being fetched from the database."""

from typing import List, Optional

from .. import php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..provenance import model_name
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

FETCH_METHODS = frozenset({'get', 'all'})
FILTER_METHODS = ('filter', 'reject', 'whereIn', 'whereNotIn')

EXCLUDED_CLASSES = frozenset({
    'Collection', 'LazyCollection', 'EloquentCollection', 'Arr', 'Str', 'Stringable',
    'Carbon', 'CarbonImmutable', 'DateTime', 'DateTimeImmutable', 'Config', 'Session',
    'Request', 'Cache', 'Cookie', 'Http', 'Response', 'Log', 'DB', 'File', 'Storage',
    'Queue', 'Mail', 'Notification', 'Event', 'Gate', 'Auth', 'Validator', 'View', 'URL',
    'Route', 'Redirect', 'Crypt', 'Hash', 'Password', 'RateLimiter', 'Bus', 'Artisan',
    'App', 'Builder', 'Factory', 'Faker', 'Client', 'GuzzleHttp',
})

EXCLUDED_PROPERTIES = frozenset({
    'id', 'name', 'title', 'status', 'type', 'data', 'value', 'key', 'config',
    'options', 'settings', 'attributes', 'service', 'client', 'http', 'response',
    'request', 'cache', 'session', 'connection', 'driver', 'handler', 'manager',
    'factory', 'builder', 'query', 'result', 'output', 'input', 'error', 'message',
    'content', 'body', 'headers', 'params', 'args', 'context', 'container', 'app',
    'instance', 'logger', 'validator',
})

RELATIONSHIP_TERMS = frozenset({
    'parent', 'owner', 'children', 'author', 'creator', 'members', 'followers',
    'following', 'friends', 'roles', 'permissions', 'tags', 'categories', 'items',
    'entries', 'records',
})

_NON_PLURAL = frozenset({'status', 'class', 'address', 'access', 'process', 'success', 'progress'})

RECOMMENDATIONS = {
    'filter': 'Replace filter() with where() clauses before get()/all() so the '
              'database does the filtering.',
    'reject': 'Replace reject() with where() or whereNot() clauses before get()/all() '
              'so the database does the filtering.',
    'whereIn': 'Call whereIn() on the query builder before get()/all() instead of on '
               'the fetched collection.',
    'whereNotIn': 'Call whereNotIn() on the query builder before get()/all() instead of '
                  'on the fetched collection.',
}


def looks_like_relationship(name: str) -> bool:
    if name in EXCLUDED_PROPERTIES:
        return False
    if name in RELATIONSHIP_TERMS:
        return True
    if len(name) > 3 and name.endswith('s') and not name.endswith('ss') and name not in _NON_PLURAL:
        return True
    return len(name) > 4 and name.endswith('ies')


def fetch_then_filter(methods: List[str]) -> Optional[str]:
    """The filter method applied directly to a get()/all() result, if any."""
    for first, second in zip(methods, methods[1:]):
        if first in FETCH_METHODS and second in FILTER_METHODS:
            return second
    return None


class PhpFilteringVisitor(NodeVisitor):

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type not in php_ast.MEMBER_CALLS or not php_ast.is_chain_top(node):
            return
        chain = php_ast.unwind_chain(node)
        methods = chain.method_names
        method = fetch_then_filter(methods)
        if method is None or not self._eloquent_source(chain, scope):
            return
        pattern = '->'.join(methods)
        self.report(
            node, 'php-side-filtering',
            f'Filtering data in PHP instead of database: {pattern}',
            Severity.CRITICAL,
            f'{RECOMMENDATIONS[method]} The pattern "{pattern}" loads every row into '
            f'memory before filtering.',
            {'pattern': pattern, 'filter_method': method},
        )

    def _eloquent_source(self, chain: php_ast.Chain, scope: ScopeTracker) -> bool:
        if chain.static_class is not None:
            if php_ast.short_name(chain.static_class) in EXCLUDED_CLASSES:
                return False
            return model_name(chain.static_class, scope) is not None
        if chain.root_function:
            return False
        properties = []
        for seg in chain.segments:
            if seg.is_call:
                break
            properties.append(seg.name)
        if properties:
            return looks_like_relationship(properties[-1])
        return chain.root_variable is not None


class PhpSideFilteringAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='php-side-filtering',
        name='PHP-Side Collection Filtering',
        description='Detects filter(), reject(), whereIn() and whereNotIn() on fetched '
                    'collections instead of in the query',
        category=Category.BEST_PRACTICES,
        severity=Severity.CRITICAL,
        tags=('laravel', 'performance', 'database', 'memory', 'collections'),
        time_to_fix=15,
    )
    visitor_class = PhpFilteringVisitor

    def summary(self, issues):
        return (f'Found {len(issues)} instance(s) of PHP-side filtering that should be '
                f'done in database')
