#!/usr/bin/env python3
"""
Business logic in route closures.

Each closure passed to a ``Route::`` call in a route file is checked for
database queries (critical), business logic (high) and length (medium).
Closures passed to ``Route::group()`` only hold route definitions and are
not checked themselves.
"""

from typing import List

from .. import laravel, php_ast
from ..files import is_route_file
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

BUSINESS_LOGIC_FUNCTIONS = frozenset({
    'dispatch', 'dispatch_sync', 'dispatch_now', 'event', 'report', 'rescue',
    'broadcast', 'app', 'resolve', 'retry',
})

BUSINESS_LOGIC_FACADES = frozenset({'Mail', 'Notification', 'Queue', 'Event', 'Bus', 'Broadcast'})

SERVICE_CONTAINER_METHODS = frozenset({'make', 'makeWith', 'call', 'get'})

QUERY_METHODS = frozenset({
    'where', 'find', 'all', 'first', 'create', 'query', 'findOrFail', 'firstOrFail',
    'get', 'pluck', 'count', 'exists', 'doesntExist', 'with', 'without',
})

STATIC_QUERY_METHODS = frozenset({'where', 'find', 'all', 'first', 'create', 'query'})

QUERY_BUILDER_METHODS = frozenset({
    'orWhere', 'whereIn', 'whereNotIn', 'whereBetween', 'whereNull', 'join',
    'leftJoin', 'rightJoin', 'crossJoin', 'having', 'havingRaw', 'groupBy',
    'union', 'unionAll', 'lockForUpdate', 'sharedLock',
})

UTILITY_CLASSES = frozenset({
    'Carbon', 'Collection', 'Validator', 'Cache', 'Log', 'Session', 'Cookie',
    'Request', 'Response', 'View', 'Config', 'Str', 'Arr', 'File', 'Storage', 'Hash',
    'Crypt', 'Route', 'URL', 'Redirect', 'DB', 'App', 'Auth', 'Gate', 'Password',
    'RateLimiter', 'Schema', 'Mail', 'Queue', 'Event', 'Bus', 'Notification',
})

_ARITHMETIC = frozenset({'+', '-', '*', '/', '+=', '-=', '*=', '/='})

DB_QUERIES = 'database queries'
BUSINESS_LOGIC = 'complex business logic'


def _static_class(call: TSNode, scope: ScopeTracker) -> str:
    written = php_ast.class_name(call.child_by_field('scope')) or ''
    facade = laravel.facade_name(scope.resolve_class_name(written)) or laravel.facade_name(written)
    return facade or written


def has_db_queries(closure: TSNode, scope: ScopeTracker) -> bool:
    for node in php_ast.walk_local(closure):
        if node.type == 'scoped_call_expression':
            cls = _static_class(node, scope)
            if cls == 'DB':
                return True
            if node.get_function_name() in STATIC_QUERY_METHODS and \
                    php_ast.short_name(cls) not in UTILITY_CLASSES and \
                    laravel.looks_like_model_class(cls):
                return True
        elif node.type in php_ast.MEMBER_CALLS and node.get_function_name() in QUERY_BUILDER_METHODS:
            return True
    return False


def _member_chain_length(call: TSNode) -> int:
    return sum(1 for s in php_ast.unwind_chain(call).segments if s.is_call and not s.is_static)


def has_business_logic(closure: TSNode, scope: ScopeTracker, chain_length: int) -> bool:
    if php_ast.nesting_depth(closure) > 1:
        return True
    looping = php_ast.nesting_depth(closure, php_ast.LOOP_TYPES) > 0
    for node in php_ast.walk_local(closure):
        t = node.type
        if t == 'function_call_expression' and node.get_function_name() in BUSINESS_LOGIC_FUNCTIONS:
            return True
        if t == 'scoped_call_expression':
            cls = _static_class(node, scope)
            method = node.get_function_name()
            if cls in BUSINESS_LOGIC_FACADES:
                return True
            if cls == 'App' and method in SERVICE_CONTAINER_METHODS:
                return True
            short = php_ast.short_name(cls)
            if short[:1].isupper() and short not in UTILITY_CLASSES and \
                    cls not in ('self', 'static', 'parent') and method not in QUERY_METHODS:
                # OrderService::process()
                return True
        if t in php_ast.MEMBER_CALLS and php_ast.is_chain_top(node) and \
                _member_chain_length(node) >= chain_length:
            return True
        if looping and t in ('binary_expression', 'augmented_assignment_expression'):
            op = node.child_by_field('operator')
            if op is not None and op.text in _ARITHMETIC:
                return True
    return False


class LogicInRoutesVisitor(NodeVisitor):

    def enter_node(self, node, scope):
        if node.type != 'scoped_call_expression' or _static_class(node, scope) != 'Route':
            return
        if node.get_function_name() == 'group':
            return
        for arg in node.get_arguments():
            closure = php_ast.argument_value(arg)
            if closure is not None and closure.type in ('anonymous_function',
                                                        'anonymous_function_creation_expression'):
                self._check_closure(closure, scope)

    def _check_closure(self, closure: TSNode, scope: ScopeTracker) -> None:
        problems: List[str] = []
        severity = Severity.LOW
        if has_db_queries(closure, scope):
            problems.append(DB_QUERIES)
            severity = Severity.CRITICAL
        if has_business_logic(closure, scope, self.options['complex_chain_length']):
            problems.append(BUSINESS_LOGIC)
            severity = max(severity, Severity.HIGH)
        lines = php_ast.line_count(closure)
        limit = self.options['max_closure_lines']
        if lines > limit:
            problems.append(f'{lines} lines (max: {limit})')
            severity = max(severity, Severity.MEDIUM)
        if not problems:
            return
        if DB_QUERIES in problems:
            code = 'route-has-db-queries'
            recommendation = ('Database queries should not be in route files. Move this logic '
                              'to a controller method and use services for data access.')
        elif BUSINESS_LOGIC in problems:
            code = 'route-has-business-logic'
            recommendation = ('Complex business logic belongs in service classes or controllers. '
                              'Route files should only define routes.')
        else:
            code = 'route-closure-too-long'
            recommendation = ('Move route logic to a controller method or a single-action '
                              'controller.')
        self.report(
            closure.line, code,
            f"Route closure contains {', '.join(problems)}",
            severity, recommendation,
            {'problems': problems, 'line_count': lines,
             'has_db_queries': DB_QUERIES in problems,
             'has_business_logic': BUSINESS_LOGIC in problems},
            end_line=closure.end_line,
        )


class LogicInRoutesAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='logic-in-routes',
        name='Logic in Routes',
        description='Detects business logic in route files that belongs in controllers',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('laravel', 'routes', 'mvc', 'architecture'),
        time_to_fix=20,
    )
    visitor_class = LogicInRoutesVisitor
    OPTIONS = {
        'max_closure_lines': (int, 5),
        'complex_chain_length': (int, 3),
    }

    def applies_to(self, relative_path):
        return is_route_file(relative_path) and super().applies_to(relative_path)

    def summary(self, issues):
        return (f'Found {len(issues)} route(s) with business logic that should be moved '
                f'to controllers')
