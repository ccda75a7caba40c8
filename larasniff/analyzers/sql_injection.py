#!/usr/bin/env python3
"""
SQL built from strings at runtime.

A query is considered injectable when its SQL argument is concatenated,
interpolated, or contains request input.  ``DB::unprepared()`` is always
reported, as are direct ``PDO``/``mysqli`` connections; native database
functions are reported when any argument is built dynamically.
"""

from typing import Optional

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

RAW_METHODS = frozenset({'raw', 'whereRaw', 'orWhereRaw', 'havingRaw', 'orHavingRaw',
                         'orderByRaw', 'selectRaw', 'groupByRaw', 'fromRaw'})
DB_QUERY_METHODS = frozenset({'select', 'selectOne', 'insert', 'update', 'delete',
                              'statement', 'affectingStatement', 'scalar', 'cursor'})

NATIVE_FUNCTIONS = [
    'mysql_query', 'mysqli_query', 'mysqli_real_query', 'mysqli_multi_query',
    'mysqli_prepare', 'pg_query', 'pg_send_query', 'pg_prepare', 'pg_send_prepare',
    'sqlite_query',
]
DIRECT_CONNECTIONS = frozenset({'PDO', 'mysqli'})

SUPERGLOBALS = frozenset({'$_GET', '$_POST', '$_REQUEST', '$_COOKIE', '$_SERVER'})
REQUEST_METHODS = frozenset({'input', 'get', 'all', 'query', 'post', 'cookie', 'header',
                             'route', 'json', 'string', 'integer'})


def is_user_input(node: TSNode) -> bool:
    """True if the expression reads request data anywhere inside it."""
    for n in [node] + list(node.walk_descendants()):
        t = n.type
        if t == 'variable_name' and n.text in SUPERGLOBALS:
            return True
        if t == 'function_call_expression' and n.get_function_name() == 'request':
            return True
        if t == 'scoped_call_expression':
            written = php_ast.short_name(php_ast.class_name(n.child_by_field('scope')) or '')
            if written in ('Request', 'Input') and n.get_function_name() in REQUEST_METHODS:
                return True
        if t in php_ast.MEMBER_CALLS and n.get_function_name() in REQUEST_METHODS:
            if php_ast.variable(n.child_by_field('object')) == '$request':
                return True
    return False


def is_injectable(arg: Optional[TSNode]) -> bool:
    value = php_ast.argument_value(arg)
    if value is None:
        return False
    return php_ast.is_dynamic_string(value) or is_user_input(value)


class SqlInjectionVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.native = frozenset(self.options['native_functions'])

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        t = node.type
        if t == 'scoped_call_expression':
            self._static_call(node, scope)
        elif t in php_ast.MEMBER_CALLS:
            self._raw_method(node)
        elif t == 'function_call_expression':
            name = node.get_function_name()
            if name in self.native and any(is_injectable(a) for a in node.get_arguments()):
                self._issue(node, f'{name}()', 'native-sql-injection',
                            "Avoid native PHP database functions. Use Laravel's DB facade "
                            "or Eloquent with parameter binding.")
        elif t == 'object_creation_expression':
            written = php_ast.new_class_name(node)
            if written and written.lstrip('\\') in DIRECT_CONNECTIONS:
                self.report(
                    node, 'direct-database-connection',
                    f'Direct database connection with new {written}() bypasses the '
                    f'framework query layer',
                    Severity.CRITICAL,
                    "Avoid direct PDO/mysqli usage. Use Laravel's DB facade or Eloquent.",
                    {'class': written},
                )

    def _raw_method(self, node: TSNode) -> None:
        method = node.get_function_name()
        if method in RAW_METHODS and method != 'raw':
            self._check_sql(node, f'{method}()', 'raw-sql-injection',
                            f"Use parameter binding: ->{method}('column = ?', [$value]) "
                            f"instead of concatenation.")

    def _static_call(self, node: TSNode, scope: ScopeTracker) -> None:
        if not laravel.is_db_facade(php_ast.class_name(node.child_by_field('scope')), scope):
            # User::whereRaw(..)
            self._raw_method(node)
            return
        method = node.get_function_name()
        if method == 'unprepared':
            self._issue(node, 'DB::unprepared()', 'unprepared-statement',
                        'Avoid DB::unprepared(). Use DB::select(), DB::insert() and friends '
                        'with parameter binding.')
        elif method == 'raw':
            self._check_sql(node, 'DB::raw()', 'raw-sql-injection',
                            'Use parameter binding instead of string concatenation, e.g. '
                            'whereRaw("id = ?", [$id]).')
        elif method in DB_QUERY_METHODS:
            self._check_sql(node, f'DB::{method}()', 'sql-injection',
                            f"Use placeholders and bindings: DB::{method}('... where id = ?', "
                            f"[$id]).")

    def _check_sql(self, node: TSNode, call: str, code: str, advice: str) -> None:
        args = node.get_arguments()
        if args and is_injectable(args[0]):
            self._issue(node, call, code, advice)

    def _issue(self, node: TSNode, call: str, code: str, advice: str) -> None:
        self.report(
            node, code,
            f'Potential SQL injection: {call} with string concatenation or user input',
            Severity.CRITICAL,
            advice,
            {'call': call},
        )


class SqlInjectionAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='sql-injection',
        name='SQL Injection',
        description='Detects potential SQL injection vulnerabilities in database queries',
        category=Category.SECURITY,
        severity=Severity.CRITICAL,
        tags=('sql', 'injection', 'database', 'security'),
        time_to_fix=30,
    )
    visitor_class = SqlInjectionVisitor
    OPTIONS = {
        'native_functions': (list, NATIVE_FUNCTIONS),
    }

    def summary(self, issues):
        return f'Found {len(issues)} potential SQL injection vulnerabilities'
