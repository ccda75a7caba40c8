#!/usr/bin/env python3
"""Raw SQL that a query-builder or Eloquent call expresses directly."""

import re

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

SIMPLE_AGGREGATE = re.compile(r'^(count\s*\(\s*\*\s*\)|(sum|avg|max|min)\s*\(\s*\w+\s*\))$',
                              re.IGNORECASE)

SIMPLE_SELECTS = [
    re.compile(r'^select\s+\*\s+from\s+\w+\s+where\s+\w+\s*=\s*\??\s*$', re.IGNORECASE),
    re.compile(r'^select\s+\*\s+from\s+\w+\s*$', re.IGNORECASE),
    re.compile(r'^select\s+[\w,\s]+\s+from\s+\w+\s*$', re.IGNORECASE),
]

SIMPLE_MODIFICATIONS = {
    'insert': re.compile(r'^insert\s+into\s+\w+\s*\(', re.IGNORECASE),
    'update': re.compile(r'^update\s+\w+\s+set\s+\w+\s*=', re.IGNORECASE),
    'delete': re.compile(r'^delete\s+from\s+\w+\s+where\s+\w+\s*=', re.IGNORECASE),
}

MODIFICATION_ALTERNATIVES = {
    'insert': 'Model::create([...]) or Model::insert([...])',
    'update': 'Model::where(...)->update([...]) or $model->update([...])',
    'delete': 'Model::where(...)->delete() or $model->delete()',
}


def aggregate_alternative(sql: str) -> str:
    sql = sql.lower()
    for name in ('count', 'sum', 'avg', 'max', 'min'):
        if name in sql:
            return "Model::count() or Model::where(...)->count()" if name == 'count' \
                else f"Model::{name}('column')"
    return 'Use Eloquent query builder methods'


def is_simple_select(sql: str) -> bool:
    return any(p.match(sql) for p in SIMPLE_SELECTS)


def is_simple_modification(method: str, sql: str) -> bool:
    pattern = SIMPLE_MODIFICATIONS.get(method)
    if pattern is None or not pattern.match(sql):
        return False
    lowered = sql.lower()
    return 'join' not in lowered and 'select' not in lowered


def snippet(sql: str) -> str:
    return sql[:50] + ('...' if len(sql) > 50 else '')


class RawSqlVisitor(NodeVisitor):

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type != 'scoped_call_expression':
            return
        if not laravel.is_db_facade(php_ast.class_name(node.child_by_field('scope')), scope):
            return
        args = node.get_arguments()
        sql = php_ast.string_value(args[0]) if args else None
        if sql is None:
            return
        sql = sql.strip()
        method = node.get_function_name()
        if method == 'raw':
            if SIMPLE_AGGREGATE.match(sql):
                self.report(
                    node, 'raw-aggregate',
                    'Using DB::raw() for simple query that could use Eloquent methods',
                    Severity.LOW,
                    f'Consider using Eloquent methods instead of raw SQL. Example: '
                    f'{aggregate_alternative(sql)}',
                    {'sql': snippet(sql)},
                )
        elif method == 'select':
            if is_simple_select(sql):
                self.report(
                    node, 'raw-select',
                    'Simple SELECT query using DB::select() could use Eloquent',
                    Severity.LOW,
                    'Use the Eloquent query builder for better readability and security. '
                    'Example: Model::where(...)->get()',
                    {'sql': snippet(sql)},
                )
        elif method in SIMPLE_MODIFICATIONS and is_simple_modification(method, sql):
            self.report(
                node, 'raw-modification',
                f'Simple {method.upper()} query could use Eloquent',
                Severity.LOW,
                f'Use Eloquent methods: {MODIFICATION_ALTERNATIVES[method]}',
                {'sql': snippet(sql)},
            )


class RawEloquentAvoidanceAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='raw-eloquent-avoidance',
        name='Unnecessary Raw SQL',
        description='Flags raw SQL where an Eloquent or query-builder method is available',
        category=Category.BEST_PRACTICES,
        severity=Severity.LOW,
        tags=('laravel', 'eloquent', 'sql', 'readability', 'security'),
        time_to_fix=10,
    )
    visitor_class = RawSqlVisitor

    def summary(self, issues):
        return f'Found {len(issues)} unnecessary raw SQL query/queries'
