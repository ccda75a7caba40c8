#!/usr/bin/env python3
"""Classes and traits that lean on global helper functions."""

from collections import Counter
from typing import Dict, List

from .. import php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..visitor import NodeVisitor
from .base import Analyzer

DEFAULT_HELPERS = [
    'app', 'auth', 'cache', 'config', 'cookie', 'event', 'logger', 'old',
    'redirect', 'request', 'response', 'route', 'session', 'storage_path',
    'url', 'view', 'abort', 'abort_if', 'abort_unless', 'bcrypt', 'collect',
    'dd', 'dispatch', 'info', 'now', 'optional', 'policy', 'resolve', 'retry',
    'tap', 'throw_if', 'throw_unless', 'today', 'validator', 'value', 'report',
]

_CONTAINERS = ('class_declaration', 'trait_declaration')


def severity_for_count(count: int, threshold: int) -> Severity:
    excess = count - threshold
    if excess >= 20:
        return Severity.HIGH
    if excess >= 10:
        return Severity.MEDIUM
    return Severity.LOW


class HelperFunctionVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.helpers = frozenset(self.options['helpers'] or DEFAULT_HELPERS)
        self.stack: List = []
        self.counts: Dict[str, Counter] = {}

    def enter_node(self, node, scope):
        if node.type in _CONTAINERS:
            self.stack.append(node)
            self.counts[node.key] = Counter()
        elif node.type == 'function_call_expression' and self.stack:
            name = node.get_function_name()
            if name in self.helpers:
                self.counts[self.stack[-1].key][name] += 1

    def leave_node(self, node, scope):
        if node.type not in _CONTAINERS or not self.stack or self.stack[-1].key != node.key:
            return
        self.stack.pop()
        used = self.counts.pop(node.key)
        total = sum(used.values())
        threshold = self.options['threshold']
        if total <= threshold:
            return
        name = php_ast.declared_name(node) or 'Unknown'
        listing = ', '.join(f'{h}() ({n}x)' for h, n in sorted(used.items()))
        self.report(
            node.line, 'helper-function-abuse',
            f"Class '{name}' uses {total} helper function calls (threshold: {threshold})",
            severity_for_count(total, threshold),
            f"Class '{name}' uses {listing}. Helpers hide dependencies and make unit "
            "testing harder; inject the underlying services through the constructor.",
            {'class': name, 'helpers': dict(sorted(used.items())), 'count': total,
             'threshold': threshold},
        )


class HelperFunctionAbuseAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='helper-function-abuse',
        name='Helper Function Abuse',
        description='Detects excessive use of Laravel helper functions that hide dependencies',
        category=Category.BEST_PRACTICES,
        severity=Severity.LOW,
        tags=('testability', 'dependency-injection', 'laravel', 'helpers'),
        time_to_fix=25,
    )
    visitor_class = HelperFunctionVisitor
    OPTIONS = {
        'threshold': (int, 5),
        'helpers': (list, []),
    }

    def summary(self, issues):
        return f'Found {len(issues)} class(es) with excessive helper function usage'
