#!/usr/bin/env python3
"""Classes that depend on too many distinct facades."""

from typing import Dict, List

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..visitor import NodeVisitor
from .base import Analyzer


def severity_for_count(count: int, threshold: int) -> Severity:
    excess = count - threshold
    if excess >= 5:
        return Severity.HIGH
    if excess >= 3:
        return Severity.MEDIUM
    return Severity.LOW


class FacadeUsageVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        # class node key -> facade -> first line
        self.facades: Dict[str, Dict[str, int]] = {}
        self.stack: List = []

    def enter_node(self, node, scope):
        if node.type == 'class_declaration':
            self.stack.append(node)
            self.facades[node.key] = {}
            return
        if node.type != 'scoped_call_expression' or not self.stack:
            return
        written = php_ast.class_name(node.child_by_field('scope'))
        if written is None:
            return
        facade = laravel.facade_name(scope.resolve_class_name(written)) or laravel.facade_name(written)
        if facade is not None:
            self.facades[self.stack[-1].key].setdefault(facade, node.line)

    def leave_node(self, node, scope):
        if node.type != 'class_declaration' or not self.stack or self.stack[-1].key != node.key:
            return
        self.stack.pop()
        used = self.facades.pop(node.key)
        threshold = self.options['threshold']
        if len(used) <= threshold:
            return
        name = php_ast.declared_name(node) or 'Anonymous'
        names = sorted(used, key=used.get)
        self.report(
            node.line, 'excessive-facade-usage',
            f"Class '{name}' uses {len(used)} different facades (threshold: {threshold})",
            severity_for_count(len(used), threshold),
            f"Class '{name}' uses {', '.join(names)}. Inject the services through the "
            "constructor instead of reaching for facades, and consider splitting the "
            "class if it has too many responsibilities.",
            {'class': name, 'facades': names, 'count': len(used), 'threshold': threshold},
        )


class FacadeUsageAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='facade-usage',
        name='Facade Usage',
        description='Identifies excessive facade usage that makes classes hard to test',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('architecture', 'testability', 'dependency-injection', 'facades'),
        time_to_fix=25,
    )
    visitor_class = FacadeUsageVisitor
    OPTIONS = {
        'threshold': (int, 5),
    }

    def summary(self, issues):
        return f'Found {len(issues)} class(es) with excessive facade usage'
