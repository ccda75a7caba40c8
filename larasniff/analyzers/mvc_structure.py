#!/usr/bin/env python3
"""Rendering in models and oversized controller actions."""

from .. import php_ast
from ..files import is_controller_file
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

RENDERING_METHODS = frozenset({'render', 'toHtml', 'toView', 'renderView'})


def calls_view_helper(method: TSNode) -> bool:
    body = php_ast.method_body(method)
    if body is None:
        return False
    return any(n.type == 'function_call_expression' and n.get_function_name() == 'view'
               for n in php_ast.walk_local(body))


class MvcVisitor(NodeVisitor):

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type != 'class_declaration':
            return
        name = php_ast.declared_name(node) or 'Unknown'
        if scope.current_class_is_model():
            self._check_model(node, name)
        elif name.endswith('Controller') or is_controller_file(self.context.relative_path):
            self._check_controller(node, name)

    def _check_model(self, node: TSNode, name: str) -> None:
        for method in php_ast.class_methods(node):
            method_name = php_ast.declared_name(method)
            if method_name in RENDERING_METHODS:
                self.report(
                    method.line, 'model-renders-view',
                    f'Model "{name}" has rendering method "{method_name}()" (MVC violation)',
                    Severity.HIGH,
                    'Models should not contain view rendering logic. Move it to a '
                    'controller or a view composer.',
                    {'model': name, 'method': method_name},
                    end_line=method.line,
                )
            if calls_view_helper(method):
                self.report(
                    method.line, 'model-calls-view',
                    f'Model "{name}" method "{method_name}()" calls view() helper '
                    f'(MVC violation)',
                    Severity.HIGH,
                    'Models should not render views; this belongs in controllers.',
                    {'model': name, 'method': method_name},
                    end_line=method.line,
                )

    def _check_controller(self, node: TSNode, name: str) -> None:
        limit = self.options['max_controller_method_lines']
        for method in php_ast.class_methods(node):
            lines = method.end_line - method.line
            if lines <= limit:
                continue
            method_name = php_ast.declared_name(method)
            self.report(
                method.line, 'fat-controller-method',
                f'Controller method "{name}::{method_name}()" has {lines} lines (max: {limit}). '
                f'Large methods indicate business logic in controller',
                Severity.MEDIUM,
                'Controllers should stay thin and handle the HTTP request and response. '
                'Extract business logic to service classes.',
                {'controller': name, 'method': method_name, 'lines': lines, 'max': limit},
                end_line=method.end_line,
            )


class MvcStructureViolationAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='mvc-structure-violation',
        name='MVC Structure Violation',
        description='Detects violations of the Model-View-Controller pattern',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('laravel', 'mvc', 'architecture', 'separation-of-concerns'),
        time_to_fix=30,
    )
    visitor_class = MvcVisitor
    OPTIONS = {
        'max_controller_method_lines': (int, 50),
    }

    def summary(self, issues):
        return f'Found {len(issues)} MVC violation(s)'
