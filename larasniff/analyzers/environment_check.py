#!/usr/bin/env python3
"""Behaviour switched on ``app()->environment()`` instead of config values."""

import re

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..visitor import NodeVisitor
from .base import Analyzer

# Infrastructure code where environment checks are expected
_INFRASTRUCTURE_RE = re.compile(r'ServiceProvider|ExceptionHandler|/Exceptions/Handler\.php$')

ENVIRONMENT_METHODS = frozenset({'environment', 'isProduction', 'isLocal'})


class EnvironmentCheckVisitor(NodeVisitor):

    def enter_node(self, node, scope):
        method = node.get_function_name()
        if method not in ENVIRONMENT_METHODS:
            return
        if node.type in php_ast.MEMBER_CALLS:
            obj = node.child_by_field('object')
            if obj is None or obj.type != 'function_call_expression' or obj.get_function_name() != 'app':
                return
            form = f'app()->{method}()'
        elif node.type == 'scoped_call_expression':
            written = php_ast.class_name(node.child_by_field('scope'))
            if laravel.facade_name(scope.resolve_class_name(written)) != 'App' and \
                    laravel.facade_name(written) != 'App':
                return
            form = f'App::{method}()'
        else:
            return
        self.report(
            node, 'environment-check',
            f'Using {form} for feature flags or behavior changes',
            Severity.LOW,
            "Use config values instead of environment checks for behaviour changes. "
            "Store the decision in config/features.php and read config('features.name'); "
            "keep environment checks for infrastructure concerns such as logging.",
            {'form': form, 'environments': [php_ast.string_value(a) for a in node.get_arguments()
                                            if php_ast.string_value(a) is not None]},
        )


class EnvironmentCheckSmellAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='environment-check-smell',
        name='Environment Check Smell',
        description='Detects environment checks that should use configuration values instead',
        category=Category.BEST_PRACTICES,
        severity=Severity.LOW,
        tags=('laravel', 'configuration', 'maintainability', 'testing'),
        time_to_fix=15,
    )
    visitor_class = EnvironmentCheckVisitor

    def applies_to(self, relative_path):
        if _INFRASTRUCTURE_RE.search(relative_path.replace('\\', '/')):
            return False
        return super().applies_to(relative_path)

    def summary(self, issues):
        return f'Found {len(issues)} environment check(s) that should use config'
