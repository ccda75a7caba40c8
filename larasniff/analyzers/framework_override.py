#!/usr/bin/env python3
"""Application classes extending core framework classes."""

from .. import php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..visitor import NodeVisitor
from .base import Analyzer

CORE_FRAMEWORK_CLASSES = (
    'Illuminate\\Http\\Request',
    'Illuminate\\Http\\Response',
    'Illuminate\\Http\\RedirectResponse',
    'Illuminate\\Http\\JsonResponse',
    'Illuminate\\Routing\\Router',
    'Illuminate\\Foundation\\Application',
    'Illuminate\\Database\\Eloquent\\Builder',
    'Illuminate\\Database\\Query\\Builder',
    'Illuminate\\Support\\Facades\\Facade',
)


def core_class(name: str):
    """Framework class `name` refers to, matching on a namespace suffix."""
    name = name.lstrip('\\')
    for core in CORE_FRAMEWORK_CLASSES:
        if name == core or core.endswith('\\' + name):
            return core
    return None


class FrameworkOverrideVisitor(NodeVisitor):

    def enter_node(self, node, scope):
        if node.type != 'class_declaration':
            return
        written = php_ast.parent_class_name(node)
        if not written:
            return
        resolved = scope.resolve_class_name(written) or written
        # `use App\Http\Request` is the application's own class
        core = core_class(resolved) if '\\' in resolved else core_class(written)
        if core is None:
            return
        name = php_ast.declared_name(node) or 'Unknown'
        short = php_ast.short_name(core)
        self.report(
            node.line, 'framework-override',
            f'Class "{name}" extends core framework class "{written}"',
            Severity.HIGH,
            "Avoid extending core framework classes; they break on framework upgrades. "
            "Use the extension points instead: macros, service providers, middleware "
            f"or event listeners. For {short}, consider middleware or {short}::macro().",
            {'class': name, 'parent': core},
        )


class FrameworkOverrideAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='framework-override',
        name='Framework Override',
        description='Detects dangerous overrides of Laravel framework classes',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('laravel', 'framework', 'upgradability', 'maintenance'),
        time_to_fix=60,
    )
    visitor_class = FrameworkOverrideVisitor

    def summary(self, issues):
        return f'Found {len(issues)} framework override(s)'
