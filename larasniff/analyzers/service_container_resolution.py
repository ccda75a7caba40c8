#!/usr/bin/env python3
"""
Service-locator style container resolution.

``app()->make(X::class)``, ``app('x')``, ``resolve(X::class)`` and
``App::make()`` hide a class's dependencies; constructor or method injection
makes them explicit.  Service providers are where the container is meant to
be used, so files declaring one are skipped, as are files under the
whitelisted directories and classes matching the whitelisted name globs.
"""

from typing import List, Optional, Set, Tuple

from .. import laravel, php_ast
from ..files import PathFilter
from ..issues import AnalyzerMetadata, Category, Severity
from ..names import iter_declarations
from ..scope import ScopeKind, ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

DEFAULT_WHITELIST_DIRS = [
    'tests', 'database/migrations', 'database/seeders', 'database/factories', 'routes',
]

DEFAULT_WHITELIST_CLASSES = [
    '*Command', '*Seeder', 'DatabaseSeeder', '*Job', '*Listener', '*Middleware',
    '*Observer', '*Factory', '*Handler',
]

# Calls on app() that query the application rather than resolve a service
DEFAULT_WHITELIST_METHODS = [
    'environment', 'isLocal', 'isProduction', 'runningInConsole', 'runningUnitTests',
    'bound', 'has', 'resolved', 'isShared', 'isAlias', 'call', 'tagged', 'when',
    'needs', 'give', 'giveTagged', 'giveConfig', 'extend', 'alias', 'terminating',
    'booted', 'booting', 'basePath', 'configPath', 'databasePath', 'resourcePath',
    'storagePath', 'publicPath', 'langPath', 'bootstrapPath', 'getLocale', 'setLocale',
    'isLocale', 'currentLocale', 'version', 'name', 'abort', 'flush', 'forgetInstance',
    'forgetInstances', 'forgetScopedInstances',
]

# Framework aliases commonly fetched with app('name')
DEFAULT_WHITELIST_SERVICES = [
    'config', 'request', 'log', 'cache', 'session', 'view', 'validator', 'translator',
    'events', 'files', 'router', 'db', 'auth', 'hash', 'cookie', 'queue', 'mail', 'url',
    'redirect', 'blade.compiler', 'encrypter',
]

RESOLUTION_METHODS = ('make', 'makeWith', 'resolve')
BINDING_METHODS = frozenset({'bind', 'singleton', 'instance', 'scoped'})

SEVERITY_BY_ARGUMENT = {
    'string': Severity.HIGH,
    'class': Severity.MEDIUM,
    'variable': Severity.MEDIUM,
}

INJECTION_ADVICE = (
    'Manual resolution is a service locator anti-pattern that hides dependencies and '
    'makes testing difficult. Inject the dependency instead, through the constructor '
    '(public function __construct(private YourService $service) {}) or, in controllers, '
    'as an action method parameter.'
)


def argument_type(args: List[TSNode]) -> str:
    if not args:
        return 'none'
    value = php_ast.argument_value(args[0])
    if value is None:
        return 'unknown'
    if value.type == 'class_constant_access_expression':
        return 'class'
    if value.type in ('string', 'encapsed_string') and php_ast.string_value(value) is not None:
        return 'string'
    if value.type == 'variable_name':
        return 'variable'
    return 'unknown'


def declares_service_provider(root: TSNode) -> bool:
    for stmt, _ctx in iter_declarations(root):
        if stmt.type != 'class_declaration':
            continue
        parent = php_ast.parent_class_name(stmt)
        if parent and parent.endswith('ServiceProvider'):
            return True
    return False


def is_app_helper(node: Optional[TSNode]) -> bool:
    return node is not None and node.type == 'function_call_expression' and \
        node.get_function_name() == 'app'


def is_container_instance(node: Optional[TSNode]) -> bool:
    """``Container::getInstance()``."""
    if node is None or node.type != 'scoped_call_expression':
        return False
    written = php_ast.class_name(node.child_by_field('scope')) or ''
    return 'Container' in written and node.get_function_name() == 'getInstance'


class ContainerVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.skip_file = context.relative_path.endswith('ServiceProvider.php')
        self.seen: Set[Tuple[int, str]] = set()
        self.resolution = RESOLUTION_METHODS + (('get',) if self.options['detect_psr_get'] else ())
        self.allowed_methods = set(self.options['whitelist_methods'])
        self.allowed_services = set(self.options['whitelist_services'])

    def enter_file(self, root: TSNode, scope: ScopeTracker) -> None:
        if declares_service_provider(root):
            self.skip_file = True

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if self.skip_file or self.analyzer.whitelisted_class(scope.current_class_name()):
            return
        t = node.type
        if t in php_ast.MEMBER_CALLS:
            self._member_call(node, scope)
        elif t == 'scoped_call_expression':
            written = php_ast.class_name(node.child_by_field('scope'))
            method = node.get_function_name()
            if laravel.facade_name(written) == 'App' and method in self.resolution:
                self._resolution(node, f'App::{method}()', scope)
        elif t == 'function_call_expression':
            self._function_call(node, scope)
        elif t == 'object_creation_expression' and self.options['detect_manual_instantiation']:
            self._instantiation(node, scope)

    def _member_call(self, node: TSNode, scope: ScopeTracker) -> None:
        obj = node.child_by_field('object')
        method = node.get_function_name()
        if is_app_helper(obj):
            if method in self.allowed_methods:
                return
            if method in self.resolution:
                self._resolution(node, f'app()->{method}()', scope)
            elif method in BINDING_METHODS:
                self._add(node, f'app()->{method}()', Severity.HIGH, 'binding', scope,
                          "Container bindings belong in a service provider's register() "
                          "method, e.g. $this->app->bind(Contract::class, Implementation::class).")
        elif is_container_instance(obj) and method in self.resolution:
            self._resolution(node, f'Container::getInstance()->{method}()', scope)

    def _function_call(self, node: TSNode, scope: ScopeTracker) -> None:
        name = node.get_function_name()
        args = node.get_arguments()
        if name == 'resolve':
            self._resolution(node, 'resolve()', scope)
        elif name == 'app' and args:
            service = php_ast.string_value(args[0])
            if service is not None and service in self.allowed_services:
                return
            self._resolution(node, 'app()', scope)

    def _instantiation(self, node: TSNode, scope: ScopeTracker) -> None:
        written = php_ast.new_class_name(node)
        if not written or not self.analyzer.instantiation_patterns.matches(written):
            return
        if self._in_closure(scope):
            return
        self._add(node, f'new {written}()', Severity.LOW, 'instantiation', scope,
                  'Let the container build this class by type-hinting it as a constructor '
                  'or method parameter.')

    @staticmethod
    def _in_closure(scope: ScopeTracker) -> bool:
        function = scope.current_function()
        return function is not None and function.kind == ScopeKind.CLOSURE

    def _resolution(self, node: TSNode, pattern: str, scope: ScopeTracker) -> None:
        # closures are typically container callbacks
        if self._in_closure(scope):
            return
        kind = argument_type(node.get_arguments())
        self._add(node, pattern, SEVERITY_BY_ARGUMENT.get(kind, Severity.MEDIUM), kind, scope,
                  INJECTION_ADVICE)

    def _add(self, node: TSNode, pattern: str, severity: Severity, kind: str,
             scope: ScopeTracker, advice: str) -> None:
        key = (node.line, pattern)
        if key in self.seen:
            return
        self.seen.add(key)
        class_name = php_ast.short_name(scope.current_class_name() or '') or None
        method = scope.current_method()
        if class_name and method is not None:
            where = f'{class_name}::{method.name}'
        else:
            where = class_name or 'global scope'
        self.report(
            node, 'manual-service-resolution',
            f"Manual service resolution in '{where}': {pattern}",
            severity,
            f"Manual service container resolution detected using '{pattern}' in '{where}'. "
            f"{advice}",
            {'pattern': pattern, 'location': where, 'class': class_name or 'Unknown',
             'argument_type': kind},
        )


class ServiceContainerResolutionAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='service-container-resolution',
        name='Service Container Resolution',
        description='Detects manual service container resolution that should use '
                    'dependency injection',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('dependency-injection', 'architecture', 'testability', 'laravel', 'ioc'),
        time_to_fix=25,
    )
    visitor_class = ContainerVisitor
    fail_severity = Severity.MEDIUM
    OPTIONS = {
        'whitelist_dirs': (list, DEFAULT_WHITELIST_DIRS),
        'whitelist_classes': (list, DEFAULT_WHITELIST_CLASSES),
        'whitelist_methods': (list, DEFAULT_WHITELIST_METHODS),
        'whitelist_services': (list, DEFAULT_WHITELIST_SERVICES),
        'detect_psr_get': (bool, False),
        'detect_manual_instantiation': (bool, False),
        'manual_instantiation_patterns': (list, ['*Service', '*Repository', '*Handler']),
    }

    def __init__(self, options=None, registry=None):
        super().__init__(options, registry)
        self.whitelisted_dirs = PathFilter(d.rstrip('/') + '/*' for d in self.options['whitelist_dirs'])
        # class names are matched like paths: `*` stops at a namespace separator
        self.whitelisted_classes = PathFilter(self.options['whitelist_classes'])
        self.instantiation_patterns = PathFilter(self.options['manual_instantiation_patterns'])

    def applies_to(self, relative_path):
        return not self.whitelisted_dirs.matches(relative_path) and super().applies_to(relative_path)

    def whitelisted_class(self, name: Optional[str]) -> bool:
        return bool(name) and self.whitelisted_classes.matches(name)

    def summary(self, issues):
        return f'Found {len(issues)} instance(s) of manual service container resolution'
