#!/usr/bin/env python3
"""
Mass assignment: unprotected models and raw request data passed to
attribute-filling calls.
"""

from typing import List, Optional

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..model_registry import ORM_BASE_CLASSES
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

MODEL_STATIC_METHODS = frozenset({
    'create', 'forceCreate', 'firstOrCreate', 'updateOrCreate', 'firstOrNew', 'make',
    'insert', 'upsert', 'insertOrIgnore',
})
MODEL_INSTANCE_METHODS = frozenset({'fill', 'forceFill', 'update'})
BUILDER_METHODS = frozenset({
    'update', 'insert', 'upsert', 'insertOrIgnore', 'insertUsing', 'insertGetId',
    'updateOrInsert',
})

REQUEST_DATA_METHODS = frozenset({'all', 'input', 'post', 'get', 'query', 'except', 'json'})
# Accessors that read one key when given an argument
KEYED_ACCESSORS = frozenset({'input', 'get', 'post', 'query'})

CALL_LABELS = {
    'static': 'Static call to',
    'instance': 'Instance call to',
    'builder': 'Query builder call to',
}


def is_request_data(node: Optional[TSNode]) -> bool:
    """``$request->all()``, ``request()->input()``, ``Request::all()``..."""
    node = php_ast.argument_value(node)
    if node is None:
        return False
    method = node.get_function_name()
    if method not in REQUEST_DATA_METHODS:
        return False
    if node.type in php_ast.MEMBER_CALLS:
        obj = node.child_by_field('object')
        from_request = php_ast.variable(obj) == '$request' or (
            obj is not None and obj.type == 'function_call_expression'
            and obj.get_function_name() == 'request')
        if not from_request:
            return False
        return not (method in KEYED_ACCESSORS and node.get_arguments())
    if node.type == 'scoped_call_expression':
        written = php_ast.class_name(node.child_by_field('scope')) or ''
        return 'Request' in written or php_ast.short_name(written) == 'Input'
    return False


def is_builder_target(call: TSNode, scope: Optional[ScopeTracker] = None) -> bool:
    """``DB::table(..)->update()``, ``X::query()->insert()`` and the like."""
    obj = call.child_by_field('object')
    if obj is None:
        return False
    if obj.type == 'scoped_call_expression':
        return laravel.is_db_facade(php_ast.class_name(obj.child_by_field('scope')), scope)
    return obj.type in php_ast.MEMBER_CALLS and obj.get_function_name() in ('query', 'table')


class MassAssignmentVisitor(NodeVisitor):

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        t = node.type
        if t == 'class_declaration':
            if scope.current_class_is_model():
                self._check_protection(node, scope.current_class_chain())
        elif t == 'scoped_call_expression':
            method = node.get_function_name()
            written = php_ast.class_name(node.child_by_field('scope'))
            if method in MODEL_STATIC_METHODS and laravel.facade_name(written) is None:
                self._check_arguments(node, method, 'static')
        elif t in php_ast.MEMBER_CALLS:
            method = node.get_function_name()
            if method in BUILDER_METHODS and is_builder_target(node, scope):
                self._check_arguments(node, method, 'builder')
            elif method in MODEL_INSTANCE_METHODS:
                self._check_arguments(node, method, 'instance')

    def _check_protection(self, node: TSNode, chain: List[str]) -> None:
        name = php_ast.declared_name(node) or 'Unknown'
        properties = {prop: default for prop, default, _decl in php_ast.class_properties(node)}
        if 'fillable' not in properties and 'guarded' not in properties:
            if not self._inherits_protection(chain):
                self.report(
                    node.line, 'missing-mass-assignment-protection',
                    f"Model '{name}' lacks mass assignment protection ($fillable or $guarded)",
                    Severity.HIGH,
                    "Add protected $fillable = [...] or protected $guarded = ['*'] to the model.",
                    {'model': name},
                )
        guarded = properties.get('guarded')
        if guarded is not None and guarded.type == 'array_creation_expression' and \
                not list(php_ast.array_items(guarded)):
            self.report(
                guarded.line, 'empty-guarded',
                f"Model '{name}' has $guarded = [] which allows mass assignment of all attributes",
                Severity.HIGH,
                "List the fillable attributes, or use $guarded = ['*'] to protect all of them.",
                {'model': name},
            )

    def _inherits_protection(self, chain: List[str]) -> bool:
        """A parent model of the project may declare the protection."""
        return bool(chain) and chain[0] not in ORM_BASE_CLASSES and self.registry.is_model(chain[0])

    def _check_arguments(self, call: TSNode, method: str, kind: str) -> None:
        if not any(is_request_data(a) for a in call.get_arguments()):
            return
        self.report(
            call, 'mass-assignment-request-data',
            f'{CALL_LABELS[kind]} {method}() with unfiltered request data may result in '
            f'mass assignment vulnerability',
            Severity.CRITICAL,
            'Use $request->validated(), $request->safe() or $request->only([...]) to pass '
            'an explicit list of fields.',
            {'method': method, 'call_type': kind},
        )


class MassAssignmentAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='mass-assignment',
        name='Mass Assignment',
        description='Detects mass assignment vulnerabilities in Eloquent models and '
                    'query builders',
        category=Category.SECURITY,
        severity=Severity.HIGH,
        tags=('mass-assignment', 'eloquent', 'security', 'models'),
        time_to_fix=25,
    )
    visitor_class = MassAssignmentVisitor

    def summary(self, issues):
        noun = 'vulnerability' if len(issues) == 1 else 'vulnerabilities'
        return f'Found {len(issues)} potential mass assignment {noun}'
