#!/usr/bin/env python3
"""
Models carrying business logic that belongs in services.

Three measures per model: public business methods, lines of properties and
methods, and the cyclomatic complexity of each business method.
Relationships, scopes, accessors/mutators and framework hooks are not
business methods.
"""

import re
from typing import List

from .. import php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

FRAMEWORK_METHODS = frozenset({
    'boot', 'booting', 'booted', 'casts', 'newEloquentBuilder', 'newCollection',
    'newFactory', 'resolveRouteBinding', 'resolveChildRouteBinding',
    'getRouteKeyName', 'getRouteKey', 'toArray', 'toJson', 'broadcastOn',
    'broadcastWith', 'broadcastAs', 'prunable', 'shouldBeSearchable',
    'toSearchableArray', 'searchableAs',
})

RELATION_TYPES = (
    'Relation', 'HasOne', 'HasMany', 'BelongsTo', 'BelongsToMany', 'MorphTo',
    'MorphOne', 'MorphMany', 'MorphToMany', 'HasOneThrough', 'HasManyThrough',
    'MorphedByMany',
)

RELATION_METHODS = frozenset({
    'hasOne', 'hasMany', 'belongsTo', 'belongsToMany', 'morphTo', 'morphOne',
    'morphMany', 'morphToMany', 'hasOneThrough', 'hasManyThrough', 'morphedByMany',
})

_BASE_MODEL_RE = re.compile(r'(BaseModel$|\\Models\\Base|Base[A-Z]\w*Model)')


def graded(excess: int, medium: int, high: int) -> Severity:
    if excess >= high:
        return Severity.HIGH
    if excess >= medium:
        return Severity.MEDIUM
    return Severity.LOW


def is_relationship_method(method: TSNode) -> bool:
    return_type = method.child_by_field('return_type')
    if return_type is not None:
        for name in re.split(r'[|&]', return_type.text.replace('?', '')):
            if name.strip().endswith(RELATION_TYPES):
                return True
    body = php_ast.method_body(method)
    if body is None:
        return False
    returns = [e for e in php_ast.return_expressions(body) if e is not None]
    if not returns:
        return False
    chain = php_ast.unwind_chain(returns[-1])
    return chain.root_variable == '$this' and bool(set(chain.method_names) & RELATION_METHODS)


def is_business_method(method: TSNode) -> bool:
    name = php_ast.declared_name(method) or ''
    if name in FRAMEWORK_METHODS or name.startswith('scope') or name.endswith('Attribute'):
        return False
    if php_ast.method_visibility(method) != 'public':
        return False
    return not is_relationship_method(method)


class FatModelVisitor(NodeVisitor):

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type != 'class_declaration' or not self._is_model(node, scope):
            return
        name = php_ast.declared_name(node) or 'Unknown'
        methods = [m for m in php_ast.class_methods(node) if is_business_method(m)]
        self._check_method_count(node, name, methods)
        self._check_size(node, name)
        for method in methods:
            self._check_complexity(name, method)

    def _is_model(self, node: TSNode, scope: ScopeTracker) -> bool:
        if scope.current_class_is_model():
            return True
        if self.registry.knows(scope.current_class_name()):
            return False
        written = php_ast.parent_class_name(node)
        return bool(written) and bool(_BASE_MODEL_RE.search(scope.resolve_class_name(written) or written))

    def _check_method_count(self, node: TSNode, name: str, methods: List[TSNode]) -> None:
        threshold = self.options['method_threshold']
        if len(methods) <= threshold:
            return
        self.report(
            node.line, 'too-many-methods',
            f'Model "{name}" has {len(methods)} business methods (threshold: {threshold}). '
            f'Consider extracting logic to service classes',
            graded(len(methods) - threshold, 5, 15),
            'Move business logic to service classes. Models should focus on data '
            'representation, relationships and simple accessors/mutators.',
            {'model': name, 'method_count': len(methods), 'threshold': threshold,
             'methods': [php_ast.declared_name(m) for m in methods]},
        )

    def _check_size(self, node: TSNode, name: str) -> None:
        body = php_ast.class_body(node)
        if body is None:
            return
        lines = sum(php_ast.line_count(m) for m in body.named_children
                    if m.type in ('property_declaration', 'method_declaration'))
        threshold = self.options['loc_threshold']
        if lines <= threshold:
            return
        self.report(
            node.line, 'too-many-lines',
            f'Model "{name}" has {lines} statement lines (threshold: {threshold}). '
            f'Model is too large',
            graded(lines - threshold, 100, 200),
            'Large models are hard to maintain. Extract business logic to services, '
            'reusable behaviour to traits and query logic to dedicated query classes.',
            {'model': name, 'lines': lines, 'threshold': threshold},
        )

    def _check_complexity(self, name: str, method: TSNode) -> None:
        complexity = php_ast.cyclomatic_complexity(method)
        threshold = self.options['complexity_threshold']
        if complexity <= threshold:
            return
        method_name = php_ast.declared_name(method)
        self.report(
            method.line, 'complex-method',
            f'Method "{name}::{method_name}()" has complexity of {complexity} '
            f'(threshold: {threshold})',
            graded(complexity - threshold, 5, 15),
            'Complex methods in models indicate business logic that should be '
            'extracted to service classes.',
            {'model': name, 'method': method_name, 'complexity': complexity,
             'threshold': threshold},
        )


class FatModelAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='fat-model',
        name='Fat Model',
        description='Detects Eloquent models with too much business logic',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('laravel', 'eloquent', 'architecture', 'srp'),
        time_to_fix=45,
    )
    visitor_class = FatModelVisitor
    OPTIONS = {
        'method_threshold': (int, 15),
        'loc_threshold': (int, 300),
        'complexity_threshold': (int, 10),
    }

    def summary(self, issues):
        models = {i.metadata.get('model') for i in issues}
        return (f'Found {len(issues)} issue(s) across {len(models)} fat model(s) '
                f'that should be refactored')
