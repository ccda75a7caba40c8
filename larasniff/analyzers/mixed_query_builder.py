#!/usr/bin/env python3
"""
Mixed Query Builder / Eloquent usage within one class.

Eloquent usage is recorded from model static calls (``User::where(..)``) and
from variables that hold an Eloquent query or models; query builder usage
from ``DB::table('literal')`` chains.  Tables are resolved through the model
registry, so ``Member`` with ``$table = 'users'`` collides with
``DB::table('users')``.

Queries through relationship methods (``$user->posts()->where(..)``) are not
resolved to a table.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .. import laravel, php_ast
from ..inflector import table_name
from ..issues import AnalyzerMetadata, Category, Severity
from ..provenance import ProvenanceKind, infer, model_name
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

# Calls on a fetched model that query the model's own table
_INSTANCE_QUERY_METHODS = laravel.WRITE_METHODS | laravel.EAGER_LOAD_METHODS | {'fresh', 'refresh'}


@dataclass
class TableUsage:
    eloquent: Dict[str, int] = field(default_factory=dict)       # table -> first line
    querybuilder: Dict[str, int] = field(default_factory=dict)
    models: Dict[str, str] = field(default_factory=dict)         # table -> model


@dataclass
class ClassFrame:
    node: TSNode
    name: str
    usage: TableUsage = field(default_factory=TableUsage)


class MixedQueryVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.classes: List[ClassFrame] = []
        self.whitelist = set(self.options['whitelist'])
        self.mappings: Dict[str, str] = self.options['table_mappings']

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type == 'class_declaration':
            name = scope.current_class_name() or php_ast.declared_name(node) or 'Unknown'
            self.classes.append(ClassFrame(node, name))
            return
        if not self.classes or scope.current_class() is None:
            return
        if scope.current_class().node.key != self.classes[-1].node.key:
            # inside an anonymous class
            return
        if node.type in php_ast.CALL_TYPES and php_ast.is_chain_top(node):
            self._record(node, scope, self.classes[-1].usage)

    def leave_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type == 'class_declaration' and self.classes and \
                self.classes[-1].node.key == node.key:
            self._check(self.classes.pop())

    # -- recording ------------------------------------------------------------

    def _table_for(self, model: str) -> Optional[str]:
        for key in (model, php_ast.short_name(model)):
            if key in self.mappings:
                return self.mappings[key]
        if self.registry.knows(model):
            return self.registry.resolve_table(model)
        return table_name(php_ast.short_name(model))

    def _record(self, node: TSNode, scope: ScopeTracker, usage: TableUsage) -> None:
        chain = php_ast.unwind_chain(node)
        if not chain.calls:
            return
        names = chain.method_names
        to_base = any(n in laravel.TO_BASE_METHODS for n in names)
        if chain.static_class is not None:
            if laravel.is_db_facade(chain.static_class, scope):
                table = laravel.table_literal(chain, scope)
                if table:
                    usage.querybuilder.setdefault(table, node.line)
                return
            if names[0] not in laravel.MODEL_QUERY_METHODS:
                return
            model = model_name(chain.static_class, scope)
        elif chain.root_variable is not None:
            provenance = scope.lookup(chain.root_variable)
            if provenance.kind == ProvenanceKind.QUERY_BUILDER:
                if provenance.table:
                    usage.querybuilder.setdefault(provenance.table, node.line)
                return
            model = provenance.model
            if model is None:
                return
            if provenance.kind == ProvenanceKind.MODEL_CLASS and \
                    chain.segments[0].name not in _INSTANCE_QUERY_METHODS:
                # $user->posts()->where(..) queries another table
                return
        else:
            return
        if model is None:
            return
        table = self._table_for(model)
        if not table:
            return
        usage.models.setdefault(table, model)
        if to_base and self.options['count_to_base']:
            usage.querybuilder.setdefault(table, node.line)
        else:
            usage.eloquent.setdefault(table, node.line)

    # -- evaluation -----------------------------------------------------------

    def _has_model(self, table: str, usage: TableUsage) -> bool:
        return (table in usage.models or self.registry.has_table(table)
                or table in self.mappings.values())

    def _check(self, frame: ClassFrame) -> None:
        if frame.name in self.whitelist or php_ast.short_name(frame.name) in self.whitelist:
            return
        usage = frame.usage
        short = php_ast.short_name(frame.name)
        for table in sorted(set(usage.eloquent) & set(usage.querybuilder)):
            model = usage.models.get(table) or next(iter(self.registry.models_for_table(table)), None)
            self.report(
                usage.querybuilder[table], 'mixed-table-usage',
                f'Class "{short}" uses both Eloquent and Query Builder for table "{table}"',
                Severity.HIGH,
                'Use one approach per table: Query Builder calls bypass the model\'s '
                'global scopes, casts and events. Prefer Eloquent and keep Query '
                'Builder for performance-critical raw queries.',
                {'class': frame.name, 'table': table, 'model': model,
                 'eloquent_line': usage.eloquent[table],
                 'query_builder_line': usage.querybuilder[table]},
            )
        modelled = sorted(t for t in usage.querybuilder if self._has_model(t, usage))
        if usage.eloquent and len(modelled) > self.options['threshold']:
            self.report(
                min(usage.querybuilder[t] for t in modelled), 'excessive-query-builder',
                f'Class "{short}" mixes Eloquent and Query Builder approaches '
                f'({len(usage.eloquent)} Eloquent, {len(modelled)} Query Builder)',
                Severity.LOW,
                'Consider using a consistent approach throughout the class. If the '
                'tables have models, query them through Eloquent.',
                {'class': frame.name, 'tables': modelled,
                 'eloquent_count': len(usage.eloquent), 'query_builder_count': len(modelled)},
            )


class MixedQueryBuilderEloquentAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='mixed-query-builder-eloquent',
        name='Mixed Query Builder and Eloquent',
        description='Detects classes that query the same table through both '
                    'Eloquent and the Query Builder',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('eloquent', 'query-builder', 'consistency', 'database'),
        time_to_fix=20,
    )
    visitor_class = MixedQueryVisitor
    fail_severity = Severity.MEDIUM
    OPTIONS = {
        'threshold': (int, 2),
        'whitelist': (list, []),
        'count_to_base': (bool, False),
        'table_mappings': (dict, {}),
    }

    def summary(self, issues):
        return f'Found {len(issues)} class(es) mixing Query Builder and Eloquent'
