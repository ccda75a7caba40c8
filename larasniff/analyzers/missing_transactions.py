#!/usr/bin/env python3
"""
Multiple database writes in one method without a transaction.

A write is protected when it sits inside the closure passed directly to
``DB::transaction()``, or between ``DB::beginTransaction()`` and the
matching ``commit()``/``rollBack()`` of the same method.  Writes in any
other closure of the method count against the method.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .. import laravel, php_ast
from ..files import is_development_file, is_test_file
from ..issues import AnalyzerMetadata, Category, Severity
from ..provenance import model_name
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

_TRANSACTION_CONTROL = frozenset({'transaction'}) | laravel.TRANSACTION_BEGIN | laravel.TRANSACTION_END

# Collection::push() shares the name of Model::push()
_MEMBER_WRITES = laravel.WRITE_METHODS - {'push'}


@dataclass
class WriteSite:
    line: int
    operation: str
    protected: bool


@dataclass
class MethodFrame:
    node: TSNode
    name: str
    class_name: str
    manual_depth: int = 0
    writes: List[WriteSite] = field(default_factory=list)

    @property
    def unprotected(self) -> List[WriteSite]:
        return [w for w in self.writes if not w.protected]


class TransactionVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.methods: List[MethodFrame] = []

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type in ('method_declaration', 'function_definition'):
            owner = scope.current_class_name()
            self.methods.append(MethodFrame(
                node, php_ast.declared_name(node) or 'unknown',
                php_ast.short_name(owner) if owner else ('Unknown' if scope.in_class() else '')))
            return
        if not self.methods or node.type not in php_ast.CALL_TYPES:
            return
        frame = self.methods[-1]
        chain = php_ast.unwind_chain(node)
        if laravel.db_chain(chain, scope) and node.get_function_name() in _TRANSACTION_CONTROL:
            self._transaction_control(node.get_function_name(), frame)
            return
        operation = self._write_operation(node, chain, scope)
        if operation is not None:
            protected = scope.in_transaction() or frame.manual_depth > 0
            frame.writes.append(WriteSite(node.line, operation, protected))

    def leave_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type in ('method_declaration', 'function_definition') and self.methods and \
                self.methods[-1].node.key == node.key:
            self._check(self.methods.pop())

    @staticmethod
    def _transaction_control(name: str, frame: MethodFrame) -> None:
        if name in laravel.TRANSACTION_BEGIN:
            frame.manual_depth += 1
        elif name in laravel.TRANSACTION_END and frame.manual_depth > 0:
            frame.manual_depth -= 1

    def _write_operation(self, node: TSNode, chain: php_ast.Chain,
                         scope: ScopeTracker) -> Optional[str]:
        name = node.get_function_name()
        if node.type == 'scoped_call_expression':
            written = php_ast.class_name(node.child_by_field('scope'))
            if laravel.is_db_facade(written, scope):
                return f'DB::{name}()' if name in laravel.DB_WRITE_METHODS else None
            if name in laravel.STATIC_MODEL_WRITES and model_name(written, scope) is not None:
                return f'{php_ast.short_name(written)}::{name}()'
            return None
        if node.type not in php_ast.MEMBER_CALLS or name not in _MEMBER_WRITES:
            return None
        root = chain.static_class
        if root is not None and laravel.facade_name(root) in laravel.NON_DB_FACADES:
            return None
        if chain.root_function in ('cache', 'session', 'storage_path', 'collect'):
            return None
        return f'->{name}()'

    def _check(self, frame: MethodFrame) -> None:
        unprotected = frame.unprotected
        if len(unprotected) < self.options['threshold']:
            return
        label = f'{frame.class_name}::{frame.name}' if frame.class_name else frame.name
        lines = ', '.join(str(w.line) for w in frame.writes)
        self.report(
            frame.node.line, 'missing-transaction',
            f'Method "{label}()" has {len(unprotected)} write operations '
            f'without transaction protection',
            Severity.HIGH,
            'Wrap multiple write operations in DB::transaction() so that a failure '
            'rolls back every change. Write operations found at lines: ' + lines,
            {'method': frame.name, 'class': frame.class_name or None,
             'write_count': len(frame.writes), 'unprotected_count': len(unprotected),
             'operations': [w.operation for w in unprotected],
             'lines': [w.line for w in unprotected]},
        )


class MissingDatabaseTransactionsAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='missing-database-transactions',
        name='Missing Database Transactions',
        description='Detects multiple database write operations without transaction protection',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('laravel', 'database', 'transactions', 'data-integrity'),
        time_to_fix=25,
    )
    visitor_class = TransactionVisitor
    OPTIONS = {
        'threshold': (int, 2),
    }

    def applies_to(self, relative_path):
        if is_test_file(relative_path) or is_development_file(relative_path):
            return False
        return super().applies_to(relative_path)

    def summary(self, issues):
        return f'Found {len(issues)} method(s) with multiple writes missing transaction protection'
