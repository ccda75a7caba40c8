#!/usr/bin/env python3
"""``catch (Exception $e)`` and ``catch (Throwable $e)``."""

from typing import List

from ..issues import AnalyzerMetadata, Category, Severity
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

GENERIC_EXCEPTIONS = frozenset({'Exception', 'Throwable'})


def caught_types(catch: TSNode) -> List[str]:
    """Class names of a catch clause as written, e.g. ['\\Exception']."""
    types = catch.child_by_field('type')
    if types is None:
        types = catch.first_child_of_type('type_list')
    if types is None:
        return []
    return [t.strip() for t in types.text.split('|') if t.strip()]


class GenericExceptionVisitor(NodeVisitor):

    def enter_node(self, node, scope):
        if node.type != 'catch_clause':
            return
        for written in caught_types(node):
            bare = written.lstrip('\\')
            if bare not in GENERIC_EXCEPTIONS:
                continue
            imported = scope.names.imports.get(bare)
            if not written.startswith('\\') and imported not in (None, bare):
                # use App\Exceptions\Exception;
                continue
            self.report(
                node, 'generic-exception-catch',
                f'Catching generic {written} instead of specific exception type',
                Severity.LOW,
                'Catch specific exception types (e.g. ModelNotFoundException, '
                'ValidationException) so that unexpected errors are not swallowed.',
                {'exception': bare},
            )


class GenericExceptionCatchAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='generic-exception-catch',
        name='Generic Exception Catch',
        description='Detects catching the generic Exception class instead of specific types',
        category=Category.BEST_PRACTICES,
        severity=Severity.LOW,
        tags=('laravel', 'exceptions', 'error-handling'),
        time_to_fix=20,
    )
    visitor_class = GenericExceptionVisitor

    def summary(self, issues):
        return f'Found {len(issues)} generic exception catch(es)'
