#!/usr/bin/env python3
"""
Repeated ``where`` chains that should be a model scope.

Visitors record every run of two or more ``where*`` calls of a chain as a
candidate; ``finalize`` groups the candidates of all files by signature and
keeps the patterns seen often enough.
"""

import os
from typing import Dict, List, Optional

from .. import php_ast
from ..issues import AnalyzerMetadata, Category, Issue, Severity
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

_LITERAL_TYPES = frozenset({'integer', 'float', 'boolean', 'null'})


def literal_argument(arg: TSNode) -> Optional[str]:
    value = php_ast.argument_value(arg)
    if value is None:
        return None
    s = php_ast.string_value(value)
    if s is not None:
        return s
    if value.type in _LITERAL_TYPES:
        return value.text
    return None


def where_calls(chain: php_ast.Chain) -> List[php_ast.Segment]:
    return [s for s in chain.segments if s.is_call and
            (s.name.startswith('where') or s.name == 'orWhere')]


def signature(calls: List[php_ast.Segment]) -> str:
    parts = []
    for call in calls:
        args = [a for a in (literal_argument(x) for x in call.arguments) if a is not None]
        parts.append(f"{call.name}({','.join(args)})")
    return '->'.join(parts)


def pattern(calls: List[php_ast.Segment]) -> str:
    parts = []
    for call in calls:
        args = [a for a in (literal_argument(x) for x in call.arguments) if a is not None]
        if args:
            quoted = "', '".join(args[:2])
            parts.append(f"{call.name}('{quoted}', ...)")
        else:
            parts.append(f'{call.name}(...)')
    return '->'.join(parts)


class ModelScopeVisitor(NodeVisitor):

    def enter_node(self, node, scope):
        if node.type not in php_ast.CALL_TYPES or not php_ast.is_chain_top(node):
            return
        calls = where_calls(php_ast.unwind_chain(node))
        size = self.options['min_chain_length']
        if len(calls) < size:
            return
        for start in range(len(calls)):
            for end in range(start + size, len(calls) + 1):
                run = calls[start:end]
                self.report(
                    node.line, 'repeated-query-pattern', pattern(run), Severity.LOW,
                    metadata={'signature': signature(run), 'pattern': pattern(run)},
                )


class MissingModelScopeAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='missing-model-scope',
        name='Missing Model Scope',
        description='Detects repeated query patterns that should be extracted to model scopes',
        category=Category.BEST_PRACTICES,
        severity=Severity.LOW,
        tags=('laravel', 'eloquent', 'reusability', 'dry'),
        time_to_fix=15,
    )
    visitor_class = ModelScopeVisitor
    OPTIONS = {
        'min_occurrences': (int, 2),
        'min_chain_length': (int, 2),
    }

    def finalize(self, issues: List[Issue]) -> List[Issue]:
        groups: Dict[str, List[Issue]] = {}
        for issue in sorted(issues, key=lambda i: i.sort_key):
            groups.setdefault(issue.metadata['signature'], []).append(issue)
        found = []
        for sig, occurrences in groups.items():
            count = len(occurrences)
            if count < self.options['min_occurrences']:
                continue
            first = occurrences[0]
            where = ', '.join(f'{os.path.basename(o.location.file)}:{o.location.line}'
                              for o in occurrences[:3])
            found.append(Issue(
                code='repeated-query-pattern',
                message=f'Query pattern "{first.metadata["pattern"]}" appears {count} times '
                        f'across the codebase',
                severity=Severity.LOW,
                recommendation=f'Extract this query pattern to a model scope for reusability. '
                               f'Found {count} occurrences at: {where}',
                location=first.location,
                analyzer_id=self.id,
                excerpt=first.excerpt,
                metadata={'signature': sig, 'pattern': first.metadata['pattern'],
                          'count': count,
                          'locations': [f'{o.location.file}:{o.location.line}' for o in occurrences]},
            ))
        return found

    def summary(self, issues):
        return f'Found {len(issues)} repeated query pattern(s) that should be scopes'
