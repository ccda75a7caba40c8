#!/usr/bin/env python3
"""
Common interface for all analyzers.

An analyzer is a self-contained rule: it declares its metadata and options,
hands out a fresh ``NodeVisitor`` per file, and turns the issues its
visitors collect into an ``AnalysisResult``.  The runner never needs to know
what a rule checks.
"""

import time
from abc import ABC
from typing import Any, Dict, List, Optional, Tuple, Type

from ..config import resolve_options
from ..files import PathFilter, relative_path
from ..issues import AnalysisResult, AnalyzerMetadata, Issue, Severity, Status
from ..model_registry import ModelRegistry
from ..visitor import FileContext, NodeVisitor, analyze_source

# Recognised by every analyzer
COMMON_OPTIONS: Dict[str, Tuple[type, Any]] = {
    'excluded_paths': (list, []),
}


class Analyzer(ABC):
    metadata: AnalyzerMetadata
    visitor_class: Type[NodeVisitor] = NodeVisitor
    OPTIONS: Dict[str, Tuple[type, Any]] = {}
    # Issues below this severity produce a warning instead of a failure
    fail_severity: Severity = Severity.LOW
    # Globs of files this rule never looks at
    default_excluded: Tuple[str, ...] = ()

    def __init__(self, options: Optional[Dict[str, Any]] = None,
                 registry: Optional[ModelRegistry] = None):
        schema = dict(COMMON_OPTIONS)
        schema.update(self.OPTIONS)
        self.options = resolve_options(self.id, schema, options)
        self.registry = registry if registry is not None else ModelRegistry()
        self._excluded = PathFilter(list(self.default_excluded) + self.options['excluded_paths'])

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def name(self) -> str:
        return self.metadata.name

    def applies_to(self, relative_path: str) -> bool:
        return not self._excluded.matches(relative_path)

    def create_visitor(self, context: FileContext) -> NodeVisitor:
        return self.visitor_class(self, context)

    def finalize(self, issues: List[Issue]) -> List[Issue]:
        """Hook for rules that decide across files; runs after all files."""
        return issues

    def summary(self, issues: List[Issue]) -> str:
        return f'Found {len(issues)} issue(s)'

    def result(self, issues: List[Issue], execution_time: float = 0.0,
               errors: Optional[Dict[str, str]] = None,
               files_analyzed: int = 0) -> AnalysisResult:
        issues = sorted(self.finalize(list(issues)), key=lambda i: i.sort_key)
        meta = {'files_analyzed': files_analyzed}
        if errors:
            first = sorted(errors.items())[0]
            return AnalysisResult(self.id, Status.ERROR,
                                  f'Analyzer failed on {first[0]}: {first[1]}',
                                  issues, execution_time, {**meta, 'errors': dict(errors)})
        if not issues:
            return AnalysisResult(self.id, Status.PASSED, f'No {self.name.lower()} issues found',
                                  [], execution_time, meta)
        if any(i.severity >= self.fail_severity for i in issues):
            status = Status.FAILED
        else:
            status = Status.WARNING
        return AnalysisResult(self.id, status, self.summary(issues), issues, execution_time, meta)

    # -- convenience entry points ---------------------------------------------

    def analyze_code(self, code: str, file_path: str = 'app/Example.php') -> AnalysisResult:
        """Run this analyzer over one source string."""
        start = time.time()
        outcome = analyze_source([self], code, file_path, file_path, self.registry)
        errors = {file_path: e for e in outcome.errors.values()}
        return self.result(outcome.issues.get(self.id, []), time.time() - start, errors, 1)

    def analyze_paths(self, base_path: str, files: List[str]) -> AnalysisResult:
        """Run this analyzer over files (absolute paths) of a project."""
        start = time.time()
        issues: List[Issue] = []
        errors: Dict[str, str] = {}
        for fp in files:
            with open(fp, 'r', encoding='utf-8', errors='replace') as f:
                source = f.read()
            rel = relative_path(fp, base_path)
            outcome = analyze_source([self], source, fp, rel, self.registry)
            issues.extend(outcome.issues.get(self.id, []))
            errors.update({rel: e for e in outcome.errors.values()})
        return self.result(issues, time.time() - start, errors, len(files))

    def __repr__(self):
        return f'<{type(self).__name__} {self.id}>'

