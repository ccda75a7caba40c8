#!/usr/bin/env python3
"""
Single-pass traversal shared by every analyzer.

One ``Traverser`` walks a file's tree depth-first, drives the scope tracker
and dispatches each node to the visitors of all analyzers that apply to the
file.  Scope push/pop is tied to the traversal stack, so enter and leave are
balanced whatever the visited code looks like.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from .errors import ParseError
from .issues import Issue, Location, Severity
from .model_registry import ModelRegistry
from .scope import ScopeTracker
from .suppression import NONE, LineSuppressions, file_suppressions
from .ts_adapter import TSNode, parse_php

if TYPE_CHECKING:
    from .analyzers.base import Analyzer

logger = logging.getLogger(__name__)


@dataclass
class FileContext:
    """The file being analysed, shared by all of its visitors."""
    path: str
    relative_path: str
    source: str
    registry: ModelRegistry
    _lines: Optional[List[str]] = field(default=None, repr=False)

    @property
    def lines(self) -> List[str]:
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def line_text(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].strip()
        return ''


class NodeVisitor:
    """Base class for per-file analyzer visitors.

    Subclasses override ``enter_node``/``leave_node`` (and optionally the
    file hooks) and call ``report`` to record issues.
    """

    def __init__(self, analyzer: 'Analyzer', context: FileContext):
        self.analyzer = analyzer
        self.context = context
        self.options = analyzer.options
        self.registry = context.registry
        self.issues: List[Issue] = []
        self.error: Optional[str] = None

    @property
    def analyzer_id(self) -> str:
        return self.analyzer.id

    def enter_file(self, root: TSNode, scope: ScopeTracker) -> None:
        pass

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        pass

    def leave_node(self, node: TSNode, scope: ScopeTracker) -> None:
        pass

    def leave_file(self, root: TSNode, scope: ScopeTracker) -> None:
        pass

    def report(self, at: Union[TSNode, int], code: str, message: str,
               severity: Optional[Severity] = None, recommendation: str = '',
               metadata: Optional[Dict[str, Any]] = None,
               end_line: Optional[int] = None) -> Issue:
        if isinstance(at, TSNode):
            line, column = at.line, at.column
            if end_line is None and at.end_line != at.line:
                end_line = at.end_line
        else:
            line, column = at, None
        issue = Issue(
            code=code,
            message=message,
            severity=severity or self.analyzer.metadata.severity,
            recommendation=recommendation,
            location=Location(self.context.relative_path, line, end_line, column),
            analyzer_id=self.analyzer_id,
            excerpt=self.context.line_text(line) or None,
            metadata=dict(metadata or {}),
        )
        self.issues.append(issue)
        return issue


class Traverser:
    """Walks one tree once for a set of visitors."""

    def __init__(self, tracker: ScopeTracker, visitors: Sequence[NodeVisitor]):
        self.tracker = tracker
        self.visitors = list(visitors)

    def _active(self) -> List[NodeVisitor]:
        return [v for v in self.visitors
                if v.error is None and not self.tracker.is_suppressed(v.analyzer_id)]

    def _dispatch(self, visitors: List[NodeVisitor], hook: str, node: TSNode) -> None:
        for v in visitors:
            if v.error is not None:
                continue
            try:
                getattr(v, hook)(node, self.tracker)
            except Exception as e:
                # one broken analyzer must not take the others down
                logger.exception('%s failed on %s line %d', v.analyzer_id,
                                 v.context.relative_path, node.line)
                v.error = f'{type(e).__name__}: {e}'

    def traverse(self, root: TSNode, suppressions=NONE) -> None:
        tracker = self.tracker
        tracker.begin_file(root, suppressions)
        active = self._active()
        self._dispatch(active, 'enter_file', root)
        stack = [(child, False, False) for child in reversed(root.named_children)]
        while stack:
            node, leaving, pushed = stack.pop()
            if leaving:
                self._dispatch(active, 'leave_node', node)
                if pushed:
                    tracker.leave_scope()
                    active = self._active()
                else:
                    tracker.observe(node)
                continue
            pushed = tracker.enter_scope(node) is not None
            if pushed:
                active = self._active()
            self._dispatch(active, 'enter_node', node)
            stack.append((node, True, pushed))
            stack.extend((child, False, False) for child in reversed(node.named_children))
        self._dispatch(self._active(), 'leave_file', root)
        tracker.end_file()


@dataclass
class FileOutcome:
    relative_path: str
    issues: Dict[str, List[Issue]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    parse_error: Optional[str] = None


def analyze_source(analyzers: Sequence['Analyzer'], source: str, path: str,
                   relative_path: Optional[str] = None,
                   registry: Optional[ModelRegistry] = None) -> FileOutcome:
    """Run the applicable analyzers over one file's source."""
    relative_path = relative_path or path
    outcome = FileOutcome(relative_path)
    applicable = [a for a in analyzers if a.applies_to(relative_path)]
    if not applicable:
        return outcome
    try:
        root = parse_php(source)
    except ParseError as e:
        logger.debug('Skipping %s: %s', relative_path, e)
        outcome.parse_error = str(e)
        return outcome

    registry = registry if registry is not None else ModelRegistry()
    context = FileContext(path, relative_path, source, registry)
    visitors = [a.create_visitor(context) for a in applicable]
    Traverser(ScopeTracker(registry), visitors).traverse(root, file_suppressions(root))

    lines = LineSuppressions(root)
    for v in visitors:
        if v.error is not None:
            outcome.errors[v.analyzer_id] = v.error
        issues = v.issues
        if lines:
            issues = [i for i in issues if not lines.suppresses(i.location.line, v.analyzer_id)]
        outcome.issues[v.analyzer_id] = issues
    return outcome
