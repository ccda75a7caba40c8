#!/usr/bin/env python3
"""
Failures that disappear without a trace.

Three shapes are reported:

* empty catch blocks, unless a comment says the exception is ignored on
  purpose;
* catch blocks that neither log, report, rethrow nor fall back to a
  meaningful value (and broad ``Exception``/``Throwable``/``Error`` catches
  that do not rethrow);
* the ``@`` error-suppression operator.
"""

import re
from typing import Iterable, List, Optional

from .. import laravel, php_ast
from ..files import PathFilter
from ..issues import AnalyzerMetadata, Category, Severity
from ..scope import CLASS_SCOPES, ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer
from .generic_exception_catch import caught_types

BROAD_EXCEPTIONS = ('Throwable', 'Exception', 'Error')

INTENTIONAL_MARKERS = (
    'intentional', 'deliberately', 'on purpose', 'expected to fail',
    'expected exception', 'safe to ignore', 'safely ignore', 'can be ignored',
    'may be ignored', 'optional', 'not critical', 'non-critical', 'best effort',
    'best-effort', 'fire and forget', 'fire-and-forget', 'no action needed',
    'no action required', 'nothing to do', 'noop', 'no-op', '@suppress', '@ignore',
    'phpstan-ignore', 'psalm-suppress', 'swallow', "don't care", "doesn't matter",
    'not important',
)

LOG_METHODS = frozenset({
    'error', 'warning', 'info', 'debug', 'log', 'critical', 'alert', 'emergency',
    'notice', 'captureException', 'notifyException', 'report', 'notify',
})
REPORTING_FUNCTIONS = frozenset({'logger', 'report', 'abort', 'abort_if', 'abort_unless', 'rescue'})
ERROR_TRACKERS = ('Sentry', 'Bugsnag', 'Raygun', 'Rollbar', 'Honeybadger')
HANDLER_HINTS = ('log', 'error', 'exception', 'report', 'handle', 'notify', 'fail')

FALLBACK_VARIABLES = ('default', 'fallback', 'backup', 'cached', 'empty', 'placeholder',
                      'alternative')
FALLBACK_CALLS = ('default', 'fallback', 'backup', 'empty', 'cached', 'retry', 'attempt',
                  'recover', 'restore')
FALLBACK_STORES = frozenset({'Cache', 'Config', 'Session', 'Storage', 'Redis'})

_CALLS = php_ast.CALL_TYPES | {'object_creation_expression'}


def wildcard(patterns: Iterable[str]) -> Optional[re.Pattern]:
    """Case-insensitive matcher where `*` stands for any text."""
    parts = [re.escape(p).replace(r'\*', '.*') for p in patterns if p]
    if not parts:
        return None
    return re.compile('^(?:' + '|'.join(parts) + ')$', re.IGNORECASE)


def _matches(pattern: Optional[re.Pattern], *names: str) -> bool:
    return pattern is not None and any(n and pattern.match(n) for n in names)


def is_intentional(comment: str) -> bool:
    lowered = comment.lower()
    return any(marker in lowered for marker in INTENTIONAL_MARKERS)


def body_statements(catch: TSNode) -> List[TSNode]:
    body = catch.child_by_field('body') or catch.first_child_of_type('compound_statement')
    return php_ast.statements(body)


def body_comments(catch: TSNode) -> List[str]:
    body = catch.child_by_field('body') or catch.first_child_of_type('compound_statement')
    if body is None:
        return []
    return [c.text for c in body.named_children if c.type == 'comment']


def catch_variable(catch: TSNode) -> Optional[str]:
    name = catch.child_by_field('name')
    if name is None:
        name = catch.first_child_of_type('variable_name')
    return name.text if name is not None else None


def local_nodes(statements: List[TSNode]) -> Iterable[TSNode]:
    for stmt in statements:
        yield stmt
        yield from php_ast.walk_local(stmt)


# ---------------------------------------------------------------------------
# What counts as handling
# ---------------------------------------------------------------------------

def is_session_target(obj: Optional[TSNode]) -> bool:
    if obj is None:
        return False
    if obj.type == 'function_call_expression':
        return obj.get_function_name() == 'session'
    return obj.type == 'variable_name' and 'session' in obj.text.lower()


def is_reporting_call(expr: TSNode) -> bool:
    t = expr.type
    if t == 'scoped_call_expression':
        written = php_ast.class_name(expr.child_by_field('scope')) or ''
        facade = laravel.facade_name(written)
        if facade == 'Log':
            return True
        if facade == 'DB' and expr.get_function_name() in laravel.TRANSACTION_END:
            return True
        return any(tracker in written for tracker in ERROR_TRACKERS)
    if t == 'function_call_expression':
        name = expr.get_function_name()
        if php_ast.short_name(name) in REPORTING_FUNCTIONS:
            return True
        return any(tracker in name for tracker in ERROR_TRACKERS)
    if t in php_ast.MEMBER_CALLS:
        method = expr.get_function_name()
        if method in LOG_METHODS:
            return True
        obj = expr.child_by_field('object')
        if method in ('flash', 'put', 'push') and is_session_target(obj):
            return True
        if php_ast.variable(obj) == '$this':
            lowered = method.lower()
            return any(hint in lowered for hint in HANDLER_HINTS)
    return False


def _is_call(node: Optional[TSNode]) -> bool:
    return node is not None and node.type in _CALLS


def is_fallback_assignment(assign: TSNode) -> bool:
    left = assign.child_by_field('left')
    right = assign.child_by_field('right')
    target = php_ast.variable(left)
    if target and any(p in target.lower() for p in FALLBACK_VARIABLES):
        return True
    if right is None:
        return False
    t = right.type
    if t in php_ast.MEMBER_CALLS or t == 'function_call_expression':
        name = php_ast.short_name(right.get_function_name()).lower()
        return any(p in name for p in FALLBACK_CALLS)
    if t == 'scoped_call_expression':
        written = php_ast.class_name(right.child_by_field('scope')) or ''
        if php_ast.short_name(written) not in FALLBACK_STORES:
            return False
        method = right.get_function_name()
        if method == 'get':
            return len(right.get_arguments()) >= 2
        return method in ('remember', 'rememberForever', 'pull')
    if t == 'binary_expression':
        op = right.child_by_field('operator')
        return op is not None and op.text == '??' and _is_call(right.child_by_field('right'))
    if t == 'conditional_expression':
        return _is_call(right.child_by_field('alternative'))
    return t == 'object_creation_expression'


def handles_failure(node: TSNode) -> bool:
    """Logging, reporting or a graceful fallback."""
    if node.type in ('return_statement', 'continue_statement', 'break_statement'):
        return True
    if node.type != 'expression_statement' or not node.named_children:
        return False
    expr = node.named_children[0]
    if expr.type == 'assignment_expression':
        return is_fallback_assignment(expr)
    return is_reporting_call(expr)


def rethrows(node: TSNode) -> bool:
    return node.type in ('throw_expression', 'throw_statement')


def is_error_suppression(node: TSNode) -> bool:
    # older grammars parse the @ operator as a unary operator
    return node.type == 'error_suppression_expression' or \
        (node.type == 'unary_op_expression' and node.has_token('@'))


# ---------------------------------------------------------------------------
# Visitor
# ---------------------------------------------------------------------------

class SilentFailureVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.classes = wildcard(self.options['whitelist_classes'])
        self.exceptions = wildcard(self.options['whitelist_exceptions'])
        self.functions = wildcard(self.options['whitelist_error_suppression_functions'])
        self.static_methods = wildcard(self.options['whitelist_error_suppression_static_methods'])
        self.instance_methods = wildcard(self.options['whitelist_error_suppression_instance_methods'])

    def _in_whitelisted_class(self, scope: ScopeTracker) -> bool:
        return any(s.kind in CLASS_SCOPES and s.name and
                   _matches(self.classes, php_ast.short_name(s.name), s.name)
                   for s in scope.frames())

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type == 'catch_clause':
            if not self._in_whitelisted_class(scope):
                self._check_catch(node)
        elif is_error_suppression(node):
            if not self._in_whitelisted_class(scope):
                self._check_suppression(node)

    # -- catch blocks ---------------------------------------------------------

    def _check_catch(self, catch: TSNode) -> None:
        types = [t.lstrip('\\') for t in caught_types(catch)]
        broad = [php_ast.short_name(t) for t in types if php_ast.short_name(t) in BROAD_EXCEPTIONS]
        if not broad and any(_matches(self.exceptions, t, php_ast.short_name(t)) for t in types):
            return
        statements = body_statements(catch)
        if not statements:
            if any(is_intentional(c) for c in body_comments(catch)):
                return
            self.report(
                catch, 'empty-catch',
                'Empty catch block silently swallows exceptions',
                Severity.HIGH,
                'Never leave a catch block empty. At minimum log the exception; if it '
                'really can be ignored, add a comment explaining why.',
                {'exceptions': types},
                end_line=catch.line,
            )
            return
        nodes = list(local_nodes(statements))
        has_rethrow = any(rethrows(n) for n in nodes)
        if broad and not has_rethrow:
            caught = '|'.join(broad)
            self.report(
                catch, 'broad-exception-catch',
                f'Catching {caught} is overly broad and can mask fatal errors',
                Severity.HIGH,
                f'Catch specific exception types instead of {caught}. Broad catches hide '
                f'programming errors like TypeError and ArgumentCountError.',
                {'exceptions': broad},
                end_line=catch.line,
            )
        variable = catch_variable(catch)
        if variable and any(n.type == 'variable_name' and n.text == variable for n in nodes):
            return
        if has_rethrow or any(handles_failure(n) for n in nodes):
            return
        self.report(
            catch, 'unlogged-catch',
            'Catch block does not log exception or rethrow',
            Severity.MEDIUM,
            'Log caught exceptions with Log::error() or report(), or rethrow them. Silent '
            'failures make debugging extremely difficult.',
            {'exceptions': types},
            end_line=catch.line,
        )

    # -- @ operator -----------------------------------------------------------

    def _check_suppression(self, node: TSNode) -> None:
        expr = next((c for c in node.named_children if c.type != 'comment'), None)
        if expr is not None and self._whitelisted_suppression(expr):
            return
        if self._inside_catch(node):
            message = 'Error suppression operator (@) inside catch block creates double silencing'
            severity = Severity.HIGH
        elif expr is not None and self._dynamic_call(expr):
            message = 'Dynamic error suppression is particularly dangerous'
            severity = Severity.HIGH
        else:
            message = 'Error suppression operator (@) hides errors'
            severity = Severity.MEDIUM
        self.report(
            node, 'error-suppression', message, severity,
            'Dynamic or nested error suppression is highly discouraged. Use an explicit '
            'try/catch with logging.' if severity == Severity.HIGH else
            'Avoid the @ operator. Handle errors explicitly with try/catch or check '
            'return values.',
            {'expression': expr.text if expr is not None else ''},
        )

    def _whitelisted_suppression(self, expr: TSNode) -> bool:
        name = expr.get_function_name()
        if not name:
            return False
        if expr.type == 'function_call_expression':
            return _matches(self.functions, name, php_ast.short_name(name))
        if expr.type == 'scoped_call_expression':
            written = php_ast.class_name(expr.child_by_field('scope')) or ''
            return _matches(self.static_methods, f'{written}::{name}',
                            f'{php_ast.short_name(written)}::{name}')
        if expr.type in php_ast.MEMBER_CALLS:
            return _matches(self.instance_methods, name)
        return False

    @staticmethod
    def _dynamic_call(expr: TSNode) -> bool:
        if expr.type not in php_ast.CALL_TYPES:
            return False
        if expr.type == 'scoped_call_expression' and \
                php_ast.class_name(expr.child_by_field('scope')) is None:
            return True
        return not expr.get_function_name()

    @staticmethod
    def _inside_catch(node: TSNode) -> bool:
        parent = node.parent
        while parent is not None:
            if parent.type == 'catch_clause':
                return True
            if parent.type in php_ast.FUNCTION_LIKE or parent.type in php_ast.CLASS_LIKE:
                return False
            parent = parent.parent
        return False


class SilentFailureAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='silent-failure',
        name='Silent Failure',
        description='Detects empty catch blocks and error suppression that hide failures',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('laravel', 'exceptions', 'error-handling', 'debugging', 'monitoring'),
        time_to_fix=20,
    )
    visitor_class = SilentFailureVisitor
    OPTIONS = {
        'whitelist_dirs': (list, ['tests', 'database/seeders', 'database/factories']),
        'whitelist_classes': (list, ['*Test', '*TestCase', '*Seeder', 'DatabaseSeeder']),
        'whitelist_exceptions': (list, ['ModelNotFoundException', 'NotFoundException',
                                        'NotFoundHttpException', 'ValidationException']),
        'whitelist_error_suppression_functions': (list, ['unlink', 'fopen', 'file_get_contents',
                                                         'mkdir', 'rmdir']),
        'whitelist_error_suppression_static_methods': (list, [
            'Storage::delete', 'Storage::deleteDirectory', 'File::delete', 'File::deleteDirectory',
        ]),
        'whitelist_error_suppression_instance_methods': (list, ['delete', 'close', 'unlink']),
    }

    def __init__(self, options=None, registry=None):
        super().__init__(options, registry)
        self.whitelisted_dirs = PathFilter(d.rstrip('/') + '/*' for d in self.options['whitelist_dirs'])

    def applies_to(self, relative_path):
        return not self.whitelisted_dirs.matches(relative_path) and super().applies_to(relative_path)

    def summary(self, issues):
        return f'Found {len(issues)} silent failure(s)'
