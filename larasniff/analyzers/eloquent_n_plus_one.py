#!/usr/bin/env python3
"""
N+1 query detection.

Two conditions are reported:

* relationship access on a loop variable that is not covered by the eager
  loads of the iterated query (``foreach (Post::all() as $p) $p->user``);
* a query executed inside a loop body (``Post::find($id)`` per iteration).

Only ``foreach`` binds a variable to collection elements, so relationship
access is tracked for ``foreach`` loops alone; ``for``/``while`` bodies are
still checked for queries.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from .. import laravel, php_ast
from ..issues import AnalyzerMetadata, Category, Severity
from ..provenance import ProvenanceKind, covered, infer, model_name
from ..scope import ScopeTracker
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

PLAIN_ATTRIBUTES = frozenset({
    'id', 'created_at', 'updated_at', 'deleted_at', 'name', 'email', 'password',
    'remember_token', 'email_verified_at', 'title', 'content', 'description',
    'status', 'type', 'value', 'data', 'meta', 'slug', 'count', 'total', 'amount',
    'price', 'quantity', 'active', 'enabled', 'pivot', 'exists', 'wasrecentlycreated',
    'timestamps', 'incrementing', 'attributes', 'original', 'relations',
})

# Functions whose result is never a collection of models
_NON_MODEL_SOURCES = frozenset({
    'range', 'explode', 'str_split', 'array_keys', 'array_values', 'array_filter',
    'array_map', 'array_merge', 'array_slice', 'array_unique', 'file', 'glob',
    'scandir', 'json_decode', 'config', 'func_get_args', 'get_object_vars',
    'preg_split', 'array_chunk', 'compact',
})

_LOOP_NAMES = {
    'foreach_statement': 'foreach',
    'for_statement': 'for',
    'while_statement': 'while',
    'do_statement': 'do-while',
}

_READ_TERMINALS = laravel.QUERY_TERMINALS - {
    'update', 'delete', 'insert', 'increment', 'decrement', 'chunk', 'chunkById', 'each',
}

_STATIC_READS = _READ_TERMINALS | {'all'}


@dataclass
class LoopFrame:
    node: TSNode
    loop_type: str
    body_start: int
    body_end: int
    variable: Optional[str] = None
    tracked: bool = False
    model: Optional[str] = None
    eager: Set[str] = field(default_factory=set)
    guarded: Set[str] = field(default_factory=set)
    reported: Set[str] = field(default_factory=set)

    def in_body(self, node: TSNode) -> bool:
        return self.body_start <= node.start_byte and node.end_byte <= self.body_end


class NPlusOneVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.loops: List[LoopFrame] = []
        extra = {a.lower() for a in self.options['plain_attributes']}
        self.plain = PLAIN_ATTRIBUTES | extra

    # -- loops ----------------------------------------------------------------

    def enter_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type in _LOOP_NAMES:
            self._enter_loop(node, scope)
            return
        if not self.loops:
            return
        if node.type in php_ast.MEMBER_CALLS and node.get_function_name() == 'relationLoaded':
            self._guard(node)
        if node.type in php_ast.CHAIN_LINKS or node.type == 'scoped_call_expression':
            if php_ast.is_chain_top(node):
                chain = php_ast.unwind_chain(node)
                self._check_relationship_access(node, chain)
                if self.options['query_in_loop']:
                    self._check_query(node, chain, scope)

    def leave_node(self, node: TSNode, scope: ScopeTracker) -> None:
        if node.type in _LOOP_NAMES and self.loops and self.loops[-1].node.key == node.key:
            self.loops.pop()

    def _enter_loop(self, node: TSNode, scope: ScopeTracker) -> None:
        start, end = php_ast.loop_body_range(node)
        frame = LoopFrame(node, _LOOP_NAMES[node.type], start, end)
        if node.type == 'foreach_statement':
            iterable, value, _body = php_ast.foreach_parts(node)
            frame.variable = php_ast.variable(value)
            if frame.variable is not None and iterable is not None:
                self._track_source(frame, iterable, scope)
        self.loops.append(frame)

    def _track_source(self, frame: LoopFrame, iterable: TSNode, scope: ScopeTracker) -> None:
        provenance = infer(iterable, scope)
        if provenance.kind == ProvenanceKind.MODEL_CLASS:
            frame.tracked = True
            frame.model = provenance.name
            frame.eager = set(provenance.eager_loads)
            return
        if provenance.kind != ProvenanceKind.UNKNOWN:
            # raw query rows and unexecuted builders have no relations
            return
        chain = php_ast.unwind_chain(iterable)
        outer = self._frame_for(chain.root_variable)
        if outer is not None and chain.segments and not any(s.is_call for s in chain.segments):
            # foreach ($post->comments as $comment): inherit `comments.*` loads
            path = '.'.join(s.name for s in chain.segments)
            prefix = path + '.'
            frame.tracked = outer.tracked
            frame.eager = {e[len(prefix):] for e in outer.eager | outer.guarded
                           if e.startswith(prefix)}
            return
        if iterable.type in ('array_creation_expression', 'string', 'encapsed_string'):
            return
        if iterable.type == 'function_call_expression' and \
                iterable.get_function_name() in _NON_MODEL_SOURCES:
            return
        if chain.static_class is not None or (chain.segments and chain.root_variable is None):
            return
        frame.tracked = bool(self.options['track_unknown_sources'])

    def _frame_for(self, variable: Optional[str]) -> Optional[LoopFrame]:
        if variable is None:
            return None
        for frame in reversed(self.loops):
            if frame.variable == variable:
                return frame
        return None

    # -- relationship access --------------------------------------------------

    def _guard(self, call: TSNode) -> None:
        obj = call.child_by_field('object')
        frame = self._frame_for(php_ast.variable(obj))
        if frame is None:
            return
        args = call.get_arguments()
        relation = php_ast.string_value(args[0]) if args else None
        if relation:
            frame.guarded.add(relation)

    def _is_plain(self, name: str) -> bool:
        return not name or '_' in name or name.lower() in self.plain

    def _uncovered_path(self, segments, loaded) -> Optional[str]:
        """First relationship path along a property chain that is not loaded.

        Every segment that is not a plain attribute is read as a relation, so
        ``$post->user->profile`` with only ``user`` loaded gives ``user.profile``.
        """
        path: List[str] = []
        for seg in segments:
            if seg.is_call or self._is_plain(seg.name):
                return None
            path.append(seg.name)
            dotted = '.'.join(path)
            if not covered(dotted, loaded):
                return dotted
        return None

    def _check_relationship_access(self, node: TSNode, chain: php_ast.Chain) -> None:
        frame = self._frame_for(chain.root_variable)
        if frame is None or not frame.tracked or not frame.in_body(node):
            return
        path = self._uncovered_path(chain.segments, frame.eager | frame.guarded)
        if path is None or path in frame.reported:
            return
        frame.reported.add(path)
        model = frame.model or 'Model'
        self.report(
            node, 'n-plus-one-relationship',
            f"Potential N+1 query: accessing '{path}' inside loop",
            Severity.HIGH,
            f"Eager load the relationship before the loop, e.g. "
            f"{php_ast.short_name(model)}::with('{path}')->get() or "
            f"$collection->load('{path}').",
            {'relationship': path, 'variable': frame.variable.lstrip('$'),
             'loop_type': frame.loop_type, 'model': frame.model},
        )

    # -- queries inside loops -------------------------------------------------

    def _check_query(self, node: TSNode, chain: php_ast.Chain, scope: ScopeTracker) -> None:
        if not chain.calls:
            return
        frame = next((f for f in reversed(self.loops) if f.in_body(node)), None)
        if frame is None:
            return
        description = self._query_description(chain, scope)
        if description is None:
            return
        self.report(
            node, 'query-in-loop',
            f'Database query {description} executed inside a {frame.loop_type} loop',
            Severity.HIGH,
            'Load the data once before the loop (whereIn(), with(), or a keyed '
            'collection) instead of querying on every iteration.',
            {'query': description, 'loop_type': frame.loop_type},
        )

    def _query_description(self, chain: php_ast.Chain, scope: ScopeTracker) -> Optional[str]:
        names = chain.method_names
        if chain.static_class is not None:
            if laravel.is_db_facade(chain.static_class, scope):
                if names[0] in ('select', 'selectOne', 'scalar') or \
                        (names[0] in ('table', 'connection') and any(n in _READ_TERMINALS for n in names)):
                    return f'DB::{names[0]}()'
                return None
            if not any(n in _STATIC_READS for n in names):
                return None
            if names[0] not in laravel.MODEL_QUERY_METHODS:
                return None
            model = model_name(chain.static_class, scope)
            if model is None:
                return None
            return f'{php_ast.short_name(model)}::{names[0]}()'
        frame = self._frame_for(chain.root_variable)
        if frame is None or not frame.tracked:
            return None
        first = chain.segments[0]
        # $post->comments()->count()
        if first.is_call and not self._is_plain(first.name) and len(chain.calls) > 1 \
                and any(n in _READ_TERMINALS for n in names[1:]):
            return f'{chain.root_variable}->{first.name}()->{names[-1]}()'
        return None


class EloquentNPlusOneAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='eloquent-n-plus-one',
        name='Eloquent N+1 Query',
        description='Detects relationship access and queries inside loops that '
                    'cause one query per iteration',
        category=Category.BEST_PRACTICES,
        severity=Severity.HIGH,
        tags=('performance', 'eloquent', 'database', 'n+1'),
        time_to_fix=15,
    )
    visitor_class = NPlusOneVisitor
    OPTIONS = {
        'plain_attributes': (list, []),
        'query_in_loop': (bool, True),
        'track_unknown_sources': (bool, True),
    }

    def summary(self, issues):
        return f'Found {len(issues)} potential N+1 query problem(s)'
