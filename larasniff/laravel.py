#!/usr/bin/env python3
"""
Laravel vocabulary shared by the analyzers: facades, query-builder and
Eloquent method names, write operations and transaction boundaries.
"""

from typing import TYPE_CHECKING, Optional

from . import php_ast
from .php_ast import Chain
from .ts_adapter import TSNode

if TYPE_CHECKING:
    from .scope import ScopeTracker

FACADES = frozenset({
    'App', 'Artisan', 'Auth', 'Blade', 'Broadcast', 'Bus', 'Cache', 'Config',
    'Cookie', 'Crypt', 'Date', 'DB', 'Eloquent', 'Event', 'File', 'Gate', 'Hash',
    'Http', 'Lang', 'Log', 'Mail', 'Notification', 'Password', 'Process', 'Queue',
    'RateLimiter', 'Redirect', 'Redis', 'Request', 'Response', 'Route', 'Schema',
    'Session', 'Storage', 'URL', 'Validator', 'View', 'Vite',
})

FACADE_NAMESPACE = 'Illuminate\\Support\\Facades\\'

# Static calls on these never hit a model table
NON_MODEL_CLASSES = FACADES | frozenset({
    'self', 'static', 'parent', 'Carbon', 'Collection', 'Str', 'Arr', 'Closure',
    'Exception', 'Throwable', 'Inertia', 'Livewire', 'Number',
})

# Entry points of an Eloquent query written as `Model::method()`
MODEL_QUERY_METHODS = frozenset({
    'all', 'query', 'where', 'whereIn', 'whereNotIn', 'whereNull', 'whereNotNull',
    'whereBetween', 'whereHas', 'whereDoesntHave', 'whereKey', 'orWhere', 'whereDate',
    'find', 'findOrFail', 'findMany', 'findOr', 'first', 'firstOrFail', 'firstWhere',
    'firstOrCreate', 'firstOrNew', 'updateOrCreate', 'create', 'forceCreate', 'get',
    'with', 'withCount', 'withTrashed', 'onlyTrashed', 'latest', 'oldest', 'orderBy',
    'orderByDesc', 'select', 'count', 'sum', 'max', 'min', 'avg', 'exists', 'pluck',
    'paginate', 'simplePaginate', 'cursorPaginate', 'cursor', 'chunk', 'chunkById',
    'lazy', 'limit', 'take', 'has', 'doesntHave', 'destroy', 'insert', 'upsert',
    'update', 'delete', 'whereRaw', 'selectRaw', 'join', 'leftJoin', 'groupBy',
    'value', 'sole', 'without', 'distinct',
})

# Calls that run the query and return models or a collection
FETCH_ALL_METHODS = frozenset({
    'get', 'all', 'paginate', 'simplePaginate', 'cursorPaginate', 'cursor', 'lazy',
    'lazyById', 'findMany',
})

# Calls that run the query
QUERY_TERMINALS = FETCH_ALL_METHODS | frozenset({
    'first', 'firstOrFail', 'find', 'findOrFail', 'findOr', 'firstWhere', 'sole',
    'value', 'pluck', 'count', 'sum', 'avg', 'min', 'max', 'exists', 'doesntExist',
    'chunk', 'chunkById', 'each', 'update', 'delete', 'insert', 'increment', 'decrement',
})

EAGER_LOAD_METHODS = frozenset({'with', 'load', 'loadMissing'})

# Methods that make a DB facade call a raw query-builder access
DB_QUERY_METHODS = frozenset({
    'table', 'select', 'insert', 'update', 'delete', 'statement', 'unprepared',
    'raw', 'query', 'selectOne', 'scalar', 'affectingStatement', 'cursor',
})

# Eloquent builder -> base query builder
TO_BASE_METHODS = frozenset({'toBase', 'getQuery'})

WRITE_METHODS = frozenset({
    'save', 'saveQuietly', 'push', 'delete', 'forceDelete', 'update', 'increment',
    'decrement', 'touch', 'create', 'insert', 'updateOrCreate', 'firstOrCreate',
    'updateOrInsert', 'upsert', 'sync', 'attach', 'detach', 'toggle',
    'syncWithoutDetaching', 'createMany', 'saveMany', 'restore', 'insertGetId',
    'insertOrIgnore',
})

STATIC_MODEL_WRITES = frozenset({
    'create', 'forceCreate', 'insert', 'update', 'delete', 'destroy', 'forceDelete',
    'upsert', 'updateOrInsert', 'updateOrCreate', 'firstOrCreate', 'insertGetId',
    'insertOrIgnore',
})

DB_WRITE_METHODS = frozenset({'insert', 'update', 'delete', 'statement', 'unprepared',
                              'affectingStatement', 'insertGetId', 'upsert'})

# Stores that are not the relational database
NON_DB_FACADES = frozenset({'Cache', 'Redis', 'RateLimiter', 'Session', 'Storage',
                            'Queue', 'Cookie', 'File', 'Bus', 'Event', 'Mail',
                            'Notification', 'Log'})

TRANSACTION_BEGIN = frozenset({'beginTransaction'})
TRANSACTION_END = frozenset({'commit', 'rollBack', 'rollback'})


def facade_name(name: Optional[str]) -> Optional[str]:
    """Short facade name for `DB` or `Illuminate\\Support\\Facades\\DB`."""
    if not name:
        return None
    name = name.lstrip('\\')
    if name.startswith(FACADE_NAMESPACE):
        name = name[len(FACADE_NAMESPACE):]
    return name if name in FACADES else None


def is_db_facade(name: Optional[str], scope: Optional['ScopeTracker'] = None) -> bool:
    """``DB``, or with a scope any name imported as the DB facade."""
    if facade_name(name) == 'DB':
        return True
    return scope is not None and name is not None and \
        facade_name(scope.resolve_class_name(name)) == 'DB'


def db_chain(chain: Chain, scope: Optional['ScopeTracker'] = None) -> bool:
    """``DB::...`` or ``DB::connection(..)->...``."""
    return is_db_facade(chain.static_class, scope)


def table_literal(chain: Chain, scope: Optional['ScopeTracker'] = None) -> Optional[str]:
    """Table named by ``DB::table('users')`` (alias stripped)."""
    if not db_chain(chain, scope):
        return None
    seg = chain.find('table')
    if seg is None or not seg.arguments:
        return None
    value = php_ast.string_value(seg.arguments[0])
    if not value:
        return None
    return value.split()[0] if ' as ' in value.lower() else value.strip()


def looks_like_model_class(name: Optional[str]) -> bool:
    """Heuristic for class names not known to the registry."""
    if not name or name in ('self', 'static', 'parent'):
        return False
    short = php_ast.short_name(name)
    if short in NON_MODEL_CLASSES or facade_name(name):
        return False
    if name.startswith('Illuminate\\'):
        return False
    return short[:1].isupper() and not short.isupper()


def is_transaction_call(call: TSNode, scope: Optional['ScopeTracker'] = None) -> bool:
    """``DB::transaction(...)`` or ``DB::connection(..)->transaction(...)``."""
    if call.get_function_name() != 'transaction':
        return False
    return db_chain(php_ast.unwind_chain(call), scope)


def is_transaction_closure(node: TSNode, scope: Optional['ScopeTracker'] = None) -> bool:
    """True for the closure passed as first argument to a transaction call."""
    if node.type not in php_ast.CLOSURE_TYPES:
        return False
    arg = node.parent
    if arg is None or arg.type != 'argument':
        return False
    args = arg.parent
    call = args.parent if args is not None else None
    if call is None or not is_transaction_call(call, scope):
        return False
    first = call.get_arguments()
    return bool(first) and first[0].key == arg.key
