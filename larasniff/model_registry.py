#!/usr/bin/env python3
"""
Model registry: which classes are Eloquent models, and which table each one
maps to.

The registry is built once per run from the configured model directories,
before any file is analysed, and is read-only afterwards so that worker
threads can share it.  Inheritance is kept as an explicit graph
(class -> parent) and resolved iteratively with cycle detection.

Table precedence for a model, walking from the class up its ancestry:

1. ``getTable()`` returning a string literal unconditionally;
2. a ``$table`` property with a string literal;
3. the pluralized snake_case name of the model's own class.

A dynamic ``getTable()`` or ``$table`` with no literal fallback in the same
class makes the model unresolvable; it is left out of the table map.
"""

import logging
import os
import threading
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from . import php_ast
from .errors import ParseError
from .inflector import table_name
from .names import NameContext, iter_declarations, qualify
from .registry_cache import RegistryCache
from .ts_adapter import TSNode, parse_php

logger = logging.getLogger(__name__)

ORM_BASE_CLASSES = frozenset({
    'Illuminate\\Database\\Eloquent\\Model',
    'Illuminate\\Foundation\\Auth\\User',
    'Illuminate\\Database\\Eloquent\\Relations\\Pivot',
    'Illuminate\\Database\\Eloquent\\Relations\\MorphPivot',
})

# Written without namespace or import in legacy code (class aliases)
UNQUALIFIED_BASES = frozenset({'Model', 'Eloquent', 'Authenticatable', 'Pivot', 'MorphPivot'})


@dataclass
class ClassRecord:
    """What one class declaration says about itself."""
    name: str                       # fully-qualified
    parent: Optional[str] = None    # resolved through namespace/imports
    parent_written: Optional[str] = None
    file: str = ''
    line: int = 0
    table_property: Optional[str] = None
    table_property_dynamic: bool = False
    table_method: Optional[str] = None
    table_method_dynamic: bool = False

    @property
    def short_name(self) -> str:
        return php_ast.short_name(self.name)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'ClassRecord':
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _table_method(class_node: TSNode) -> Tuple[Optional[str], bool]:
    """(literal, dynamic) for a ``getTable()`` override."""
    for method in php_ast.class_methods(class_node):
        if php_ast.declared_name(method) != 'getTable':
            continue
        body = php_ast.method_body(method)
        if body is None:
            return None, False
        returns = php_ast.return_expressions(body)
        if not returns:
            return None, True
        if len(returns) == 1:
            expr = returns[0]
            literal = php_ast.string_value(expr)
            top_level = [s for s in php_ast.statements(body) if s.type == 'return_statement']
            if literal is not None and top_level:
                return literal, False
            if expr is not None and _is_parent_get_table(expr):
                return None, False
        return None, True
    return None, False


def _is_parent_get_table(expr: TSNode) -> bool:
    chain = php_ast.unwind_chain(expr)
    return chain.static_class == 'parent' and chain.method_names == ['getTable']


def _table_property(class_node: TSNode) -> Tuple[Optional[str], bool]:
    for name, value, _decl in php_ast.class_properties(class_node):
        if name != 'table':
            continue
        if value is None:
            return None, False
        literal = php_ast.string_value(value)
        if literal is not None:
            return literal, False
        return None, True
    return None, False


def extract_classes(root: TSNode, file_path: str = '') -> List[ClassRecord]:
    """Class records for every named class declared at file level."""
    records = []
    for stmt, ctx in iter_declarations(root):
        if stmt.type != 'class_declaration':
            continue
        records.append(class_record(stmt, ctx, file_path))
    return records


def class_record(class_node: TSNode, ctx: NameContext, file_path: str = '') -> ClassRecord:
    written = php_ast.parent_class_name(class_node)
    parent_text = None
    if written is not None:
        base = class_node.first_child_of_type('base_clause')
        raw = next((c.text for c in base.named_children
                    if c.type in ('name', 'qualified_name')), written)
        parent_text = ctx.resolve(raw)
    prop, prop_dynamic = _table_property(class_node)
    meth, meth_dynamic = _table_method(class_node)
    return ClassRecord(
        name=qualify(ctx.namespace, php_ast.declared_name(class_node)),
        parent=parent_text,
        parent_written=written,
        file=file_path,
        line=class_node.line,
        table_property=prop,
        table_property_dynamic=prop_dynamic,
        table_method=meth,
        table_method_dynamic=meth_dynamic,
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ModelRegistry:
    """Read-only class graph and table map for one analysis run."""

    def __init__(self, records: Iterable[ClassRecord] = (),
                 table_mappings: Optional[Dict[str, str]] = None):
        self._classes: Dict[str, ClassRecord] = {}
        self._by_short: Dict[str, List[str]] = {}
        for record in records:
            if not record.name:
                continue
            if record.name in self._classes:
                logger.debug('Duplicate class %s in %s, keeping %s', record.name,
                             record.file, self._classes[record.name].file)
                continue
            self._classes[record.name] = record
            self._by_short.setdefault(record.short_name, []).append(record.name)
        self._mappings: Dict[str, str] = {}
        for cls, table in (table_mappings or {}).items():
            self._mappings[cls.lstrip('\\')] = table
        self._models: Dict[str, bool] = {}
        self._tables: Dict[str, str] = {}
        for name in sorted(self._classes):
            if self._resolve_is_model(name):
                self._models[name] = True
                table = self._resolve_table(name)
                if table is not None:
                    self._tables[name] = table
        self._by_table: Dict[str, List[str]] = {}
        for name, table in sorted(self._tables.items()):
            self._by_table.setdefault(table, []).append(name)

    # -- building -------------------------------------------------------------

    @classmethod
    def build(cls, base_path: str, model_paths: Iterable[str],
              table_mappings: Optional[Dict[str, str]] = None,
              cache_dir: Optional[str] = None) -> 'ModelRegistry':
        """Scan the model directories under `base_path`.

        Missing directories and unparseable files are skipped; the result is
        always a registry, possibly empty.
        """
        dirs = [os.path.join(base_path, p) for p in model_paths]
        cache = RegistryCache(cache_dir, dirs) if cache_dir else None
        files = _model_files(dirs)
        records = []
        for fp in files:
            try:
                with open(fp, 'r', encoding='utf-8', errors='replace') as f:
                    content = f.read()
            except OSError as e:
                logger.debug('Could not read model file %s: %s', fp, e)
                continue
            cached = cache.get(fp, content) if cache is not None else None
            if cached is not None:
                records.extend(ClassRecord.from_dict(d) for d in cached)
                continue
            try:
                found = extract_classes(parse_php(content), fp)
            except ParseError as e:
                logger.debug('Skipping unparseable model file %s: %s', fp, e)
                found = []
            if cache is not None:
                cache.put(fp, content, [r.to_dict() for r in found])
            records.extend(found)
        if cache is not None:
            cache.prune(files)
            cache.save()
        registry = cls(records, table_mappings)
        logger.info('Model registry: %d classes, %d models, %d tables',
                    len(registry._classes), len(registry._models), len(registry._by_table))
        return registry

    # -- graph ----------------------------------------------------------------

    def find(self, name: Optional[str]) -> Optional[str]:
        """FQCN of a scanned class, by FQCN or by an unambiguous short name."""
        if not name:
            return None
        name = name.lstrip('\\')
        if name in self._classes:
            return name
        candidates = self._by_short.get(php_ast.short_name(name), [])
        if len(candidates) == 1:
            return candidates[0]
        return None

    def _parent(self, record: ClassRecord) -> Optional[str]:
        if record.parent is None:
            return None
        if record.parent in self._classes:
            return record.parent
        if record.parent in ORM_BASE_CLASSES:
            return record.parent
        local = self.find(record.parent_written or record.parent)
        if local is not None and local != record.name:
            return local
        return record.parent

    def _is_base(self, name: str, record: ClassRecord) -> bool:
        if name in ORM_BASE_CLASSES:
            return True
        # unresolvable bare `Model` etc. with no scanned class of that name
        return (name not in self._classes
                and (record.parent_written or '').lstrip('\\') in UNQUALIFIED_BASES)

    def _walk(self, name: str) -> Tuple[List[str], bool]:
        """Ancestry path starting at `name` and whether it reaches the ORM base."""
        path: List[str] = []
        seen: Set[str] = set()
        current = name
        while current is not None:
            if current in seen:
                logger.debug('Inheritance cycle through %s', current)
                return path, False
            seen.add(current)
            path.append(current)
            record = self._classes.get(current)
            if record is None:
                return path, False
            parent = self._parent(record)
            if parent is None:
                return path, False
            if self._is_base(parent, record):
                path.append(parent)
                return path, True
            current = parent
        return path, False

    def _resolve_is_model(self, name: str) -> bool:
        return self._walk(name)[1]

    def _resolve_table(self, name: str) -> Optional[str]:
        record = self._classes[name]
        for key in (name, record.short_name):
            if key in self._mappings:
                return self._mappings[key]
        path, _ = self._walk(name)
        for cls in path:
            rec = self._classes.get(cls)
            if rec is None:
                break
            if rec.table_method is not None:
                return rec.table_method
            if rec.table_method_dynamic:
                return rec.table_property
            if rec.table_property is not None:
                return rec.table_property
            if rec.table_property_dynamic:
                return None
        return table_name(record.short_name)

    # -- queries --------------------------------------------------------------

    def is_model(self, name: Optional[str]) -> bool:
        fq = self.find(name)
        return fq is not None and self._models.get(fq, False)

    def knows(self, name: Optional[str]) -> bool:
        return self.find(name) is not None

    def resolve_table(self, name: Optional[str]) -> Optional[str]:
        fq = self.find(name)
        if fq is None:
            return None
        return self._tables.get(fq)

    def parent_of(self, name: str) -> Optional[str]:
        fq = self.find(name)
        if fq is None:
            return None
        return self._parent(self._classes[fq])

    def ancestors(self, name: str) -> List[str]:
        """Ancestor names, nearest first, ending at the first unknown class."""
        fq = self.find(name)
        if fq is None:
            return []
        return self._walk(fq)[0][1:]

    def models(self) -> List[str]:
        return sorted(self._models)

    def tables(self) -> Set[str]:
        return set(self._by_table)

    def has_table(self, table: str) -> bool:
        return table in self._by_table

    def models_for_table(self, table: str) -> List[str]:
        return list(self._by_table.get(table, []))

    def record(self, name: str) -> Optional[ClassRecord]:
        fq = self.find(name)
        return self._classes.get(fq) if fq else None

    def __len__(self):
        return len(self._models)


def _model_files(dirs: Iterable[str]) -> List[str]:
    files = set()
    for d in dirs:
        if not os.path.isdir(d):
            logger.debug('Model directory %s does not exist', d)
            continue
        for dirpath, dirnames, filenames in os.walk(d):
            dirnames[:] = [n for n in dirnames if n not in ('vendor', 'node_modules', '.git')]
            for fn in filenames:
                if fn.endswith('.php'):
                    files.add(os.path.abspath(os.path.join(dirpath, fn)))
    return sorted(files)


# ---------------------------------------------------------------------------
# Process-wide cache
# ---------------------------------------------------------------------------

_registry_cache: Dict[Tuple, ModelRegistry] = {}
_registry_lock = threading.Lock()


def build_registry(base_path: str, model_paths: Iterable[str],
                   table_mappings: Optional[Dict[str, str]] = None,
                   cache_dir: Optional[str] = None) -> ModelRegistry:
    """Build or reuse the registry for this set of model directories."""
    model_paths = list(model_paths)
    key = (os.path.abspath(base_path), tuple(sorted(model_paths)),
           tuple(sorted((table_mappings or {}).items())))
    with _registry_lock:
        registry = _registry_cache.get(key)
        if registry is None:
            registry = ModelRegistry.build(base_path, model_paths, table_mappings, cache_dir)
            _registry_cache[key] = registry
        return registry


def clear_registry_cache() -> None:
    with _registry_lock:
        _registry_cache.clear()
