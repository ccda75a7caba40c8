#!/usr/bin/env python3
"""
Hardcoded storage, public and application paths instead of path helpers.

Absolute deployment paths (``/var/www/app/storage``), Windows drive paths
and relative ``../storage/`` paths are always reported.  Root-relative paths
such as ``/storage/app/x`` are common in URLs, so they are only reported
when the string is an argument of a filesystem operation: a PHP file
function, the Storage/File facades, ``response()->download()`` or a method
on a variable named like a filesystem (weak context).
"""

import re
from typing import Dict, List, Optional, Pattern, Tuple

from .. import laravel, php_ast
from ..errors import ConfigError
from ..issues import AnalyzerMetadata, Category, Severity
from ..ts_adapter import TSNode
from ..visitor import NodeVisitor
from .base import Analyzer

_HELPER_DIRS = (
    ('storage', 'storage_path(...)'),
    ('public', 'public_path(...)'),
    ('app', 'app_path(...)'),
    ('resources', 'resource_path(...)'),
    ('database', 'database_path(...)'),
    ('config', 'config_path(...)'),
)


ALWAYS_FLAG: List[Tuple[str, str]] = (
    [(r'/var/www/.*storage', 'storage_path(...)'),
     (r'/var/www/.*public', 'public_path(...)'),
     (r'/var/www/.*app/', 'app_path(...)'),
     (r'/var/www/.*resources', 'resource_path(...)'),
     (r'/var/www/.*database', 'database_path(...)'),
     (r'/var/www/.*config', 'config_path(...)'),
     (r'[A-Z]:\\storage\\app\\', "storage_path('app/...')"),
     (r'[A-Z]:\\storage\\logs\\', "storage_path('logs/...')"),
     (r'[A-Z]:\\storage\\framework\\', "storage_path('framework/...')"),
     (r'[A-Z]:\\public\\uploads\\', "public_path('uploads/...')"),
     (r'[A-Z]:\\public\\images\\', "public_path('images/...')")]
    + [(rf'[A-Z]:\\{d}\\', helper) for d, helper in _HELPER_DIRS]
    + [(rf'\.\.?/{d}/', helper) for d, helper in _HELPER_DIRS]
)

CONTEXT_REQUIRED: List[Tuple[str, str]] = [
    (r'^/storage/app/', "storage_path('app/...')"),
    (r'^/storage/logs/', "storage_path('logs/...')"),
    (r'^/storage/framework/', "storage_path('framework/...')"),
    (r'^/storage/', 'storage_path(...)'),
    (r'^/public/uploads/', "public_path('uploads/...')"),
    (r'^/public/images/', "public_path('images/...')"),
    (r'^/public/', 'public_path(...)'),
    (r'^/app/', 'app_path(...)'),
    (r'^/resources/', 'resource_path(...)'),
    (r'^/database/', 'database_path(...)'),
    (r'^/config/', 'config_path(...)'),
]

# Too common in URLs to trust a weak context
STRONG_ONLY = frozenset({r'^/public/', r'^/app/'})

FILESYSTEM_FUNCTIONS = frozenset({
    'file_get_contents', 'file_put_contents', 'fopen', 'fread', 'fwrite', 'fclose',
    'file', 'readfile', 'fgets', 'fgetc', 'fgetcsv', 'fputcsv', 'file_exists',
    'is_file', 'is_dir', 'is_readable', 'is_writable', 'is_writeable', 'is_executable',
    'is_link', 'mkdir', 'rmdir', 'opendir', 'readdir', 'closedir', 'scandir', 'glob',
    'unlink', 'copy', 'rename', 'move_uploaded_file', 'chmod', 'chown', 'chgrp',
    'touch', 'link', 'symlink', 'readlink', 'filesize', 'filetype', 'filemtime',
    'fileatime', 'filectime', 'stat', 'lstat', 'pathinfo', 'realpath', 'dirname',
    'basename',
})

FILESYSTEM_STATIC_METHODS = frozenset({
    'get', 'put', 'exists', 'missing', 'path', 'delete', 'copy', 'move', 'size',
    'lastModified', 'files', 'allFiles', 'directories', 'allDirectories',
    'makeDirectory', 'deleteDirectory', 'append', 'prepend', 'read', 'write',
    'readStream', 'writeStream',
})

FILESYSTEM_INSTANCE_METHODS = frozenset({
    'get', 'put', 'exists', 'delete', 'copy', 'move', 'read', 'write', 'append',
    'prepend', 'size', 'lastModified', 'path',
})

UPLOAD_FILE_CLASSES = frozenset({'UploadedFile'})
FILESYSTEM_SERVICE_NAMES = frozenset({
    'files', 'filesystem', 'Illuminate\\Filesystem\\Filesystem',
    'Illuminate\\Contracts\\Filesystem\\Filesystem',
})
RESPONSE_FILE_METHODS = frozenset({'download', 'file', 'streamDownload'})
FILESYSTEM_VARIABLE_HINTS = ('file', 'filesystem', 'storage', 'disk', 'fs', 'directory', 'dir')

_URL_RE = re.compile(r'^https?://', re.IGNORECASE)

CONTEXT_NONE, CONTEXT_WEAK, CONTEXT_STRONG = 0, 1, 2

# Nodes a path may pass through on its way into a call argument
_PASS_THROUGH = frozenset({
    'binary_expression', 'array_element_initializer', 'array_creation_expression',
    'parenthesized_expression', 'argument', 'arguments', 'encapsed_string',
})


def _compile(patterns: List[Tuple[str, str]]) -> List[Tuple[str, Pattern, str]]:
    compiled = []
    for source, helper in patterns:
        try:
            compiled.append((source, re.compile(source, re.IGNORECASE), helper))
        except re.error as e:
            raise ConfigError(f'hardcoded-storage-paths: invalid pattern {source!r}: {e}') from e
    return compiled


def enclosing_call(node: TSNode) -> Optional[TSNode]:
    """The call `node` is (part of) an argument of, if any."""
    parent = node.parent
    seen_argument = False
    while parent is not None and parent.type in _PASS_THROUGH:
        seen_argument = seen_argument or parent.type == 'argument'
        parent = parent.parent
    if parent is not None and seen_argument and parent.type in php_ast.CALL_TYPES | {'object_creation_expression'}:
        return parent
    return None


def _is_filesystem_facade(name: Optional[str]) -> bool:
    return laravel.facade_name(name) in ('Storage', 'File')


def context_strength(node: TSNode) -> int:
    call = enclosing_call(node)
    if call is None:
        return CONTEXT_NONE
    name = call.get_function_name()
    if call.type == 'function_call_expression':
        return CONTEXT_STRONG if name.lower() in FILESYSTEM_FUNCTIONS else CONTEXT_NONE
    if call.type == 'scoped_call_expression':
        written = php_ast.class_name(call.child_by_field('scope'))
        if _is_filesystem_facade(written) and name in FILESYSTEM_STATIC_METHODS:
            return CONTEXT_STRONG
        if written and php_ast.short_name(written) in UPLOAD_FILE_CLASSES:
            return CONTEXT_STRONG
        return CONTEXT_NONE
    if call.type not in php_ast.MEMBER_CALLS:
        return CONTEXT_NONE
    obj = call.child_by_field('object')
    chain = php_ast.unwind_chain(obj) if obj is not None else None
    if name in FILESYSTEM_INSTANCE_METHODS and chain is not None:
        if _is_filesystem_facade(chain.static_class):
            return CONTEXT_STRONG
        if obj.type == 'function_call_expression' and obj.get_function_name() in ('app', 'resolve'):
            args = obj.get_arguments()
            if args and php_ast.string_value(args[0]) in FILESYSTEM_SERVICE_NAMES:
                return CONTEXT_STRONG
    if name in RESPONSE_FILE_METHODS and obj is not None:
        if (obj.type == 'function_call_expression' and obj.get_function_name() == 'response') or \
                php_ast.variable(obj) == '$response':
            return CONTEXT_STRONG
    if name in FILESYSTEM_INSTANCE_METHODS and obj is not None:
        hint = ''
        if obj.type == 'variable_name':
            hint = obj.text.lstrip('$').lower()
        elif obj.type in php_ast.PROPERTY_FETCHES:
            prop = obj.child_by_field('name')
            hint = prop.text.lower() if prop is not None else ''
        if any(h in hint for h in FILESYSTEM_VARIABLE_HINTS):
            return CONTEXT_WEAK
    return CONTEXT_NONE


def literal_text(node: TSNode) -> str:
    """Literal parts of a string, interpolations dropped."""
    if node.type == 'string':
        return php_ast.string_value(node) or ''
    return ''.join(c.text for c in node.named_children
                   if c.type in ('string_content', 'string_value', 'escape_sequence'))


class HardcodedPathsVisitor(NodeVisitor):

    def __init__(self, analyzer, context):
        super().__init__(analyzer, context)
        self.always = analyzer.always_patterns
        self.contextual = analyzer.context_patterns

    def enter_node(self, node, scope):
        if node.type not in ('string', 'encapsed_string'):
            return
        value = literal_text(node)
        if not value or _URL_RE.match(value):
            return
        if any(allowed in value for allowed in self.options['allowed_paths']):
            return
        for _source, pattern, helper in self.always:
            if pattern.search(value):
                self._report(node, value, helper)
                return
        for source, pattern, helper in self.contextual:
            if pattern.search(value):
                required = CONTEXT_STRONG if source in STRONG_ONLY else CONTEXT_WEAK
                if context_strength(node) >= required:
                    self._report(node, value, helper)
                return

    def _report(self, node, value, helper):
        self.report(
            node, 'hardcoded-storage-path',
            f'Hardcoded storage path found: "{value[:50]}"',
            Severity.MEDIUM,
            f'Use Laravel path helper: {helper}. This keeps the code portable across '
            f'environments and storage drivers.',
            {'path': value, 'helper': helper},
        )


class HardcodedStoragePathsAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='hardcoded-storage-paths',
        name='Hardcoded Storage Paths',
        description='Finds hardcoded storage/public paths instead of Laravel path helpers',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('laravel', 'portability', 'paths', 'configuration'),
        time_to_fix=10,
    )
    visitor_class = HardcodedPathsVisitor
    OPTIONS = {
        'allowed_paths': (list, []),
        'additional_patterns': (dict, {}),
    }

    def __init__(self, options=None, registry=None):
        super().__init__(options, registry)
        extra: Dict[str, str] = self.options['additional_patterns']
        self.always_patterns = _compile(ALWAYS_FLAG + [(p, str(h)) for p, h in extra.items()])
        self.context_patterns = _compile(CONTEXT_REQUIRED)

    def summary(self, issues):
        return f'Found {len(issues)} hardcoded path(s)'
