#!/usr/bin/env python3
"""
Source file discovery, exclusion globs and Laravel file-role detection.
"""

import glob
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

# Never descended into, whatever the exclusion globs say
SKIP_DIRS = {
    'vendor', 'node_modules', 'bower_components',
    '.git', '.svn', '.idea', '__pycache__',
}


def _glob_to_regex(pattern: str) -> str:
    """Translate a path glob: `**` crosses directories, `*` and `?` do not."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == '*':
            if pattern[i:i + 2] == '**':
                out.append('.*')
                i += 2
                if pattern[i:i + 1] == '/':
                    i += 1
                continue
            out.append('[^/]*')
        elif ch == '?':
            out.append('[^/]')
        else:
            out.append(re.escape(ch))
        i += 1
    return ''.join(out)


class PathFilter:
    """Case-insensitive matcher for a list of path globs.

    A trailing ``/*`` also matches everything below the directory, so
    ``storage/*`` excludes ``storage/framework/views/x.php``.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        self.patterns = [p.replace('\\', '/').strip() for p in (patterns or []) if p and p.strip()]
        regexes = []
        for p in self.patterns:
            body = _glob_to_regex(p[2:] if p.startswith('./') else p)
            if p.endswith('/*'):
                body = body[:-len('[^/]*')] + '.*'
            regexes.append(f'(?:^|.*/){body}$' if not p.startswith('/') else f'^{body}$')
        self._regex = re.compile('|'.join(regexes), re.IGNORECASE) if regexes else None

    def matches(self, path: str) -> bool:
        if self._regex is None:
            return False
        return self._regex.match(normalize(path)) is not None

    def __bool__(self):
        return bool(self.patterns)


def normalize(path: str) -> str:
    return path.replace('\\', '/')


def relative_path(path: str, base_path: str) -> str:
    try:
        rel = os.path.relpath(path, base_path)
    except ValueError:
        rel = path
    return normalize(rel)


def _in_skipped_dir(rel: str) -> bool:
    return any(part.lower() in SKIP_DIRS for part in Path(rel).parts[:-1])


def discover_files(base_path: str, paths: Optional[List[str]] = None,
                   excluded: Optional[Iterable[str]] = None) -> List[str]:
    """Return sorted absolute paths of the PHP files to analyse."""
    base_path = os.path.abspath(base_path)
    exclude = PathFilter(excluded)
    found = set()
    for sub in (paths or ['.']):
        root = os.path.join(base_path, sub)
        if os.path.isfile(root):
            candidates = [root] if root.endswith('.php') else []
        elif os.path.isdir(root):
            candidates = glob.glob(os.path.join(root, '**', '*.php'), recursive=True)
        else:
            logger.debug('Scan path %s does not exist, skipping', root)
            continue
        for fp in candidates:
            rel = relative_path(fp, base_path)
            if _in_skipped_dir(rel) or exclude.matches(rel):
                continue
            found.add(os.path.abspath(fp))
    files = sorted(found)
    logger.debug('Discovered %d PHP files under %s', len(files), base_path)
    return files


# ---------------------------------------------------------------------------
# File roles
# ---------------------------------------------------------------------------

_ROLE_PATTERNS = [
    ('test', re.compile(r'(^|/)tests?/|Test\.php$', re.IGNORECASE)),
    ('migration', re.compile(r'(^|/)database/migrations/')),
    ('seeder', re.compile(r'(^|/)database/seeders/|Seeder\.php$')),
    ('factory', re.compile(r'(^|/)database/factories/|Factory\.php$')),
    ('route', re.compile(r'(^|/)routes/')),
    ('config', re.compile(r'(^|/)config/')),
    ('view', re.compile(r'\.blade\.php$|(^|/)resources/views/')),
    ('controller', re.compile(r'/Controllers/|Controller\.php$')),
    ('middleware', re.compile(r'/Middleware/')),
    ('provider', re.compile(r'/Providers/|ServiceProvider\.php$')),
    ('model', re.compile(r'/Models/')),
    ('service', re.compile(r'/Services/')),
    ('console', re.compile(r'/Console/')),
    ('job', re.compile(r'/Jobs/')),
    ('event', re.compile(r'/Events/')),
    ('listener', re.compile(r'/Listeners/')),
    ('policy', re.compile(r'/Policies/')),
]


def file_role(path: str) -> str:
    path = normalize(path)
    for role, pattern in _ROLE_PATTERNS:
        if pattern.search(path):
            return role
    return 'application'


def is_test_file(path: str) -> bool:
    path = normalize(path)
    return bool(re.search(r'(^|/)tests?/', path, re.IGNORECASE)) or path.endswith('Test.php')


def is_development_file(path: str) -> bool:
    """Seeders, factories and migrations."""
    return file_role(path) in ('migration', 'seeder', 'factory')


def is_route_file(path: str) -> bool:
    return file_role(path) == 'route'


def is_config_file(path: str) -> bool:
    return bool(re.search(r'(^|/)config/', normalize(path)))


def is_controller_file(path: str) -> bool:
    path = normalize(path)
    return '/Controllers/' in path or path.endswith('Controller.php')
