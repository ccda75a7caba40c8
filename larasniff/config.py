#!/usr/bin/env python3
"""
larasniff configuration.

Settings come from a YAML file (``larasniff.yml`` in the scanned project by
default).  Unknown keys are ignored, missing keys fall back to defaults and
malformed values raise ``ConfigError`` immediately: a silently ignored
threshold would hide real issues.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError
from .issues import Category, Severity

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = 'larasniff.yml'

DEFAULT_PATHS = ['app', 'config', 'database', 'routes']
DEFAULT_EXCLUDED = ['vendor/*', 'node_modules/*', 'storage/*', 'bootstrap/cache/*']
DEFAULT_MODEL_PATHS = ['app/Models']


@dataclass
class Config:
    paths: List[str] = field(default_factory=lambda: list(DEFAULT_PATHS))
    excluded_paths: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED))
    model_paths: List[str] = field(default_factory=lambda: list(DEFAULT_MODEL_PATHS))
    categories: Dict[str, bool] = field(default_factory=dict)
    disabled_analyzers: List[str] = field(default_factory=list)
    dont_report: List[str] = field(default_factory=list)
    fail_on: Severity = Severity.HIGH
    max_issues_per_check: int = 5
    workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    cache_dir: Optional[str] = None
    analyzers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def analyzer_options(self, analyzer_id: str) -> Dict[str, Any]:
        return dict(self.analyzers.get(analyzer_id) or {})

    def category_enabled(self, category: Category) -> bool:
        return bool(self.categories.get(category.value, True))

    def analyzer_enabled(self, analyzer_id: str, category: Category) -> bool:
        return analyzer_id not in self.disabled_analyzers and self.category_enabled(category)


# ---------------------------------------------------------------------------
# Option validation
# ---------------------------------------------------------------------------

_TYPE_NAMES = {
    int: 'integer',
    bool: 'boolean',
    str: 'string',
    list: 'list',
    dict: 'mapping',
}


def check_option(owner: str, key: str, value: Any, expected: type) -> Any:
    """Validate one option value, raising ConfigError on a type mismatch."""
    ok = isinstance(value, expected)
    # bool is an int subclass; `threshold: yes` is not a number
    if expected is int and isinstance(value, bool):
        ok = False
    if expected is list and ok:
        ok = all(isinstance(v, str) for v in value)
    if expected is dict and ok:
        ok = all(isinstance(k, str) for k in value)
    if not ok:
        raise ConfigError(
            f"{owner}: option '{key}' must be a {_TYPE_NAMES.get(expected, expected.__name__)}"
            f", got {value!r}")
    if expected is int and value < 0:
        raise ConfigError(f"{owner}: option '{key}' must not be negative, got {value!r}")
    return value


def resolve_options(owner: str, schema: Dict[str, Tuple[type, Any]],
                    given: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge `given` over the schema defaults; unknown keys are dropped."""
    if given is None:
        given = {}
    if not isinstance(given, dict):
        raise ConfigError(f'{owner}: options must be a mapping, got {given!r}')
    resolved = {}
    for key, (expected, default) in schema.items():
        if key in given and given[key] is not None:
            value = check_option(owner, key, given[key], expected)
            if expected is dict and not all(isinstance(v, str) for v in value.values()):
                # table_mappings, additional_patterns
                raise ConfigError(f"{owner}: option '{key}' must map strings to strings"
                                  f", got {value!r}")
            resolved[key] = value
        elif isinstance(default, (list, dict)):
            resolved[key] = type(default)(default)
        else:
            resolved[key] = default
    ignored = sorted(set(given) - set(schema))
    if ignored:
        logger.debug('%s: ignoring unknown options %s', owner, ', '.join(ignored))
    return resolved


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _load_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f'{path}: invalid YAML: {e}') from e
    except OSError as e:
        raise ConfigError(f'{path}: cannot read config: {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'{path}: top level must be a mapping')
    return data


def config_from_dict(data: Dict[str, Any], source: str = '<config>') -> Config:
    config = Config()
    lists = ('paths', 'excluded_paths', 'model_paths', 'disabled_analyzers', 'dont_report')
    for key in lists:
        if key in data and data[key] is not None:
            setattr(config, key, list(check_option(source, key, data[key], list)))

    if data.get('categories') is not None:
        cats = check_option(source, 'categories', data['categories'], dict)
        known = {c.value for c in Category}
        for name, enabled in cats.items():
            if name not in known:
                raise ConfigError(f"{source}: unknown category '{name}'")
            config.categories[name] = bool(enabled)

    if data.get('fail_on') is not None:
        try:
            config.fail_on = Severity.parse(data['fail_on'])
        except ValueError as e:
            raise ConfigError(f"{source}: invalid fail_on value {data['fail_on']!r}") from e

    if data.get('max_issues_per_check') is not None:
        config.max_issues_per_check = check_option(
            source, 'max_issues_per_check', data['max_issues_per_check'], int)
    if data.get('workers') is not None:
        config.workers = check_option(source, 'workers', data['workers'], int)
        if config.workers < 1:
            raise ConfigError(f'{source}: workers must be at least 1')
    if data.get('cache_dir') is not None:
        config.cache_dir = check_option(source, 'cache_dir', data['cache_dir'], str)

    analyzers = data.get('analyzers')
    if analyzers is not None:
        check_option(source, 'analyzers', analyzers, dict)
        for analyzer_id, options in analyzers.items():
            if options is None:
                options = {}
            if not isinstance(options, dict):
                raise ConfigError(f"{source}: options for '{analyzer_id}' must be a mapping")
            config.analyzers[analyzer_id] = options
    return config


def load_config(path: Optional[str] = None, base_path: Optional[str] = None) -> Config:
    """Load configuration from `path`, or from larasniff.yml under `base_path`.

    An explicit path must exist; the implicit project file is optional.
    """
    if path is None:
        candidate = os.path.join(base_path or '.', DEFAULT_CONFIG_FILE)
        if not os.path.isfile(candidate):
            logger.debug('No %s found, using defaults', candidate)
            return Config()
        path = candidate
    elif not os.path.isfile(path):
        raise ConfigError(f'config file not found: {path}')
    logger.info('Loading configuration from %s', path)
    return config_from_dict(_load_yaml(path), path)
