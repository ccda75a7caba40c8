#!/usr/bin/env python3
"""Hardcoded URLs and secrets that belong in config files."""

import re

from .. import php_ast
from ..files import is_config_file
from ..issues import AnalyzerMetadata, Category, Severity
from ..visitor import NodeVisitor
from .base import Analyzer

_URL_RE = re.compile(r'^https?://([^/:?#]+)', re.IGNORECASE)
_SECRET_RE = re.compile(r'^[a-zA-Z0-9]{31,}$')

DEFAULT_ALLOWED_HOSTS = ['example.com', 'laravel.com', 'github.com', 'stackoverflow.com']


class ConfigOutsideConfigVisitor(NodeVisitor):

    def enter_node(self, node, scope):
        if node.type not in ('string', 'encapsed_string'):
            return
        value = php_ast.string_value(node)
        if not value:
            return
        m = _URL_RE.match(value)
        if m and not self._allowed(m.group(1).lower()):
            self.report(
                node, 'hardcoded-url',
                f'Hardcoded URL: "{value[:50]}"',
                Severity.MEDIUM,
                "Move URLs to a config file (e.g. config/services.php) and read them "
                "with config('services.api.url').",
                {'url': value},
            )
        if _SECRET_RE.match(value):
            self.report(
                node, 'hardcoded-secret',
                'Possible hardcoded API key or secret detected',
                Severity.HIGH,
                "Never hardcode API keys in source code. Read them from the environment "
                "through a config file: config('services.api.key').",
                {'length': len(value)},
            )

    def _allowed(self, host: str) -> bool:
        return any(host == h or host.endswith('.' + h) for h in self.options['allowed_hosts'])


class ConfigOutsideConfigAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id='config-outside-config',
        name='Configuration Outside Config Files',
        description='Detects hardcoded URLs and API keys that should live in configuration',
        category=Category.BEST_PRACTICES,
        severity=Severity.MEDIUM,
        tags=('configuration', 'maintainability', 'secrets'),
        time_to_fix=10,
    )
    visitor_class = ConfigOutsideConfigVisitor
    OPTIONS = {
        'allowed_hosts': (list, DEFAULT_ALLOWED_HOSTS),
    }

    def applies_to(self, relative_path):
        return not is_config_file(relative_path) and super().applies_to(relative_path)

    def summary(self, issues):
        return f'Found {len(issues)} hardcoded configuration value(s)'
