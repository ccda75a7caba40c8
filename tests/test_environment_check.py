#!/usr/bin/env python3
"""Tests for the Environment Check Smell analyzer."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.environment_check import EnvironmentCheckSmellAnalyzer
from larasniff.issues import Severity, Status


def _issues(code, path='app/Services/Checkout.php'):
    return EnvironmentCheckSmellAnalyzer().analyze_code(code, path).issues


def test_app_helper_environment():
    [issue] = _issues("<?php\nif (app()->environment('production')) {\n    charge();\n}\n")
    assert issue.code == 'environment-check'
    assert issue.severity == Severity.LOW
    assert issue.metadata == {'form': 'app()->environment()', 'environments': ['production']}


def test_app_facade():
    code = """<?php
use Illuminate\\Support\\Facades\\App;

if (App::isProduction()) {
    charge();
}
"""
    [issue] = _issues(code)
    assert issue.metadata['form'] == 'App::isProduction()'


def test_other_receivers_are_ignored():
    assert _issues("<?php\n$env->environment('local');\nconfig('app.env');\n") == []


def test_low_severity_is_a_failure():
    result = EnvironmentCheckSmellAnalyzer().analyze_code("<?php\napp()->isLocal();\n")
    assert result.status == Status.FAILED


def test_infrastructure_files_are_skipped():
    code = "<?php\nif (app()->environment('local')) { $this->app->register(Debugbar::class); }\n"
    assert _issues(code, 'app/Providers/AppServiceProvider.php') == []
    assert _issues(code, 'app/Exceptions/Handler.php') == []
