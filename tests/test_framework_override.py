#!/usr/bin/env python3
"""Tests for the Framework Override analyzer."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.framework_override import FrameworkOverrideAnalyzer, core_class
from larasniff.issues import Severity


def _issues(code):
    return FrameworkOverrideAnalyzer().analyze_code(code, 'app/Http/CustomRequest.php').issues


class TestFrameworkOverride:
    def test_imported_core_class(self):
        code = """<?php
namespace App\\Http;

use Illuminate\\Http\\Request;

class CustomRequest extends Request
{
}
"""
        [issue] = _issues(code)
        assert issue.code == 'framework-override'
        assert issue.severity == Severity.HIGH
        assert issue.metadata == {'class': 'CustomRequest', 'parent': 'Illuminate\\Http\\Request'}
        assert issue.location.line == 6
        assert 'Request::macro()' in issue.recommendation

    def test_fully_qualified_parent(self):
        code = "<?php\nclass AppBuilder extends \\Illuminate\\Database\\Eloquent\\Builder {}\n"
        [issue] = _issues(code)
        assert issue.metadata['parent'] == 'Illuminate\\Database\\Eloquent\\Builder'

    def test_application_class_with_same_short_name(self):
        code = """<?php
namespace App\\Http;

use App\\Support\\Request;

class CustomRequest extends Request
{
}
"""
        assert _issues(code) == []

    def test_form_request_is_an_extension_point(self):
        code = """<?php
use Illuminate\\Foundation\\Http\\FormRequest;

class StoreOrderRequest extends FormRequest
{
}
"""
        assert _issues(code) == []

    def test_class_without_parent(self):
        assert _issues('<?php\nclass Plain {}\n') == []

    @pytest.mark.parametrize('name,expected', [
        ('Illuminate\\Http\\Response', 'Illuminate\\Http\\Response'),
        ('\\Illuminate\\Routing\\Router', 'Illuminate\\Routing\\Router'),
        ('Facade', 'Illuminate\\Support\\Facades\\Facade'),
        ('App\\Http\\Response', None),
        ('Model', None),
    ])
    def test_core_class(self, name, expected):
        assert core_class(name) == expected
