#!/usr/bin/env python3
"""Tests for the Missing Model Scope analyzer."""

import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.missing_model_scope import MissingModelScopeAnalyzer
from larasniff.issues import Severity

ACTIVE_ADMINS = "User::where('active', 1)->where('role', 'admin')->get();"


def _issues(code, **options):
    return MissingModelScopeAnalyzer(options or None).analyze_code(code).issues


class TestRepeatedPatterns:
    def test_pattern_repeated_in_one_file(self):
        code = f'<?php\n$a = {ACTIVE_ADMINS}\n$b = {ACTIVE_ADMINS}\n'
        [issue] = _issues(code)
        assert issue.code == 'repeated-query-pattern'
        assert issue.severity == Severity.LOW
        assert issue.metadata['count'] == 2
        assert issue.metadata['signature'] == 'where(active,1)->where(role,admin)'
        assert issue.metadata['pattern'] == "where('active', '1', ...)->where('role', 'admin', ...)"
        assert issue.metadata['locations'] == ['app/Example.php:2', 'app/Example.php:3']
        assert issue.location.line == 2
        assert 'appears 2 times' in issue.message

    def test_single_occurrence(self):
        assert _issues(f'<?php\n$a = {ACTIVE_ADMINS}\n') == []

    def test_single_where_is_not_a_pattern(self):
        code = "<?php\n$a = User::where('active', 1)->get();\n$b = User::where('active', 1)->get();\n"
        assert _issues(code) == []

    def test_dynamic_values_share_a_signature(self):
        code = """<?php
$a = User::where('team_id', $team->id)->whereNull('deleted_at')->get();
$b = Project::where('team_id', $other)->whereNull('deleted_at')->count();
"""
        [issue] = _issues(code)
        assert issue.metadata['signature'] == 'where(team_id)->whereNull(deleted_at)'

    def test_different_literals_are_different_patterns(self):
        code = """<?php
$a = User::where('active', 1)->where('role', 'admin')->get();
$b = User::where('active', 1)->where('role', 'editor')->get();
"""
        assert _issues(code) == []

    def test_min_occurrences_option(self):
        code = f'<?php\n$a = {ACTIVE_ADMINS}\n$b = {ACTIVE_ADMINS}\n'
        assert _issues(code, min_occurrences=3) == []

    def test_patterns_across_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            files = []
            for name in ('UserController.php', 'AdminController.php'):
                path = os.path.join(tmpdir, 'app', 'Http', name)
                os.makedirs(os.path.dirname(path), exist_ok=True)
                with open(path, 'w', encoding='utf-8') as f:
                    f.write(f'<?php\nfunction list_users()\n{{\n    return {ACTIVE_ADMINS}\n}}\n')
                files.append(path)
            result = MissingModelScopeAnalyzer().analyze_paths(tmpdir, files)
        [issue] = result.issues
        assert issue.metadata['locations'] == ['app/Http/AdminController.php:4',
                                               'app/Http/UserController.php:4']
        assert 'AdminController.php:4, UserController.php:4' in issue.recommendation
