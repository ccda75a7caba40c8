#!/usr/bin/env python3
"""Tests for the Select Asterisk analyzer."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.select_asterisk import SelectAsteriskAnalyzer
from larasniff.issues import Severity, Status


def _issues(body):
    code = f'<?php\nfunction load($id, $items)\n{{\n{body}\n}}\n'
    return SelectAsteriskAnalyzer().analyze_code(code).issues


def _methods(body):
    return [i.metadata['method'] for i in _issues(body)]


class TestSelectAsterisk:
    def test_model_fetch(self):
        [issue] = _issues('    return User::all();')
        assert issue.code == 'select-asterisk'
        assert issue.severity == Severity.LOW
        assert issue.location.line == 4
        assert issue.message == 'Query using ->all() without ->select() fetches all columns'

    def test_low_severity_fails_the_analyzer(self):
        result = SelectAsteriskAnalyzer().analyze_code('<?php\n$u = User::all();\n')
        assert result.status == Status.FAILED

    def test_query_chain(self):
        assert _methods("    return User::where('active', 1)->orderBy('name')->get();") == ['get']

    def test_find_without_columns(self):
        assert _methods('    return User::find($id);') == ['find']
        assert _methods("    return User::find($id, ['id', 'name']);") == []

    def test_column_selection(self):
        body = """    $a = User::select('id', 'name')->get();
    $b = User::where('a', 1)->addSelect('email')->first();
    $c = User::all(['id', 'email']);
    $d = User::where('a', 1)->get(['id']);
    $e = User::where('a', 1)->pluck('name');"""
        assert _methods(body) == []

    def test_db_table(self):
        assert _methods("    return DB::table('users')->where('id', $id)->first();") == ['first']
        assert _methods('    return DB::table($table)->get();') == []

    def test_builder_variable(self):
        body = """    $query = User::query();
    $query->where('active', 1);
    return $query->get();"""
        assert _methods(body) == ['get']

    def test_fetch_on_fetched_result(self):
        assert _methods("    return User::where('a', 1)->get()->first();") == ['get']

    def test_non_query_receivers(self):
        body = """    $a = Cache::get('users');
    $b = $items->first();
    $c = collect($items)->all();
    $d = request()->all();"""
        assert _methods(body) == []
