#!/usr/bin/env python3
"""Tests for the SQL Injection analyzer."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.sql_injection import SqlInjectionAnalyzer, is_injectable
from larasniff.issues import Severity, Status
from larasniff.ts_adapter import parse_php


def _issues(body, **options):
    code = f"""<?php
use Illuminate\\Support\\Facades\\DB;

function search($request, $id, $name, $conn, $query)
{{
{body}
}}
"""
    return SqlInjectionAnalyzer(options or None).analyze_code(code).issues


def _calls(body, **options):
    return [(i.code, i.metadata.get('call')) for i in _issues(body, **options)]


class TestDbFacade:
    def test_concatenated_select(self):
        [issue] = _issues("    return DB::select('SELECT * FROM users WHERE id = ' . $id);")
        assert issue.code == 'sql-injection'
        assert issue.severity == Severity.CRITICAL
        assert issue.location.line == 6
        assert issue.metadata == {'call': 'DB::select()'}
        assert "DB::select('... where id = ?', [$id])" in issue.recommendation

    def test_interpolated_statement(self):
        assert _calls('    DB::statement("DELETE FROM logs WHERE day = $name");') == \
            [('sql-injection', 'DB::statement()')]

    def test_request_input(self):
        assert _calls("    DB::select($request->input('sql'));") == [('sql-injection', 'DB::select()')]
        assert _calls("    DB::select($_GET['q']);") == [('sql-injection', 'DB::select()')]

    def test_bindings_are_safe(self):
        body = """    DB::select('SELECT * FROM users WHERE id = ?', [$request->input('id')]);
    DB::insert('INSERT INTO logs (m) VALUES (?)', [$name]);
    DB::table('users')->where('name', $name)->get();"""
        assert _calls(body) == []

    def test_unprepared_is_always_reported(self):
        assert _calls("    DB::unprepared('DROP TABLE sessions');") == \
            [('unprepared-statement', 'DB::unprepared()')]

    def test_raw_expression(self):
        assert _calls("    $q->select(DB::raw('count(' . $name . ')'));") == \
            [('raw-sql-injection', 'DB::raw()')]
        assert _calls("    $q->select(DB::raw('count(*)'));") == []


class TestRawMethods:
    def test_builder_raw_methods(self):
        body = """    $query->whereRaw("name = '$name'");
    $query->orderByRaw($request->get('sort'));
    $query->havingRaw('total > ?', [$id]);"""
        assert _calls(body) == [('raw-sql-injection', 'whereRaw()'),
                                ('raw-sql-injection', 'orderByRaw()')]

    def test_static_raw_method(self):
        assert _calls("    return User::whereRaw('name = ' . $name)->get();") == \
            [('raw-sql-injection', 'whereRaw()')]


class TestNativeAccess:
    def test_native_functions(self):
        body = """    mysqli_query($conn, "SELECT * FROM t WHERE id = $id");
    mysqli_query($conn, 'SELECT 1');"""
        assert _calls(body) == [('native-sql-injection', 'mysqli_query()')]

    def test_native_functions_option(self):
        body = '    odbc_exec($conn, "SELECT * FROM t WHERE id = $id");'
        assert _calls(body) == []
        assert _calls(body, native_functions=['odbc_exec']) == [('native-sql-injection', 'odbc_exec()')]

    def test_direct_connections(self):
        issues = _issues("    $pdo = new PDO('sqlite::memory:');\n    $db = new \\mysqli('localhost');")
        assert [(i.code, i.metadata['class']) for i in issues] == [
            ('direct-database-connection', 'PDO'),
            ('direct-database-connection', 'mysqli'),
        ]

    def test_result_status(self):
        code = "<?php\nDB::unprepared('x');\n"
        assert SqlInjectionAnalyzer().analyze_code(code).status == Status.FAILED


def test_is_injectable():
    root = parse_php("<?php\nf('a' . 'b', 'plain', request('x'), $sql);\n")
    args = root.find_all('function_call_expression')[0].get_arguments()
    assert [is_injectable(a) for a in args] == [True, False, True, False]
