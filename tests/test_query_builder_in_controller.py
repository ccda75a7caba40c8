#!/usr/bin/env python3
"""Tests for the Query Builder in Controller analyzer."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.query_builder_in_controller import QueryBuilderInControllerAnalyzer
from larasniff.issues import Severity

PATH = 'app/Http/Controllers/UserController.php'


def _controller(body, name='UserController'):
    return f"""<?php
namespace App\\Http\\Controllers;

use Illuminate\\Support\\Facades\\DB;

class {name} extends Controller
{{
    public function index($request)
    {{
{body}
    }}
}}
"""


def _issues(code, path=PATH):
    return QueryBuilderInControllerAnalyzer().analyze_code(code, path).issues


def _queries(body):
    return {i.metadata['query']: i.metadata['type'] for i in _issues(_controller(body))}


class TestQueryBuilderInController:
    def test_query_building(self):
        issues = _issues(_controller(
            "        $users = User::where('active', 1)->orderBy('name')->get();"))
        assert {i.metadata['query']: i.severity for i in issues} == {
            'where()': Severity.MEDIUM,
            'orderBy()': Severity.LOW,
        }
        issue = issues[0]
        assert issue.code == 'query-builder-in-controller'
        assert issue.location.line == 10
        assert issue.metadata['method'] == 'index'
        assert issue.metadata['class'] == 'UserController'

    def test_query_types(self):
        body = """        $a = DB::table('users')->leftJoin('teams', 'a', '=', 'b')->get();
        $b = User::whereRaw('age > ?', [18])->get();
        $c = Order::withCount('items')->get();"""
        assert _queries(body) == {
            'DB::table()': 'db_facade',
            'leftJoin()': 'join',
            'whereRaw()': 'raw_query',
            'withCount()': 'aggregation',
        }

    def test_db_raw_is_a_raw_query(self):
        [issue] = _issues(_controller("        $x = DB::raw('count(*)');"))
        assert issue.metadata['type'] == 'raw_query'
        assert issue.severity == Severity.HIGH

    def test_simple_lookups_are_tolerated(self):
        body = """        $user = User::find($request->id);
        $all = User::all();
        $first = User::first();
        $count = User::count();"""
        assert _queries(body) == {}

    def test_request_and_collection_chains(self):
        body = """        $name = $request->where('x', 1);
        $items = collect([1, 2])->where('a', 1)->sum('b');
        return view('users')->with('users', []);"""
        assert _queries(body) == {}

    def test_reported_once_per_method(self):
        body = """        $a = User::where('a', 1)->get();
        $b = User::where('b', 2)->get();"""
        issues = _issues(_controller(body))
        assert [i.metadata['query'] for i in issues] == ['where()']

    def test_same_query_in_two_methods(self):
        code = """<?php
class UserController
{
    public function a() { return User::where('a', 1)->get(); }
    public function b() { return User::where('b', 1)->get(); }
}
"""
        assert [i.metadata['method'] for i in _issues(code)] == ['a', 'b']

    def test_closures_in_controller_methods(self):
        body = "        return DB::transaction(function () { return User::where('a', 1)->first(); });"
        assert 'where()' in _queries(body)

    def test_only_controller_files(self):
        code = _controller("        $users = User::where('active', 1)->get();", name='UserService')
        assert _issues(code, 'app/Services/UserService.php') == []
