#!/usr/bin/env python3
"""Tests for the Logic in Routes analyzer."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.logic_in_routes import LogicInRoutesAnalyzer
from larasniff.issues import Severity


def _issues(routes, path='routes/web.php', **options):
    code = "<?php\n\nuse Illuminate\\Support\\Facades\\Route;\n\n" + routes
    return LogicInRoutesAnalyzer(options or None).analyze_code(code, path).issues


class TestLogicInRoutes:
    def test_database_query(self):
        [issue] = _issues("Route::get('/users', function () {\n"
                          "    return User::where('active', 1)->get();\n"
                          "});\n")
        assert issue.code == 'route-has-db-queries'
        assert issue.severity == Severity.CRITICAL
        assert issue.location.line == 5
        assert issue.location.end_line == 7
        assert issue.metadata['has_db_queries']

    def test_db_facade(self):
        [issue] = _issues("Route::get('/stats', function () {\n"
                          "    return DB::table('visits')->count();\n"
                          "});\n")
        assert issue.code == 'route-has-db-queries'

    def test_business_logic(self):
        [issue] = _issues("Route::post('/orders', function () {\n"
                          "    OrderService::process(request()->all());\n"
                          "});\n")
        assert issue.code == 'route-has-business-logic'
        assert issue.severity == Severity.HIGH
        assert issue.metadata['problems'] == ['complex business logic']

    def test_dispatching_jobs(self):
        [issue] = _issues("Route::post('/import', function () {\n"
                          "    dispatch(new ImportJob());\n"
                          "});\n")
        assert issue.code == 'route-has-business-logic'

    def test_long_closure(self):
        [issue] = _issues("""Route::get('/about', function () {
    $a = 1;
    $b = 2;
    $c = 3;
    $d = 4;
    return view('about', compact('a', 'b', 'c', 'd'));
});
""")
        assert issue.code == 'route-closure-too-long'
        assert issue.severity == Severity.MEDIUM
        assert issue.metadata['line_count'] == 7
        assert issue.metadata['problems'] == ['7 lines (max: 5)']

    def test_max_closure_lines_option(self):
        routes = "Route::get('/', function () {\n    $a = 1;\n    $b = 2;\n    return view('home');\n});\n"
        assert _issues(routes) == []
        assert len(_issues(routes, max_closure_lines=3)) == 1

    def test_simple_closure_and_controller_actions(self):
        routes = ("Route::get('/', function () { return view('welcome'); });\n"
                  "Route::get('/users', [UserController::class, 'index']);\n"
                  "Route::redirect('/home', '/');\n")
        assert _issues(routes) == []

    def test_group_closure_is_not_checked(self):
        routes = """Route::group(['prefix' => 'admin'], function () {
    Route::get('/a', [AdminController::class, 'a']);
    Route::get('/b', [AdminController::class, 'b']);
    Route::get('/c', [AdminController::class, 'c']);
    Route::get('/users', function () {
        return User::all();
    });
});
"""
        [issue] = _issues(routes)
        assert issue.code == 'route-has-db-queries'
        assert issue.location.line == 9

    def test_only_route_files(self):
        routes = "Route::get('/users', function () {\n    return User::all();\n});\n"
        assert _issues(routes, path='app/Providers/RouteServiceProvider.php') == []
        assert len(_issues(routes, path='routes/api.php')) == 1
