#!/usr/bin/env python3
"""Tests for the Missing Chunking analyzer."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.chunk_missing import ChunkMissingAnalyzer, is_unbounded_fetch
from larasniff.ts_adapter import parse_php


def _issues(code):
    return ChunkMissingAnalyzer().analyze_code(code).issues


def _expr(code):
    root = parse_php(f'<?php\n$x = {code};')
    return root.find_all('assignment_expression')[0].child_by_field('right')


@pytest.mark.parametrize('code, expected', [
    ('User::all()', True),
    ("User::where('active', 1)->get()", True),
    ("DB::table('logs')->get()", True),
    ('User::limit(100)->get()', False),
    ('User::cursor()', False),
    ("User::where('id', 1)->first()", False),
    ('$collection->all()', False),
    ("$request->get('name')", False),
    ("Cache::get('key')", False),
    ('collect($rows)->all()', False),
])
def test_is_unbounded_fetch(code, expected):
    assert is_unbounded_fetch(_expr(code)) is expected


def test_direct_iteration():
    [issue] = _issues('<?php\nforeach (User::all() as $user) {\n    echo $user->id;\n}\n')
    assert issue.code == 'chunk-missing'
    assert issue.location.line == 2
    assert issue.metadata['query'] == 'User::all()'


def test_iteration_over_assigned_variable():
    code = """<?php
function export()
{
    $orders = Order::where('status', 'paid')->get();
    foreach ($orders as $order) {
        echo $order->id;
    }
}
"""
    [issue] = _issues(code)
    assert issue.metadata['variable'] == '$orders'


def test_reassignment_clears_source():
    code = """<?php
$orders = Order::all();
$orders = $orders->take(10);
foreach ($orders as $order) {
}
"""
    assert _issues(code) == []


def test_variables_do_not_leak_between_functions():
    code = """<?php
function a() { $rows = Order::all(); }
function b($rows) { foreach ($rows as $row) {} }
"""
    assert _issues(code) == []


def test_chunked_iteration():
    code = "<?php\nUser::chunk(200, function ($users) {\n    foreach ($users as $u) {}\n});\n"
    assert _issues(code) == []
