#!/usr/bin/env python3
"""Tests for the Missing Database Transactions analyzer."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.missing_transactions import MissingDatabaseTransactionsAnalyzer
from larasniff.issues import Severity, Status


def _method(body, path='app/Services/OrderService.php', **options):
    code = f"""<?php
namespace App\\Services;

use Illuminate\\Support\\Facades\\DB;

class OrderService
{{
    public function place($order, $invoice, $items)
    {{
{body}
    }}
}}
"""
    return MissingDatabaseTransactionsAnalyzer(options or None).analyze_code(code, path)


class TestUnprotectedWrites:
    def test_two_writes_fail(self):
        result = _method('        $order->save();\n        $invoice->save();')
        assert result.status == Status.FAILED
        [issue] = result.issues
        assert issue.code == 'missing-transaction'
        assert issue.severity == Severity.HIGH
        assert issue.location.line == 8
        assert issue.metadata['class'] == 'OrderService'
        assert issue.metadata['method'] == 'place'
        assert issue.metadata['unprotected_count'] == 2
        assert issue.metadata['lines'] == [10, 11]
        assert 'OrderService::place()' in issue.message

    def test_single_write_passes(self):
        assert _method('        $order->save();').status == Status.PASSED

    def test_static_model_writes(self):
        result = _method("        Order::create(['a' => 1]);\n        Invoice::create(['b' => 2]);")
        [issue] = result.issues
        assert issue.metadata['operations'] == ['Order::create()', 'Invoice::create()']

    def test_db_facade_writes(self):
        result = _method("        DB::insert('insert into logs values (?)', [1]);\n"
                         "        DB::table('audits')->insert(['x' => 1]);")
        [issue] = result.issues
        assert issue.metadata['operations'] == ['DB::insert()', '->insert()']

    def test_relationship_writes(self):
        result = _method("        $order->items()->create(['sku' => 1]);\n"
                         "        $order->tags()->sync([1, 2]);")
        assert len(result.issues) == 1

    def test_threshold_option(self):
        body = '        $order->save();\n        $invoice->save();'
        assert _method(body, threshold=3).status == Status.PASSED
        assert _method('        $order->save();', threshold=1).status == Status.FAILED

    def test_writes_counted_per_method(self):
        code = """<?php
class A
{
    public function one($a) { $a->save(); }
    public function two($b) { $b->delete(); }
}
"""
        assert MissingDatabaseTransactionsAnalyzer().analyze_code(code).issues == []


class TestTransactionBoundaries:
    def test_writes_inside_transaction_closure(self):
        body = """        DB::transaction(function () use ($order, $invoice) {
            $order->save();
            $invoice->save();
        });"""
        assert _method(body).status == Status.PASSED

    def test_arrow_function_transaction(self):
        body = '        DB::transaction(fn () => $order->save() && $invoice->save());'
        assert _method(body).status == Status.PASSED

    def test_transaction_does_not_protect_earlier_writes(self):
        body = """        $order->save();
        $invoice->save();
        DB::transaction(function () {
        });"""
        assert _method(body).status == Status.FAILED

    def test_nearby_closure_is_not_protected(self):
        body = """        $work = function () use ($order, $invoice) {
            $order->save();
            $invoice->save();
        };
        DB::transaction($work);"""
        assert _method(body).status == Status.FAILED

    def test_closure_in_other_call_is_not_protected(self):
        body = """        collect($items)->each(function ($item) {
            $item->update(['done' => true]);
            $item->touch();
        });"""
        assert _method(body).status == Status.FAILED

    def test_aliased_db_facade_transaction(self):
        code = """<?php
use Illuminate\\Support\\Facades\\DB as Database;

class OrderService
{
    public function place($order, $invoice)
    {
        Database::transaction(function () use ($order, $invoice) {
            $order->save();
            $invoice->save();
        });
    }
}
"""
        assert MissingDatabaseTransactionsAnalyzer().analyze_code(code).issues == []

    def test_manual_transaction(self):
        body = """        DB::beginTransaction();
        try {
            $order->save();
            $invoice->save();
            DB::commit();
        } catch (\\Throwable $e) {
            DB::rollBack();
            throw $e;
        }"""
        assert _method(body).status == Status.PASSED

    def test_writes_after_commit_are_unprotected(self):
        body = """        DB::beginTransaction();
        $order->save();
        DB::commit();
        $invoice->save();
        $order->touch();"""
        [issue] = _method(body).issues
        assert issue.metadata['unprotected_count'] == 2
        assert issue.metadata['write_count'] == 3


class TestExclusions:
    def test_non_relational_stores(self):
        body = """        Cache::put('a', 1);
        Cache::increment('hits');
        Storage::delete('tmp.txt');
        Storage::disk('s3')->delete($path);
        Redis::set('k', 1);
        $items->push($order);
        $order->save();"""
        assert _method(body).status == Status.PASSED

    @pytest.mark.parametrize('path', [
        'tests/Feature/OrderTest.php',
        'database/seeders/OrderSeeder.php',
        'database/migrations/2024_01_01_000000_create_orders.php',
        'database/factories/OrderFactory.php',
    ])
    def test_excluded_file_roles(self, path):
        body = '        $order->save();\n        $invoice->save();'
        assert _method(body, path=path).issues == []
