#!/usr/bin/env python3
"""Tests for larasniff/php_ast.py - shared syntax queries."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff import php_ast
from larasniff.ts_adapter import parse_php


def _nodes(code, node_type):
    return [n for n in parse_php(code).walk_descendants() if n.type == node_type]


def _top_chain(code):
    root = parse_php(code)
    for node in root.walk_descendants():
        if node.type in php_ast.CHAIN_LINKS or node.type == 'scoped_call_expression':
            if php_ast.is_chain_top(node):
                return php_ast.unwind_chain(node)
    raise AssertionError('no chain found')


# ---------------------------------------------------------------------------
# Chains
# ---------------------------------------------------------------------------

class TestUnwindChain:
    def test_static_chain(self):
        chain = _top_chain("<?php User::where('active', 1)->orderBy('name')->get();")
        assert chain.static_class == 'User'
        assert chain.method_names == ['where', 'orderBy', 'get']
        assert chain.root_variable is None

    def test_variable_property_chain(self):
        chain = _top_chain('<?php echo $post->user->name;')
        assert chain.root_variable == '$post'
        assert [s.name for s in chain.segments] == ['user', 'name']
        assert chain.calls == []

    def test_helper_root(self):
        chain = _top_chain("<?php app()->make('cache');")
        assert chain.root_function == 'app'
        assert chain.method_names == ['make']

    def test_find_segment(self):
        chain = _top_chain("<?php $q->where('a', 1)->with('user')->get();")
        seg = chain.find('with')
        assert seg is not None
        assert php_ast.string_list(seg.arguments[0]) == ['user']
        assert chain.find('select') is None

    def test_inner_links_are_not_chain_tops(self):
        root = parse_php('<?php $a->b()->c();')
        calls = [n for n in root.walk_descendants() if n.type == 'member_call_expression']
        tops = [n for n in calls if php_ast.is_chain_top(n)]
        assert len(calls) == 2
        assert len(tops) == 1
        assert tops[0].get_function_name() == 'c'


# ---------------------------------------------------------------------------
# Literals
# ---------------------------------------------------------------------------

class TestLiterals:
    def test_single_quoted_string(self):
        arg = _nodes("<?php foo('it\\'s');", 'argument')[0]
        assert php_ast.string_value(arg) == "it's"

    def test_interpolated_string_has_no_value(self):
        arg = _nodes('<?php foo("id $id");', 'argument')[0]
        assert php_ast.string_value(arg) is None
        assert php_ast.is_dynamic_string(arg)

    def test_concatenation_is_dynamic(self):
        arg = _nodes("<?php foo('a' . $b);", 'argument')[0]
        assert php_ast.is_dynamic_string(arg)

    def test_plain_string_is_not_dynamic(self):
        arg = _nodes("<?php foo('select 1');", 'argument')[0]
        assert not php_ast.is_dynamic_string(arg)

    def test_string_list(self):
        args = _nodes("<?php foo(['user', 'comments.author', $x]);", 'argument')
        assert php_ast.string_list(args[0]) == ['user', 'comments.author']

    def test_array_items_with_keys(self):
        arg = _nodes("<?php foo(['posts' => function ($q) {}, 'user']);", 'argument')[0]
        items = list(php_ast.array_items(arg))
        assert php_ast.string_value(items[0][0]) == 'posts'
        assert items[1][0] is None


# ---------------------------------------------------------------------------
# Names and class members
# ---------------------------------------------------------------------------

CLASS_CODE = """<?php
class Post extends \\Illuminate\\Database\\Eloquent\\Model
{
    protected $table = 'blog_posts';
    protected $fillable = ['title'];

    public function author() { return $this->belongsTo(User::class); }
    private static function helper() { return 1; }
}
"""


class TestClassQueries:
    def test_parent_class_name(self):
        cls = _nodes(CLASS_CODE, 'class_declaration')[0]
        assert php_ast.declared_name(cls) == 'Post'
        assert php_ast.parent_class_name(cls) == 'Illuminate\\Database\\Eloquent\\Model'

    def test_short_name(self):
        assert php_ast.short_name('App\\Models\\User') == 'User'
        assert php_ast.short_name('User') == 'User'

    def test_properties(self):
        cls = _nodes(CLASS_CODE, 'class_declaration')[0]
        props = {name: default for name, default, _decl in php_ast.class_properties(cls)}
        assert set(props) == {'table', 'fillable'}
        assert php_ast.string_value(props['table']) == 'blog_posts'

    def test_methods(self):
        cls = _nodes(CLASS_CODE, 'class_declaration')[0]
        methods = php_ast.class_methods(cls)
        assert [php_ast.declared_name(m) for m in methods] == ['author', 'helper']
        assert php_ast.method_visibility(methods[0]) == 'public'
        assert php_ast.method_visibility(methods[1]) == 'private'
        assert php_ast.is_static_method(methods[1])
        assert not php_ast.is_static_method(methods[0])

    def test_anonymous_class(self):
        code = '<?php $x = new class extends Base { }; $y = new Foo();'
        assert any(php_ast.is_anonymous_class(n) for n in parse_php(code).walk_descendants())
        creations = _nodes(code, 'object_creation_expression')
        named = [n for n in creations if 'Foo' in n.text]
        assert php_ast.new_class_name(named[0]) == 'Foo'


# ---------------------------------------------------------------------------
# Bodies, loops, complexity
# ---------------------------------------------------------------------------

class TestBodies:
    def test_walk_local_skips_closures(self):
        func = _nodes('<?php function f() { a(); $g = function () { b(); }; }',
                      'function_definition')[0]
        names = [n.get_function_name() for n in php_ast.walk_local(func)
                 if n.type == 'function_call_expression']
        assert names == ['a']

    def test_return_expressions(self):
        func = _nodes("<?php function f($x) { if ($x) { return 'a'; } return; }",
                      'function_definition')[0]
        exprs = php_ast.return_expressions(php_ast.method_body(func))
        assert len(exprs) == 2
        assert php_ast.string_value(exprs[0]) == 'a'
        assert exprs[1] is None

    def test_foreach_parts(self):
        loop = _nodes('<?php foreach ($posts as $key => $post) { echo 1; }', 'foreach_statement')[0]
        iterable, value, body = php_ast.foreach_parts(loop)
        assert iterable.text == '$posts'
        assert value.text == '$post'
        assert body is not None

    def test_cyclomatic_complexity(self):
        func = _nodes('<?php function f($a, $b) { if ($a && $b) { } foreach ($a as $x) { } }',
                      'function_definition')[0]
        assert php_ast.cyclomatic_complexity(func) == 4

    def test_nesting_depth(self):
        func = _nodes('<?php function f($a) { if ($a) { if ($a) { } } if ($a) { } }',
                      'function_definition')[0]
        assert php_ast.nesting_depth(func) == 2

    def test_line_count(self):
        func = _nodes('<?php\nfunction f()\n{\n    return 1;\n}\n', 'function_definition')[0]
        assert php_ast.line_count(func) == 4
