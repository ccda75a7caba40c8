#!/usr/bin/env python3
"""
Tests for the N+1 analyzer: relationship access on loop variables and
queries executed inside loops.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.eloquent_n_plus_one import EloquentNPlusOneAnalyzer
from larasniff.issues import Severity, Status


def _issues(code, **options):
    return EloquentNPlusOneAnalyzer(options or None).analyze_code(code).issues


def _paths(code, **options):
    return [i.metadata['relationship'] for i in _issues(code, **options)
            if i.code == 'n-plus-one-relationship']


def _loop(source, body):
    return f"""<?php
function show()
{{
    $posts = {source};
    foreach ($posts as $post) {{
{body}
    }}
}}
"""


# ---------------------------------------------------------------------------
# Relationship access
# ---------------------------------------------------------------------------

class TestRelationshipAccess:
    def test_lazy_loaded_relationship(self):
        issues = _issues(_loop('Post::all()', '        echo $post->user->name;'))
        assert len(issues) == 1
        issue = issues[0]
        assert issue.code == 'n-plus-one-relationship'
        assert issue.severity == Severity.HIGH
        assert issue.metadata['relationship'] == 'user'
        assert issue.metadata['variable'] == 'post'
        assert issue.metadata['loop_type'] == 'foreach'
        assert "Post::with('user')" in issue.recommendation

    def test_eager_loaded_relationship(self):
        code = _loop("Post::with('user')->get()", '        echo $post->user->name;')
        assert _issues(code) == []

    def test_result_status(self):
        result = EloquentNPlusOneAnalyzer().analyze_code(
            _loop('Post::all()', '        echo $post->user->name;'))
        assert result.status == Status.FAILED

    def test_same_path_reported_once_per_loop(self):
        body = '        echo $post->user->name;\n        echo $post->user->email;'
        assert _paths(_loop('Post::all()', body)) == ['user']

    def test_distinct_paths_reported_separately(self):
        body = '        echo $post->user->name;\n        echo $post->category->slug;'
        assert sorted(_paths(_loop('Post::all()', body))) == ['category', 'user']

    def test_deepest_uncovered_path(self):
        code = _loop("Post::with('user')->get()", '        echo $post->user->profile->bio;')
        assert _paths(code) == ['user.profile']

    def test_second_level_relation_when_first_is_loaded(self):
        code = _loop("Post::with('user')->get()", '        echo $post->user->profile;')
        assert _paths(code) == ['user.profile']

    def test_plain_attribute_after_loaded_relation(self):
        code = _loop("Post::with('user')->get()", '        echo $post->user->email;')
        assert _paths(code) == []

    def test_nested_eager_load_covers_prefix(self):
        code = _loop("Post::with(['user.team'])->get()",
                     '        echo $post->user->name;\n        echo $post->user->team->name;')
        assert _paths(code) == []

    def test_column_selection_syntax(self):
        code = _loop("Post::with('user:id,name')->get()", '        echo $post->user->name;')
        assert _paths(code) == []

    def test_plain_attributes_are_not_relationships(self):
        body = '        echo $post->title;\n        echo $post->created_at;\n        echo $post->id;'
        assert _paths(_loop('Post::all()', body)) == []

    def test_configured_plain_attributes(self):
        code = _loop('Post::all()', '        echo $post->author->name;')
        assert _paths(code) == ['author']
        assert _paths(code, plain_attributes=['author']) == []

    def test_load_after_fetch(self):
        code = """<?php
function show()
{
    $posts = Post::where('published', true)->get();
    $posts->load('user');
    foreach ($posts as $post) {
        echo $post->user->name;
    }
}
"""
        assert _paths(code) == []

    def test_method_call_on_loop_variable_is_not_property_access(self):
        assert _paths(_loop('Post::all()', '        echo $post->user()->exists();')) == []

    def test_access_outside_loop(self):
        code = "<?php\n$post = Post::first();\necho $post->user->name;\n"
        assert _issues(code) == []

    def test_literal_array_source_is_not_tracked(self):
        code = "<?php\nforeach (['a', 'b'] as $item) {\n    echo $item->user;\n}\n"
        assert _issues(code) == []

    def test_unknown_source_tracking_can_be_disabled(self):
        code = '<?php\nforeach ($items as $item) {\n    echo $item->owner->name;\n}\n'
        assert _paths(code) == ['owner']
        assert _paths(code, track_unknown_sources=False) == []


# ---------------------------------------------------------------------------
# Guards and nesting
# ---------------------------------------------------------------------------

class TestGuardsAndNesting:
    def test_relation_loaded_guard(self):
        body = """        if ($post->relationLoaded('user')) {
            echo $post->user->name;
        }
        echo $post->author->name;"""
        assert _paths(_loop('Post::all()', body)) == ['author']

    def test_guard_does_not_leak_into_other_loop(self):
        code = """<?php
function show()
{
    $posts = Post::all();
    foreach ($posts as $post) {
        if ($post->relationLoaded('user')) {
            echo $post->user->name;
        }
    }
    foreach ($posts as $post) {
        echo $post->user->name;
    }
}
"""
        assert _paths(code) == ['user']

    def test_nested_loop_inherits_nested_eager_loads(self):
        body = """        foreach ($post->comments as $comment) {
            echo $comment->author->name;
        }"""
        assert _paths(_loop("Post::with('comments.author')->get()", body)) == []
        assert _paths(_loop("Post::with('comments')->get()", body)) == ['author']

    def test_nested_loops_evaluated_independently(self):
        code = """<?php
function show()
{
    $posts = Post::with('user')->get();
    $tags = Tag::all();
    foreach ($posts as $post) {
        echo $post->user->name;
        foreach ($tags as $tag) {
            echo $tag->creator->name;
        }
    }
}
"""
        assert _paths(code) == ['creator']


# ---------------------------------------------------------------------------
# Queries inside loops
# ---------------------------------------------------------------------------

class TestQueryInLoop:
    def test_static_find_in_foreach(self):
        code = "<?php\nforeach ($ids as $id) {\n    $user = User::find($id);\n}\n"
        [issue] = _issues(code)
        assert issue.code == 'query-in-loop'
        assert issue.metadata['query'] == 'User::find()'
        assert issue.location.line == 3

    def test_db_query_in_for_loop(self):
        code = """<?php
for ($i = 0; $i < 10; $i++) {
    $row = DB::table('logs')->where('id', $i)->first();
}
"""
        [issue] = _issues(code)
        assert issue.metadata == {'query': 'DB::table()', 'loop_type': 'for'}

    def test_relationship_query_in_loop(self):
        issues = _issues(_loop('Post::all()', '        $n = $post->comments()->count();'))
        assert [i.metadata['query'] for i in issues] == ['$post->comments()->count()']

    def test_query_building_without_execution(self):
        code = "<?php\nforeach ($ids as $id) {\n    $q = User::where('id', $id);\n}\n"
        assert _issues(code) == []

    def test_query_in_loop_can_be_disabled(self):
        code = "<?php\nwhile ($next) {\n    $user = User::find($next);\n}\n"
        assert len(_issues(code)) == 1
        assert _issues(code, query_in_loop=False) == []

    def test_facade_call_is_not_a_query(self):
        code = "<?php\nforeach ($keys as $key) {\n    $v = Cache::get($key);\n}\n"
        assert _issues(code) == []


class TestDeterminism:
    def test_repeated_runs_are_identical(self):
        code = _loop('Post::all()', '        echo $post->user->name;\n        echo $post->tags->count;')
        first = [i.to_dict() for i in _issues(code)]
        second = [i.to_dict() for i in _issues(code)]
        assert first == second
        assert first

    def test_parse_failure_passes(self):
        result = EloquentNPlusOneAnalyzer().analyze_code('<?php\nforeach ($a as $b {')
        assert result.status == Status.PASSED
