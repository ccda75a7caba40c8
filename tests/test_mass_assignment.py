#!/usr/bin/env python3
"""Tests for the Mass Assignment analyzer."""

import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.mass_assignment import MassAssignmentAnalyzer
from larasniff.issues import Severity
from larasniff.model_registry import ModelRegistry


def _model(body, extends='Model'):
    return f"""<?php
namespace App\\Models;

use Illuminate\\Database\\Eloquent\\Model;

class Post extends {extends}
{{
{body}
}}
"""


def _issues(code, registry=None):
    return MassAssignmentAnalyzer(None, registry).analyze_code(code, 'app/Models/Post.php').issues


def _calls(body):
    code = f'<?php\nfunction store($request, $user)\n{{\n{body}\n}}\n'
    return [(i.metadata['call_type'], i.metadata['method']) for i in _issues(code)]


class TestModelProtection:
    def test_unprotected_model(self):
        [issue] = _issues(_model('    public function title() { return 1; }'))
        assert issue.code == 'missing-mass-assignment-protection'
        assert issue.severity == Severity.HIGH
        assert issue.location.line == 6
        assert issue.metadata == {'model': 'Post'}

    def test_fillable_or_guarded(self):
        assert _issues(_model("    protected $fillable = ['title', 'body'];")) == []
        assert _issues(_model("    protected $guarded = ['id'];")) == []
        assert _issues(_model("    protected $guarded = ['*'];")) == []

    def test_empty_guarded(self):
        [issue] = _issues(_model('    public $timestamps = false;\n    protected $guarded = [];'))
        assert issue.code == 'empty-guarded'
        assert issue.location.line == 9

    def test_plain_classes(self):
        assert _issues("<?php\nclass PostPresenter\n{\n}\n") == []

    def test_protection_inherited_from_project_model(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'app', 'Models', 'BaseModel.php')
            os.makedirs(os.path.dirname(path))
            with open(path, 'w', encoding='utf-8') as f:
                f.write("<?php\nnamespace App\\Models;\n\nuse Illuminate\\Database\\Eloquent\\Model;\n\n"
                        "abstract class BaseModel extends Model\n{\n    protected $guarded = ['id'];\n}\n")
            registry = ModelRegistry.build(tmpdir, ['app/Models'])
        code = _model('    public function title() { return 1; }', extends='BaseModel')
        assert _issues(code, registry) == []


class TestRequestData:
    def test_static_create(self):
        code = "<?php\nfunction store($request)\n{\n    return Post::create($request->all());\n}\n"
        [issue] = _issues(code)
        assert issue.code == 'mass-assignment-request-data'
        assert issue.severity == Severity.CRITICAL
        assert issue.location.line == 4
        assert issue.message.startswith('Static call to create()')

    def test_call_shapes(self):
        body = """    $user->update(request()->all());
    $user->fill($request->input());
    DB::table('users')->insert($request->post());
    Post::updateOrCreate(['id' => 1], Request::all());"""
        assert _calls(body) == [
            ('instance', 'update'),
            ('instance', 'fill'),
            ('builder', 'insert'),
            ('static', 'updateOrCreate'),
        ]

    def test_filtered_request_data(self):
        body = """    Post::create($request->validated());
    Post::create($request->only(['title']));
    $user->update(['name' => $request->input('name')]);
    $user->update($request->input('profile'));"""
        assert _calls(body) == []

    def test_facade_static_calls(self):
        assert _calls("    $v = Validator::make($request->all(), ['a' => 'required']);") == []
