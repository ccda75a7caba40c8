#!/usr/bin/env python3
"""
Tests for larasniff/runner.py - whole-project runs.

Each test builds a small Laravel-shaped project in a temporary directory.
"""

import os
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.config import config_from_dict
from larasniff.errors import ConfigError
from larasniff.issues import Severity, Status
from larasniff.model_registry import clear_registry_cache
from larasniff.runner import Engine, run

PROJECT = {
    'app/Models/Post.php': """<?php
namespace App\\Models;

use Illuminate\\Database\\Eloquent\\Model;

class Post extends Model
{
    protected $fillable = ['title', 'body'];
}
""",
    'app/Models/Comment.php': """<?php
namespace App\\Models;

use Illuminate\\Database\\Eloquent\\Model;

class Comment extends Model
{
}
""",
    'app/Http/Controllers/SearchController.php': """<?php
namespace App\\Http\\Controllers;

use Illuminate\\Http\\Request;
use Illuminate\\Support\\Facades\\DB;

class SearchController extends Controller
{
    public function search(Request $request)
    {
        return DB::select("SELECT id FROM posts WHERE title = '" . $request->input('q') . "'");
    }
}
""",
    'app/Broken.php': '<?php\nclass Broken {\n    public function (\n',
    'routes/web.php': "<?php\nRoute::get('/', fn () => view('welcome'));\n",
    'vendor/acme/Skipped.php': "<?php\nDB::unprepared('DROP TABLE ' . $t);\n",
}

ONLY = ['sql-injection', 'mass-assignment']


@pytest.fixture
def project():
    clear_registry_cache()
    with tempfile.TemporaryDirectory() as tmpdir:
        for rel, content in PROJECT.items():
            path = os.path.join(tmpdir, rel)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
        yield tmpdir
    clear_registry_cache()


def _config(**overrides):
    data = {'workers': 2}
    data.update(overrides)
    return config_from_dict(data)


class TestEngine:
    def test_files_and_parse_failures(self, project):
        report = Engine(_config()).run(project, only=ONLY)
        assert report.files_scanned == 5
        assert list(report.parse_failures) == ['app/Broken.php']
        assert report.base_path == os.path.abspath(project)

    def test_issues_per_analyzer(self, project):
        report = run(project, _config(), only=ONLY)
        sql = report.result('sql-injection')
        assert sql.status == Status.FAILED
        [issue] = sql.issues
        assert issue.location.file == 'app/Http/Controllers/SearchController.php'
        assert issue.location.line == 11
        assert issue.code == 'sql-injection'

        mass = report.result('mass-assignment')
        assert [i.metadata['model'] for i in mass.issues] == ['Comment']
        # app/Broken.php never reaches the analyzers
        assert mass.metadata['files_analyzed'] == 4

    def test_results_in_registration_order(self, project):
        report = run(project, _config(), only=['mass-assignment', 'sql-injection'])
        assert [r.analyzer_id for r in report.results] == ['sql-injection', 'mass-assignment']

    def test_worker_count_does_not_change_results(self, project):
        serial = run(project, _config(workers=1), only=ONLY)
        clear_registry_cache()
        parallel = run(project, _config(workers=8), only=ONLY)
        assert [i.to_dict() for i in serial.issues] == [i.to_dict() for i in parallel.issues]

    def test_progress_callback(self, project):
        calls = []
        Engine(_config(), progress=lambda done, total: calls.append((done, total))).run(
            project, only=ONLY)
        assert len(calls) == 5
        assert calls[-1] == (5, 5)

    def test_selected_files_only(self, project):
        target = os.path.join(project, 'app/Models/Comment.php')
        report = run(project, _config(), only=ONLY, files=[target])
        assert report.files_scanned == 1
        assert report.result('sql-injection').status == Status.PASSED
        assert len(report.result('mass-assignment').issues) == 1

    def test_registry_built_from_model_paths(self, project):
        engine = Engine(_config())
        engine.run(project, only=ONLY)
        assert engine.registry.is_model('App\\Models\\Post')
        assert engine.registry.resolve_table('Comment') == 'comments'

    def test_table_mappings_feed_registry(self, project):
        config = _config(analyzers={
            'mixed-query-builder-eloquent': {'table_mappings': {'Comment': 'post_comments'}},
        })
        engine = Engine(config)
        engine.run(project, only=['mixed-query-builder-eloquent'])
        assert engine.registry.resolve_table('Comment') == 'post_comments'

    def test_dont_report_hides_results(self, project):
        report = run(project, _config(dont_report=['mass-assignment']), only=ONLY)
        assert [r.analyzer_id for r in report.results] == ['sql-injection']

    def test_fail_on_threshold(self, project):
        report = run(project, _config(), only=ONLY)
        assert report.has_failures(Severity.HIGH)
        assert report.has_failures(Severity.CRITICAL)
        clean = run(project, _config(), only=['mass-assignment'],
                    files=[os.path.join(project, 'app/Models/Post.php')])
        assert not clean.has_failures(Severity.LOW)

    def test_all_analyzers_run_cleanly(self, project):
        report = run(project, _config())
        assert report.summary()['errors'] == 0

    def test_unknown_analyzer(self, project):
        with pytest.raises(ConfigError):
            run(project, _config(), skip=['not-an-analyzer'])

    def test_invalid_table_mappings_rejected_before_registry(self, project):
        config = _config(analyzers={
            'mixed-query-builder-eloquent': {'table_mappings': {'Comment': ['post_comments']}},
        })
        with pytest.raises(ConfigError, match='table_mappings'):
            Engine(config).run(project)
