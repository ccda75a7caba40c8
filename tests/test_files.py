#!/usr/bin/env python3
"""Tests for larasniff/files.py - discovery, exclusion globs and file roles."""

import os
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.files import (PathFilter, discover_files, file_role, is_controller_file,
                             is_development_file, is_test_file, relative_path)


def _touch(base, rel):
    path = os.path.join(base, rel)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write('<?php\n')


class TestPathFilter:
    @pytest.mark.parametrize('pattern, path, expected', [
        ('storage/*', 'storage/framework/views/x.php', True),
        ('app/Legacy/**', 'app/Legacy/Deep/Thing.php', True),
        ('*.blade.php', 'resources/views/home.blade.php', True),
        ('app/*.php', 'app/Models/User.php', False),
        ('app/Http/Kernel.php', 'app/Http/Kernel.php', True),
        ('APP/HTTP/*', 'app/Http/Kernel.php', True),
        ('Kernel.php', 'app/Http/Kernel.php', True),
    ])
    def test_matches(self, pattern, path, expected):
        assert PathFilter([pattern]).matches(path) is expected

    def test_empty_filter(self):
        assert not PathFilter([])
        assert not PathFilter(None).matches('app/User.php')

    def test_windows_separators(self):
        assert PathFilter(['app\\Legacy\\*']).matches('app\\Legacy\\Old.php')


class TestDiscovery:
    def test_discovers_php_under_scan_paths(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            for rel in ('app/Models/User.php', 'app/Http/Controllers/HomeController.php',
                        'routes/web.php', 'vendor/laravel/framework/src/Model.php',
                        'app/notes.txt', 'storage/cache/x.php', 'tests/FooTest.php'):
                _touch(tmpdir, rel)
            files = discover_files(tmpdir, ['app', 'routes', 'missing'], ['storage/*'])
            rels = [relative_path(f, tmpdir) for f in files]
        assert rels == ['app/Http/Controllers/HomeController.php', 'app/Models/User.php',
                        'routes/web.php']

    def test_vendor_always_skipped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            _touch(tmpdir, 'vendor/pkg/A.php')
            _touch(tmpdir, 'B.php')
            files = discover_files(tmpdir)
            assert [os.path.basename(f) for f in files] == ['B.php']

    def test_single_file_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            _touch(tmpdir, 'routes/api.php')
            files = discover_files(tmpdir, ['routes/api.php'])
            assert len(files) == 1


class TestFileRoles:
    @pytest.mark.parametrize('path, role', [
        ('app/Http/Controllers/PostController.php', 'controller'),
        ('app/Models/Post.php', 'model'),
        ('routes/web.php', 'route'),
        ('config/app.php', 'config'),
        ('database/migrations/2024_01_01_create_posts.php', 'migration'),
        ('database/seeders/UserSeeder.php', 'seeder'),
        ('tests/Feature/PostTest.php', 'test'),
        ('app/Services/Billing.php', 'service'),
        ('app/Support/helpers.php', 'application'),
    ])
    def test_roles(self, path, role):
        assert file_role(path) == role

    def test_predicates(self):
        assert is_controller_file('app/Http/Controllers/Api/UserController.php')
        assert is_test_file('tests/Unit/ExampleTest.php')
        assert is_development_file('database/factories/UserFactory.php')
        assert not is_development_file('app/Models/User.php')
