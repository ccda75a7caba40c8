#!/usr/bin/env python3
"""Tests for the Generic Exception Catch analyzer."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from larasniff.analyzers.generic_exception_catch import GenericExceptionCatchAnalyzer, caught_types
from larasniff.ts_adapter import parse_php


def _issues(code):
    return GenericExceptionCatchAnalyzer().analyze_code(code).issues


def test_caught_types():
    root = parse_php('<?php\ntry { f(); } catch (\\InvalidArgumentException | \\Exception $e) {}')
    catch = root.find_all('catch_clause')[0]
    assert caught_types(catch) == ['\\InvalidArgumentException', '\\Exception']


def test_generic_exception():
    [issue] = _issues('<?php\ntry {\n    f();\n} catch (\\Exception $e) {\n    log($e);\n}\n')
    assert issue.code == 'generic-exception-catch'
    assert issue.location.line == 4
    assert issue.metadata == {'exception': 'Exception'}


def test_throwable_in_union():
    issues = _issues('<?php\ntry { f(); } catch (ModelNotFoundException | Throwable $e) {}\n')
    assert [i.metadata['exception'] for i in issues] == ['Throwable']


def test_specific_exception():
    assert _issues('<?php\ntry { f(); } catch (ModelNotFoundException $e) {}\n') == []


def test_project_exception_with_same_name():
    code = '<?php\nuse App\\Exceptions\\Exception;\n\ntry { f(); } catch (Exception $e) {}\n'
    assert _issues(code) == []


def test_imported_global_exception():
    code = '<?php\nuse Exception;\n\ntry { f(); } catch (Exception $e) {}\n'
    assert len(_issues(code)) == 1
