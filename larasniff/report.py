#!/usr/bin/env python3
"""
Run report and its output formats.

``Report`` holds one ``AnalysisResult`` per analyzer.  Three formatters
render it: console text, JSON and SARIF 2.1.0 (GitHub Code Scanning).
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .analyzers import ANALYZERS_BY_ID
from .issues import AnalysisResult, Category, Issue, Severity, Status

VERSION = '0.1.0'


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class Report:
    results: List[AnalysisResult]
    base_path: str = ''
    files_scanned: int = 0
    parse_failures: Dict[str, str] = field(default_factory=dict)
    elapsed: float = 0.0
    dont_report: Iterable[str] = ()

    def __post_init__(self):
        hidden = set(self.dont_report or ())
        self.dont_report = sorted(hidden)
        self.results = [r for r in self.results if r.analyzer_id not in hidden]

    def result(self, analyzer_id: str) -> Optional[AnalysisResult]:
        for r in self.results:
            if r.analyzer_id == analyzer_id:
                return r
        return None

    @property
    def issues(self) -> List[Issue]:
        return sorted((i for r in self.results for i in r.issues), key=lambda i: i.sort_key)

    @property
    def total_issues(self) -> int:
        return sum(len(r.issues) for r in self.results)

    def summary(self) -> Dict[str, int]:
        def count(status):
            return sum(1 for r in self.results if r.status == status)
        return {
            'total': len(self.results),
            'passed': count(Status.PASSED),
            'failed': count(Status.FAILED),
            'warnings': count(Status.WARNING),
            'skipped': count(Status.SKIPPED),
            'errors': count(Status.ERROR),
        }

    @property
    def score(self) -> int:
        """Percentage of analyzers that passed."""
        if not self.results:
            return 100
        return round(self.summary()['passed'] / len(self.results) * 100)

    def severity_totals(self) -> Dict[str, int]:
        totals = {s.value: 0 for s in Severity}
        for r in self.results:
            for i in r.issues:
                totals[i.severity.value] += 1
        return totals

    def has_failures(self, fail_on: Severity = Severity.HIGH) -> bool:
        return any(i.severity >= fail_on for r in self.results for i in r.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tool': 'larasniff',
            'version': VERSION,
            'base_path': self.base_path,
            'files_scanned': self.files_scanned,
            'elapsed': round(self.elapsed, 2),
            'score': self.score,
            'summary': self.summary(),
            'severity': self.severity_totals(),
            'parse_failures': dict(sorted(self.parse_failures.items())),
            'results': [r.to_dict() for r in self.results],
        }


# ---------------------------------------------------------------------------
# Colors (auto-disabled when the stream is not a TTY)
# ---------------------------------------------------------------------------

def color_enabled(stream=None) -> bool:
    stream = stream or sys.stdout
    return hasattr(stream, 'isatty') and stream.isatty()


def _c(code: str, text: str, enabled: bool) -> str:
    if not enabled:
        return text
    return f'\033[{code}m{text}\033[0m'


_SEVERITY_COLORS = {'critical': '31;1', 'high': '31', 'medium': '33', 'low': '36'}
_STATUS_COLORS = {'passed': '32', 'warning': '33', 'failed': '31', 'error': '31;1', 'skipped': '2'}


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def format_text(report: Report, max_issues: int = 5, color: bool = False) -> str:
    """Console report; at most `max_issues` issues are listed per analyzer."""
    lines = ['=' * 70, _c('1', 'LARASNIFF RESULTS', color), '=' * 70, '']
    lines.append(f'Target: {report.base_path}')
    lines.append(f'Files scanned: {report.files_scanned}')
    if report.parse_failures:
        lines.append(f'Files skipped (parse errors): {len(report.parse_failures)}')

    for result in report.results:
        cls = ANALYZERS_BY_ID.get(result.analyzer_id)
        title = cls.metadata.name if cls is not None else result.analyzer_id
        status = result.status.value
        lines.append('')
        lines.append(f"[{_c(_STATUS_COLORS.get(status, '0'), status.upper(), color)}] "
                     f"{_c('1', title, color)} ({result.analyzer_id})")
        if result.status != Status.PASSED:
            lines.append(f'  {result.message}')
        for issue in result.issues[:max_issues]:
            sev = issue.severity.value
            lines.append(f"  {_c(_SEVERITY_COLORS[sev], sev.upper(), color)} "
                         f'{issue.location}: {issue.message}')
            if issue.excerpt:
                lines.append(f"    {_c('2', issue.excerpt[:100], color)}")
            if issue.recommendation:
                lines.append(f'    Fix: {issue.recommendation}')
        if len(result.issues) > max_issues:
            lines.append(f'  ... and {len(result.issues) - max_issues} more')

    summary = report.summary()
    totals = report.severity_totals()
    lines += ['', '-' * 70]
    lines.append(f"Analyzers: {summary['total']} | passed {summary['passed']} | "
                 f"failed {summary['failed']} | warnings {summary['warnings']} | "
                 f"errors {summary['errors']}")
    lines.append('Issues: ' + ', '.join(
        f"{_c(_SEVERITY_COLORS[s], s, color)} {totals[s]}" for s in ('critical', 'high', 'medium', 'low')))
    lines.append(f"Score: {_c('1', str(report.score), color)}/100")
    return '\n'.join(lines) + '\n'


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def format_json(report: Report) -> str:
    return json.dumps(report.to_dict(), indent=2, default=str) + '\n'


# ---------------------------------------------------------------------------
# SARIF
# ---------------------------------------------------------------------------

_SARIF_LEVELS = {'critical': 'error', 'high': 'error', 'medium': 'warning', 'low': 'note'}
_SECURITY_SEVERITY = {'critical': '9.0', 'high': '7.5', 'medium': '5.0', 'low': '3.0'}


def generate_sarif(report: Report) -> Dict[str, Any]:
    """SARIF 2.1.0 document with one rule per analyzer that ran."""
    rules = []
    rule_index = {}
    sarif_results = []
    for result in report.results:
        cls = ANALYZERS_BY_ID.get(result.analyzer_id)
        if cls is None:
            continue
        meta = cls.metadata
        rule_index[meta.id] = len(rules)
        properties = {'tags': [meta.category.value] + list(meta.tags)}
        if meta.category == Category.SECURITY:
            properties['security-severity'] = _SECURITY_SEVERITY[meta.severity.value]
        rules.append({
            'id': meta.id,
            'name': meta.name,
            'shortDescription': {'text': meta.name},
            'fullDescription': {'text': meta.description},
            'defaultConfiguration': {'level': _SARIF_LEVELS[meta.severity.value]},
            'properties': properties,
        })
        for issue in result.issues:
            region = {'startLine': max(issue.location.line, 1)}
            if issue.location.end_line:
                region['endLine'] = issue.location.end_line
            if issue.location.column is not None:
                region['startColumn'] = issue.location.column
            sarif_results.append({
                'ruleId': meta.id,
                'ruleIndex': rule_index[meta.id],
                'level': _SARIF_LEVELS[issue.severity.value],
                'message': {'text': issue.message},
                'locations': [{
                    'physicalLocation': {
                        'artifactLocation': {
                            'uri': issue.location.file,
                            'uriBaseId': '%SRCROOT%',
                        },
                        'region': region,
                    }
                }],
                'properties': {
                    'code': issue.code,
                    'severity': issue.severity.value,
                    'recommendation': issue.recommendation,
                },
            })

    return {
        '$schema': 'https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json',
        'version': '2.1.0',
        'runs': [{
            'tool': {
                'driver': {
                    'name': 'larasniff',
                    'version': VERSION,
                    'rules': rules,
                }
            },
            'results': sarif_results,
            'invocations': [{
                'executionSuccessful': not any(r.status == Status.ERROR for r in report.results),
                'endTimeUtc': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
            }],
        }],
    }


def format_sarif(report: Report) -> str:
    return json.dumps(generate_sarif(report), indent=2) + '\n'


FORMATTERS = {
    'text': format_text,
    'json': format_json,
    'sarif': format_sarif,
}
