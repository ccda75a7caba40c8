#!/usr/bin/env python3
"""
Issue and result data model.

Every analyzer reports ``Issue`` objects; the runner folds them into one
``AnalysisResult`` per analyzer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Severity(Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    @property
    def level(self) -> int:
        return _SEVERITY_LEVELS[self]

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.level >= other.level

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.level > other.level

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.level <= other.level

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.level < other.level

    @classmethod
    def parse(cls, value: str) -> 'Severity':
        return cls(str(value).strip().lower())


_SEVERITY_LEVELS = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class Status(Enum):
    PASSED = 'passed'
    WARNING = 'warning'
    FAILED = 'failed'
    SKIPPED = 'skipped'
    ERROR = 'error'


class Category(Enum):
    BEST_PRACTICES = 'best-practices'
    SECURITY = 'security'


@dataclass(frozen=True)
class Location:
    file: str
    line: int
    end_line: Optional[int] = None
    column: Optional[int] = None

    def __str__(self):
        return f'{self.file}:{self.line}'


@dataclass
class Issue:
    code: str
    message: str
    severity: Severity
    recommendation: str
    location: Location
    analyzer_id: str = ''
    excerpt: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self) -> Tuple[str, int, str, str]:
        return (self.location.file, self.location.line, self.code, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'analyzer': self.analyzer_id,
            'code': self.code,
            'message': self.message,
            'severity': self.severity.value,
            'recommendation': self.recommendation,
            'file': self.location.file,
            'line': self.location.line,
            'end_line': self.location.end_line,
            'excerpt': self.excerpt,
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class AnalyzerMetadata:
    id: str
    name: str
    description: str
    category: Category
    severity: Severity
    tags: Tuple[str, ...] = ()
    time_to_fix: int = 0  # minutes


@dataclass
class AnalysisResult:
    analyzer_id: str
    status: Status
    message: str
    issues: List[Issue] = field(default_factory=list)
    execution_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.status == Status.PASSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'analyzer': self.analyzer_id,
            'status': self.status.value,
            'message': self.message,
            'execution_time': round(self.execution_time, 4),
            'issues': [i.to_dict() for i in self.issues],
            'metadata': self.metadata,
        }
