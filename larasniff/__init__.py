"""
larasniff - static analysis of Laravel/PHP code for architectural, performance
and security anti-patterns.
"""

from .analyzers import ANALYZER_CLASSES, ANALYZERS_BY_ID, create_analyzers
from .analyzers.base import Analyzer
from .config import Config, load_config
from .errors import ConfigError, LarasniffError, ParseError
from .issues import AnalysisResult, AnalyzerMetadata, Category, Issue, Location, Severity, Status
from .model_registry import ModelRegistry, build_registry, clear_registry_cache
from .report import VERSION as __version__
from .report import FORMATTERS, Report
from .runner import Engine, run
from .scope import ScopeTracker
from .visitor import NodeVisitor, analyze_source
