#!/usr/bin/env python3
"""
Project runner.

A run has two phases.  The Model Registry is built first, in a single thread,
and is read-only afterwards.  Files are then analysed in a thread pool: each
worker reads one file, parses it once and walks it once for every analyzer
that applies to it.  Per-analyzer issues are gathered in the main thread and
folded into one ``AnalysisResult`` each, in registration order.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Optional

from .analyzers import create_analyzers
from .analyzers.base import Analyzer
from .config import Config, resolve_options
from .files import discover_files, relative_path
from .issues import Issue
from .model_registry import ModelRegistry, build_registry
from .report import Report
from .visitor import FileOutcome, analyze_source

logger = logging.getLogger(__name__)

# Analyzer whose table_mappings option also feeds the registry
_MAPPINGS_OWNER = 'mixed-query-builder-eloquent'

ProgressCallback = Callable[[int, int], None]


class Engine:
    """Runs the enabled analyzers over a project directory."""

    def __init__(self, config: Optional[Config] = None,
                 progress: Optional[ProgressCallback] = None):
        self.config = config or Config()
        self.progress = progress
        self.registry: Optional[ModelRegistry] = None

    def build_registry(self, base_path: str) -> ModelRegistry:
        given = self.config.analyzer_options(_MAPPINGS_OWNER).get('table_mappings')
        mappings = resolve_options(_MAPPINGS_OWNER, {'table_mappings': (dict, {})},
                                   {'table_mappings': given})['table_mappings']
        return build_registry(base_path, self.config.model_paths, mappings,
                              self.config.cache_dir)

    def run(self, base_path: str, only: Optional[Iterable[str]] = None,
            skip: Optional[Iterable[str]] = None,
            files: Optional[List[str]] = None) -> Report:
        """Analyse `base_path` (or just `files` under it) and return the report.

        Raises ConfigError for invalid analyzer options or unknown ids.
        """
        start = time.time()
        base_path = os.path.abspath(base_path)
        self.registry = self.build_registry(base_path)
        analyzers = create_analyzers(self.config, self.registry, only, skip)
        if files is None:
            files = discover_files(base_path, self.config.paths, self.config.excluded_paths)
        logger.info('Analysing %d file(s) with %d analyzer(s)', len(files), len(analyzers))

        outcomes = self._analyze_files(analyzers, base_path, files)
        parse_failures = {o.relative_path: o.parse_error for o in outcomes if o.parse_error}
        if parse_failures:
            logger.info('%d file(s) could not be parsed', len(parse_failures))

        elapsed = time.time() - start
        results = [self._fold(a, outcomes, elapsed) for a in analyzers]
        report = Report(results, base_path=base_path, files_scanned=len(files),
                        parse_failures=parse_failures, elapsed=elapsed,
                        dont_report=self.config.dont_report)
        logger.info('Finished in %.2fs: %d issue(s)', elapsed, report.total_issues)
        return report

    # -- per-file fan-out -----------------------------------------------------

    def _analyze_files(self, analyzers: List[Analyzer], base_path: str,
                       files: List[str]) -> List[FileOutcome]:
        outcomes: List[FileOutcome] = []
        if not analyzers or not files:
            return outcomes
        done = 0
        with ThreadPoolExecutor(max_workers=max(1, self.config.workers)) as executor:
            futures = {
                executor.submit(self._analyze_file, analyzers, base_path, fp): fp
                for fp in files
            }
            for future in as_completed(futures):
                outcome = future.result()
                if outcome is not None:
                    outcomes.append(outcome)
                done += 1
                if self.progress is not None:
                    self.progress(done, len(files))
        # completion order is arbitrary
        outcomes.sort(key=lambda o: o.relative_path)
        return outcomes

    def _analyze_file(self, analyzers: List[Analyzer], base_path: str,
                      file_path: str) -> Optional[FileOutcome]:
        rel = relative_path(file_path, base_path)
        try:
            with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
                source = f.read()
        except OSError as e:
            logger.debug('Cannot read %s: %s', rel, e)
            return None
        return analyze_source(analyzers, source, file_path, rel, self.registry)

    @staticmethod
    def _fold(analyzer: Analyzer, outcomes: List[FileOutcome], elapsed: float):
        issues: List[Issue] = []
        errors: Dict[str, str] = {}
        analyzed = 0
        for outcome in outcomes:
            if analyzer.id in outcome.issues:
                analyzed += 1
                issues.extend(outcome.issues[analyzer.id])
            if analyzer.id in outcome.errors:
                errors[outcome.relative_path] = outcome.errors[analyzer.id]
        return analyzer.result(issues, elapsed, errors, analyzed)


def run(base_path: str, config: Optional[Config] = None, **kwargs) -> Report:
    """Shortcut for ``Engine(config).run(base_path, ...)``."""
    return Engine(config).run(base_path, **kwargs)
