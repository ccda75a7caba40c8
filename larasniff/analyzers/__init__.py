"""
Analyzer registry.

Every rule is listed once in ``ANALYZER_CLASSES``; the runner and the CLI
work from this list and never refer to a rule by name.
"""

import logging
from typing import Iterable, List, Optional, Type

from ..config import Config
from ..errors import ConfigError
from ..model_registry import ModelRegistry
from .base import Analyzer
from .chunk_missing import ChunkMissingAnalyzer
from .config_outside_config import ConfigOutsideConfigAnalyzer
from .eloquent_n_plus_one import EloquentNPlusOneAnalyzer
from .environment_check import EnvironmentCheckSmellAnalyzer
from .facade_usage import FacadeUsageAnalyzer
from .fat_model import FatModelAnalyzer
from .framework_override import FrameworkOverrideAnalyzer
from .generic_exception_catch import GenericExceptionCatchAnalyzer
from .hardcoded_storage_paths import HardcodedStoragePathsAnalyzer
from .helper_function_abuse import HelperFunctionAbuseAnalyzer
from .logic_in_routes import LogicInRoutesAnalyzer
from .mass_assignment import MassAssignmentAnalyzer
from .missing_model_scope import MissingModelScopeAnalyzer
from .missing_transactions import MissingDatabaseTransactionsAnalyzer
from .mixed_query_builder import MixedQueryBuilderEloquentAnalyzer
from .mvc_structure import MvcStructureViolationAnalyzer
from .php_side_filtering import PhpSideFilteringAnalyzer
from .query_builder_in_controller import QueryBuilderInControllerAnalyzer
from .raw_eloquent_avoidance import RawEloquentAvoidanceAnalyzer
from .select_asterisk import SelectAsteriskAnalyzer
from .service_container_resolution import ServiceContainerResolutionAnalyzer
from .silent_failure import SilentFailureAnalyzer
from .sql_injection import SqlInjectionAnalyzer

logger = logging.getLogger(__name__)

# Registration order is report order
ANALYZER_CLASSES: List[Type[Analyzer]] = [
    # Best practices
    EloquentNPlusOneAnalyzer,
    MixedQueryBuilderEloquentAnalyzer,
    MissingDatabaseTransactionsAnalyzer,
    ChunkMissingAnalyzer,
    ConfigOutsideConfigAnalyzer,
    EnvironmentCheckSmellAnalyzer,
    FacadeUsageAnalyzer,
    FatModelAnalyzer,
    FrameworkOverrideAnalyzer,
    GenericExceptionCatchAnalyzer,
    HardcodedStoragePathsAnalyzer,
    HelperFunctionAbuseAnalyzer,
    LogicInRoutesAnalyzer,
    MissingModelScopeAnalyzer,
    MvcStructureViolationAnalyzer,
    PhpSideFilteringAnalyzer,
    QueryBuilderInControllerAnalyzer,
    RawEloquentAvoidanceAnalyzer,
    SelectAsteriskAnalyzer,
    ServiceContainerResolutionAnalyzer,
    SilentFailureAnalyzer,
    # Security
    SqlInjectionAnalyzer,
    MassAssignmentAnalyzer,
]

ANALYZERS_BY_ID = {cls.metadata.id: cls for cls in ANALYZER_CLASSES}


def check_ids(ids: Iterable[str], source: str = 'analyzer list') -> List[str]:
    """Reject analyzer ids nobody registered."""
    ids = list(ids)
    unknown = sorted(set(ids) - set(ANALYZERS_BY_ID))
    if unknown:
        raise ConfigError(f"{source}: unknown analyzer(s) {', '.join(unknown)}")
    return ids


def create_analyzers(config: Config, registry: Optional[ModelRegistry] = None,
                     only: Optional[Iterable[str]] = None,
                     skip: Optional[Iterable[str]] = None) -> List[Analyzer]:
    """Instantiate the enabled analyzers; invalid options raise ConfigError."""
    only_ids = set(check_ids(only, '--only')) if only else None
    skip_ids = set(check_ids(skip, '--skip')) if skip else set()
    analyzers = []
    for cls in ANALYZER_CLASSES:
        meta = cls.metadata
        if only_ids is not None and meta.id not in only_ids:
            continue
        if meta.id in skip_ids or not config.analyzer_enabled(meta.id, meta.category):
            logger.debug('Analyzer %s disabled', meta.id)
            continue
        analyzers.append(cls(config.analyzer_options(meta.id), registry))
    return analyzers

