"""
perfbudget - CI performance budgets over stored audit runs.

Основные компоненты:
- StorageService: Хранение иерархии Project → Build → Run с проверкой токена
- SqlStorageMethod / RedisStorageMethod: Backend'ы хранилища
- evaluate: Assertion Engine (агрегация прогонов и проверка бюджетов)
- resolve_rule_set: Слияние конфигурации assertions по приоритетам
- AssertionReporter: Вывод результатов и код выхода
"""

__version__ = "0.3.0"

from perfbudget.core.assertions import AssertionOutcome, AssertionResult, AssertionRule, evaluate
from perfbudget.core.config import RuleSet, load_rc_chain, parse_cli_overrides, resolve_rule_set
from perfbudget.core.errors import (
    AuthorizationError,
    ConfigurationError,
    NotFoundError,
    PerfBudgetError,
    StorageError,
    ValidationError,
)
from perfbudget.core.models import Build, BuildMetadata, Project, ReportPayload, Run, parse_report
from perfbudget.core.redis_store import RedisStorageMethod
from perfbudget.core.report import AssertionReporter
from perfbudget.core.service import StorageService
from perfbudget.core.sql_store import SqlStorageMethod
from perfbudget.core.storage import StorageMethod
from perfbudget.core.types import AggregationMethod, Severity

__all__ = [
    # Хранилище
    "StorageService",
    "StorageMethod",
    "SqlStorageMethod",
    "RedisStorageMethod",

    # Модели данных
    "Project",
    "Build",
    "BuildMetadata",
    "Run",
    "ReportPayload",
    "parse_report",

    # Assertions
    "AssertionRule",
    "AssertionResult",
    "AssertionOutcome",
    "RuleSet",
    "evaluate",
    "resolve_rule_set",
    "load_rc_chain",
    "parse_cli_overrides",
    "AssertionReporter",
    "Severity",
    "AggregationMethod",

    # Ошибки
    "PerfBudgetError",
    "ValidationError",
    "ConfigurationError",
    "AuthorizationError",
    "NotFoundError",
    "StorageError",

    # Версия
    "__version__",
]
