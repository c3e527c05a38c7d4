"""
Assertion Engine.

Группирует отчёты по URL, собирает значения аудита по всем прогонам группы,
сворачивает их методом агрегации и сравнивает с ожидаемым значением.

Движок не прерывается на первом провале: каждое активное правило даёт
результат. Отсутствие данных аудита не бросает исключение, а даёт
автоматический провал со значением-заглушкой 0.
"""

import logging
import operator
import statistics
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from perfbudget.core.errors import ConfigurationError
from perfbudget.core.models import AuditData, ReportPayload
from perfbudget.core.types import AggregationMethod, Severity
from perfbudget.infrastructure.metrics import assertion_results

logger = logging.getLogger(__name__)

# Значение прогона, в котором аудит не запускался
NOT_RUN = 0.0

OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    ">": operator.gt,
    "<": operator.lt,
}


@dataclass(frozen=True)
class AssertionKind:
    """Что читается из аудита и в какую сторону ограничивает бюджет."""

    name: str
    source: str       # "score" | "numericValue" | "auditRan"
    operator: str
    upper_bound: bool


ASSERTION_KINDS: Dict[str, AssertionKind] = {
    "minScore": AssertionKind("minScore", "score", ">=", upper_bound=False),
    "maxScore": AssertionKind("maxScore", "score", "<=", upper_bound=True),
    "minNumericValue": AssertionKind("minNumericValue", "numericValue", ">=", upper_bound=False),
    "maxNumericValue": AssertionKind("maxNumericValue", "numericValue", "<=", upper_bound=True),
    "auditRan": AssertionKind("auditRan", "auditRan", "==", upper_bound=False),
}


@dataclass(frozen=True)
class AssertionRule:
    """Одно правило: аудит (+ путь свойства), вид проверки, ожидание, уровень."""

    audit_id: str
    assertion: str
    expected: float
    level: Severity = Severity.ERROR
    aggregation_method: str = AggregationMethod.PESSIMISTIC.value
    operator: Optional[str] = None
    audit_property: Tuple[str, ...] = ()

    @property
    def kind(self) -> AssertionKind:
        try:
            return ASSERTION_KINDS[self.assertion]
        except KeyError:
            raise ConfigurationError(f"Unknown assertion '{self.assertion}' for '{self.audit_id}'") from None

    @property
    def comparison(self) -> str:
        op = self.operator or self.kind.operator
        if op not in OPERATORS:
            raise ConfigurationError(f"Unknown operator '{op}' for '{self.audit_id}'")
        return op

    @property
    def aggregation(self) -> AggregationMethod:
        try:
            return AggregationMethod(self.aggregation_method)
        except ValueError:
            raise ConfigurationError(
                f"Unknown aggregation method '{self.aggregation_method}' for '{self.audit_id}'"
            ) from None

    @property
    def label(self) -> str:
        if self.audit_property:
            return f"{self.audit_id}.{'.'.join(self.audit_property)}"
        return self.audit_id

    def validate(self) -> None:
        """Проверить структуру правила (бросает ConfigurationError)."""
        self.kind
        self.comparison
        self.aggregation


@dataclass(frozen=True)
class AssertionResult:
    """Результат одного правила для одной группы прогонов."""

    audit_id: str
    audit_property: Tuple[str, ...]
    assertion: str
    operator: str
    expected: float
    actual: float
    values: Tuple[float, ...]
    passed: bool
    level: Severity
    url: str = ""

    @property
    def label(self) -> str:
        if self.audit_property:
            return f"{self.audit_id}.{'.'.join(self.audit_property)}"
        return self.audit_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auditId": self.audit_id,
            "auditProperty": ".".join(self.audit_property) or None,
            "name": self.assertion,
            "operator": self.operator,
            "expected": self.expected,
            "actual": self.actual,
            "values": list(self.values),
            "passed": self.passed,
            "level": self.level.value,
            "url": self.url,
        }


@dataclass(frozen=True)
class AssertionOutcome:
    """Полный набор результатов и итоговый вердикт."""

    results: Tuple[AssertionResult, ...]
    run_count: int
    urls: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def failures(self) -> List[AssertionResult]:
        return [r for r in self.results if not r.passed]

    @property
    def failed(self) -> bool:
        """Провал, если провалилось хотя бы одно правило уровня error."""
        return any(r.level is Severity.ERROR for r in self.failures)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


# ═══════════════════════════════════════════════════════
# AGGREGATION
# ═══════════════════════════════════════════════════════

def read_value(rule: AssertionRule, audit: Optional[AuditData]) -> Optional[float]:
    """Значение аудита для правила в одном прогоне (None — нет данных)."""
    if rule.kind.source == "auditRan":
        return 1.0 if audit is not None and audit.ran else 0.0
    if audit is None:
        return None
    if rule.audit_property:
        return audit.detail_value(rule.audit_property)
    if rule.kind.source == "score":
        return audit.score
    return audit.numeric_value


def aggregate(values: Sequence[float], method: AggregationMethod, upper_bound: bool) -> float:
    """
    Свернуть значения прогонов.

    pessimistic — худшее (max для верхней границы, min для нижней),
    optimistic — лучшее, median — медиана.
    """
    if method is AggregationMethod.MEDIAN:
        return float(statistics.median(values))
    take_max = upper_bound if method is AggregationMethod.PESSIMISTIC else not upper_bound
    return max(values) if take_max else min(values)


def audit_not_run(rule: AssertionRule, observed: Sequence[Optional[float]], url: str) -> AssertionResult:
    """Провал вида auditRan: 1 для прогонов с данными, 0 для остальных."""
    values = tuple(0.0 if value is None else 1.0 for value in observed)
    return AssertionResult(
        audit_id=rule.audit_id,
        audit_property=rule.audit_property,
        assertion="auditRan",
        operator="==",
        expected=1.0,
        actual=min(values, default=NOT_RUN),
        values=values,
        passed=False,
        level=rule.level,
        url=url,
    )


def evaluate_rule(rule: AssertionRule, reports: Sequence[ReportPayload], url: str = "") -> AssertionResult:
    """
    Одно правило против группы прогонов.

    Если хотя бы в одном прогоне нет данных аудита, правило проваливается
    как auditRan, а не сравнивается по оставшимся прогонам.
    """
    kind = rule.kind
    comparison = rule.comparison
    method = rule.aggregation

    observed = [read_value(rule, report.audits.get(rule.audit_id)) for report in reports]
    if not observed or any(value is None for value in observed):
        return audit_not_run(rule, observed, url)

    values = tuple(observed)
    actual = aggregate(values, method, kind.upper_bound)

    return AssertionResult(
        audit_id=rule.audit_id,
        audit_property=rule.audit_property,
        assertion=rule.assertion,
        operator=comparison,
        expected=rule.expected,
        actual=actual,
        values=values,
        passed=OPERATORS[comparison](actual, rule.expected),
        level=rule.level,
        url=url,
    )


def evaluate_group(rules: Sequence[AssertionRule], reports: Sequence[ReportPayload], url: str = "") -> List[AssertionResult]:
    """Все активные правила против одной группы прогонов (один URL)."""
    results = []
    for rule in rules:
        if rule.level is Severity.OFF:
            continue
        result = evaluate_rule(rule, reports, url)
        assertion_results.labels(level=result.level.value, outcome="pass" if result.passed else "fail").inc()
        results.append(result)
    return results


def group_by_url(reports: Sequence[ReportPayload]) -> Dict[str, List[ReportPayload]]:
    groups: Dict[str, List[ReportPayload]] = {}
    for report in reports:
        groups.setdefault(report.requested_url, []).append(report)
    return groups


def evaluate(rules: Sequence[AssertionRule], reports: Sequence[ReportPayload]) -> AssertionOutcome:
    """
    Проверить правила против всех отчётов.

    Структура правил проверяется до вычислений, поэтому ConfigurationError
    возникает независимо от наличия данных.
    """
    for rule in rules:
        if rule.level is not Severity.OFF:
            rule.validate()

    groups = group_by_url(reports)
    results: List[AssertionResult] = []
    for url, group in groups.items():
        results.extend(evaluate_group(rules, group, url))

    outcome = AssertionOutcome(results=tuple(results), run_count=len(reports), urls=tuple(groups))
    logger.info(
        f"Evaluated {len(results)} assertion(s) against {len(reports)} run(s): "
        f"{len(outcome.failures)} failed, verdict={'fail' if outcome.failed else 'pass'}"
    )
    return outcome
