"""
Разрешение конфигурации assertions.

Источники (от низшего приоритета к высшему):
    встроенные defaults → preset → цепочка extends → rc файл → CLI overrides

Каждый источник — неизменяемый mapping; merge_sources — чистая функция.
Результат — неизменяемый RuleSet, который получает Assertion Engine.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from perfbudget.core.assertions import ASSERTION_KINDS, AssertionRule
from perfbudget.core.errors import ConfigurationError
from perfbudget.core.presets import PRESETS
from perfbudget.core.types import AggregationMethod, Severity

logger = logging.getLogger(__name__)

BUILTIN_DEFAULTS: Mapping[str, Any] = MappingProxyType({
    "assertions": MappingProxyType({}),
    "aggregationMethod": AggregationMethod.PESSIMISTIC.value,
})

RULE_OPTION_KEYS = ("aggregationMethod", "operator")


@dataclass(frozen=True)
class RuleSet:
    """Итоговый набор правил в порядке вычисления."""

    rules: Tuple[AssertionRule, ...]
    preset: Optional[str] = None

    @property
    def active_rules(self) -> List[AssertionRule]:
        return [rule for rule in self.rules if rule.level is not Severity.OFF]


# ═══════════════════════════════════════════════════════
# MERGE
# ═══════════════════════════════════════════════════════

def merge_sources(sources: Sequence[Mapping[str, Any]]) -> Mapping[str, Any]:
    """
    Слить секции assert по приоритету (последний источник главнее).

    assertions сливаются по ключу аудита, причём правило более приоритетного
    источника заменяет правило целиком. Остальные ключи заменяются.
    """
    merged: Dict[str, Any] = {}
    assertions: Dict[str, Any] = {}
    for source in sources:
        for key, value in source.items():
            if key == "assertions":
                if not isinstance(value, Mapping):
                    raise ConfigurationError("'assertions' must be an object")
                assertions.update(value)
            else:
                merged[key] = value
    merged["assertions"] = MappingProxyType(assertions)
    return MappingProxyType(merged)


# ═══════════════════════════════════════════════════════
# RULE PARSING
# ═══════════════════════════════════════════════════════

def _parse_level(audit_key: str, value: Any) -> Severity:
    try:
        return Severity(value)
    except ValueError:
        raise ConfigurationError(f"Unknown level '{value}' for '{audit_key}' (use off, warn or error)") from None


def _parse_expected(audit_key: str, name: str, value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if not isinstance(value, (int, float)):
        raise ConfigurationError(f"Expected value of '{name}' for '{audit_key}' must be a number")
    return float(value)


def split_audit_key(audit_key: str) -> Tuple[str, Tuple[str, ...]]:
    """'performance-budget.document.size' → ('performance-budget', ('document', 'size'))."""
    audit_id, *path = audit_key.split(".")
    if not audit_id or any(not segment for segment in path):
        raise ConfigurationError(f"Invalid audit identifier '{audit_key}'")
    return audit_id, tuple(path)


def parse_rule(audit_key: str, value: Any, default_method: str) -> List[AssertionRule]:
    """
    Разобрать значение правила.

    Формы: "error" | ["warn"] | ["error", {"minScore": 0.9, "aggregationMethod": "median"}].
    Уровень без опций означает minScore >= 1.
    """
    if isinstance(value, str):
        level, options = _parse_level(audit_key, value), {}
    elif isinstance(value, (list, tuple)) and 1 <= len(value) <= 2:
        level = _parse_level(audit_key, value[0])
        options = value[1] if len(value) == 2 else {}
        if not isinstance(options, Mapping):
            raise ConfigurationError(f"Options for '{audit_key}' must be an object")
    else:
        raise ConfigurationError(f"Invalid assertion for '{audit_key}': {value!r}")

    audit_id, audit_property = split_audit_key(audit_key)
    method = options.get("aggregationMethod", default_method)
    op = options.get("operator")

    checks = {name: expected for name, expected in options.items() if name not in RULE_OPTION_KEYS}
    if not checks:
        checks = {"minScore": 1}

    rules = []
    for name, expected in checks.items():
        if name not in ASSERTION_KINDS and level is not Severity.OFF:
            raise ConfigurationError(f"Unknown assertion '{name}' for '{audit_key}'")
        rule = AssertionRule(
            audit_id=audit_id,
            assertion=name,
            expected=_parse_expected(audit_key, name, expected),
            level=level,
            aggregation_method=method,
            operator=op,
            audit_property=audit_property,
        )
        if level is not Severity.OFF:
            rule.validate()
        rules.append(rule)
    return rules


def budget_rules(budgets: Any) -> List[AssertionRule]:
    """
    Бюджеты в формате аудитора → правила для аудита performance-budget.

    resourceSizes задаются в KiB и сравниваются с size (байты),
    resourceCounts — с requestCount.
    """
    if not budgets:
        return []
    if not isinstance(budgets, (list, tuple)):
        raise ConfigurationError("'budgets' must be a list")

    rules = []
    for budget in budgets:
        if not isinstance(budget, Mapping):
            raise ConfigurationError("Each budget must be an object")
        for section, field, scale in (("resourceSizes", "size", 1024), ("resourceCounts", "requestCount", 1)):
            for entry in budget.get(section) or []:
                resource_type = entry.get("resourceType")
                limit = entry.get("budget")
                if not resource_type or isinstance(limit, bool) or not isinstance(limit, (int, float)):
                    raise ConfigurationError(f"Invalid {section} entry: {entry!r}")
                rules.append(AssertionRule(
                    audit_id="performance-budget",
                    assertion="maxNumericValue",
                    expected=float(limit * scale),
                    level=Severity.ERROR,
                    audit_property=(resource_type, field),
                ))
    return rules


def resolve_rule_set(
    rc_sources: Sequence[Mapping[str, Any]] = (),
    overrides: Optional[Mapping[str, Any]] = None,
) -> RuleSet:
    """
    Собрать итоговый RuleSet.

    Args:
        rc_sources: секции assert из цепочки rc файлов, базовый файл первым
        overrides: явные переопределения (CLI), высший приоритет
    """
    overrides = overrides or MappingProxyType({})
    configured = merge_sources([*rc_sources, overrides])

    preset = configured.get("preset")
    layers: List[Mapping[str, Any]] = [BUILTIN_DEFAULTS]
    if preset:
        if preset not in PRESETS:
            raise ConfigurationError(f"Unknown preset '{preset}' (available: {', '.join(PRESETS)})")
        layers.append(MappingProxyType({"assertions": PRESETS[preset]}))
    layers.extend(rc_sources)
    layers.append(overrides)

    merged = merge_sources(layers)
    default_method = merged.get("aggregationMethod", AggregationMethod.PESSIMISTIC.value)

    rules: List[AssertionRule] = []
    for audit_key, value in merged["assertions"].items():
        rules.extend(parse_rule(audit_key, value, default_method))
    rules.extend(budget_rules(merged.get("budgets")))

    logger.debug(f"Resolved {len(rules)} rule(s) (preset={preset or '-'})")
    return RuleSet(rules=tuple(rules), preset=preset)


# ═══════════════════════════════════════════════════════
# RC FILES
# ═══════════════════════════════════════════════════════

def _read_json(path: Path) -> Mapping[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"RC file not found: {path}") from None
    except ValueError as e:
        raise ConfigurationError(f"RC file {path} is not valid JSON: {e}") from e
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"RC file {path} must contain a JSON object")
    return data


def load_rc_chain(path: Union[str, Path]) -> List[Mapping[str, Any]]:
    """
    Загрузить rc файл и цепочку extends.

    Returns:
        Документы от базового к исходному. extends может быть путём
        (относительно расширяющего файла) или именем пресета.
    """
    chain: List[Mapping[str, Any]] = []
    seen = set()
    current: Optional[Path] = Path(path).resolve()

    while current is not None:
        if current in seen:
            raise ConfigurationError(f"Cyclic 'extends' chain at {current}")
        seen.add(current)

        document = _read_json(current)
        chain.append(document)

        parent = document.get("extends")
        if not parent:
            current = None
        elif parent in PRESETS:
            chain.append(MappingProxyType({"ci": {"assert": {"preset": parent}}}))
            current = None
        else:
            current = (current.parent / parent).resolve()

    chain.reverse()
    return chain


def rc_section(chain: Sequence[Mapping[str, Any]], name: str) -> List[Mapping[str, Any]]:
    """Секции ci.<name> из цепочки, базовый документ первым."""
    sections = []
    for document in chain:
        section = (document.get("ci") or {}).get(name)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            raise ConfigurationError(f"'ci.{name}' must be an object")
        sections.append(MappingProxyType(dict(section)))
    return sections


def merged_section(chain: Sequence[Mapping[str, Any]], name: str) -> Mapping[str, Any]:
    merged: Dict[str, Any] = {}
    for section in rc_section(chain, name):
        merged.update(section)
    return MappingProxyType(merged)


# ═══════════════════════════════════════════════════════
# CLI OVERRIDES
# ═══════════════════════════════════════════════════════

def _parse_override_value(raw: str) -> Any:
    if raw[:1] in ("[", "{"):
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid JSON in override value {raw!r}: {e}") from e
    return raw


def parse_cli_overrides(args: Sequence[str]) -> Mapping[str, Any]:
    """
    Разобрать '--assertions.<audit>=<value>', '--preset=<name>',
    '--aggregationMethod=<method>' (значение может идти следующим аргументом).
    """
    assertions: Dict[str, Any] = {}
    overrides: Dict[str, Any] = {}

    items = list(args)
    index = 0
    while index < len(items):
        arg = items[index]
        index += 1
        if not arg.startswith("--"):
            raise ConfigurationError(f"Unexpected argument '{arg}'")

        key, sep, raw = arg[2:].partition("=")
        if not sep:
            if index >= len(items):
                raise ConfigurationError(f"Missing value for '--{key}'")
            raw = items[index]
            index += 1

        if key.startswith("assertions."):
            audit_key = key[len("assertions."):]
            if not audit_key:
                raise ConfigurationError(f"Missing audit identifier in '{arg}'")
            assertions[audit_key] = _parse_override_value(raw)
        elif key in ("preset", "aggregationMethod"):
            overrides[key] = raw
        else:
            raise ConfigurationError(f"Unknown option '--{key}'")

    if assertions:
        overrides["assertions"] = MappingProxyType(assertions)
    return MappingProxyType(overrides)
