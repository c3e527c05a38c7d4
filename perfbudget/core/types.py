"""Общие перечисления и типы для perfbudget."""

from enum import Enum


class Severity(Enum):
    """Уровень серьёзности правила."""

    OFF = "off"      # Правило игнорируется
    WARN = "warn"    # Сообщаем, но не валим CI
    ERROR = "error"  # Провал валит CI


class AggregationMethod(Enum):
    """Как свернуть значения нескольких прогонов в одно."""

    PESSIMISTIC = "pessimistic"  # Худшее значение
    OPTIMISTIC = "optimistic"    # Лучшее значение
    MEDIAN = "median"
