"""
Prometheus метрики для мониторинга.
"""

from prometheus_client import Counter, Histogram

# Хранилище
storage_operations = Counter(
    "perfbudget_storage_operations_total",
    "Storage operations by outcome",
    ["operation", "outcome"]
)

storage_latency = Histogram(
    "perfbudget_storage_latency_seconds",
    "Storage operation latency",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# Авторизация
rejected_writes = Counter(
    "perfbudget_rejected_writes_total",
    "Write requests rejected because of a token mismatch",
    ["operation"]
)

# Assertions
assertion_results = Counter(
    "perfbudget_assertion_results_total",
    "Assertion results by level and outcome",
    ["level", "outcome"]
)
