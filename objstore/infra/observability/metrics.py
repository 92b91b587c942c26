from prometheus_client import Counter, Histogram

# 低基数标签：operation 为固定的方法名，不包含 bucket 或 key
OPERATIONS = Counter(
    "storage_operations_total",
    "Total object storage operations",
    ["operation", "outcome"],
)

LATENCY = Histogram(
    "storage_operation_duration_seconds",
    "Object storage operation latency in seconds",
    ["operation"],
)


def record_operation(operation: str, outcome: str, elapsed: float) -> None:
    OPERATIONS.labels(operation, outcome).inc()
    LATENCY.labels(operation).observe(elapsed)
