"""
Prometheus metrics definitions.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Ledger metrics
ledger_operations_total = Counter(
    'ledger_operations_total',
    'Total credit ledger operations',
    ['operation', 'kind', 'outcome']
)

ledger_operation_duration_seconds = Histogram(
    'ledger_operation_duration_seconds',
    'Credit ledger unit-of-work duration in seconds',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

balance_cache_lookups_total = Counter(
    'balance_cache_lookups_total',
    'Balance cache lookups',
    ['result']
)
