"""
Prometheus metrics for client-side monitoring.
"""
from prometheus_client import Counter, Histogram


# Backend REST API
backend_requests_total = Counter(
    'chainshop_backend_requests_total',
    'Total number of backend API requests',
    ['method', 'endpoint', 'outcome']
)

backend_request_duration_seconds = Histogram(
    'chainshop_backend_request_duration_seconds',
    'Backend API request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Referral reconciliation
referral_fetch_failures_total = Counter(
    'chainshop_referral_fetch_failures_total',
    'Referral reads that degraded to empty/zero defaults',
    ['resource']
)

referral_refreshes_total = Counter(
    'chainshop_referral_refreshes_total',
    'Referral dashboard refresh cycles',
    ['outcome']
)

# Contract
contract_reads_total = Counter(
    'chainshop_contract_reads_total',
    'Contract view calls',
    ['function', 'outcome']
)

contract_transactions_total = Counter(
    'chainshop_contract_transactions_total',
    'Contract transactions by lifecycle outcome',
    ['function', 'outcome']
)
