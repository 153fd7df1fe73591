"""
Shared utilities:
- log: structlog configuration and logger factory
- metrics: Prometheus counters
- guard: Idle/InFlight reentrancy guard
"""
