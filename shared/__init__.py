"""
Shared utilities for the reward verification service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types for the verification path
- circuit_breaker: Resilient outbound call protection
- base_service: FastAPI application skeleton (health, metrics, error handlers)

Do not import from service_* packages into shared/.
"""
