"""
Shared utilities for the Portfolio Access Layer.

This package aggregates common building blocks consumed by the services:

- base_service: FastAPI service skeleton with health, metrics and error translation
- config: Service configuration via pydantic-settings
- logging: Structured logging with trace and request correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry: Retry decorator with exponential backoff

Do not import from service packages into shared/.
"""
