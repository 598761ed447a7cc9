"""
Shared utilities for VID-Pipe.

Common building blocks consumed by the service packages:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service scaffolding

Do not import from service packages into shared/.
"""
