"""
careflow: resilient authenticated HTTP client for the clinic API.

Every API call made by the application passes through this package.

Modules:
    errors      - Error normalization into a single taxonomy
    resilience  - Retry with exponential backoff and jitter
    auth        - Credential stores and the single-flight refresh coordinator
    http        - Interceptor pipeline, aiohttp transport, auth service
    logging     - Structured JSON logging with request correlation IDs
    config      - YAML/env configuration

Design Principles:
    - Async-first, one event loop per client
    - One uniform error contract (NormalizedError) for all callers
    - At most one refresh call in flight at any time
"""

from .types import CredentialStore, ErrorKind

__version__ = "0.1.0"

__all__ = [
    "CredentialStore",
    "ErrorKind",
]
