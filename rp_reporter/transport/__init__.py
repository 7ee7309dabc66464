"""Transport module - HTTP communication and retries."""

from .http_client import (
    ReportPortalHttpClient,
    Transport,
    TransportResponse,
)
from .retry_policy import (
    Outcome,
    PermanentFailure,
    RetryableFailure,
    RetryExecutor,
    RetryPolicy,
    Success,
    default_retry_policy,
    no_retry_policy,
)

__all__ = [
    "ReportPortalHttpClient",
    "Transport",
    "TransportResponse",
    "Outcome",
    "PermanentFailure",
    "RetryableFailure",
    "RetryExecutor",
    "RetryPolicy",
    "Success",
    "default_retry_policy",
    "no_retry_policy",
]
