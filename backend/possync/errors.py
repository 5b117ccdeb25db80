# Overview: Error taxonomy shared by services and routes.

"""
possync error taxonomy

- NotFoundError: unknown order/product/customer. Cache reads return None
  instead; this is raised only by operations that need the entity.
- InvalidAdjustment / InvalidOrder: input violates a ledger invariant.
  Always surfaced to the caller, never retried.
- UpstreamUnavailable: network failure, timeout, 5xx or 429 from the
  commerce platform. Transient; order sync records it and retries later.
- UpstreamRejected: 4xx from the commerce platform (bad credentials,
  malformed payload). Not transient.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for possync errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(PosError):
    pass


class InvalidAdjustment(PosError):
    pass


class InvalidOrder(PosError):
    pass


class UpstreamError(PosError):
    """Raised by UpstreamClient; status_code is None for transport failures."""
    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message, details=details)
        self.status_code = status_code


class UpstreamUnavailable(UpstreamError):
    pass


class UpstreamNotConfigured(UpstreamUnavailable):
    """No store URL or credentials are configured."""


class UpstreamRejected(UpstreamError):
    pass


class UpstreamSchemaError(UpstreamRejected):
    """Upstream JSON did not match the expected shape."""


def http_status(exc: PosError) -> int:
    """HTTP status a route answers with for a service error."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, UpstreamNotConfigured):
        return 400
    if isinstance(exc, UpstreamUnavailable):
        return 503
    if isinstance(exc, UpstreamRejected):
        return 502
    return 400
