"""
Domain exceptions for the PostPolice cache server.

The service layer raises these; main.py maps them to HTTP status codes.
Nothing in here knows about HTTP.

Recovery policy:
    - StoreUnavailable: recovered by the cache layer (a lookup degrades to a miss)
    - ValidationError, StoreWriteFailed, AdminOperationError,
      UpstreamGenerationError: surfaced to the caller, never retried here
"""


class PostPoliceError(Exception):
    """Base exception for all PostPolice domain errors."""
    pass


class ValidationError(PostPoliceError):
    """
    Caller supplied malformed input (empty content, empty summary, missing field).

    Maps to: 400 Bad Request
    Raised before the store is touched.
    """
    pass


class StoreUnavailable(PostPoliceError):
    """
    Backing store unreachable, not connected, or an operation timed out.

    Maps to: degraded response (miss for reads, 503 degraded view for /metrics)
    """
    pass


class StoreWriteFailed(PostPoliceError):
    """
    The store did not accept a cache write.

    Maps to: 503 Service Unavailable with {"stored": false}
    Losing a write only costs a future miss, so no automatic retry.
    """
    pass


class AdminOperationError(PostPoliceError):
    """
    Purge or reset could not be carried out (store unavailable).

    Maps to: 503 Service Unavailable with {"success": false}
    """
    pass


class UpstreamGenerationError(PostPoliceError):
    """
    External generator failed, timed out, or returned an unparseable body.

    Maps to: 502 Bad Gateway
    Retry policy belongs to the caller.
    """
    pass

