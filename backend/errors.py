"""Error types surfaced by the metrics endpoints.

Each carries the HTTP status the API answers with; main.py renders them
as ``{"error": message}``.
"""


class MetricsError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ClientError(MetricsError):
    """Bad or missing request parameters."""

    status_code = 400


class AuthError(MetricsError):
    """No session, no provider token, or the session was rejected."""

    status_code = 401


class RateLimitError(MetricsError):
    """GitHub core quota too low to start a bulk fetch."""

    status_code = 429

    def __init__(self, message: str, remaining: int = 0):
        super().__init__(message)
        self.remaining = remaining


class UpstreamError(MetricsError):
    """Non-2xx (or unreachable) response from GitHub or the identity provider."""

    status_code = 502

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status

    def to_dict(self) -> dict:
        return {"error": self.message, "upstream_status": self.status}


class InternalError(MetricsError):
    status_code = 500
