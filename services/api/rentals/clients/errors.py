from __future__ import annotations


class TableClientError(Exception):
    """Base class for failures talking to the remote table store."""


class UpstreamUnavailableError(TableClientError):
    """Transport-level failure: connection refused, DNS, timeout."""


class UpstreamHTTPError(TableClientError):
    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"NocoDB API error: {status_code} {reason}".rstrip())


class RateLimitedError(UpstreamHTTPError):
    def __init__(self, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(429, "Too Many Requests")


class MalformedResponseError(TableClientError):
    def __init__(self, detail: str):
        super().__init__(f"Error parsing response: {detail}")


class TableNotConfiguredError(TableClientError):
    """Raised when a table URL or the API token is missing from settings."""
