"""Error taxonomy for the capture service.

Attempt-level errors (session, navigation, capture, upload) are raised inside a
single attempt and consumed by the retry scheduler. ``RetriesExhausted`` is what
callers see once the retry plan is used up. API-layer errors carry the HTTP
status the exception handler answers with.
"""


class PageSnapError(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Attempt-level errors
# ---------------------------------------------------------------------------


class SessionLaunchFailed(PageSnapError):
    """The browser process or its context could not be started."""

    error_code = "session_launch_failed"


class NavigationFailed(PageSnapError):
    """Navigation to the target URL timed out or hit a network error."""

    error_code = "navigation_failed"

    def __init__(self, url: str, strategy: str, timeout_ms: int, reason: str = ""):
        self.url = url
        self.strategy = strategy
        self.timeout_ms = timeout_ms
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Navigation to {url} failed (strategy={strategy}, timeout={timeout_ms}ms){detail}"
        )


class ChallengeUnresolved(PageSnapError):
    """A bot-mitigation challenge page was still present after all polls."""

    error_code = "challenge_unresolved"

    def __init__(self, url: str, kind: str = "unknown"):
        self.url = url
        self.kind = kind
        super().__init__(f"Challenge ({kind}) not resolved for {url}")


class CaptureTimeout(PageSnapError):
    """Rendering the final image exceeded its bound."""

    error_code = "capture_timeout"

    def __init__(self, url: str, timeout_ms: int):
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(f"Screenshot of {url} exceeded {timeout_ms}ms")


class UploadFailed(PageSnapError):
    """The storage backend rejected the object or could not be reached."""

    error_code = "upload_failed"

    def __init__(self, key: str, reason: str = ""):
        self.key = key
        detail = f": {reason}" if reason else ""
        super().__init__(f"Upload of {key} failed{detail}")


class RetriesExhausted(PageSnapError):
    """Every planned attempt failed."""

    status_code = 502
    error_code = "retries_exhausted"

    def __init__(self, label: str, attempts: int, last_error: BaseException | None = None):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        detail = f" (last error: {last_error})" if last_error else ""
        super().__init__(f"Max retries reached for {label} after {attempts} attempts{detail}")


# ---------------------------------------------------------------------------
# API-layer errors
# ---------------------------------------------------------------------------


class InvalidRequest(PageSnapError):
    status_code = 400
    error_code = "invalid_request"


class AuthenticationError(PageSnapError):
    status_code = 401
    error_code = "unauthorized"


class StorageNotConfigured(PageSnapError):
    status_code = 500
    error_code = "storage_not_configured"
