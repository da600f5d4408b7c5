"""Domain error taxonomy.

Each error carries the HTTP status it maps to at the transport boundary; the
handlers in ``deliberate.main`` render them as ``{"detail": message}``.
"""

DUPLICATE_JUDGMENT_MESSAGE = "You have already submitted a judgment for this decision."


class DeliberateError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(DeliberateError):
    """Malformed input; names the violated field."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class DuplicateJudgment(DeliberateError):
    """The user already holds a judgment for this decision."""

    status_code = 400

    def __init__(self):
        super().__init__(DUPLICATE_JUDGMENT_MESSAGE)


class NotFound(DeliberateError):
    status_code = 404


class Forbidden(DeliberateError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class UpstreamUnavailable(DeliberateError):
    """An external service (charity, grants, LLM) failed.

    ``message`` is the generic text shown to callers; the upstream cause is
    kept on ``__cause__`` for logs only.
    """

    status_code = 502

    def __init__(self, message: str = "Service unavailable", tool_name: str | None = None):
        super().__init__(message)
        self.tool_name = tool_name


class ExtractionFailure(DeliberateError):
    """Document text extraction failed. Never reaches the caller."""

    status_code = 500
