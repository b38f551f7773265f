# errors.py
"""
Errors raised by the pipeline services.

Every error carries the HTTP status the boundary answers with. The handler in
``main.py`` turns them into ``{"error": message}`` JSON or a flashed redirect.
"""


class PipelineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(PipelineError):
    """Malformed or missing input (non-numeric pieces, blank denial remark, ...)."""
    status_code = 400


class AuthorizationError(PipelineError):
    """The row exists but does not belong to (or is not approved for) the caller."""
    status_code = 403


class NotFoundError(PipelineError):
    status_code = 404


class DuplicateError(PipelineError):
    status_code = 409


class InsufficientRemainderError(PipelineError):
    status_code = 400

    def __init__(self, size_label: str, remain: int, message: str | None = None):
        self.size_label = size_label
        self.remain = remain
        super().__init__(
            message
            or f"Requested pieces for size [{size_label}] exceed remaining. Max remain is {remain}."
        )


class ExternalDependencyError(PipelineError):
    """Database or storage is unreachable."""
    status_code = 503
