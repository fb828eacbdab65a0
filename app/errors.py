class StudyCoreError(Exception):
    pass


class ValidationError(StudyCoreError):
    """Rejected input. Raised before any state is touched."""


class NotFoundError(StudyCoreError):
    pass


class GenerationError(StudyCoreError):
    """Upstream content generation failed (timeout, HTTP error, malformed output)."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConflictError(StudyCoreError):
    pass
