class LifecycleError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    """Malformed or missing input; the caller must fix it before retrying."""

    status_code = 400


class AuthorizationError(LifecycleError):
    """Role or ownership mismatch, or no identity at all."""

    status_code = 403


class NotFoundError(LifecycleError):
    status_code = 404


class ConflictError(LifecycleError):
    """The operation would break an invariant given the current state."""

    status_code = 409


class TransientError(LifecycleError):
    """The store failed or timed out; safe to retry with backoff."""

    status_code = 503
