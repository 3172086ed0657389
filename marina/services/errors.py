"""
Domain errors raised by the marina services.
Routes do not catch these; create_app maps them to HTTP responses.
"""


class MarinaError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MarinaError):
    status_code = 404


class PermissionDenied(MarinaError):
    status_code = 403


class ConflictError(MarinaError):
    """The store no longer satisfies the precondition of the requested write."""
    status_code = 409


class InvalidTransition(ConflictError):
    pass


class LedgerValidationError(MarinaError):
    status_code = 422


class InvalidRequest(MarinaError):
    status_code = 400
