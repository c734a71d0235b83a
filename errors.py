"""Service-layer error taxonomy.

Each error carries the HTTP status it maps to at the API boundary. All of
them are ValueErrors, so callers that only care about "the request was
rejected" can keep catching ValueError.
"""


class ServiceError(ValueError):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotAuthenticated(ServiceError):
    status_code = 401


class AuthzDenied(ServiceError):
    """The caller lacks the role (or the membership) the operation needs."""

    status_code = 403


class NotFound(ServiceError):
    """Missing, or hidden from this caller by lifecycle rules."""

    status_code = 404


class InvalidInput(ServiceError):
    status_code = 400


class InvalidState(ServiceError):
    """Illegal lifecycle transition."""

    status_code = 400


class Conflict(ServiceError):
    status_code = 409


class PreconditionRequired(ServiceError):
    """Blocked by dependent rows."""

    status_code = 428
