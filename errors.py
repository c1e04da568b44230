"""Error taxonomy shared by the standings core and the route layer."""


class BifaError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message}


class ValidationError(BifaError, ValueError):
    """Malformed or missing input."""

    status_code = 400


class AuthenticationError(BifaError):
    status_code = 401


class AuthorizationError(BifaError):
    status_code = 403


class NotFoundError(BifaError):
    """A referenced match, team, competition or user does not exist."""

    status_code = 404


class ConsistencyError(BifaError):
    """The operation would break a data invariant, e.g. counting a result twice."""

    status_code = 409
