"""Infrastructure and session exceptions raised below the HTTP layer.

Validation, conflict and not-found cases are raised as ``HTTPException`` from
the services layer. The classes here cover failures that either never reach a
route (the access gate) or must be turned into a generic 500 by the exception
handlers registered in ``main.py``.
"""


class InfrastructureError(Exception):
    """A backing service (database, media signing) is unavailable or broken."""


class DatabaseUnavailableError(InfrastructureError):
    """Establishing the database connection failed."""


class MediaSigningError(InfrastructureError):
    """Upload credentials for the media service could not be signed."""


class SessionTokenError(Exception):
    """A session token was rejected.

    ``code`` is one of the ``ErrorCode`` session values so callers can report
    expiry separately from tampering.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message
