"""
Warranty Portal - Error Taxonomy

Services raise these; the API maps each one to a status code and a
small JSON body at the request boundary (see main.create_app).
"""


class PortalError(Exception):
    """Base class for errors that are safe to show to the caller."""
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class NotFoundError(PortalError):
    """Resource id does not resolve."""
    status_code = 404


class ForbiddenError(PortalError):
    """Authorization policy denied access to an existing resource."""
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class ValidationError(PortalError):
    """Malformed or disallowed input."""
    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested job status change is not in the transition table."""


class ConflictError(PortalError):
    """Duplicate unique key."""
    status_code = 409
