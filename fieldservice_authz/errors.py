"""
Exception classes for the authorization engine.
"""


class AuthzError(Exception):
    """Base exception for the authorization engine."""

    def __init__(self, message: str = "An authorization error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(AuthzError):
    """Raised when permission data or entity metadata is missing or malformed."""
    pass


class AuthenticationError(AuthzError):
    """Raised when a request carries no resolved identity or role."""
    pass


class AuthorizationDenied(AuthzError):
    """Raised when a role may not perform an operation on a resource."""
    pass


class UnknownEntityError(AuthzError):
    """Raised when a URL entity name does not map to a known entity."""
    pass


class ValidationError(AuthzError):
    """Raised when a request body fails entity validation."""
    pass


class PlaceholderMismatchError(AuthzError):
    """Raised when a composed clause and its values fall out of step."""
    pass
