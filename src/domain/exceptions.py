"""Domain exceptions shared by repositories, gateways and use cases."""


class ConfigurationError(Exception):
    """Raised when backend credentials are missing where a real client is required."""

    pass


class AuthenticationError(Exception):
    """Raised when a token is invalid or expired, or credentials are rejected."""

    pass


class RegistrationError(Exception):
    """Raised when a signup request is invalid or rejected by the auth backend."""

    def __init__(self, title: str, description: str) -> None:
        super().__init__(description)
        self.title = title
        self.description = description


class ProfileError(Exception):
    """Base exception for profile persistence errors."""

    pass


class ProfileNotFoundError(ProfileError):
    """Raised when no profile row exists for the requested id."""

    pass


class ProfileConflictError(ProfileError):
    """Raised when an insert loses to an existing row with the same id."""

    pass


class ProfileAccessError(ProfileError):
    """Raised when the backend rejects a read or write (JWT or row-level policy)."""

    pass


class ProfileBackendError(ProfileError):
    """Raised for any other backend failure, including a missing profiles table."""

    pass


class ProfileValidationError(ProfileError):
    """Raised when profile form values are invalid."""

    pass
