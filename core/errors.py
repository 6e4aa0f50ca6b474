"""
core/errors.py -- Typed error taxonomy shared by every ItemVault component.

Stores and the token service raise these; they never return sentinel strings
or log-and-continue. Only the API layer (api/main.py) knows how each one maps
onto an HTTP status code.

Layer rule: core/ is the kernel. No imports from api/, auth/, or items/.
"""


class ItemVaultError(Exception):
    """Base class for all domain errors."""


class InvalidCredentialsError(ItemVaultError):
    """Login failed. Never says whether the username or the password was wrong."""


class UnauthenticatedError(ItemVaultError):
    """No usable identity on the request (missing, invalid, or expired token)."""


class InvalidTokenError(UnauthenticatedError):
    """Token is malformed, mis-signed, or carries unusable claims."""


class ExpiredTokenError(UnauthenticatedError):
    """Token signature is valid but its expiry has passed."""


class ForbiddenError(ItemVaultError):
    """Identity is valid but its role is not allowed to perform the operation."""


class NotFoundError(ItemVaultError):
    """The request was valid but no matching record exists."""


class ItemNotFoundError(NotFoundError):
    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item {item_id} not found.")
        self.item_id = item_id


class UserExistsError(ItemVaultError):
    """A user with the same username already exists."""


class InvalidPasswordError(ItemVaultError):
    """A new password is empty or longer than bcrypt can hash."""


class StorageUnavailableError(ItemVaultError):
    """The persistence layer could not be read."""


class StorageFailureError(ItemVaultError):
    """The persistence layer rejected a write. In-memory state was left untouched."""
