"""Error taxonomy shared by the cipher, codec, store and index layers."""


class VaultError(Exception):
    pass


class IntegrityError(VaultError):
    """Authentication failed: wrong passphrase or tampered ciphertext."""


class FormatError(VaultError):
    """Malformed sealed blob or metadata document."""


class StoreError(VaultError):
    """Base for failures reported by the remote content host."""

    def __init__(self, message: str, status: int | None = None, path: str | None = None):
        super().__init__(message)
        self.status = status
        self.path = path


class ConflictError(StoreError):
    """The revision token sent with a write or delete is stale."""


class NotFoundError(StoreError):
    pass


class AuthorizationError(StoreError):
    """Bad or expired credential. Never retried."""


class TransientError(StoreError):
    """Network failure, timeout, rate limit or 5xx. Eligible for retry."""


class ObjectTooLargeError(StoreError):
    pass
