# dmchat/exceptions.py
"""
Error taxonomy for the messaging core.

Every error carries a short machine readable ``code`` and the HTTP status the
API layer renders it with. ``DispatchFailure`` never reaches a client: the
realtime dispatcher logs and swallows it.
"""


class MessagingError(Exception):
    """Base class for errors raised by the messaging core."""

    code = "messaging_error"
    status_code = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class ValidationError(MessagingError):
    """Bad or missing caller input."""

    code = "validation_error"
    status_code = 400


class PermissionDenied(MessagingError):
    """The caller may not perform this mutation."""

    code = "permission_denied"
    status_code = 403


class NotFound(MessagingError):
    """A referenced message or user does not exist."""

    code = "not_found"
    status_code = 404


class CryptoError(MessagingError):
    """Stored ciphertext could not be decrypted, or the key is unusable."""

    code = "crypto_error"
    status_code = 500


class StoreError(MessagingError):
    """The persistence layer failed."""

    code = "store_error"
    status_code = 500


class DispatchFailure(MessagingError):
    """A realtime event could not be delivered to a socket."""

    code = "dispatch_failure"
    status_code = 500
