"""Exceptions raised by the secrets vault.

Filesystem problems are not wrapped: they surface as the builtin OSError.
"""


class SecretsError(Exception):
    """Base class for all vault errors."""


class AuthenticationError(SecretsError):
    """The envelope failed its integrity check.

    Raised identically for a wrong passphrase and for a corrupted file.
    """

    def __init__(self, message: str = "passphrase incorrect"):
        super().__init__(message)


class NotUnlockedError(SecretsError):
    """The secrets tree was accessed outside an unlock scope."""

    def __init__(self, message: str = "Secrets are not unlocked! Call from within unlock()"):
        super().__init__(message)


class MalformedInputError(SecretsError, ValueError):
    """A path, value, mapping or stored record could not be parsed."""


class EditorFailure(SecretsError):
    """The external editor failed or returned unparseable text."""
