"""Typed errors for the key authentication gate.

A wrong secret is not an error: ``AuthGate.submit`` reports it as a
failed ``AuthResult`` and the session may retry without limit. Join
timeouts end in a forced disconnect rather than an exception.
"""


class KeyAuthError(Exception):
    """Base class for gate errors surfaced to callers."""


class PermissionDeniedError(KeyAuthError):
    """Session lacks the permission a command requires. No state is changed."""

    def __init__(self, permission: str) -> None:
        super().__init__(f"missing permission: {permission}")
        self.permission = permission


class ConfigReloadError(KeyAuthError):
    """Config file could not be read or validated; the previous config stays in effect."""


class ArtifactWriteError(KeyAuthError):
    """Published artifact could not be written. Retried on the next periodic publish."""
