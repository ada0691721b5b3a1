"""Exception hierarchy shared by the Support+ backend services."""

from __future__ import annotations

from typing import Optional


class SupportPlusError(Exception):
    """Base class for all errors raised by this package."""


class NoActiveSession(SupportPlusError):
    """The auth provider has no session for this device. Expected, never user-facing."""


class AuthProviderError(SupportPlusError):
    pass


class ProfileApiError(SupportPlusError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidIdentityFormat(SupportPlusError):
    """Raised when a non-verified identity id is sent towards the remote profile store."""

    def __init__(self, operation: str, identity_id: str) -> None:
        super().__init__(f"{operation}: identity id is not a valid UUID: {identity_id}")
        self.identity_id = identity_id


class ProfileSyncFailed(SupportPlusError):
    def __init__(self, message: str, *, identity_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.identity_id = identity_id


class ManualIdentityRejected(SupportPlusError):
    """A manual identity override was refused because a verified session is active."""


class OtpServiceError(SupportPlusError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogError(SupportPlusError):
    pass


__all__ = [
    "AuthProviderError",
    "CatalogError",
    "InvalidIdentityFormat",
    "ManualIdentityRejected",
    "NoActiveSession",
    "OtpServiceError",
    "ProfileApiError",
    "ProfileSyncFailed",
    "SupportPlusError",
]
