"""HTTP clients for the services Support+ depends on."""

from .auth import AUTH_TOKEN_STORAGE_KEY, AuthClient
from .catalog import CatalogClient
from .otp import OtpClient, VerificationService
from .profiles import ProfileApiClient

__all__ = [
    "AUTH_TOKEN_STORAGE_KEY",
    "AuthClient",
    "CatalogClient",
    "OtpClient",
    "ProfileApiClient",
    "VerificationService",
]
