"""Client for the remote profile store exposed by the OTP microservice."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import InvalidIdentityFormat, ProfileApiError
from ..identity import is_verified_id
from ..models import Profile, ProfileUpdate, profile_from_row
from ._http import error_message

logger = logging.getLogger(__name__)

PROFILE_REQUEST_FAILED = "Не удалось выполнить запрос профиля"


class ProfileApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{path}",
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ProfileApiError(f"{PROFILE_REQUEST_FAILED}: {exc}") from exc

        if response.is_error:
            raise ProfileApiError(
                error_message(response, PROFILE_REQUEST_FAILED),
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ProfileApiError("Profile service returned invalid JSON.", status_code=response.status_code) from exc

    @staticmethod
    def _profile_from_payload(data: Any) -> Profile:
        row = data.get("profile") if isinstance(data, dict) else None
        if not isinstance(row, dict):
            raise ProfileApiError("Profile service response did not include a profile.")
        try:
            return profile_from_row(row)
        except (KeyError, ValueError) as exc:
            raise ProfileApiError(f"Profile service returned an invalid profile: {exc}") from exc

    async def ensure_profile(
        self,
        auth_user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Profile:
        """Fetch the profile for ``auth_user_id`` or create it with the given defaults.

        The defaults are only used on creation; the service never overwrites
        stored name, email or phone of an existing profile.
        """
        if not is_verified_id(auth_user_id):
            raise InvalidIdentityFormat("ensure_profile", auth_user_id)
        data = await self._request(
            "POST",
            "/profiles/ensure",
            {
                "authUserId": auth_user_id,
                "fullName": full_name,
                "email": email,
                "phone": phone,
            },
        )
        profile = self._profile_from_payload(data)
        logger.debug("Ensured profile %s for auth user %s", profile.id, auth_user_id)
        return profile

    async def update_profile(self, auth_user_id: str, update: ProfileUpdate) -> Profile:
        if not is_verified_id(auth_user_id):
            raise InvalidIdentityFormat("update_profile", auth_user_id)
        data = await self._request("PUT", f"/profiles/{auth_user_id}", update.to_remote_payload())
        return self._profile_from_payload(data)

    async def delete_profile(self, auth_user_id: str) -> None:
        if not is_verified_id(auth_user_id):
            raise InvalidIdentityFormat("delete_profile", auth_user_id)
        await self._request("DELETE", f"/profiles/{auth_user_id}")


__all__ = ["PROFILE_REQUEST_FAILED", "ProfileApiClient"]
