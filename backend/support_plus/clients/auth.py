"""Client for the hosted auth provider (GoTrue-style REST API)."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import AuthProviderError, NoActiveSession
from ..identity import RemoteSession
from ..storage import KeyValueStorage

logger = logging.getLogger(__name__)

AUTH_TOKEN_STORAGE_KEY = "support-plus-auth-token"

AuthEvent = Literal["SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED"]
AuthStateCallback = Callable[[AuthEvent, Optional[RemoteSession]], None]


class StoredTokens(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None


def session_from_user(user: Dict[str, Any], access_token: str) -> RemoteSession:
    """Build a ``RemoteSession`` from the provider's user payload."""
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise AuthProviderError("Auth provider returned a user without an id.")
    metadata = user.get("user_metadata") or {}
    phone = user.get("phone") or (metadata.get("phone") if isinstance(metadata, dict) else None)
    return RemoteSession(
        session_id=access_token,
        user_id=user_id,
        email=user.get("email") or None,
        phone=phone or None,
    )


class AuthClient:
    """Session lookup, sign-in and sign-out against the auth provider.

    Tokens are kept in local storage so that a restarted process can resume the
    session. State changes are pushed to subscribers registered with
    :meth:`on_auth_state_change`.
    """

    def __init__(
        self,
        base_url: Optional[str],
        storage: KeyValueStorage,
        *,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._storage = storage
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None
        self._listeners: List[AuthStateCallback] = []

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        if not self._base_url:
            raise AuthProviderError("SUPPORT_PLUS_AUTH_URL is not configured.")
        return f"{self._base_url}/auth/v1{path}"

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _load_tokens(self) -> Optional[StoredTokens]:
        raw = self._storage.get_item(AUTH_TOKEN_STORAGE_KEY)
        if not raw:
            return None
        try:
            return StoredTokens.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable auth tokens from local storage")
            self._storage.remove_item(AUTH_TOKEN_STORAGE_KEY)
            return None

    def _store_tokens(self, tokens: Optional[StoredTokens]) -> None:
        if tokens is None:
            self._storage.remove_item(AUTH_TOKEN_STORAGE_KEY)
        else:
            self._storage.set_item(AUTH_TOKEN_STORAGE_KEY, tokens.model_dump_json())

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event: AuthEvent, session: Optional[RemoteSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:  # noqa: BLE001
                logger.exception("Auth state listener failed for %s", event)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method,
                self._url(path),
                headers=self._headers(access_token),
                json=payload,
                params=params,
            )
        except httpx.HTTPError as exc:
            raise AuthProviderError(f"Auth provider request failed: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise AuthProviderError("Auth provider returned invalid JSON.") from exc
        if not isinstance(data, dict):
            raise AuthProviderError("Auth provider returned an unexpected payload.")
        return data

    async def get_current_session(self) -> RemoteSession:
        tokens = self._load_tokens()
        if tokens is None:
            raise NoActiveSession("No auth session stored on this device.")
        response = await self._request("GET", "/user", access_token=tokens.access_token)
        if response.status_code in (401, 403):
            raise NoActiveSession("Stored auth session was rejected by the provider.")
        if response.is_error:
            raise AuthProviderError(f"Auth provider returned HTTP {response.status_code}.")
        return session_from_user(self._json(response), tokens.access_token)

    def set_session(
        self,
        access_token: str,
        refresh_token: Optional[str],
        user: Dict[str, Any],
    ) -> RemoteSession:
        session = session_from_user(user, access_token)
        self._store_tokens(StoredTokens(access_token=access_token, refresh_token=refresh_token))
        self._notify("SIGNED_IN", session)
        return session

    async def refresh_session(self) -> RemoteSession:
        tokens = self._load_tokens()
        if tokens is None or not tokens.refresh_token:
            raise NoActiveSession("No refresh token stored on this device.")
        response = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            payload={"refresh_token": tokens.refresh_token},
        )
        if response.status_code in (400, 401, 403):
            self._store_tokens(None)
            self._notify("SIGNED_OUT", None)
            raise NoActiveSession("Refresh token was rejected by the provider.")
        if response.is_error:
            raise AuthProviderError(f"Auth provider returned HTTP {response.status_code}.")
        data = self._json(response)
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise AuthProviderError("Auth provider did not return an access token.")
        session = session_from_user(data.get("user") or {}, access_token)
        self._store_tokens(
            StoredTokens(access_token=access_token, refresh_token=data.get("refresh_token") or tokens.refresh_token)
        )
        self._notify("TOKEN_REFRESHED", session)
        return session

    async def sign_in_with_otp(
        self,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        redirect_to: Optional[str] = None,
    ) -> None:
        if not email and not phone:
            raise ValueError("sign_in_with_otp requires an email or a phone number")
        payload: Dict[str, Any] = {"create_user": True}
        if email:
            payload["email"] = email.strip()
        else:
            payload["phone"] = phone
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._request("POST", "/otp", payload=payload, params=params)
        if response.is_error:
            raise AuthProviderError(f"Auth provider rejected the code request (HTTP {response.status_code}).")

    async def verify_otp(
        self,
        token: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> RemoteSession:
        if not email and not phone:
            raise ValueError("verify_otp requires an email or a phone number")
        payload: Dict[str, Any] = {"token": token}
        if email:
            payload.update({"email": email.strip(), "type": "email"})
        else:
            payload.update({"phone": phone, "type": "sms"})
        response = await self._request("POST", "/verify", payload=payload)
        if response.is_error:
            raise AuthProviderError(f"Auth provider rejected the code (HTTP {response.status_code}).")
        data = self._json(response)
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise AuthProviderError("Auth provider did not return an access token.")
        return self.set_session(access_token, data.get("refresh_token"), data.get("user") or {})

    async def sign_out(self) -> None:
        """Revoke the session remotely; local tokens are always cleared."""
        tokens = self._load_tokens()
        try:
            if tokens is not None:
                response = await self._request("POST", "/logout", access_token=tokens.access_token)
                if response.is_error and response.status_code not in (401, 403):
                    raise AuthProviderError(f"Auth provider sign-out failed (HTTP {response.status_code}).")
        finally:
            self._store_tokens(None)
            self._notify("SIGNED_OUT", None)


__all__ = [
    "AUTH_TOKEN_STORAGE_KEY",
    "AuthClient",
    "AuthEvent",
    "AuthStateCallback",
    "session_from_user",
]
