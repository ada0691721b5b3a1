"""Application service container wiring identity resolution to the catalog cache."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .cache import CacheStore
from .clients import AuthClient, CatalogClient, OtpClient, ProfileApiClient, VerificationService
from .clients.otp import OtpVerifyResult, VerificationChannel
from .config import Settings, get_settings
from .errors import CatalogError, ManualIdentityRejected, OtpServiceError
from .identity import ResolverState, is_verified_id
from .identity_resolver import IdentityResolver, ResolverSnapshot
from .models import Profile, ProfileUpdate
from .storage import KeyValueStorage, build_storage

logger = logging.getLogger(__name__)


class AppServices:
    """Constructed once at startup and handed to every consumer explicitly."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        storage: Optional[KeyValueStorage] = None,
        auth: Optional[AuthClient] = None,
        profiles: Optional[ProfileApiClient] = None,
        catalog: Optional[CatalogClient] = None,
        otp: Optional[OtpClient] = None,
    ) -> None:
        settings = settings or get_settings()
        timeout = settings.http_timeout_seconds
        self.settings = settings
        self.storage = storage or build_storage(settings)
        self.auth = auth or AuthClient(
            settings.auth_url,
            self.storage,
            api_key=settings.auth_anon_key,
            timeout_seconds=timeout,
        )
        self.profiles = profiles or ProfileApiClient(settings.otp_api_url, timeout_seconds=timeout)
        self.catalog = catalog or CatalogClient(settings.catalog_url, timeout_seconds=timeout)
        self.otp = otp or OtpClient(settings.otp_api_url, timeout_seconds=timeout)
        self.verification = VerificationService(self.otp, self.auth)
        self.cache = CacheStore(self.storage)
        self.resolver = IdentityResolver(
            self.auth,
            self.profiles,
            self.storage,
            sync_timeout_seconds=settings.profile_sync_timeout_seconds,
        )
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def init(self) -> None:
        self.cache.init()
        if self._unsubscribe is None:
            self._unsubscribe = self.resolver.subscribe(self._on_identity_change)
        await self.resolver.init()

    async def aclose(self) -> None:
        self.resolver.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for client in (self.auth, self.profiles, self.catalog, self.otp):
            await client.aclose()

    def _on_identity_change(self, snapshot: ResolverSnapshot) -> None:
        # keep the slice restored from storage until the startup session check is done
        if snapshot.state == ResolverState.UNKNOWN:
            return
        identity_id = snapshot.identity.id
        if identity_id != self.cache.active_identity_id:
            self.cache.activate(identity_id)

    async def reset(self) -> bool:
        sign_out_ok = await self.resolver.reset()
        self.cache.logout()
        return sign_out_ok

    def _current_profile(self) -> Optional[Profile]:
        # a profile retained from a previous identity is display-only
        profile = self.resolver.profile
        if profile is None or profile.auth_user_id != self.resolver.current_identity.id:
            return None
        return profile

    async def delete_account(self) -> None:
        """Delete the remote profile (verified identities only), then reset locally."""
        profile = self._current_profile()
        identity_id = self.resolver.current_identity.id
        if profile is not None and is_verified_id(profile.auth_user_id):
            await self.profiles.delete_profile(profile.auth_user_id)
        await self.reset()
        if identity_id:
            self.cache.forget(identity_id)

    async def update_profile(self, update: ProfileUpdate) -> Profile:
        profile = self._current_profile()
        if profile is None:
            raise LookupError("No profile is loaded for the current identity.")
        if is_verified_id(profile.auth_user_id):
            updated = await self.profiles.update_profile(profile.auth_user_id, update)
        else:
            updated = update.apply_to(profile)
        if not self.resolver.set_profile(updated):
            logger.info("Identity changed during profile update; result for %s not applied", profile.auth_user_id)
        return updated

    async def sign_in_with_code(
        self,
        recipient: str,
        channel: VerificationChannel,
        code: str,
        *,
        request_id: Optional[str] = None,
    ) -> ResolverSnapshot:
        """Complete a one-time-code sign-in and sync the resulting identity's profile.

        The email channel yields an auth session (pushed to the resolver by the
        auth client). The SMS channel yields the provider user id from the OTP
        service, which becomes the manual identity.
        """
        result = await self.verification.verify(recipient, channel, code, request_id=request_id)
        if isinstance(result, OtpVerifyResult):
            if not result.success or not result.supabase_user_id:
                raise OtpServiceError("Не удалось создать или найти аккаунт по этому номеру")
            if not self.resolver.set_manual_identity(result.supabase_user_id, phone=result.phone or recipient):
                raise ManualIdentityRejected("Сначала выйдите из текущего аккаунта")
            await self.resolver.refresh_profile()
        return self.resolver.snapshot()

    async def load_catalog(self) -> bool:
        """Refetch the catalog for the current profile; prior data stays visible on failure.

        Returns ``False`` when the fetch fails or the active identity changes
        before the results arrive; late results are dropped, never written to
        another identity's partition.
        """
        identity_id = self.cache.active_identity_id
        try:
            benefits, offers, medicines = await asyncio.gather(
                self.catalog.get_benefits_for_profile(self._current_profile()),
                self.catalog.get_all_offers(),
                self.catalog.get_all_medicines(),
            )
        except CatalogError as exc:
            logger.warning("Catalog refresh failed: %s", exc)
            return False
        if self.cache.active_identity_id != identity_id:
            logger.info("Identity changed during catalog refresh; dropping results for %s", identity_id)
            return False
        self.cache.replace_benefits(benefits)
        self.cache.replace_offers(offers)
        self.cache.replace_medicines(medicines)
        return True


__all__ = ["AppServices"]
