"""Reconciles auth sessions, manual pseudo identities and remote profiles."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Protocol, Set, Union

from pydantic import BaseModel, ValidationError

from .errors import NoActiveSession, ProfileSyncFailed
from .identity import (
    NO_IDENTITY,
    Identity,
    NoIdentity,
    PseudoIdentity,
    RemoteSession,
    ResolverState,
)
from .models import Profile, build_fallback_profile, display_name_for
from .storage import KeyValueStorage
from .telemetry import emit_event

logger = logging.getLogger(__name__)

MANUAL_IDENTITY_STORAGE_KEY = "support-plus-manual-user"
PROFILE_ERROR_MESSAGE = "Не удалось загрузить профиль. Попробуйте снова."

ActiveIdentity = Union[PseudoIdentity, RemoteSession]


class AuthProvider(Protocol):
    async def get_current_session(self) -> RemoteSession:  # pragma: no cover - protocol definition
        ...

    def on_auth_state_change(
        self,
        callback: Callable[[str, Optional[RemoteSession]], None],
    ) -> Callable[[], None]:  # pragma: no cover - protocol definition
        ...

    async def sign_out(self) -> None:  # pragma: no cover - protocol definition
        ...


class ProfileStore(Protocol):
    async def ensure_profile(
        self,
        auth_user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Profile:  # pragma: no cover - protocol definition
        ...


class ResolverSnapshot(BaseModel):
    state: ResolverState
    identity: Identity
    profile: Optional[Profile] = None
    error: Optional[str] = None


ResolverListener = Callable[[ResolverSnapshot], None]


class IdentityResolver:
    """Produces one current identity and keeps its profile in sync.

    ``init()`` must run inside the event loop. Auth state pushes and the
    startup session check are applied in arrival order. Profile syncs are
    single-flight per identity id; a result that arrives after the identity
    changed or after ``close()`` is discarded.
    """

    def __init__(
        self,
        auth: AuthProvider,
        profiles: ProfileStore,
        storage: KeyValueStorage,
        *,
        sync_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._auth = auth
        self._profiles = profiles
        self._storage = storage
        self._sync_timeout = sync_timeout_seconds if sync_timeout_seconds else None

        self._identity: Identity = NO_IDENTITY
        self._profile: Optional[Profile] = None
        self._state = ResolverState.UNKNOWN
        self._error: Optional[str] = None
        self._failed_id: Optional[str] = None
        self._started = False
        self._alive = True

        self._in_flight: Dict[str, asyncio.Task[Profile]] = {}
        self._background: Set[asyncio.Task[None]] = set()
        self._listeners: List[ResolverListener] = []
        self._unsubscribe_auth: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> ResolverState:
        return self._state

    @property
    def current_identity(self) -> Identity:
        return self._identity

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile.model_copy(deep=True) if self._profile else None

    @property
    def error(self) -> Optional[str]:
        return self._error

    def snapshot(self) -> ResolverSnapshot:
        return ResolverSnapshot(
            state=self._state,
            identity=self._identity,
            profile=self.profile,
            error=self._error,
        )

    def subscribe(self, listener: ResolverListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Identity listener failed")

    def _set_state(self, state: ResolverState) -> None:
        previous = self._state
        self._state = state
        if previous != state:
            emit_event(
                "identity_state_changed",
                previous=previous,
                state=state,
                identity_kind=self._identity.kind,
            )

    # -------------------------------------------------------- pseudo identity

    def _load_pseudo(self) -> Optional[PseudoIdentity]:
        raw = self._storage.get_item(MANUAL_IDENTITY_STORAGE_KEY)
        if not raw:
            return None
        try:
            return PseudoIdentity.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable manual identity from local storage")
            self._storage.remove_item(MANUAL_IDENTITY_STORAGE_KEY)
            return None

    def _persist_pseudo(self, identity: Optional[PseudoIdentity]) -> None:
        if identity is None:
            self._storage.remove_item(MANUAL_IDENTITY_STORAGE_KEY)
        else:
            self._storage.set_item(MANUAL_IDENTITY_STORAGE_KEY, identity.model_dump_json())

    # -------------------------------------------------------------- lifecycle

    async def init(self) -> None:
        """Load the persisted pseudo identity, subscribe to auth pushes, check the session."""
        self._alive = True
        pseudo = self._load_pseudo()
        if pseudo is not None:
            self._identity = pseudo
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self._auth.on_auth_state_change(self._on_auth_state_change)

        session: Optional[RemoteSession] = None
        try:
            session = await self._auth.get_current_session()
        except NoActiveSession:
            logger.debug("No auth session on startup")
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error while checking the auth session")

        if not self._alive:
            return
        self._started = True
        if session is not None:
            self._apply_session(session)
        else:
            self._reconcile()

    def close(self) -> None:
        """Stop reacting to auth pushes; in-flight syncs finish but their results are ignored."""
        self._alive = False
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

    async def settle(self) -> None:
        """Wait for background profile syncs started by state changes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------ transitions

    def _on_auth_state_change(self, event: str, session: Optional[RemoteSession]) -> None:
        if not self._alive:
            return
        logger.debug("Auth state change: %s", event)
        self._apply_session(session)

    def _apply_session(self, session: Optional[RemoteSession]) -> None:
        if session is not None:
            self._persist_pseudo(None)
            self._switch_identity(session)
        elif isinstance(self._identity, RemoteSession):
            self._switch_identity(NO_IDENTITY)
        self._reconcile()

    def _switch_identity(self, identity: Identity) -> None:
        if identity.id != self._identity.id:
            # the prior profile stays loaded until a sync for the new id succeeds
            self._error = None
            self._failed_id = None
        self._identity = identity

    def _reconcile(self) -> None:
        if self._started:
            self._evaluate()
        self._notify()

    def _evaluate(self) -> None:
        identity = self._identity
        if isinstance(identity, NoIdentity):
            self._error = None
            self._failed_id = None
            self._set_state(ResolverState.ANONYMOUS)
            return

        if self._profile is not None and self._profile.auth_user_id == identity.id:
            self._set_state(ResolverState.READY)
            return
        if identity.id in self._in_flight:
            self._set_state(ResolverState.PROFILE_SYNCING)
            return
        if self._failed_id == identity.id:
            self._set_state(ResolverState.PROFILE_ERROR)
            return

        base = ResolverState.REMOTE_ACTIVE if isinstance(identity, RemoteSession) else ResolverState.PSEUDO_ACTIVE
        self._set_state(base)
        self._start_background_sync(identity)

    def _start_background_sync(self, identity: ActiveIdentity) -> None:
        task = asyncio.get_running_loop().create_task(self._background_sync(identity))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_sync(self, identity: ActiveIdentity) -> None:
        try:
            await self._sync_profile(identity)
        except ProfileSyncFailed:
            pass

    # ----------------------------------------------------------- profile sync

    async def _ensure_profile_for(self, identity: ActiveIdentity) -> Profile:
        if identity.is_unverified:
            return build_fallback_profile(identity)
        return await self._profiles.ensure_profile(
            identity.id,
            full_name=display_name_for(identity),
            email=identity.email,
            phone=identity.phone,
        )

    def _is_current(self, identity_id: str) -> bool:
        return self._alive and self._identity.id == identity_id

    async def _run_sync(self, identity: ActiveIdentity) -> Profile:
        identity_id = identity.id
        try:
            if self._sync_timeout:
                profile = await asyncio.wait_for(self._ensure_profile_for(identity), self._sync_timeout)
            else:
                profile = await self._ensure_profile_for(identity)
        except Exception as exc:  # noqa: BLE001
            reason = "timeout" if isinstance(exc, asyncio.TimeoutError) else str(exc)
            if self._is_current(identity_id):
                logger.warning("Failed to sync profile for %s: %s", identity_id, reason or type(exc).__name__)
                self._error = PROFILE_ERROR_MESSAGE
                self._failed_id = identity_id
                self._set_state(ResolverState.PROFILE_ERROR)
                emit_event("profile_sync_failed", identity_id=identity_id, reason=reason or type(exc).__name__)
                self._notify()
            raise ProfileSyncFailed(PROFILE_ERROR_MESSAGE, identity_id=identity_id) from exc

        if self._is_current(identity_id):
            self._profile = profile
            self._error = None
            self._failed_id = None
            self._set_state(ResolverState.READY)
            emit_event("profile_sync_completed", identity_id=identity_id, fallback=identity.is_unverified)
            self._notify()
        return profile

    async def _sync_profile(self, identity: ActiveIdentity) -> Profile:
        identity_id = identity.id
        task = self._in_flight.get(identity_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run_sync(identity))
            self._in_flight[identity_id] = task
            task.add_done_callback(lambda done: self._release(identity_id, done))
            if self._is_current(identity_id):
                self._error = None
                self._set_state(ResolverState.PROFILE_SYNCING)
                self._notify()
        return await asyncio.shield(task)

    def _release(self, identity_id: str, task: asyncio.Task[Profile]) -> None:
        if self._in_flight.get(identity_id) is task:
            del self._in_flight[identity_id]

    async def refresh_profile(self) -> Optional[Profile]:
        """Re-run the profile sync for the current identity.

        Raises ``ProfileSyncFailed`` when the sync fails; the previously loaded
        profile is kept either way.
        """
        identity = self._identity
        if isinstance(identity, NoIdentity):
            self._error = None
            return None
        return await self._sync_profile(identity)

    def set_profile(self, profile: Profile) -> bool:
        """Replace the loaded profile after an explicit edit of the current identity's profile."""
        if profile.auth_user_id != self._identity.id:
            logger.warning("Ignoring profile for %s; current identity differs", profile.auth_user_id)
            return False
        self._profile = profile.model_copy(deep=True)
        self._error = None
        self._failed_id = None
        if self._started:
            self._set_state(ResolverState.READY)
        self._notify()
        return True

    # ------------------------------------------------------ explicit actions

    def set_manual_identity(
        self,
        identity_id: Optional[str],
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> bool:
        """Replace (or clear, when ``identity_id`` is empty) the pseudo identity.

        Returns ``False`` without changing anything when a verified session is active.
        """
        if isinstance(self._identity, RemoteSession):
            logger.warning("set_manual_identity called while a verified session exists; ignoring override")
            emit_event("manual_identity_rejected", identity_id=identity_id)
            return False

        if not identity_id:
            self._persist_pseudo(None)
            self._switch_identity(NO_IDENTITY)
            self._reconcile()
            return True

        pseudo = PseudoIdentity(id=identity_id, email=email or None, phone=phone or None)
        if pseudo.is_unverified:
            logger.info("Manual identity %s is unverified; profile will be kept locally", identity_id)
        self._persist_pseudo(pseudo)
        self._switch_identity(pseudo)
        self._reconcile()
        return True

    async def reset(self) -> bool:
        """Sign out and clear every local identity; returns whether remote sign-out succeeded."""
        sign_out_ok = True
        try:
            await self._auth.sign_out()
        except Exception:  # noqa: BLE001
            sign_out_ok = False
            logger.exception("Auth reset error")
        finally:
            self._persist_pseudo(None)
            self._identity = NO_IDENTITY
            self._profile = None
            self._error = None
            self._failed_id = None
            self._started = True
            self._set_state(ResolverState.ANONYMOUS)
            emit_event("account_reset", sign_out_ok=sign_out_ok)
            self._notify()
        return sign_out_ok


__all__ = [
    "AuthProvider",
    "IdentityResolver",
    "MANUAL_IDENTITY_STORAGE_KEY",
    "PROFILE_ERROR_MESSAGE",
    "ProfileStore",
    "ResolverListener",
    "ResolverSnapshot",
]
