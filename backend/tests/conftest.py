from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

import pytest

from support_plus.errors import NoActiveSession
from support_plus.identity import RemoteSession
from support_plus.models import Benefit, Medicine, Offer, Profile, ProfileUpdate
from support_plus.storage import MemoryStorage
from support_plus.telemetry import TelemetryEvent, clear_listeners, register_listener

VERIFIED_ID = "11111111-1111-1111-1111-111111111111"
OTHER_VERIFIED_ID = "22222222-2222-2222-2222-222222222222"


class FakeAuthProvider:
    def __init__(self, session: Optional[RemoteSession] = None) -> None:
        self.session = session
        self.session_error: Optional[Exception] = None
        self.session_gate: Optional[asyncio.Event] = None
        self.sign_out_error: Optional[Exception] = None
        self.sign_out_calls = 0
        self._listeners: List[Callable[[str, Optional[RemoteSession]], None]] = []

    async def get_current_session(self) -> RemoteSession:
        if self.session_gate is not None:
            await self.session_gate.wait()
        if self.session_error is not None:
            raise self.session_error
        if self.session is None:
            raise NoActiveSession("no session")
        return self.session

    def on_auth_state_change(self, callback):
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def push(self, event: str, session: Optional[RemoteSession]) -> None:
        self.session = session
        for listener in list(self._listeners):
            listener(event, session)

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.push("SIGNED_OUT", None)

    async def aclose(self) -> None:
        return None


class FakeProfileStore:
    def __init__(self) -> None:
        self.calls: List[str] = []
        self.updates: List[tuple[str, ProfileUpdate]] = []
        self.deleted: List[str] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.update_gate: Optional[asyncio.Event] = None

    async def ensure_profile(
        self,
        auth_user_id: str,
        *,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Profile:
        self.calls.append(auth_user_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Profile(
            id=f"profile-{auth_user_id[:8]}",
            auth_user_id=auth_user_id,
            name=full_name,
            email=email,
            phone=phone,
        )

    async def update_profile(self, auth_user_id: str, update: ProfileUpdate) -> Profile:
        self.updates.append((auth_user_id, update))
        if self.update_gate is not None:
            await self.update_gate.wait()
        base = Profile(id=f"profile-{auth_user_id[:8]}", auth_user_id=auth_user_id)
        return update.apply_to(base)

    async def delete_profile(self, auth_user_id: str) -> None:
        if self.error is not None:
            raise self.error
        self.deleted.append(auth_user_id)

    async def aclose(self) -> None:
        return None


class FakeCatalog:
    def __init__(self) -> None:
        self.benefits = [
            Benefit(id="b-1", title="Проезд", regions=["all"], target_groups=["pensioner"]),
        ]
        self.offers = [Offer(id="o-1", title="Скидка в аптеке")]
        self.medicines = [Medicine(id="m-1", name="Аспирин")]
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def get_benefits_for_profile(self, profile: Optional[Profile]) -> List[Benefit]:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.benefits)

    async def get_all_offers(self) -> List[Offer]:
        return list(self.offers)

    async def get_all_medicines(self) -> List[Medicine]:
        return list(self.medicines)

    async def aclose(self) -> None:
        return None


def remote_session(user_id: str = VERIFIED_ID, *, email: Optional[str] = "user@example.com") -> RemoteSession:
    return RemoteSession(session_id=f"token-{user_id[:8]}", user_id=user_id, email=email)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def auth() -> FakeAuthProvider:
    return FakeAuthProvider()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def events():
    captured: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(captured.append)
    yield captured
    clear_listeners()
