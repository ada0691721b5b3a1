"""Identity sum type shared by the resolver, the cache store and the HTTP surface."""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

# Identity ids issued by the auth provider are UUIDs. Any UUID-shaped id is
# treated as verified; everything else is a locally fabricated pseudo id.
VERIFIED_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_verified_id(value: Optional[str]) -> bool:
    if not isinstance(value, str):
        return False
    return bool(VERIFIED_ID_PATTERN.match(value.strip()))


class NoIdentity(BaseModel):
    kind: Literal["none"] = "none"

    @property
    def id(self) -> None:
        return None


class PseudoIdentity(BaseModel):
    """Identity fabricated on this device, persisted only in local storage."""

    kind: Literal["pseudo"] = "pseudo"
    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_unverified(self) -> bool:
        return not is_verified_id(self.id)


class RemoteSession(BaseModel):
    """Session confirmed by the remote auth provider."""

    kind: Literal["remote"] = "remote"
    session_id: str
    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def is_unverified(self) -> bool:
        return False


Identity = Annotated[Union[NoIdentity, PseudoIdentity, RemoteSession], Field(discriminator="kind")]

NO_IDENTITY = NoIdentity()


class ResolverState(str, Enum):
    UNKNOWN = "unknown"
    ANONYMOUS = "anonymous"
    PSEUDO_ACTIVE = "pseudo_active"
    REMOTE_ACTIVE = "remote_active"
    PROFILE_SYNCING = "profile_syncing"
    READY = "ready"
    PROFILE_ERROR = "profile_error"


__all__ = [
    "Identity",
    "NO_IDENTITY",
    "NoIdentity",
    "PseudoIdentity",
    "RemoteSession",
    "ResolverState",
    "VERIFIED_ID_PATTERN",
    "is_verified_id",
]
