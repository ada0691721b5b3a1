"""Domain models for profiles and the benefits catalog."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .identity import PseudoIdentity, RemoteSession
from .target_groups import TargetGroup

UserRole = Literal["self", "relative"]
BenefitType = Literal[
    "social",
    "medical",
    "transport",
    "housing",
    "utility",
    "tax",
    "education",
    "culture",
]

DEFAULT_REGION = "region-1"
DEFAULT_CATEGORY: TargetGroup = "pensioner"
DEFAULT_DISPLAY_NAME = "Пользователь"


class _CatalogModel(BaseModel):
    """Catalog documents are camelCase JSON; attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BenefitLocation(_CatalogModel):
    city: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


class Benefit(_CatalogModel):
    id: str
    title: str
    description: str = ""
    type: BenefitType = "social"
    target_groups: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    requirements: List[str] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)
    documents: List[str] = Field(default_factory=list)
    partner: Optional[str] = None
    category_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    merchant_name: Optional[str] = None
    merchant_url: Optional[str] = None
    locations: List[BenefitLocation] = Field(default_factory=list)
    amount: Optional[float] = None
    savings_per_month: Optional[float] = None
    is_new: bool = False
    expires_in: Optional[int] = None


class Offer(_CatalogModel):
    id: str
    title: str
    description: str = ""
    partner: str = ""
    discount: float = 0
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    target_groups: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    category: str = ""
    image_url: Optional[str] = None


class Medicine(_CatalogModel):
    id: str
    name: str
    dosage: str = ""
    frequency: str = ""
    prescribed_by: Optional[str] = None
    prescribed_date: Optional[str] = None
    refill_date: Optional[str] = None
    related_benefit_ids: List[str] = Field(default_factory=list)
    related_offer_ids: List[str] = Field(default_factory=list)
    monthly_price: float = 0
    discounted_price: Optional[float] = None


class Profile(BaseModel):
    """Durable profile record owned by a single identity."""

    id: str
    auth_user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    region: str = DEFAULT_REGION
    category: TargetGroup = DEFAULT_CATEGORY
    document_number: Optional[str] = None
    role: UserRole = "self"
    interests: List[str] = Field(default_factory=list)
    simple_mode_enabled: bool = True


class ProfileUpdate(BaseModel):
    """Explicit user edit. Only fields that were set are sent upstream."""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    region: Optional[str] = None
    category: Optional[TargetGroup] = None
    document_number: Optional[str] = None
    role: Optional[UserRole] = None
    interests: Optional[List[str]] = None
    simple_mode_enabled: Optional[bool] = None

    def to_remote_payload(self) -> Dict[str, Any]:
        fields = self.model_dump(exclude_unset=True)
        mapping = {
            "name": "fullName",
            "document_number": "snils",
            "simple_mode_enabled": "simpleModeEnabled",
        }
        return {mapping.get(key, key): value for key, value in fields.items()}

    def apply_to(self, profile: Profile) -> Profile:
        return profile.model_copy(update=self.model_dump(exclude_unset=True), deep=True)


def display_name_for(identity: PseudoIdentity | RemoteSession) -> str:
    return identity.email or identity.phone or DEFAULT_DISPLAY_NAME


def build_fallback_profile(identity: PseudoIdentity | RemoteSession) -> Profile:
    """Synthesise a local profile for an identity the remote store must never see."""
    return Profile(
        id=identity.id,
        auth_user_id=identity.id,
        name=display_name_for(identity),
        email=identity.email,
        phone=identity.phone,
        region=DEFAULT_REGION,
        category=DEFAULT_CATEGORY,
        role="self",
        interests=[],
        simple_mode_enabled=True,
    )


def profile_from_row(row: Dict[str, Any]) -> Profile:
    """Map a remote ``profiles`` row onto the domain model, filling defaults."""
    return Profile(
        id=str(row["id"]),
        auth_user_id=str(row["auth_user_id"]),
        name=row.get("full_name") or None,
        email=row.get("email") or None,
        phone=row.get("phone") or None,
        region=row.get("region") or DEFAULT_REGION,
        category=row.get("category") or DEFAULT_CATEGORY,
        document_number=row.get("snils") or None,
        role=row.get("role") or "self",
        interests=list(row.get("interests") or []),
        simple_mode_enabled=True if row.get("simple_mode_enabled") is None else bool(row["simple_mode_enabled"]),
    )


__all__ = [
    "Benefit",
    "BenefitLocation",
    "BenefitType",
    "DEFAULT_CATEGORY",
    "DEFAULT_DISPLAY_NAME",
    "DEFAULT_REGION",
    "Medicine",
    "Offer",
    "Profile",
    "ProfileUpdate",
    "UserRole",
    "build_fallback_profile",
    "display_name_for",
    "profile_from_row",
]
