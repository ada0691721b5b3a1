"""Read-only client for the benefits, offers and medicines catalog documents."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import CatalogError
from ..models import Benefit, Medicine, Offer, Profile
from ..target_groups import normalize_target_group, normalize_target_groups

logger = logging.getLogger(__name__)

ALL_REGIONS = "all"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _in_region(regions: List[str], region: str) -> bool:
    return region in regions or ALL_REGIONS in regions


def benefits_for_profile(benefits: List[Benefit], profile: Optional[Profile]) -> List[Benefit]:
    """Benefits available in the profile's region and to its category."""
    if profile is None:
        return list(benefits)
    category = normalize_target_group(profile.category)
    matched: List[Benefit] = []
    for benefit in benefits:
        if not _in_region(benefit.regions, profile.region):
            continue
        if category and category not in normalize_target_groups(benefit.target_groups):
            continue
        matched.append(benefit)
    return matched


class CatalogClient:
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

    async def _get_list(self, document: str, model: Type[ModelT]) -> List[ModelT]:
        url = f"{self._base_url}/{document}"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            payload: Any = response.json()
        except httpx.HTTPError as exc:
            raise CatalogError(f"Catalog request for {document} failed: {exc}") from exc
        except ValueError as exc:
            raise CatalogError(f"Catalog document {document} is not valid JSON.") from exc
        if not isinstance(payload, list):
            raise CatalogError(f"Catalog document {document} must be a JSON array.")

        items: List[ModelT] = []
        for raw in payload:
            try:
                items.append(model.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid %s entry in %s: %s", model.__name__, document, exc)
        return items

    async def get_all_benefits(self) -> List[Benefit]:
        return await self._get_list("benefits.json", Benefit)

    async def get_all_offers(self) -> List[Offer]:
        return await self._get_list("offers.json", Offer)

    async def get_all_medicines(self) -> List[Medicine]:
        return await self._get_list("medicines.json", Medicine)

    async def get_benefit(self, benefit_id: str) -> Optional[Benefit]:
        for benefit in await self.get_all_benefits():
            if benefit.id == benefit_id:
                return benefit
        return None

    async def get_offer(self, offer_id: str) -> Optional[Offer]:
        for offer in await self.get_all_offers():
            if offer.id == offer_id:
                return offer
        return None

    async def filter_benefits_by_region(self, region: str) -> List[Benefit]:
        return [benefit for benefit in await self.get_all_benefits() if _in_region(benefit.regions, region)]

    async def filter_offers_by_region(self, region: str) -> List[Offer]:
        return [offer for offer in await self.get_all_offers() if _in_region(offer.regions, region)]

    async def filter_benefits_by_target_group(self, target_group: str) -> List[Benefit]:
        group = normalize_target_group(target_group)
        if group is None:
            return []
        return [
            benefit
            for benefit in await self.get_all_benefits()
            if group in normalize_target_groups(benefit.target_groups)
        ]

    async def get_benefits_for_profile(self, profile: Optional[Profile]) -> List[Benefit]:
        return benefits_for_profile(await self.get_all_benefits(), profile)


__all__ = ["ALL_REGIONS", "CatalogClient", "benefits_for_profile"]
