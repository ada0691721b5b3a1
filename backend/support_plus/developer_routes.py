"""Developer utilities for inspecting and clearing cached partitions."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from .routes import get_services
from .services import AppServices


router = APIRouter(prefix="/api/developer", tags=["developer"])


class PartitionListing(BaseModel):
    active_identity_id: Optional[str] = None
    partition_ids: List[str] = Field(default_factory=list)


@router.get("/partitions", response_model=PartitionListing)
def developer_partitions(services: AppServices = Depends(get_services)) -> PartitionListing:
    return PartitionListing(
        active_identity_id=services.cache.active_identity_id,
        partition_ids=services.cache.partition_ids(),
    )


@router.delete("/partitions/{identity_id}", status_code=status.HTTP_204_NO_CONTENT)
def developer_forget_partition(
    identity_id: str,
    services: AppServices = Depends(get_services),
) -> Response:
    if not services.cache.forget(identity_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cached partition for {identity_id}.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
