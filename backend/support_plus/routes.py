"""REST endpoints consumed by the Support+ web client."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from .cache import CachePartition
from .clients.otp import SendVerificationResult, VerificationChannel
from .errors import (
    AuthProviderError,
    ManualIdentityRejected,
    OtpServiceError,
    ProfileApiError,
    ProfileSyncFailed,
)
from .identity_resolver import ResolverSnapshot
from .models import Profile, ProfileUpdate
from .services import AppServices

router = APIRouter(prefix="/api", tags=["support-plus"])
logger = logging.getLogger(__name__)


def get_services() -> AppServices:
    from .main import get_app_services

    return get_app_services()


class ManualIdentityRequest(BaseModel):
    id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ManualIdentityResponse(BaseModel):
    accepted: bool
    snapshot: ResolverSnapshot


class CatalogPayload(CachePartition):
    identity_id: Optional[str] = None


class CatalogRefreshPayload(CatalogPayload):
    refreshed: bool


class HiddenBenefitsPayload(BaseModel):
    hidden_benefit_ids: List[str] = Field(default_factory=list)


class SendCodeRequest(BaseModel):
    recipient: str = Field(..., min_length=1)
    channel: VerificationChannel = "sms"
    report: Optional[Any] = None


class VerifyCodeRequest(BaseModel):
    recipient: str = Field(..., min_length=1)
    channel: VerificationChannel = "sms"
    code: str = Field(..., min_length=1)
    request_id: Optional[str] = None


def _catalog_payload(services: AppServices) -> CatalogPayload:
    partition = services.cache.snapshot()
    return CatalogPayload(
        identity_id=services.cache.active_identity_id,
        **partition.model_dump(),
    )


@router.get("/identity", response_model=ResolverSnapshot)
async def get_identity(services: AppServices = Depends(get_services)) -> ResolverSnapshot:
    return services.resolver.snapshot()


@router.post("/identity/manual", response_model=ManualIdentityResponse)
async def set_manual_identity(
    request: ManualIdentityRequest,
    services: AppServices = Depends(get_services),
) -> ManualIdentityResponse:
    accepted = services.resolver.set_manual_identity(request.id, email=request.email, phone=request.phone)
    return ManualIdentityResponse(accepted=accepted, snapshot=services.resolver.snapshot())


@router.post("/identity/refresh", response_model=ResolverSnapshot)
async def refresh_identity(services: AppServices = Depends(get_services)) -> ResolverSnapshot:
    try:
        await services.resolver.refresh_profile()
    except ProfileSyncFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return services.resolver.snapshot()


@router.post("/identity/reset", response_model=ResolverSnapshot)
async def reset_identity(services: AppServices = Depends(get_services)) -> ResolverSnapshot:
    await services.reset()
    return services.resolver.snapshot()


@router.put("/profile", response_model=Profile)
async def update_profile(
    update: ProfileUpdate,
    services: AppServices = Depends(get_services),
) -> Profile:
    try:
        return await services.update_profile(update)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ProfileApiError as exc:
        logger.warning("Profile update failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.delete("/profile", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(services: AppServices = Depends(get_services)) -> Response:
    try:
        await services.delete_account()
    except ProfileApiError as exc:
        logger.warning("Profile delete failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/catalog", response_model=CatalogPayload)
def get_catalog(services: AppServices = Depends(get_services)) -> CatalogPayload:
    return _catalog_payload(services)


@router.post("/catalog/refresh", response_model=CatalogRefreshPayload)
async def refresh_catalog(services: AppServices = Depends(get_services)) -> CatalogRefreshPayload:
    refreshed = await services.load_catalog()
    payload = _catalog_payload(services)
    return CatalogRefreshPayload(refreshed=refreshed, **payload.model_dump())


@router.post("/catalog/hidden/{benefit_id}", response_model=HiddenBenefitsPayload)
def toggle_hidden_benefit(
    benefit_id: str,
    services: AppServices = Depends(get_services),
) -> HiddenBenefitsPayload:
    return HiddenBenefitsPayload(hidden_benefit_ids=services.cache.toggle_hidden(benefit_id))


@router.post("/otp/request", response_model=SendVerificationResult)
async def request_code(
    request: SendCodeRequest,
    services: AppServices = Depends(get_services),
) -> SendVerificationResult:
    try:
        return await services.verification.send_code(request.recipient, request.channel, report=request.report)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (OtpServiceError, AuthProviderError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.post("/otp/verify", response_model=ResolverSnapshot)
async def verify_code(
    request: VerifyCodeRequest,
    services: AppServices = Depends(get_services),
) -> ResolverSnapshot:
    try:
        return await services.sign_in_with_code(
            request.recipient,
            request.channel,
            request.code,
            request_id=request.request_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ManualIdentityRejected as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ProfileSyncFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except (OtpServiceError, AuthProviderError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


__all__ = ["get_services", "router"]
