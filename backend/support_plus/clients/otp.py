"""Client for the OTP microservice (SMS codes and QR summary reports)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..errors import OtpServiceError
from ..identity import RemoteSession
from ..phone import normalize_phone_to_e164
from ._http import error_message
from .auth import AuthClient

logger = logging.getLogger(__name__)

OTP_REQUEST_FAILED = "Не удалось выполнить запрос к OTP API"

VerificationChannel = Literal["sms", "email"]


class _OtpModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OtpQrBlock(_OtpModel):
    payload: str
    data_url: str


class OtpRequestResult(_OtpModel):
    request_id: str
    mock: bool = False
    mock_code: Optional[str] = None
    expires_in: Optional[int] = None
    qr: Optional[OtpQrBlock] = None
    report_captured: Optional[bool] = None


class OtpVerifyResult(_OtpModel):
    success: bool
    phone: str
    mock: bool = False
    supabase_user_id: Optional[str] = None
    supabase_user_created: Optional[bool] = None


class SendVerificationResult(BaseModel):
    normalized_recipient: str
    request_id: Optional[str] = None
    mock_code: Optional[str] = None


class OtpClient:
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

    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        try:
            response = await self._client.post(f"{self._base_url}{path}", json=body)
        except httpx.HTTPError as exc:
            raise OtpServiceError(f"{OTP_REQUEST_FAILED}: {exc}") from exc
        if response.is_error:
            raise OtpServiceError(
                error_message(response, OTP_REQUEST_FAILED),
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise OtpServiceError("OTP service returned invalid JSON.") from exc

    async def request_code(self, phone: str, *, report: Any = None) -> OtpRequestResult:
        """Ask the service to send a code; ``report`` attaches a printable summary for the QR block."""
        payload: Dict[str, Any] = {"phone": phone}
        if report is not None:
            payload["report"] = report
        data = await self._post("/otp/request", payload)
        try:
            return OtpRequestResult.model_validate(data)
        except ValidationError as exc:
            raise OtpServiceError(f"OTP service returned an invalid request payload: {exc}") from exc

    async def verify_code(self, request_id: str, code: str) -> OtpVerifyResult:
        data = await self._post("/otp/verify", {"requestId": request_id, "code": code})
        try:
            return OtpVerifyResult.model_validate(data)
        except ValidationError as exc:
            raise OtpServiceError(f"OTP service returned an invalid verify payload: {exc}") from exc


class VerificationService:
    """Dispatches one-time-code verification between the email and SMS channels."""

    def __init__(self, otp: OtpClient, auth: AuthClient) -> None:
        self._otp = otp
        self._auth = auth

    async def send_code(
        self,
        recipient: str,
        channel: VerificationChannel,
        *,
        report: Any = None,
    ) -> SendVerificationResult:
        if channel == "email":
            email = recipient.strip()
            await self._auth.sign_in_with_otp(email=email)
            return SendVerificationResult(normalized_recipient=email)

        phone = normalize_phone_to_e164(recipient)
        if not phone:
            raise ValueError("Проверь номер телефона")
        result = await self._otp.request_code(phone, report=report)
        return SendVerificationResult(
            normalized_recipient=phone,
            request_id=result.request_id,
            mock_code=result.mock_code,
        )

    async def verify(
        self,
        recipient: str,
        channel: VerificationChannel,
        code: str,
        *,
        request_id: Optional[str] = None,
    ) -> Union[RemoteSession, OtpVerifyResult]:
        if channel == "email":
            return await self._auth.verify_otp(code, email=recipient.strip())
        if not request_id:
            raise ValueError("Отсутствует идентификатор запроса. Запросите код снова.")
        result = await self._otp.verify_code(request_id, code)
        logger.info("SMS code verified (mock=%s, user_created=%s)", result.mock, result.supabase_user_created)
        return result


__all__ = [
    "OTP_REQUEST_FAILED",
    "OtpClient",
    "OtpQrBlock",
    "OtpRequestResult",
    "OtpVerifyResult",
    "SendVerificationResult",
    "VerificationChannel",
    "VerificationService",
]
