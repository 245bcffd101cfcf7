"""
Client for the serverless functions that send e-mail and push messages.

Every function takes a JSON body and answers ``{"success": bool, "error"?: str}``.
Network failures and non-2xx answers are folded into the same shape so callers
only ever branch on ``success``.
"""
from typing import Any, Dict, Optional
from uuid import UUID

import httpx
from pydantic import BaseModel

from hamro_task.core.config import settings
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import record_function_invocation

logger = get_logger(__name__)

SEND_PUSH_NOTIFICATION = "send-push-notification"
SEND_PAYMENT_NOTIFICATION = "send-payment-notification"
SEND_INVITATION = "send-invitation"
RESET_MEMBER_PASSWORD = "reset-member-password"
REMOVE_MEMBER = "remove-member"


class FunctionResult(BaseModel):
    """Normalized answer of a function call."""

    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None
    data: Dict[str, Any] = {}


class FunctionsClient:
    """
    Async client for the functions endpoint.

    Example:
        >>> client = FunctionsClient()
        >>> result = await client.send_invitation(
        ...     email="sita@example.com", workspace_id=ws_id, role="member", invited_by=user_id
        ... )
        >>> result.success
        True
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.functions_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.functions_api_key
        self.timeout = timeout or settings.functions_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def invoke(self, function: str, body: Dict[str, Any]) -> FunctionResult:
        """
        Invoke a function by name.

        Args:
            function: Function name, e.g. ``send-invitation``
            body: JSON body; UUIDs are converted to strings

        Returns:
            FunctionResult, never raises for transport or HTTP errors
        """
        payload = _jsonable(body)
        url = f"{self.base_url}/{function}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            return self._failed(function, f"Request timed out after {self.timeout}s: {e}")
        except httpx.RequestError as e:
            return self._failed(function, f"Network error: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {"text": response.text}
        if not isinstance(data, dict):
            data = {"result": data}

        if response.is_error:
            error = data.get("error") or f"HTTP {response.status_code}"
            return self._failed(function, error, response.status_code)

        success = bool(data.get("success", True))
        result = FunctionResult(
            success=success,
            error=data.get("error"),
            status_code=response.status_code,
            data=data,
        )
        record_function_invocation(function, success)
        if not success:
            logger.warning("Function reported failure", function=function, error=result.error)
        return result

    def _failed(self, function: str, error: str, status_code: Optional[int] = None) -> FunctionResult:
        record_function_invocation(function, False)
        logger.error("Function invocation failed", function=function, error=error,
                     status_code=status_code)
        return FunctionResult(success=False, error=error, status_code=status_code)

    async def send_push_notification(
        self, user_id: UUID, notification_id: UUID, title: str, body: Optional[str],
        url: Optional[str], tag: Optional[str] = None,
    ) -> FunctionResult:
        return await self.invoke(SEND_PUSH_NOTIFICATION, {
            "userId": user_id,
            "notification": {
                "id": notification_id,
                "title": title,
                "body": body,
                "url": url,
                "tag": tag,
            },
        })

    async def send_payment_notification(
        self, notification_type: str, workspace_id: UUID, payment_submission_id: UUID,
        rejection_reason: Optional[str] = None,
    ) -> FunctionResult:
        body: Dict[str, Any] = {
            "type": notification_type,
            "workspaceId": workspace_id,
            "paymentSubmissionId": payment_submission_id,
        }
        if rejection_reason:
            body["rejectionReason"] = rejection_reason
        return await self.invoke(SEND_PAYMENT_NOTIFICATION, body)

    async def send_invitation(
        self, email: str, workspace_id: UUID, role: str, invited_by: UUID,
    ) -> FunctionResult:
        return await self.invoke(SEND_INVITATION, {
            "email": email,
            "workspaceId": workspace_id,
            "role": role,
            "invitedBy": invited_by,
        })

    async def reset_member_password(self, workspace_id: UUID, user_id: UUID) -> FunctionResult:
        return await self.invoke(RESET_MEMBER_PASSWORD, {
            "workspaceId": workspace_id,
            "userId": user_id,
        })

    async def remove_member(self, workspace_id: UUID, user_id: UUID) -> FunctionResult:
        return await self.invoke(REMOVE_MEMBER, {
            "workspaceId": workspace_id,
            "userId": user_id,
        })


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def get_functions_client() -> FunctionsClient:
    """FastAPI dependency; overridden in tests."""
    return FunctionsClient()
