"""
Tests for the functions client.
"""
import json
from uuid import uuid4

import httpx

from hamro_task.integrations.functions import FunctionsClient


def client_for(handler, api_key="secret"):
    return FunctionsClient(
        base_url="https://functions.example.com/v1/",
        api_key=api_key,
        timeout=2,
        transport=httpx.MockTransport(handler),
    )


class TestFunctionsClient:
    async def test_posts_json_with_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "messageId": "m1"})

        workspace_id, user_id = uuid4(), uuid4()
        result = await client_for(handler).send_invitation(
            email="new@example.com", workspace_id=workspace_id, role="member", invited_by=user_id
        )

        assert result.success is True
        assert result.data["messageId"] == "m1"
        assert seen["url"] == "https://functions.example.com/v1/send-invitation"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "email": "new@example.com",
            "workspaceId": str(workspace_id),
            "role": "member",
            "invitedBy": str(user_id),
        }

    async def test_no_api_key_no_header(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert "authorization" not in request.headers
            return httpx.Response(200, json={"success": True})

        assert (await client_for(handler, api_key="").invoke("ping", {})).success is True

    async def test_reported_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "No device"})

        result = await client_for(handler).invoke("send-push-notification", {})

        assert result.success is False
        assert result.error == "No device"
        assert result.status_code == 200

    async def test_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "boom"})

        result = await client_for(handler).invoke("remove-member", {})

        assert result.success is False
        assert result.error == "boom"
        assert result.status_code == 500

    async def test_http_error_without_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad gateway")

        result = await client_for(handler).invoke("remove-member", {})

        assert result.success is False
        assert result.error == "HTTP 502"

    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await client_for(handler).invoke("reset-member-password", {})

        assert result.success is False
        assert result.error.startswith("Network error")
        assert result.status_code is None

    async def test_payment_notification_body(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        client = client_for(handler)
        workspace_id, payment_id = uuid4(), uuid4()

        await client.send_payment_notification("payment_approved", workspace_id, payment_id)
        await client.send_payment_notification(
            "payment_rejected", workspace_id, payment_id, rejection_reason="Wrong amount"
        )

        assert "rejectionReason" not in bodies[0]
        assert bodies[1]["rejectionReason"] == "Wrong amount"
        assert bodies[1]["paymentSubmissionId"] == str(payment_id)

    async def test_push_body_nests_notification(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        user_id, notification_id = uuid4(), uuid4()
        await client_for(handler).send_push_notification(
            user_id, notification_id, "Title", None, "https://app/x", tag="task_assigned"
        )

        assert bodies[0] == {
            "userId": str(user_id),
            "notification": {
                "id": str(notification_id),
                "title": "Title",
                "body": None,
                "url": "https://app/x",
                "tag": "task_assigned",
            },
        }
