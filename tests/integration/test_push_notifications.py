import json

import httpx
import pytest

from owninstead.infrastructure.db.models import ProfileModel
from owninstead.services import notification_service as notifications
from owninstead.services.notification_service import PushNotificationService

PUSH_URL = "https://push.test/--/api/v2/push/send"
TOKEN = "ExponentPushToken[abc123]"


def _service(session_factory, handler):
    return PushNotificationService(
        session_factory,
        PUSH_URL,
        transport=httpx.MockTransport(handler),
    )


async def _push_token(session_factory, user_id="user-1"):
    async with session_factory() as session:
        return (await session.get(ProfileModel, user_id)).push_token


@pytest.mark.asyncio
@pytest.mark.integration
async def test_push_sends_rendered_message(session_factory, seed):
    await seed.profile(push_token=TOKEN)
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"status": "ok", "id": "receipt-1"}})

    service = _service(session_factory, handler)
    await service.notify(
        "user-1", notifications.ORDER_FILLED, {"amount": "18", "symbol": "VTI"}
    )

    assert len(sent) == 1
    assert sent[0]["to"] == TOKEN
    assert sent[0]["title"] == "Investment Complete"
    assert sent[0]["body"] == "Your $18.00 VTI order has been filled."
    assert sent[0]["data"]["type"] == notifications.ORDER_FILLED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unregistered_device_clears_token(session_factory, seed):
    await seed.profile(push_token=TOKEN)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "data": {
                    "status": "error",
                    "message": "not a registered push token",
                    "details": {"error": "DeviceNotRegistered"},
                }
            },
        )

    await _service(session_factory, handler).notify("user-1", notifications.ORDER_FAILED)

    assert await _push_token(session_factory) is None


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("token", [None, "not-an-expo-token"])
async def test_push_skipped_without_usable_token(session_factory, seed, token):
    await seed.profile(push_token=token)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"data": {"status": "ok"}})

    await _service(session_factory, handler).notify("user-1", notifications.ORDER_FAILED)

    assert calls == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delivery_errors_never_propagate(session_factory, seed):
    await seed.profile(push_token=TOKEN)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"errors": ["unavailable"]})

    # logged, not raised
    await _service(session_factory, handler).notify("user-1", notifications.ORDER_FAILED)

    assert await _push_token(session_factory) == TOKEN
