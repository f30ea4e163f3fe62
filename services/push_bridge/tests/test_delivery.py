import asyncio
import json

import httpx
import pytest

from services.push_bridge.src import delivery
from services.push_bridge.src.delivery import deliver
from services.push_bridge.src.exceptions import DeliveryError
from services.push_bridge.src.schemas import PushEnvelope, PushMessage


def _envelope(ordering_key=None):
    return PushEnvelope(
        message=PushMessage(
            attributes={"k": "v"},
            data="aGVsbG8=",
            messageId="m1",
            orderingKey=ordering_key,
            publishTime="2024-01-01T00:00:00Z",
        ),
        subscription="projects/p/subscriptions/s",
    )


def _post(handler, url="http://x/y", envelope=None):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await deliver(client, url, envelope or _envelope())
    asyncio.run(_run())


def test_posts_json_envelope_with_fixed_timeout():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["content_type"] = request.headers["content-type"]
        seen["timeout"] = request.extensions["timeout"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(204)

    _post(handler)

    assert seen["method"] == "POST"
    assert seen["url"] == "http://x/y"
    assert seen["content_type"] == "application/json"
    assert seen["timeout"]["read"] == delivery.DELIVERY_TIMEOUT_S == 10.0
    assert seen["body"] == {
        "message": {
            "attributes": {"k": "v"},
            "data": "aGVsbG8=",
            "messageId": "m1",
            "publishTime": "2024-01-01T00:00:00Z",
        },
        "subscription": "projects/p/subscriptions/s",
    }


@pytest.mark.parametrize("status", [200, 201, 202, 204, 299])
def test_any_2xx_is_success(status):
    _post(lambda request: httpx.Response(status))


@pytest.mark.parametrize("status", [199, 300, 302, 400, 404, 429, 500, 503])
def test_non_2xx_raises_with_status(status):
    with pytest.raises(DeliveryError) as exc:
        _post(lambda request: httpx.Response(status))
    assert exc.value.status_code == status
    assert str(status) in str(exc.value)


def test_transport_failure_raises_delivery_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DeliveryError, match="connection refused") as exc:
        _post(handler)
    assert exc.value.status_code is None


def test_timeout_raises_delivery_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(DeliveryError, match="ReadTimeout"):
        _post(handler)


def test_malformed_url_is_a_delivery_error():
    async def _run():
        async with httpx.AsyncClient() as client:
            await deliver(client, "not-a-url", _envelope())

    with pytest.raises(DeliveryError):
        asyncio.run(_run())


def test_ordering_key_sent_when_present():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    _post(handler, envelope=_envelope(ordering_key="ok-1"))
    assert bodies[0]["message"]["orderingKey"] == "ok-1"
