import httpx

from .exceptions import DeliveryError
from .logging import jlog
from .schemas import PushEnvelope

DELIVERY_TIMEOUT_S = 10.0


async def deliver(
    client: httpx.AsyncClient,
    url: str,
    envelope: PushEnvelope,
    timeout: float = DELIVERY_TIMEOUT_S,
) -> None:
    """
    POST one envelope to the push endpoint. No retries; redelivery is
    left to Pub/Sub via nack.

    Raises:
        DeliveryError: non-2xx status, transport failure, malformed URL,
            or a payload that cannot be serialized.
    """
    try:
        body = envelope.to_json()
    except (TypeError, ValueError) as e:
        raise DeliveryError(f"failed to serialize push envelope: {e}") from e

    try:
        resp = await client.post(
            url,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        # UnsupportedProtocol and InvalidURL land here for malformed --url values
        raise DeliveryError(f"POST request failed: {type(e).__name__}: {e}") from e

    sc = resp.status_code
    if not 200 <= sc < 300:
        raise DeliveryError(f"push endpoint returned HTTP {sc} {resp.reason_phrase}", status_code=sc)

    jlog(event="message_delivered", message_id=envelope.message.messageId, status_code=sc, url=url)
