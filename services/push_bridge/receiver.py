"""
Minimal push endpoint for trying the bridge end to end:

    uvicorn services.push_bridge.receiver:app --port 8080
"""
import base64
import binascii
from collections import deque
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import ValidationError

from .otel import init_tracing
from .src.logging import jlog
from .src.schemas import PushEnvelope

MAX_RECORDED = 100

app = FastAPI(title="Push Receiver", version="0.1.0")
app.state.received = deque(maxlen=MAX_RECORDED)

tracer = init_tracing("push-receiver", app=app)


def _decode_data(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid base64 data: {e}")


@app.post("/pubsub/push", status_code=204)
async def pubsub_push(request: Request) -> Response:
    try:
        envelope = PushEnvelope(**(await request.json()))
    except (ValidationError, ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid push envelope: {e}")

    msg = envelope.message
    payload = _decode_data(msg.data)
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        text = None

    jlog(
        event="push_received",
        message_id=msg.messageId,
        subscription=envelope.subscription,
        publish_time=msg.publishTime,
        ordering_key=msg.orderingKey,
        attributes=msg.attributes,
        size=len(payload),
    )
    app.state.received.append({
        "messageId": msg.messageId,
        "subscription": envelope.subscription,
        "publishTime": msg.publishTime,
        "orderingKey": msg.orderingKey,
        "attributes": msg.attributes,
        "text": text,
    })
    return Response(status_code=204)


@app.get("/pubsub/received")
def received() -> List[Dict[str, Any]]:
    return list(app.state.received)


@app.get("/health")
def health():
    return {"status": "ok", "received": len(app.state.received)}
