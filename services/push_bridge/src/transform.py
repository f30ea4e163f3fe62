import base64
from datetime import datetime, timezone
from typing import Any

from .config import Settings
from .schemas import PushEnvelope, PushMessage


def subscription_path(project: str, subscription: str) -> str:
    return f"projects/{project}/subscriptions/{subscription}"


def format_publish_time(ts: datetime) -> str:
    """RFC3339 at second precision; naive values are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    base = ts.strftime("%Y-%m-%dT%H:%M:%S")
    offset = ts.utcoffset()
    if not offset:
        return base + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    total = abs(total)
    return f"{base}{sign}{total // 3600:02d}:{total % 3600 // 60:02d}"


def transform_message(message: Any, settings: Settings) -> PushEnvelope:
    """
    Map a received Pub/Sub message onto the push delivery envelope.

    Works with google.cloud.pubsub_v1 messages or anything exposing
    message_id, data, attributes, ordering_key and publish_time.
    """
    return PushEnvelope(
        message=PushMessage(
            attributes=dict(message.attributes or {}),
            data=base64.b64encode(bytes(message.data)).decode("ascii"),
            messageId=message.message_id,
            orderingKey=message.ordering_key or None,
            publishTime=format_publish_time(message.publish_time),
        ),
        subscription=subscription_path(settings.project, settings.subscription),
    )
