from pydantic import BaseModel
from typing import Optional, Dict

class PushMessage(BaseModel):
    attributes: Dict[str, str] = {}
    data: str  # base64 of the payload bytes
    messageId: str
    orderingKey: Optional[str] = None  # omitted on the wire when unset
    publishTime: str  # RFC3339

class PushEnvelope(BaseModel):
    message: PushMessage
    subscription: str  # projects/{project}/subscriptions/{subscription}

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
