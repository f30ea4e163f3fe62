from typing import Optional


class BridgeError(Exception):
    pass

class ConfigurationError(BridgeError):
    """Missing or invalid flag/env value. Raised before any Pub/Sub client exists."""
    pass

class SetupError(BridgeError):
    """Client construction failed, or the subscription could not be verified."""
    pass

class ReceiveError(BridgeError):
    """Streaming pull stopped for a reason other than cancellation."""
    pass

class DeliveryError(BridgeError):
    """Push attempt failed: non-2xx status, transport error, or unserializable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
