import argparse
from typing import Literal, Optional, Sequence

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

DEFAULT_URL = "http://localhost:8080"

# -----------------------
# Settings and constants
# -----------------------

class Settings(BaseSettings):

    # Flags win over PUSH_BRIDGE_* env vars, which win over .env
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PUSH_BRIDGE_",
        extra="ignore",
        frozen=True,
    )

    # Core
    project: str = Field(min_length=1)
    subscription: str = Field(min_length=1)
    url: str = DEFAULT_URL

    # Delivery (the 10 s request timeout is fixed in delivery.py)
    delivery_concurrency: int = Field(default=10, ge=1)

    # Pub/Sub flow control (bounds the in-process message queue)
    max_outstanding_messages: int = Field(default=100, ge=1)

    # Observability
    service_name: str = "push-bridge"
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None  # falls back to LOG_LEVEL
    trace_exporter: Optional[Literal["console", "cloud"]] = None


_FLAGS = {
    "project": "--project",
    "subscription": "--subscription",
    "url": "--url",
    "max_outstanding_messages": "--max-outstanding",
    "delivery_concurrency": "--concurrency",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="push-bridge",
        description="Pull messages from a Pub/Sub subscription and POST them as push envelopes",
    )
    parser.add_argument("--project", help="GCP project ID (required)")
    parser.add_argument("--subscription", help="Pub/Sub subscription ID (required)")
    parser.add_argument("--url", help=f"URL to POST messages to (default: {DEFAULT_URL})")
    parser.add_argument(
        "--max-outstanding",
        dest="max_outstanding_messages",
        type=int,
        help="Max messages leased from Pub/Sub at once (default: 100)",
    )
    parser.add_argument(
        "--concurrency",
        dest="delivery_concurrency",
        type=int,
        help="Max deliveries in flight at once (default: 10)",
    )
    return parser


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = str(err["loc"][0]) if err["loc"] else ""
    flag = _FLAGS.get(field, field)
    if err["type"] in ("missing", "string_too_short"):
        return f"missing required argument: {flag}"
    return f"invalid value for {flag}: {err['msg']}"


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """Parse CLI flags and build the immutable Settings.

    Flags left unset fall back to the environment. Raises ConfigurationError
    when a required value is missing or empty.
    """
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(_describe(e)) from e
