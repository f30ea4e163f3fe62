from opentelemetry import trace
from typing import Optional
import os, logging, time, json

SERVICE_NAME = os.getenv("SERVICE_NAME", "push-bridge")
ENV = os.getenv("ENVIRONMENT", "local")

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(message)s")
_logger = logging.getLogger(SERVICE_NAME)

def configure_logging(service_name: str, level: Optional[str] = None) -> None:
    """Bind jlog to the configured service name; called once from main."""
    global SERVICE_NAME, _logger
    SERVICE_NAME = service_name
    _logger = logging.getLogger(service_name)
    _logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

def jlog(event: str = "", severity: str = "INFO", **fields):
    span = trace.get_current_span()
    ctx = span.get_span_context() if span else None
    trace_id = f"{ctx.trace_id:032x}" if ctx and ctx.trace_id else None
    span_id = f"{ctx.span_id:016x}" if ctx and ctx.span_id else None

    record = {
        "event": event,
        "severity": severity,
        "service": SERVICE_NAME,
        "env": ENV,
        "ts": time.time(),
        "trace_id": trace_id,
        "span_id": span_id,
    }
    record.update(fields)
    # message_id lands on the LogRecord too so handlers can filter per message
    extra = {"message_id": fields["message_id"]} if "message_id" in fields else None
    _logger.log(getattr(logging, severity, logging.INFO), json.dumps(record, ensure_ascii=False, default=str), extra=extra)
