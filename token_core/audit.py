"""
Security event logging. Events go to the standard logging tree as key=value pairs.
Never pass tokens, raw identifiers, emails or key material; hashes are truncated by callers.
"""
import logging

logger = logging.getLogger("token_core.audit")

EVENT_KEY_LOADED = "key_loaded"
EVENT_TOKEN_ISSUED = "token_issued"
EVENT_INPUT_REJECTED = "input_validation_error"
EVENT_RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
EVENT_TOKEN_VERIFIED = "token_verified"
EVENT_TOKEN_REJECTED = "token_rejected"
EVENT_TOKEN_REPLAY = "token_replay"
EVENT_NONCE_SWEEP = "nonce_sweep"
EVENT_INTERNAL_ERROR = "internal_error"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def _format_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    text = str(value)
    return f'"{text}"' if " " in text else text


def format_fields(fields: dict) -> str:
    """Render fields as 'k=v' pairs in insertion order, skipping None values."""
    return " ".join(f"{k}={_format_value(v)}" for k, v in fields.items() if v is not None)


def log_event(
    event_type: str,
    *,
    level: int = logging.INFO,
    outcome: str = OUTCOME_SUCCESS,
    correlation_id: str | None = None,
    **fields,
) -> None:
    """Emit one security event record."""
    if not logger.isEnabledFor(level):
        return
    rendered = format_fields({"event": event_type, "outcome": outcome, "correlation_id": correlation_id, **fields})
    logger.log(level, "%s", rendered)
