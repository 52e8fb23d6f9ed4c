"""
Boundary to the scoring collaborator. The score computation itself lives elsewhere; this module only
defines what it receives (IdentityContext) and two ways to reach it: a deterministic demo scorer and
an HTTP client for an external scoring service.
"""
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Protocol

import httpx

from token_core.digest import sha256_hex
from token_core.errors import ScoringError, ValidationError
from token_core.fields import field_text, is_encodable

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("full_name", "email", "identifier")


@dataclass(frozen=True)
class IdentityContext:
    full_name: str
    email: str
    identifier: str
    correlation_id: str
    phone: str | None = None
    token_id: str | None = None
    requester_id: str | None = None

    @classmethod
    def from_payload(cls, payload, correlation_id: str) -> "IdentityContext":
        """Identity fields from the checker request body (national_id accepted for identifier)."""
        if not isinstance(payload, dict):
            raise ValidationError("body must be a JSON object", correlation_id=correlation_id, error_code="invalid_json")
        values = {
            "full_name": field_text(payload.get("full_name")),
            "email": field_text(payload.get("email")),
            "identifier": field_text(payload.get("identifier")) or field_text(payload.get("national_id")),
        }
        missing = [k for k in REQUIRED_FIELDS if values[k] is None]
        if missing:
            raise ValidationError("required fields missing", correlation_id=correlation_id, missing_fields=missing)
        values["phone"] = field_text(payload.get("phone"))
        if not all(is_encodable(v) for v in values.values() if v is not None):
            raise ValidationError("fields are not valid UTF-8", correlation_id=correlation_id, error_code="invalid_json")
        return cls(correlation_id=correlation_id, **values)

    def with_token(self, correlation_id: str, token_id: str | None, requester_id: str | None) -> "IdentityContext":
        return IdentityContext(
            full_name=self.full_name,
            email=self.email,
            identifier=self.identifier,
            correlation_id=correlation_id,
            phone=self.phone,
            token_id=token_id,
            requester_id=requester_id,
        )

    @property
    def pii_digest(self) -> str:
        return sha256_hex(self.identifier)


class ScoreComputer(Protocol):
    def __call__(self, context: IdentityContext) -> dict:
        ...


def demo_score(context: IdentityContext) -> dict:
    """Deterministic stand-in result; same shape as the production scorer, no real computation."""
    now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return {
        "borrower": {
            "borrower_id": f"demo-{uuid.uuid4().hex[:12]}",
            "full_name": context.full_name,
            "email": context.email,
            "phone": context.phone,
            "pii_hash": context.pii_digest,
            "created_at": now,
        },
        "enrichment": {"source": "demo", "notes": "synthetic demo enrichment"},
        "score": {
            "score_id": f"score-{uuid.uuid4().hex[:12]}",
            "factora_score": 650,
            "score_band": "fair",
        },
    }


class HttpScoreClient:
    """POSTs the identity context to an external scoring service and returns its JSON object."""

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def __call__(self, context: IdentityContext) -> dict:
        body = asdict(context)
        headers = {"X-Correlation-Id": context.correlation_id}
        try:
            if self._client is not None:
                r = self._client.post(self.url, json=body, headers=headers, timeout=self.timeout)
            else:
                r = httpx.post(self.url, json=body, headers=headers, timeout=self.timeout)
            r.raise_for_status()
            result = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ScoringError("scoring service call failed", correlation_id=context.correlation_id) from e
        if not isinstance(result, dict):
            raise ScoringError("scoring service returned a non-object body", correlation_id=context.correlation_id)
        return result
