"""
Issuance input validation and claim construction.
Claims carry only digests: the raw identifier, email and full name never enter a token.
"""
import base64
import re
import secrets
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from score_broker.config import TOKEN_AUDIENCE, TOKEN_ISSUER, TOKEN_SCOPE, TOKEN_TTL_SECONDS
from token_core.digest import email_domain, sha256_hex
from token_core.errors import ValidationError
from token_core.fields import field_text, is_encodable
from token_core.tokens import TokenClaims

REQUIRED_FIELDS = ("full_name", "email", "identifier")
# Older intake forms send national_id instead of identifier
_FIELD_ALIASES = {"identifier": ("national_id",)}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_FULL_NAME_LENGTH = 3
MIN_IDENTIFIER_LENGTH = 5

NONCE_BYTES = 16  # 128 bits


@dataclass(frozen=True)
class IssuanceInput:
    full_name: str
    email: str
    identifier: str

    @classmethod
    def from_payload(cls, payload, correlation_id: str | None = None) -> "IssuanceInput":
        """Validate a decoded JSON body. Extra fields are ignored."""
        if not isinstance(payload, dict):
            raise ValidationError("body must be a JSON object", correlation_id=correlation_id, error_code="invalid_json")
        values = {}
        missing = []
        for field in REQUIRED_FIELDS:
            value = field_text(payload.get(field))
            for alias in _FIELD_ALIASES.get(field, ()):
                if value is None:
                    value = field_text(payload.get(alias))
            if value is None:
                missing.append(field)
            else:
                values[field] = value
        if missing:
            raise ValidationError("required fields missing", correlation_id=correlation_id, missing_fields=missing)
        if not all(is_encodable(v) for v in values.values()):
            raise ValidationError("fields are not valid UTF-8", correlation_id=correlation_id, error_code="invalid_json")

        if not _EMAIL_RE.match(values["email"]):
            raise ValidationError("email is malformed", correlation_id=correlation_id, error_code="invalid_email")
        if len(values["full_name"]) < MIN_FULL_NAME_LENGTH:
            raise ValidationError(
                f"full_name must be at least {MIN_FULL_NAME_LENGTH} characters",
                correlation_id=correlation_id,
                error_code="invalid_full_name",
            )
        if len(values["identifier"]) < MIN_IDENTIFIER_LENGTH:
            raise ValidationError(
                f"identifier must be at least {MIN_IDENTIFIER_LENGTH} characters",
                correlation_id=correlation_id,
                error_code="invalid_identifier",
            )
        return cls(**values)


def generate_nonce() -> str:
    """128-bit random value, base64url without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(NONCE_BYTES)).rstrip(b"=").decode("ascii")


class ClaimBuilder:
    def __init__(self, clock: Callable[[], float] = time.time, ttl_seconds: int = TOKEN_TTL_SECONDS):
        self._clock = clock
        self.ttl_seconds = ttl_seconds

    def build(self, data: IssuanceInput, correlation_id: str | None = None) -> TokenClaims:
        issued_at = int(self._clock())
        return TokenClaims(
            issuer=TOKEN_ISSUER,
            audience=TOKEN_AUDIENCE,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl_seconds,
            nonce=generate_nonce(),
            correlation_id=correlation_id or str(uuid.uuid4()),
            requester_id=sha256_hex(email_domain(data.email)),
            scope=TOKEN_SCOPE,
            pii_digest=sha256_hex(data.identifier),
            token_id=str(uuid.uuid4()),
        )
