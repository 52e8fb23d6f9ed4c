"""
Score token claims and their wire names. Signed tokens are compact JWS (EdDSA);
the unsigned legacy variant is "demo." + base64(JSON{nonce, correlation_id, exp}).
"""
from dataclasses import asdict, dataclass

ALGORITHM = "EdDSA"
LEGACY_PREFIX = "demo."

# TokenClaims field -> JWT claim name
WIRE_NAMES = {
    "issuer": "iss",
    "audience": "aud",
    "issued_at": "iat",
    "expires_at": "exp",
    "nonce": "nonce",
    "correlation_id": "correlation_id",
    "requester_id": "requester_id",
    "scope": "scope",
    "pii_digest": "pii_hash",
    "token_id": "jti",
}

LEGACY_REQUIRED = ("nonce", "correlation_id", "exp")


@dataclass(frozen=True)
class TokenClaims:
    issuer: str
    audience: str
    issued_at: int
    expires_at: int
    nonce: str
    correlation_id: str
    requester_id: str
    scope: str
    pii_digest: str
    token_id: str

    def to_payload(self) -> dict:
        return {WIRE_NAMES[field]: value for field, value in asdict(self).items()}

    @classmethod
    def missing_from(cls, payload: dict) -> list[str]:
        """Wire claim names absent (or empty) in payload."""
        return [wire for wire in WIRE_NAMES.values() if payload.get(wire) in (None, "")]

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenClaims":
        """Build from a decoded payload; callers check missing_from() first."""
        values = {field: payload[wire] for field, wire in WIRE_NAMES.items()}
        values["issued_at"] = int(values["issued_at"])
        values["expires_at"] = int(values["expires_at"])
        return cls(**values)
