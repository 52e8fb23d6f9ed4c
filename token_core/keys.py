"""
Ed25519 key material for signing and verifying score tokens (primary + optional secondary for rotation).
Keys arrive as JWK JSON strings from the secret store; no key material in code, and key bytes are never logged.
Rotation is a restart with new configuration: primary signs new tokens, secondary only verifies old ones.
"""
import base64
import enum
import json
import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from token_core.audit import EVENT_KEY_LOADED, log_event
from token_core.errors import KeyLoadError, SigningError

logger = logging.getLogger(__name__)

DEFAULT_KID = "score-broker-ed25519-v1"
_ED25519_KEY_BYTES = 32


class KeyRole(enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class SigningKeyPair:
    key_id: str
    role: KeyRole
    public_key: Ed25519PublicKey
    private_key: Ed25519PrivateKey | None = None

    @property
    def can_sign(self) -> bool:
        return self.role is KeyRole.PRIMARY and self.private_key is not None


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def parse_jwk(
    jwk_json: str | dict,
    role: KeyRole,
    *,
    require_private: bool = False,
    default_kid: str = DEFAULT_KID,
) -> SigningKeyPair:
    """Parse an OKP/Ed25519 JWK into a SigningKeyPair. Raises KeyLoadError on any defect."""
    name = role.value
    if isinstance(jwk_json, dict):
        jwk = jwk_json
    else:
        try:
            jwk = json.loads(jwk_json)
        except (TypeError, ValueError) as e:
            raise KeyLoadError(f"{name} key is not valid JSON") from e
    if not isinstance(jwk, dict):
        raise KeyLoadError(f"{name} key is not a JWK object")
    if jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
        raise KeyLoadError(f"{name} key must be kty=OKP crv=Ed25519")
    if not jwk.get("x"):
        raise KeyLoadError(f"{name} key is missing the public component")
    if require_private and not jwk.get("d"):
        raise KeyLoadError(f"{name} key is missing the private component")

    try:
        public_raw = _b64url_decode(jwk["x"])
        if len(public_raw) != _ED25519_KEY_BYTES:
            raise ValueError("bad public key length")
        public_key = Ed25519PublicKey.from_public_bytes(public_raw)
        private_key = None
        if jwk.get("d"):
            private_raw = _b64url_decode(jwk["d"])
            if len(private_raw) != _ED25519_KEY_BYTES:
                raise ValueError("bad private key length")
            private_key = Ed25519PrivateKey.from_private_bytes(private_raw)
    except (ValueError, TypeError) as e:
        raise KeyLoadError(f"{name} key material is malformed") from e

    if private_key is not None and _raw_public(private_key.public_key()) != public_raw:
        raise KeyLoadError(f"{name} key private and public components do not match")

    kid = jwk.get("kid") or default_kid
    return SigningKeyPair(key_id=str(kid), role=role, public_key=public_key, private_key=private_key)


def _raw_public(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def public_key_to_jwk(public_key: Ed25519PublicKey, kid: str) -> dict:
    """Export an Ed25519 public key as JWK with the given kid."""
    return {
        "kty": "OKP",
        "crv": "Ed25519",
        "x": _b64url_encode(_raw_public(public_key)),
        "kid": kid,
    }


def private_key_to_jwk(private_key: Ed25519PrivateKey, kid: str) -> dict:
    """Export an Ed25519 private key as JWK (includes the public component)."""
    jwk = public_key_to_jwk(private_key.public_key(), kid)
    jwk["d"] = _b64url_encode(
        private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return jwk


def generate_jwk_pair(kid: str) -> tuple[dict, dict]:
    """New Ed25519 key pair as (private_jwk, public_jwk)."""
    private_key = Ed25519PrivateKey.generate()
    return private_key_to_jwk(private_key, kid), public_key_to_jwk(private_key.public_key(), kid)


class KeyStore:
    """
    Loaded key material. Immutable after construction; the process builds exactly one at start-up
    and hands it to the issuer or verifier.
    """

    def __init__(self, primary: SigningKeyPair, secondary: SigningKeyPair | None = None):
        if primary.role is not KeyRole.PRIMARY:
            raise KeyLoadError("primary slot requires a key with the primary role")
        if secondary is not None and secondary.role is not KeyRole.SECONDARY:
            raise KeyLoadError("secondary slot requires a key with the secondary role")
        self._primary = primary
        self._secondary = secondary

    @classmethod
    def load(
        cls,
        primary_jwk: str | dict | None,
        secondary_jwk: str | dict | None = None,
        *,
        require_private: bool = False,
        default_kid: str = DEFAULT_KID,
    ) -> "KeyStore":
        """Load primary (required) and secondary (optional) keys. Raises KeyLoadError."""
        if not primary_jwk:
            raise KeyLoadError("primary key is not configured")
        primary = parse_jwk(primary_jwk, KeyRole.PRIMARY, require_private=require_private, default_kid=default_kid)
        secondary = None
        if secondary_jwk:
            secondary = parse_jwk(secondary_jwk, KeyRole.SECONDARY, default_kid=default_kid)
        store = cls(primary, secondary)
        log_event(
            EVENT_KEY_LOADED,
            primary_kid=primary.key_id,
            secondary_kid=secondary.key_id if secondary else None,
            can_sign=primary.can_sign,
        )
        return store

    @property
    def primary(self) -> SigningKeyPair:
        return self._primary

    @property
    def secondary(self) -> SigningKeyPair | None:
        return self._secondary

    def signing_key(self) -> SigningKeyPair:
        """Primary key for signing new tokens."""
        if not self._primary.can_sign:
            raise SigningError("primary key has no private component")
        return self._primary

    def verification_keys(self) -> list[SigningKeyPair]:
        """Keys to try when verifying, primary first."""
        keys = [self._primary]
        if self._secondary is not None:
            keys.append(self._secondary)
        return keys
