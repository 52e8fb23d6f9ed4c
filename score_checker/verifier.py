"""
Token verification for the score checker.

Signed tokens go through: header -> signature (primary key, then secondary) -> claims -> expiry -> replay.
Legacy "demo." tokens skip the first three steps but get the same expiry and replay checks; they exist
only so callers can migrate to signed tokens without breaking.

verify() returns a VerifiedToken or raises InvalidTokenError / TokenExpiredError / TokenReplayError.
"""
import base64
import binascii
import json
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import jwt

from score_checker.config import TOKEN_AUDIENCE, TOKEN_ISSUER, TOKEN_SCOPE
from score_checker.nonce_ledger import NonceLedger
from token_core.audit import (
    EVENT_TOKEN_REJECTED,
    EVENT_TOKEN_REPLAY,
    EVENT_TOKEN_VERIFIED,
    OUTCOME_FAIL,
    log_event,
)
from token_core.errors import BrokerError, InvalidTokenError, TokenExpiredError, TokenReplayError
from token_core.fields import field_text, is_encodable
from token_core.keys import KeyStore, SigningKeyPair
from token_core.tokens import ALGORITHM, LEGACY_PREFIX, LEGACY_REQUIRED, TokenClaims

logger = logging.getLogger(__name__)

# Legacy exp bounds: Unix seconds that fit the tokens_used BIGINT column
_MIN_EXP = 0
_MAX_EXP = 2**63 - 1

# Signature only; claims and expiry are checked below against our own clock
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}


@dataclass(frozen=True)
class VerifiedToken:
    nonce: str
    correlation_id: str
    expires_at: int
    legacy: bool = False
    key_id: str | None = None
    claims: TokenClaims | None = None

    @property
    def token_id(self) -> str | None:
        return self.claims.token_id if self.claims else None


class Verifier:
    def __init__(
        self,
        key_store: KeyStore,
        nonce_ledger: NonceLedger,
        *,
        clock: Callable[[], float] = time.time,
        accept_legacy: bool = True,
        issuer: str = TOKEN_ISSUER,
        audience: str = TOKEN_AUDIENCE,
        scope: str = TOKEN_SCOPE,
    ):
        self.key_store = key_store
        self.nonce_ledger = nonce_ledger
        self.accept_legacy = accept_legacy
        self.issuer = issuer
        self.audience = audience
        self.scope = scope
        self._clock = clock

    def verify(self, token: str) -> VerifiedToken:
        try:
            if token.startswith(LEGACY_PREFIX):
                verified = self._verify_legacy(token)
            else:
                verified = self._verify_signed(token)
        except TokenReplayError as e:
            log_event(EVENT_TOKEN_REPLAY, level=logging.ERROR, outcome=OUTCOME_FAIL, correlation_id=e.correlation_id)
            raise
        except BrokerError as e:
            log_event(
                EVENT_TOKEN_REJECTED,
                level=logging.WARNING,
                outcome=OUTCOME_FAIL,
                correlation_id=e.correlation_id,
                error_code=e.error_code,
                reason=str(e),
            )
            raise
        log_event(
            EVENT_TOKEN_VERIFIED,
            correlation_id=verified.correlation_id,
            jti=verified.token_id,
            kid=verified.key_id,
            legacy=verified.legacy,
        )
        return verified

    # Signed tokens

    def _verify_signed(self, token: str) -> VerifiedToken:
        hint = _unverified_correlation_id(token)

        # 1. header
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise InvalidTokenError("token header unreadable", correlation_id=hint) from e
        if header.get("alg") != ALGORITHM:
            raise InvalidTokenError(f"unsupported algorithm {header.get('alg')!r}", correlation_id=hint)

        # 2. signature
        payload, key = self._decode_with_known_keys(token, hint)

        # 3. claims
        claims = self._check_claims(payload, hint)

        # 4. expiry
        self._check_expiry(claims.expires_at, claims.correlation_id)

        # 5. replay
        self.nonce_ledger.try_consume(
            claims.nonce,
            claims.expires_at,
            correlation_id=claims.correlation_id,
            token_id=claims.token_id,
        )
        return VerifiedToken(
            nonce=claims.nonce,
            correlation_id=claims.correlation_id,
            expires_at=claims.expires_at,
            key_id=key.key_id,
            claims=claims,
        )

    def _decode_with_known_keys(self, token: str, hint: str | None) -> tuple[dict, SigningKeyPair]:
        for key in self.key_store.verification_keys():
            try:
                payload = jwt.decode(token, key.public_key, algorithms=[ALGORITHM], options=_DECODE_OPTIONS)
            except jwt.InvalidSignatureError:
                continue
            except jwt.PyJWTError as e:
                raise InvalidTokenError("token malformed", correlation_id=hint) from e
            return payload, key
        raise InvalidTokenError("signature does not match any known key", correlation_id=hint)

    def _check_claims(self, payload: dict, hint: str | None) -> TokenClaims:
        missing = TokenClaims.missing_from(payload)
        if missing:
            raise InvalidTokenError(f"missing claims: {','.join(missing)}", correlation_id=hint)
        try:
            claims = TokenClaims.from_payload(payload)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidTokenError("malformed claims", correlation_id=hint) from e
        if claims.issuer != self.issuer:
            raise InvalidTokenError("issuer mismatch", correlation_id=claims.correlation_id)
        if not _audience_matches(claims.audience, self.audience):
            raise InvalidTokenError("audience mismatch", correlation_id=claims.correlation_id)
        if claims.scope != self.scope:
            raise InvalidTokenError("scope mismatch", correlation_id=claims.correlation_id)
        return claims

    def _check_expiry(self, expires_at: int, correlation_id: str | None) -> None:
        if self._clock() > expires_at:
            raise TokenExpiredError("token expired", correlation_id=correlation_id)

    # Legacy tokens

    def _verify_legacy(self, token: str) -> VerifiedToken:
        if not self.accept_legacy:
            raise InvalidTokenError("legacy tokens are disabled")
        data = _decode_legacy(token[len(LEGACY_PREFIX):])
        if data is None:
            raise InvalidTokenError("legacy token malformed")
        correlation_id = _text_claim(data.get("correlation_id"))
        nonce = _text_claim(data.get("nonce"))
        parsed = {"nonce": nonce, "correlation_id": correlation_id, "exp": data.get("exp")}
        missing = [k for k in LEGACY_REQUIRED if parsed[k] in (None, "")]
        if missing:
            raise InvalidTokenError(f"missing claims: {','.join(missing)}", correlation_id=correlation_id)
        expires_at = _legacy_expiry(data["exp"])
        if expires_at is None:
            raise InvalidTokenError("legacy exp malformed", correlation_id=correlation_id)

        self._check_expiry(expires_at, correlation_id)
        self.nonce_ledger.try_consume(nonce, expires_at, correlation_id=correlation_id)
        return VerifiedToken(nonce=nonce, correlation_id=correlation_id, expires_at=expires_at, legacy=True)


def _text_claim(value) -> str | None:
    """Legacy claim as text; None when absent, blank, or not UTF-8 encodable."""
    text = field_text(value)
    return text if text is not None and is_encodable(text) else None


def _legacy_expiry(value) -> int | None:
    """Unix seconds from a legacy exp (JSON number or numeric string), or None when not a finite value in range."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if not _MIN_EXP <= value <= _MAX_EXP:
        return None
    return int(value)


def _audience_matches(aud, expected: str) -> bool:
    if isinstance(aud, list):
        return expected in aud
    return aud == expected


def _decode_legacy(encoded: str) -> dict | None:
    """base64 (standard or url-safe, padding optional) JSON object, or None."""
    encoded = encoded.strip()
    if not encoded:
        return None
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        raw = base64.b64decode(padded.replace("-", "+").replace("_", "/"), validate=True)
        data = json.loads(raw)
    except (binascii.Error, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _unverified_correlation_id(token: str) -> str | None:
    """Correlation id for error echoing only; never trusted for anything else."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    value = payload.get("correlation_id") if isinstance(payload, dict) else None
    return value if isinstance(value, str) and value and is_encodable(value) else None
