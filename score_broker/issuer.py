"""
Token issuance: validate input, record rate limits, build claims, sign with the primary key.
"""
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from score_broker.claims import ClaimBuilder, IssuanceInput
from score_broker.config import (
    RATE_LIMIT_PII_PER_MINUTE,
    RATE_LIMIT_REQUESTER_PER_HOUR,
)
from score_broker.rate_limit import RateLimiter, RateWindow
from score_broker.signer import Signer
from token_core.audit import (
    EVENT_RATE_LIMIT_EXCEEDED,
    EVENT_TOKEN_ISSUED,
    OUTCOME_FAIL,
    log_event,
)
from token_core.digest import truncate
from token_core.errors import RateLimitExceeded
from token_core.keys import KeyStore

PII_WINDOW = RateWindow(name="pii_per_minute", limit=RATE_LIMIT_PII_PER_MINUTE, window_seconds=60)
REQUESTER_WINDOW = RateWindow(name="requester_per_hour", limit=RATE_LIMIT_REQUESTER_PER_HOUR, window_seconds=3600)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    ttl_seconds: int
    correlation_id: str
    issued_at: str

    def to_response(self) -> dict:
        return {
            "token": self.token,
            "ttl_seconds": self.ttl_seconds,
            "correlation_id": self.correlation_id,
            "issued_at": self.issued_at,
        }


class TokenIssuer:
    def __init__(
        self,
        key_store: KeyStore,
        rate_limiter: RateLimiter,
        *,
        claim_builder: ClaimBuilder | None = None,
        signer: Signer | None = None,
        clock: Callable[[], float] = time.time,
        pii_window: RateWindow = PII_WINDOW,
        requester_window: RateWindow = REQUESTER_WINDOW,
    ):
        self.key_store = key_store
        self.rate_limiter = rate_limiter
        self.claim_builder = claim_builder or ClaimBuilder(clock=clock)
        self.signer = signer or Signer()
        self.pii_window = pii_window
        self.requester_window = requester_window

    def issue(self, payload, correlation_id: str | None = None) -> IssuedToken:
        """Issue a token for payload. Raises ValidationError, SigningError or (enforce mode) RateLimitExceeded."""
        data = IssuanceInput.from_payload(payload, correlation_id=correlation_id)
        claims = self.claim_builder.build(data, correlation_id=correlation_id)

        # Two independent limits: per subject (scraping one identity) and per requester (bulk abuse)
        self._check_rate(claims.pii_digest, self.pii_window, claims.correlation_id, "pii_hash_truncated")
        self._check_rate(claims.requester_id, self.requester_window, claims.correlation_id, "requester_id")

        key = self.key_store.signing_key()
        token = self.signer.sign(claims, key)

        log_event(
            EVENT_TOKEN_ISSUED,
            correlation_id=claims.correlation_id,
            jti=claims.token_id,
            kid=key.key_id,
            pii_hash_truncated=truncate(claims.pii_digest),
            requester_id=truncate(claims.requester_id),
            ttl_seconds=claims.expires_at - claims.issued_at,
            scope=claims.scope,
        )
        issued_at = datetime.fromtimestamp(claims.issued_at, tz=timezone.utc)
        return IssuedToken(
            token=token,
            ttl_seconds=claims.expires_at - claims.issued_at,
            correlation_id=claims.correlation_id,
            issued_at=issued_at.isoformat().replace("+00:00", "Z"),
        )

    def _check_rate(self, identity: str, window: RateWindow, correlation_id: str, identity_field: str) -> None:
        result = self.rate_limiter.record(identity, window)
        if not result.exceeded:
            return
        action = "reject" if self.rate_limiter.enforcing else "log_only"
        log_event(
            EVENT_RATE_LIMIT_EXCEEDED,
            level=logging.WARNING,
            outcome=OUTCOME_FAIL,
            correlation_id=correlation_id,
            limit_type=window.name,
            count=result.count,
            limit=window.limit,
            action=action,
            **{identity_field: truncate(identity)},
        )
        if self.rate_limiter.enforcing:
            raise RateLimitExceeded(
                f"{window.name} limit exceeded",
                correlation_id=correlation_id,
                retry_after=result.retry_after or 1,
            )
