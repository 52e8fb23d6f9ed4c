"""
Score check orchestration: validate the body, verify the bearer token, then hand the identity to the scorer.
The body is validated before the token so a malformed request never burns a single-use token.
"""
import logging

from score_checker.scoring import IdentityContext, ScoreComputer, demo_score
from score_checker.verifier import Verifier
from token_core.errors import InvalidTokenError

logger = logging.getLogger(__name__)


class TokenChecker:
    def __init__(self, verifier: Verifier, compute_score: ScoreComputer = demo_score):
        self.verifier = verifier
        self.compute_score = compute_score

    def check(self, token: str | None, payload, correlation_id: str) -> dict:
        """
        Returns the scorer's result plus correlation_id. correlation_id is the request's
        (header or generated); once the token verifies, the token's own correlation id wins.
        """
        identity = IdentityContext.from_payload(payload, correlation_id)
        if not token:
            raise InvalidTokenError("bearer token missing", correlation_id=correlation_id)

        try:
            verified = self.verifier.verify(token)
        except InvalidTokenError as e:
            if e.correlation_id is None:
                e.correlation_id = correlation_id
            raise

        requester_id = verified.claims.requester_id if verified.claims else None
        context = identity.with_token(verified.correlation_id, verified.token_id, requester_id)
        result = dict(self.compute_score(context))
        result["correlation_id"] = verified.correlation_id
        logger.info(
            "score check completed correlation_id=%s legacy=%s",
            verified.correlation_id,
            verified.legacy,
        )
        return result
