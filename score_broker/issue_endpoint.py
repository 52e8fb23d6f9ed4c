"""
Issuance endpoint (POST /score-broker). Returns a 45-second, single-use token for one score check.
"""
import logging

from fastapi import APIRouter, Depends, Request

from score_broker.issuer import TokenIssuer
from token_core.audit import EVENT_INPUT_REJECTED, OUTCOME_FAIL, log_event
from token_core.errors import ValidationError
from token_core.http import new_correlation_id, read_json, request_correlation_id

logger = logging.getLogger(__name__)
router = APIRouter()


def get_issuer(request: Request) -> TokenIssuer:
    """Dependency: the process-wide issuer built at start-up."""
    return request.app.state.issuer


@router.post("/score-broker")
async def issue_token(request: Request, issuer: TokenIssuer = Depends(get_issuer)):
    """
    Body: {full_name, email, identifier} (extra fields ignored).
    Correlation id from X-Correlation-Id / X-Factora-Correlation-Id, else a new UUID.
    """
    correlation_id = request_correlation_id(request) or new_correlation_id()
    try:
        payload = await read_json(request, correlation_id)
        issued = issuer.issue(payload, correlation_id=correlation_id)
    except ValidationError as e:
        log_event(
            EVENT_INPUT_REJECTED,
            level=logging.WARNING,
            outcome=OUTCOME_FAIL,
            correlation_id=correlation_id,
            error_code=e.error_code,
            missing_fields=e.missing_fields or None,
        )
        raise
    return issued.to_response()
