"""
Score check endpoint (POST /score-checker). Requires a broker-issued Bearer token; each token works once.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from score_checker.checker import TokenChecker
from token_core.http import new_correlation_id, read_json, request_correlation_id

router = APIRouter()

security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    """Bearer token from the Authorization header, or None if missing or not Bearer."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


def get_checker(request: Request) -> TokenChecker:
    """Dependency: the process-wide checker built at start-up."""
    return request.app.state.checker


@router.post("/score-checker")
async def check_score(
    request: Request,
    token: Annotated[str | None, Depends(get_bearer_token)],
    checker: Annotated[TokenChecker, Depends(get_checker)],
):
    """Body carries the identity fields for the scorer: {full_name, email, identifier}."""
    correlation_id = request_correlation_id(request) or new_correlation_id()
    payload = await read_json(request, correlation_id)
    # Scoring may block on network I/O; keep it off the event loop
    return await run_in_threadpool(checker.check, token, payload, correlation_id)
