"""
Score broker: issues short-lived EdDSA tokens that authorize one score check.
Port 9000 for local runs.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from score_broker.config import (
    CORS_ORIGINS,
    RATE_LIMIT_MODE,
    SIGNING_KEY_DEFAULT_KID,
    SIGNING_KEY_JWK,
)
from score_broker.issue_endpoint import router as issue_router
from score_broker.issuer import TokenIssuer
from score_broker.rate_limit import RateLimiter
from token_core.http import add_cors, install_error_handlers
from token_core.keys import KeyStore


def load_key_store() -> KeyStore:
    """Signing key from the secret store; KeyLoadError stops start-up."""
    return KeyStore.load(SIGNING_KEY_JWK, require_private=True, default_kid=SIGNING_KEY_DEFAULT_KID)


def create_app(issuer: TokenIssuer | None = None) -> FastAPI:
    """Build the app. Tests pass their own issuer; otherwise one is wired from config at start-up."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "issuer", None) is None:
            app.state.issuer = TokenIssuer(load_key_store(), RateLimiter(mode=RATE_LIMIT_MODE))
        yield

    app = FastAPI(title="Score Broker", version="1.0.0", lifespan=lifespan)
    app.state.issuer = issuer
    add_cors(app, CORS_ORIGINS)
    install_error_handlers(app, "score-broker")
    app.include_router(issue_router, tags=["issue"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "score_broker"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "score_broker.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )
