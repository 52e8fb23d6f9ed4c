"""
Score checker: verifies broker-issued tokens and, on success, runs the score check once per token.
Port 7000 for local runs.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from score_checker.check_endpoint import router as check_router
from score_checker.checker import TokenChecker
from score_checker.config import (
    ACCEPT_LEGACY_TOKENS,
    CORS_ORIGINS,
    NONCE_DATABASE_URL,
    NONCE_SWEEP_INTERVAL_SECONDS,
    SCORING_TIMEOUT_SECONDS,
    SCORING_URL,
    VERIFY_KEY_DEFAULT_KID,
    VERIFY_KEY_JWK,
    VERIFY_KEY_SECONDARY_JWK,
)
from score_checker.database import init_db, make_engine, make_session_factory
from score_checker.nonce_ledger import InMemoryNonceLedger, NonceLedger, NonceSweeper, SqlNonceLedger
from score_checker.scoring import HttpScoreClient, ScoreComputer, demo_score
from score_checker.verifier import Verifier
from token_core.http import add_cors, install_error_handlers
from token_core.keys import KeyStore

logger = logging.getLogger(__name__)


def load_key_store() -> KeyStore:
    """Verification keys from the secret store; KeyLoadError stops start-up."""
    return KeyStore.load(VERIFY_KEY_JWK, VERIFY_KEY_SECONDARY_JWK, default_kid=VERIFY_KEY_DEFAULT_KID)


def build_nonce_ledger() -> NonceLedger:
    if NONCE_DATABASE_URL:
        engine = make_engine(NONCE_DATABASE_URL)
        init_db(engine)
        logger.info("Nonce ledger: shared database store")
        return SqlNonceLedger(make_session_factory(engine))
    logger.info("Nonce ledger: in-memory (replay protection is per instance)")
    return InMemoryNonceLedger()


def build_score_computer() -> ScoreComputer:
    if SCORING_URL:
        return HttpScoreClient(SCORING_URL, timeout=SCORING_TIMEOUT_SECONDS)
    return demo_score


def build_checker() -> tuple[TokenChecker, NonceSweeper]:
    ledger = build_nonce_ledger()
    verifier = Verifier(load_key_store(), ledger, accept_legacy=ACCEPT_LEGACY_TOKENS)
    return TokenChecker(verifier, build_score_computer()), NonceSweeper(ledger, NONCE_SWEEP_INTERVAL_SECONDS)


def create_app(checker: TokenChecker | None = None, sweeper: NonceSweeper | None = None) -> FastAPI:
    """Build the app. Tests pass their own checker (and optionally sweeper); otherwise both come from config."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "checker", None) is None:
            app.state.checker, app.state.sweeper = build_checker()
        if app.state.sweeper is not None:
            app.state.sweeper.start()
        try:
            yield
        finally:
            if app.state.sweeper is not None:
                app.state.sweeper.stop()

    app = FastAPI(title="Score Checker", version="1.0.0", lifespan=lifespan)
    app.state.checker = checker
    app.state.sweeper = sweeper
    add_cors(app, CORS_ORIGINS)
    install_error_handlers(app, "score-checker")
    app.include_router(check_router, tags=["check"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "score_checker"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "score_checker.main:app",
        host="127.0.0.1",
        port=7000,
        reload=True,
    )
