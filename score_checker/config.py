"""
Score checker configuration. Issuer, audience and scope must match what the broker signs.
Verification keys come from the secret store via env.
"""
import os

TOKEN_ISSUER = "score-broker"
TOKEN_AUDIENCE = "score-checker"
TOKEN_SCOPE = "score:single"

# Public (or private; only the public half is used) Ed25519 JWKs. Secondary is set only during rotation.
VERIFY_KEY_JWK = os.environ.get("SCORE_CHECKER_ED25519_PUBLIC_JWK", "").strip() or None
VERIFY_KEY_SECONDARY_JWK = os.environ.get("SCORE_CHECKER_ED25519_PUBLIC_JWK_SECONDARY", "").strip() or None
VERIFY_KEY_DEFAULT_KID = os.environ.get("SCORE_CHECKER_KEY_ID", "score-broker-ed25519-v1")

# Unsigned "demo." tokens: transitional, for callers not yet migrated to signed tokens
ACCEPT_LEGACY_TOKENS = os.environ.get("SCORE_CHECKER_ACCEPT_LEGACY_TOKENS", "true").strip().lower() in ("1", "true", "yes")

# Consumed-nonce eviction interval (seconds); coarser than the token TTL
NONCE_SWEEP_INTERVAL_SECONDS = int(os.environ.get("SCORE_CHECKER_NONCE_SWEEP_INTERVAL", "60"))

# Optional shared nonce store (SQLAlchemy URL). Unset = in-memory, replay protection per instance only.
NONCE_DATABASE_URL = os.environ.get("SCORE_CHECKER_NONCE_DATABASE_URL", "").strip() or None

# Optional external scoring service; unset = built-in demo scorer
SCORING_URL = os.environ.get("SCORE_CHECKER_SCORING_URL", "").strip() or None
SCORING_TIMEOUT_SECONDS = float(os.environ.get("SCORE_CHECKER_SCORING_TIMEOUT", "10"))

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("SCORE_CHECKER_CORS_ORIGINS", "https://lisandrosuarez9-lab.github.io").split(",")
    if o.strip()
]
