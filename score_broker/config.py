"""
Score broker configuration. Issuer, audience and scope are public identifiers, not secrets.
The signing key comes from the secret store via env; nothing secret in this file.
"""
import os

# Fixed identifiers carried in every token
TOKEN_ISSUER = "score-broker"
TOKEN_AUDIENCE = "score-checker"
TOKEN_SCOPE = "score:single"

# Token lifetime (seconds). Fixed; the TTL doubles as the end-to-end deadline for issue -> verify.
TOKEN_TTL_SECONDS = 45

# Private Ed25519 JWK ({"kty":"OKP","crv":"Ed25519","x":...,"d":...,"kid":...}); see token_core.keygen
SIGNING_KEY_JWK = os.environ.get("SCORE_BROKER_ED25519_JWK", "").strip() or None
SIGNING_KEY_DEFAULT_KID = os.environ.get("SCORE_BROKER_KEY_ID", "score-broker-ed25519-v1")

# Rate limits. Soft by default: violations are logged and the request continues.
RATE_LIMIT_PII_PER_MINUTE = int(os.environ.get("SCORE_BROKER_RATE_LIMIT_PII_PER_MINUTE", "1"))
RATE_LIMIT_REQUESTER_PER_HOUR = int(os.environ.get("SCORE_BROKER_RATE_LIMIT_REQUESTER_PER_HOUR", "10"))
# "log_only" (default) or "enforce"
RATE_LIMIT_MODE = os.environ.get("SCORE_BROKER_RATE_LIMIT_MODE", "log_only").strip().lower()

# Browser origins allowed to call the broker (comma-separated)
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("SCORE_BROKER_CORS_ORIGINS", "https://lisandrosuarez9-lab.github.io").split(",")
    if o.strip()
]
