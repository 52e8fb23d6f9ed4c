"""
Key management CLI: generate a new Ed25519 pair for the broker/checker secrets, or check an existing JWK.

    python -m token_core.keygen generate --kid score-broker-ed25519-v2
    python -m token_core.keygen check "$SCORE_CHECKER_ED25519_PUBLIC_JWK"

Rotation: generate a new pair, move the checker's current public key to
SCORE_CHECKER_ED25519_PUBLIC_JWK_SECONDARY, install the new pair, restart both services,
and drop the secondary once tokens signed by the old key have expired.
"""
import json
from datetime import datetime, timezone
from typing import Optional

import typer

from token_core.errors import KeyLoadError
from token_core.keys import KeyRole, generate_jwk_pair, parse_jwk

app = typer.Typer(help="Ed25519 key tooling for the score broker and checker")


def default_kid(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S")
    return f"score-broker-ed25519-{stamp}"


@app.command()
def generate(kid: Optional[str] = typer.Option(None, help="Key id to embed in both JWKs")) -> None:
    """Print SCORE_BROKER_ED25519_JWK and SCORE_CHECKER_ED25519_PUBLIC_JWK lines for a new key pair."""
    private_jwk, public_jwk = generate_jwk_pair(kid or default_kid())
    typer.echo(f"SCORE_BROKER_ED25519_JWK='{json.dumps(private_jwk, separators=(',', ':'))}'")
    typer.echo(f"SCORE_CHECKER_ED25519_PUBLIC_JWK='{json.dumps(public_jwk, separators=(',', ':'))}'")
    typer.echo(f"Generated key pair kid={private_jwk['kid']}; keep the private JWK in the secret store only.", err=True)


@app.command()
def check(
    jwk: str = typer.Argument(..., help="JWK JSON string"),
    private: bool = typer.Option(False, "--private", help="Require the private component"),
) -> None:
    """Validate a JWK the same way the services do at start-up."""
    try:
        pair = parse_jwk(jwk, KeyRole.PRIMARY, require_private=private)
    except KeyLoadError as e:
        typer.echo(f"invalid: {e}", err=True)
        raise typer.Exit(code=1)
    kind = "private" if pair.private_key is not None else "public"
    typer.echo(f"ok: kid={pair.key_id} type={kind}")


if __name__ == "__main__":
    app()
