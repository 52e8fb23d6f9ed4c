"""
Signs token claims as a compact EdDSA (Ed25519) JWT. The header names the key so the checker
can pick the matching verification key.
"""
import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from token_core.errors import SigningError
from token_core.keys import SigningKeyPair
from token_core.tokens import ALGORITHM, TokenClaims


class Signer:
    algorithm = ALGORITHM

    def sign(self, claims: TokenClaims, key: SigningKeyPair) -> str:
        if not key.can_sign:
            raise SigningError(f"key {key.key_id} cannot sign", correlation_id=claims.correlation_id)
        if not isinstance(key.private_key, Ed25519PrivateKey):
            raise SigningError(f"key {key.key_id} is not an Ed25519 key", correlation_id=claims.correlation_id)
        try:
            token = jwt.encode(
                claims.to_payload(),
                key.private_key,
                algorithm=self.algorithm,
                headers={"kid": key.key_id, "typ": "JWT"},
            )
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise SigningError("token signing failed", correlation_id=claims.correlation_id) from e
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token
