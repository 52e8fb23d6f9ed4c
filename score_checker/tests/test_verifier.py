"""
Tests for token verification: signature and key rotation, claims, expiry, replay and legacy tokens.
"""
import base64
import json
import logging
import threading

import jwt
import pytest

from score_broker.claims import ClaimBuilder, IssuanceInput
from score_broker.signer import Signer
from score_checker.nonce_ledger import InMemoryNonceLedger
from score_checker.verifier import Verifier
from token_core.errors import InvalidTokenError, TokenExpiredError, TokenReplayError
from token_core.keys import KeyStore, generate_jwk_pair

IDENTITY = IssuanceInput(full_name="Ana Perez", email="x@example.com", identifier="0801199723878")


def _mint(broker_keys, clock, correlation_id=None):
    claims = ClaimBuilder(clock=clock).build(IDENTITY, correlation_id=correlation_id)
    return Signer().sign(claims, broker_keys.signing_key()), claims


def _sign_payload(broker_keys, payload, kid="score-broker-ed25519-v1"):
    return jwt.encode(payload, broker_keys.primary.private_key, algorithm="EdDSA", headers={"kid": kid})


def _legacy(data: dict) -> str:
    return "demo." + base64.b64encode(json.dumps(data).encode()).decode()


def _flip_middle(segment: str) -> str:
    i = len(segment) // 2
    replacement = "A" if segment[i] != "A" else "B"
    return segment[:i] + replacement + segment[i + 1:]


@pytest.fixture
def ledger(clock):
    return InMemoryNonceLedger(clock=clock)


@pytest.fixture
def verifier(checker_keys, ledger, clock):
    return Verifier(checker_keys, ledger, clock=clock)


def test_valid_token_verifies_and_consumes_nonce(verifier, ledger, broker_keys, clock):
    token, claims = _mint(broker_keys, clock, correlation_id="cid-ok")
    verified = verifier.verify(token)
    assert verified.nonce == claims.nonce
    assert verified.correlation_id == "cid-ok"
    assert verified.expires_at == claims.expires_at
    assert verified.key_id == "score-broker-ed25519-v1"
    assert verified.token_id == claims.token_id
    assert verified.legacy is False
    assert claims.nonce in ledger


def test_second_presentation_is_replay(verifier, broker_keys, clock, caplog):
    token, _ = _mint(broker_keys, clock, correlation_id="cid-replay")
    verifier.verify(token)
    with caplog.at_level(logging.INFO, logger="token_core.audit"):
        with pytest.raises(TokenReplayError) as exc:
            verifier.verify(token)
    assert exc.value.correlation_id == "cid-replay"
    replay_records = [r for r in caplog.records if "event=token_replay" in r.getMessage()]
    assert replay_records and replay_records[0].levelno == logging.ERROR


def test_expired_token_rejected(verifier, ledger, broker_keys, clock):
    token, claims = _mint(broker_keys, clock)
    clock.advance(46)
    with pytest.raises(TokenExpiredError) as exc:
        verifier.verify(token)
    assert exc.value.correlation_id == claims.correlation_id
    assert claims.nonce not in ledger


def test_token_still_valid_at_expiry_second(verifier, broker_keys, clock):
    token, _ = _mint(broker_keys, clock)
    clock.advance(45)
    assert verifier.verify(token).legacy is False


def test_expired_token_is_not_recorded_so_replay_check_never_runs(verifier, broker_keys, clock):
    token, _ = _mint(broker_keys, clock)
    clock.advance(60)
    for _ in range(2):
        with pytest.raises(TokenExpiredError):
            verifier.verify(token)


def test_tampered_claims_rejected(verifier, broker_keys, clock):
    token, _ = _mint(broker_keys, clock)
    header, payload, signature = token.split(".")
    with pytest.raises(InvalidTokenError):
        verifier.verify(".".join([header, _flip_middle(payload), signature]))


def test_tampered_signature_rejected(verifier, broker_keys, clock):
    token, _ = _mint(broker_keys, clock)
    header, payload, signature = token.split(".")
    with pytest.raises(InvalidTokenError):
        verifier.verify(".".join([header, payload, _flip_middle(signature)]))


def test_unknown_key_rejected(verifier, clock):
    stranger = KeyStore.load(generate_jwk_pair("score-broker-ed25519-v1")[0], require_private=True)
    token, _ = _mint(stranger, clock)
    with pytest.raises(InvalidTokenError):
        verifier.verify(token)


def test_rotation_overlap_accepts_old_and_new(key_pair, next_key_pair, clock):
    old_broker = KeyStore.load(key_pair[0], require_private=True)
    new_broker = KeyStore.load(next_key_pair[0], require_private=True)
    checker = KeyStore.load(next_key_pair[1], key_pair[1])
    verifier = Verifier(checker, InMemoryNonceLedger(clock=clock), clock=clock)

    assert verifier.verify(_mint(old_broker, clock)[0]).key_id == "score-broker-ed25519-v1"
    assert verifier.verify(_mint(new_broker, clock)[0]).key_id == "score-broker-ed25519-v2"


def test_rotation_complete_rejects_old_key(key_pair, next_key_pair, clock):
    old_broker = KeyStore.load(key_pair[0], require_private=True)
    verifier = Verifier(KeyStore.load(next_key_pair[1]), InMemoryNonceLedger(clock=clock), clock=clock)
    with pytest.raises(InvalidTokenError):
        verifier.verify(_mint(old_broker, clock)[0])


def test_non_eddsa_algorithm_rejected(verifier, broker_keys, clock):
    _, claims = _mint(broker_keys, clock)
    token = jwt.encode(claims.to_payload(), "a-shared-secret-that-is-long-enough-for-hs256", algorithm="HS256")
    with pytest.raises(InvalidTokenError) as exc:
        verifier.verify(token)
    assert exc.value.correlation_id == claims.correlation_id


@pytest.mark.parametrize("claim", ["nonce", "exp", "scope", "correlation_id", "jti", "pii_hash"])
def test_missing_claim_rejected(verifier, broker_keys, clock, claim):
    _, claims = _mint(broker_keys, clock)
    payload = claims.to_payload()
    del payload[claim]
    with pytest.raises(InvalidTokenError):
        verifier.verify(_sign_payload(broker_keys, payload))


@pytest.mark.parametrize(
    "override",
    [{"iss": "someone-else"}, {"aud": "another-service"}, {"scope": "score:bulk"}],
)
def test_wrong_issuer_audience_or_scope_rejected(verifier, broker_keys, clock, override):
    _, claims = _mint(broker_keys, clock)
    token = _sign_payload(broker_keys, {**claims.to_payload(), **override})
    with pytest.raises(InvalidTokenError):
        verifier.verify(token)


def test_audience_list_containing_checker_accepted(verifier, broker_keys, clock):
    _, claims = _mint(broker_keys, clock)
    token = _sign_payload(broker_keys, {**claims.to_payload(), "aud": ["score-checker", "other"]})
    assert verifier.verify(token).nonce == claims.nonce


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "eyJhbGciOiJFZERTQSJ9.e30"])
def test_garbage_rejected(verifier, garbage):
    with pytest.raises(InvalidTokenError):
        verifier.verify(garbage)


def test_rejection_is_logged_as_warning(verifier, clock, caplog):
    with caplog.at_level(logging.INFO, logger="token_core.audit"):
        with pytest.raises(InvalidTokenError):
            verifier.verify("not-a-token")
    rejected = [r for r in caplog.records if "event=token_rejected" in r.getMessage()]
    assert rejected and rejected[0].levelno == logging.WARNING
    assert "error_code=invalid_token" in rejected[0].getMessage()


def test_legacy_token_verifies_once(verifier, clock):
    token = _legacy({"nonce": "legacy-nonce-1", "correlation_id": "cid-legacy", "exp": int(clock.now) + 45})
    verified = verifier.verify(token)
    assert verified.legacy is True
    assert verified.correlation_id == "cid-legacy"
    assert verified.key_id is None and verified.token_id is None
    with pytest.raises(TokenReplayError):
        verifier.verify(token)


def test_legacy_token_expired(verifier, clock):
    token = _legacy({"nonce": "legacy-nonce-2", "correlation_id": "cid-legacy", "exp": int(clock.now) - 1})
    with pytest.raises(TokenExpiredError):
        verifier.verify(token)


def test_legacy_token_urlsafe_without_padding(verifier, clock):
    raw = json.dumps({"nonce": "n-3", "correlation_id": "c-3", "exp": int(clock.now) + 10}).encode()
    token = "demo." + base64.urlsafe_b64encode(raw).decode().rstrip("=")
    assert verifier.verify(token).nonce == "n-3"


@pytest.mark.parametrize(
    "token",
    [
        "demo.",
        "demo.%%%not-base64%%%",
        "demo." + base64.b64encode(b"[1, 2, 3]").decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "exp": 9999999999}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": 1e400}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": Infinity}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": NaN}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": 1' + b"0" * 30 + b"}").decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": "soon"}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": true}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "n", "correlation_id": "c", "exp": [1]}').decode(),
        "demo." + base64.b64encode(b'{"nonce": "\\ud800n", "correlation_id": "c", "exp": 9999999999}').decode(),
        "demo." + base64.b64encode(b'{"nonce": {"a": 1}, "correlation_id": "c", "exp": 9999999999}').decode(),
    ],
)
def test_legacy_malformed_rejected(verifier, token):
    with pytest.raises(InvalidTokenError):
        verifier.verify(token)


def test_legacy_disabled(checker_keys, clock):
    verifier = Verifier(checker_keys, InMemoryNonceLedger(clock=clock), clock=clock, accept_legacy=False)
    token = _legacy({"nonce": "n-4", "correlation_id": "c-4", "exp": int(clock.now) + 45})
    with pytest.raises(InvalidTokenError):
        verifier.verify(token)


def test_legacy_and_signed_share_one_nonce_ledger(verifier, broker_keys, clock):
    token, claims = _mint(broker_keys, clock)
    legacy = _legacy({"nonce": claims.nonce, "correlation_id": "c-5", "exp": claims.expires_at})
    verifier.verify(legacy)
    with pytest.raises(TokenReplayError):
        verifier.verify(token)


def test_legacy_numeric_string_exp_accepted(verifier, clock):
    token = _legacy({"nonce": "n-6", "correlation_id": "c-6", "exp": str(int(clock.now) + 45)})
    assert verifier.verify(token).expires_at == int(clock.now) + 45


def test_forged_correlation_id_that_cannot_be_encoded_is_not_echoed(verifier, clock):
    forged = jwt.encode({"correlation_id": "\ud800cid"}, "a-shared-secret-that-is-long-enough-for-hs256", algorithm="HS256")
    with pytest.raises(InvalidTokenError) as exc:
        verifier.verify(forged)
    assert exc.value.correlation_id is None


def test_concurrent_verification_of_one_token_accepts_exactly_once(verifier, broker_keys, clock):
    token, claims = _mint(broker_keys, clock)
    workers = 16
    barrier = threading.Barrier(workers)
    accepted = []
    replayed = []

    def worker():
        barrier.wait()
        try:
            accepted.append(verifier.verify(token))
        except TokenReplayError:
            replayed.append(1)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(accepted) == 1
    assert accepted[0].nonce == claims.nonce
    assert len(replayed) == workers - 1
