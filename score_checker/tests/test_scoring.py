"""Tests for the identity context and the scoring collaborators."""
import json

import httpx
import pytest

from score_checker.scoring import HttpScoreClient, IdentityContext, demo_score
from token_core.digest import sha256_hex
from token_core.errors import ScoringError, ValidationError

BODY = {"full_name": "Ana Perez", "email": "x@example.com", "identifier": "0801199723878"}


def _context(**overrides):
    return IdentityContext.from_payload({**BODY, **overrides}, "cid-1")


def test_identity_from_payload():
    ctx = _context(phone="+504 5555")
    assert ctx.identifier == "0801199723878"
    assert ctx.phone == "+504 5555"
    assert ctx.correlation_id == "cid-1"
    assert ctx.pii_digest == sha256_hex("0801199723878")


def test_identity_national_id_alias():
    payload = {"full_name": "Ana Perez", "email": "x@example.com", "national_id": "0801199723878"}
    assert IdentityContext.from_payload(payload, "cid").identifier == "0801199723878"


def test_identity_missing_fields():
    with pytest.raises(ValidationError) as exc:
        IdentityContext.from_payload({"full_name": "Ana Perez"}, "cid")
    assert exc.value.missing_fields == ["email", "identifier"]
    assert exc.value.correlation_id == "cid"


def test_identity_non_object():
    with pytest.raises(ValidationError) as exc:
        IdentityContext.from_payload("text", "cid")
    assert exc.value.error_code == "invalid_json"


def test_demo_score_shape_omits_raw_identifier():
    result = demo_score(_context())
    assert set(result) == {"borrower", "enrichment", "score"}
    assert result["score"]["factora_score"] == 650
    assert result["score"]["score_band"] == "fair"
    assert result["borrower"]["pii_hash"] == sha256_hex("0801199723878")
    assert "0801199723878" not in json.dumps(result)


def test_http_client_posts_context():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["correlation"] = request.headers["x-correlation-id"]
        return httpx.Response(200, json={"score": {"factora_score": 700}})

    client = HttpScoreClient("http://scoring.test/score", client=httpx.Client(transport=httpx.MockTransport(handler)))
    ctx = _context().with_token("cid-token", "jti-1", "requester-hash")
    assert client(ctx) == {"score": {"factora_score": 700}}
    assert seen["correlation"] == "cid-token"
    assert seen["body"]["token_id"] == "jti-1"
    assert seen["body"]["requester_id"] == "requester-hash"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"error": "down"}),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json=[1, 2]),
    ],
)
def test_http_client_failures_raise_scoring_error(response):
    client = HttpScoreClient(
        "http://scoring.test/score",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: response)),
    )
    with pytest.raises(ScoringError) as exc:
        client(_context())
    assert exc.value.correlation_id == "cid-1"


def test_http_client_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = HttpScoreClient("http://scoring.test/score", client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(ScoringError):
        client(_context())


@pytest.mark.parametrize("field", ["full_name", "email", "identifier", "phone"])
def test_identity_rejects_text_that_cannot_be_utf8_encoded(field):
    with pytest.raises(ValidationError) as exc:
        _context(**{field: "abc\ud800def"})
    assert exc.value.error_code == "invalid_json"
    assert exc.value.correlation_id == "cid-1"


def test_identity_numeric_identifier_matches_broker_digest():
    ctx = _context(identifier=801199723878)
    assert ctx.identifier == "801199723878"
    assert ctx.pii_digest == sha256_hex("801199723878")


def test_identity_non_text_identifier_is_missing():
    with pytest.raises(ValidationError) as exc:
        _context(identifier={"id": "0801199723878"})
    assert exc.value.missing_fields == ["identifier"]
