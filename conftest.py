"""
Shared pytest fixtures: fresh Ed25519 keys per test and a controllable clock.
Every test gets its own key store, ledger and rate limiter; nothing process-wide is reused.
"""
import time

import pytest

from token_core.keys import KeyStore, generate_jwk_pair


class FakeClock:
    """Callable clock for components that take clock=...; starts at the real time, moves only on advance()."""

    def __init__(self, start: float | None = None):
        self.now = float(int(start if start is not None else time.time()))

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def key_pair():
    """(private_jwk, public_jwk) for kid score-broker-ed25519-v1."""
    return generate_jwk_pair("score-broker-ed25519-v1")


@pytest.fixture
def next_key_pair():
    """A second pair, used as the new primary during rotation."""
    return generate_jwk_pair("score-broker-ed25519-v2")


@pytest.fixture
def broker_keys(key_pair):
    private_jwk, _ = key_pair
    return KeyStore.load(private_jwk, require_private=True)


@pytest.fixture
def checker_keys(key_pair):
    _, public_jwk = key_pair
    return KeyStore.load(public_jwk)
