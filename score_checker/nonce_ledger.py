"""
Consumed-nonce ledger for replay protection.

try_consume() is an atomic check-and-set: of any number of concurrent callers presenting the same nonce,
exactly one succeeds and the rest get TokenReplayError. Entries live until a sweep finds them expired.

The in-memory ledger protects a single process only. SqlNonceLedger is the shared-store variant for
deployments running several checker instances.
"""
import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from score_checker.models import UsedToken
from token_core.audit import EVENT_NONCE_SWEEP, log_event
from token_core.errors import TokenReplayError

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 1000


class NonceLedger(Protocol):
    def try_consume(
        self,
        nonce: str,
        expires_at: int,
        *,
        correlation_id: str | None = None,
        token_id: str | None = None,
    ) -> None:
        ...

    def sweep(self, now: float | None = None) -> int:
        ...

    def __len__(self) -> int:
        ...


class InMemoryNonceLedger:
    def __init__(self, clock: Callable[[], float] = time.time, batch_size: int = SWEEP_BATCH_SIZE):
        self._clock = clock
        self._batch_size = batch_size
        self._entries: dict[str, int] = {}
        self._lock = threading.Lock()

    def try_consume(
        self,
        nonce: str,
        expires_at: int,
        *,
        correlation_id: str | None = None,
        token_id: str | None = None,
    ) -> None:
        with self._lock:
            if nonce in self._entries:
                raise TokenReplayError("nonce already consumed", correlation_id=correlation_id)
            self._entries[nonce] = expires_at

    def sweep(self, now: float | None = None) -> int:
        """Evict entries with now > expires_at. The lock is held for one batch at a time."""
        if now is None:
            now = self._clock()
        removed = 0
        while True:
            with self._lock:
                expired = []
                for nonce, expires_at in self._entries.items():
                    if now > expires_at:
                        expired.append(nonce)
                        if len(expired) >= self._batch_size:
                            break
                for nonce in expired:
                    del self._entries[nonce]
            removed += len(expired)
            if len(expired) < self._batch_size:
                return removed

    def __contains__(self, nonce: str) -> bool:
        with self._lock:
            return nonce in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SqlNonceLedger:
    """tokens_used table; the primary key on nonce turns the INSERT into the check-and-set."""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], float] = time.time):
        self._session_factory = session_factory
        self._clock = clock

    def try_consume(
        self,
        nonce: str,
        expires_at: int,
        *,
        correlation_id: str | None = None,
        token_id: str | None = None,
    ) -> None:
        with self._session_factory() as db:
            db.add(
                UsedToken(
                    nonce=nonce,
                    token_id=token_id,
                    correlation_id=correlation_id,
                    expires_at=int(expires_at),
                    used_at=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
                )
            )
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise TokenReplayError("nonce already consumed", correlation_id=correlation_id) from e

    def sweep(self, now: float | None = None) -> int:
        if now is None:
            now = self._clock()
        with self._session_factory() as db:
            result = db.execute(delete(UsedToken).where(UsedToken.expires_at < now))
            db.commit()
            return result.rowcount or 0

    def __len__(self) -> int:
        with self._session_factory() as db:
            return db.scalar(select(func.count()).select_from(UsedToken)) or 0


class NonceSweeper:
    """Background thread that evicts expired nonces every interval_seconds, independent of requests."""

    def __init__(self, ledger: NonceLedger, interval_seconds: float = 60):
        self.ledger = ledger
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> int:
        removed = self.ledger.sweep()
        if removed:
            log_event(EVENT_NONCE_SWEEP, removed=removed, remaining=len(self.ledger))
        return removed

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                logger.exception("Nonce sweep failed; retrying next interval")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="nonce-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
