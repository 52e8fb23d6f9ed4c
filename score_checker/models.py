"""
SQLAlchemy models for the shared nonce store (tokens_used). Used only when a nonce database is configured.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class UsedToken(Base):
    """One row per consumed nonce. The primary key makes the insert the replay check."""
    __tablename__ = "tokens_used"

    nonce: Mapped[str] = mapped_column(Text, primary_key=True)
    token_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    # Unix seconds; compared against the verifier clock
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    used_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
