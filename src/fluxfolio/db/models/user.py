"""User and session tables."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fluxfolio.db.base import Base, TimestampMixin


class UserRow(Base, TimestampMixin):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    username: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)
    # "ed25519:<base58>" portfolio owner key; never logged
    sudo_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    portfolio_account_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    intents_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    agent_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    agent_pubkey: Mapped[str | None] = mapped_column(String(128), nullable=True)


class SessionRow(Base, TimestampMixin):
    __tablename__ = "sessions"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
