"""SQLAlchemy ORM models for the persisted store.

Tables:
  agents   – registered agents (credential stored as a SHA-256 hash)
  messages – chat messages, cascade-deleted with their author
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns
_MessageId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Agents ───────────────────────────────────────────────────────────────────

class Agent(Base):
    __tablename__ = "agents"
    __table_args__ = (
        Index("idx_agents_online", "online"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(32), nullable=False)
    # Lower-cased copy of name; the unique index enforces case-insensitivity
    name_key: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    api_key_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verified_handle: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    # Relationships
    messages: Mapped[List["Message"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, name={self.name!r}, online={self.online})>"


# ── Messages ─────────────────────────────────────────────────────────────────

class Message(Base):
    __tablename__ = "messages"
    # Never hand out the id of a deleted newest row again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(_MessageId, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Relationships
    agent: Mapped["Agent"] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, agent_id={self.agent_id})>"
