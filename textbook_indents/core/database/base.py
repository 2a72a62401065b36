"""Declarative base shared by every table of the textbook service."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGINT on PostgreSQL; SQLite only autoincrements an INTEGER primary key
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Registry for all tables; Alembic and the test fixtures read its metadata."""


class BaseModel(Base):
    """
    Surrogate ``id`` plus server-side ``created_at``/``updated_at``.

    Users, students, textbooks and indents use it. Append-only logs (movements,
    return history, audit) declare their own ``created_at`` and no ``updated_at``.
    """

    __abstract__ = True

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
