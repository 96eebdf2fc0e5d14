# pylint: disable=too-few-public-methods
"""
SQLAlchemy models for durable storefront storage
"""

from datetime import datetime
from typing import Optional, Type

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeMeta, Mapped, declarative_base, mapped_column
from sqlalchemy.sql import func

_Base = declarative_base()

# Type alias for mypy
Base: Type[DeclarativeMeta] = _Base


class StorageEntry(Base):
    """One key/value pair of the durable storage layout"""
    __tablename__ = "storage_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=True,
    )
