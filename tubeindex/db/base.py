"""
Declarative base and shared columns for the index models.

Every table gets an integer primary key plus UTC ``created_at`` and
``updated_at`` columns. Constraint names follow a fixed convention so
Alembic autogenerate produces stable names.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ================================
# Naming Convention for Constraints
# ================================
# ix_youtube_videos_channel_id, uq_transcript_chunks_video_id,
# fk_transcript_chunks_video_id_youtube_videos, pk_youtube_channels
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all index models."""

    metadata = MetaData(naming_convention=convention)

    __tablename__: str


class IndexRowMixin:
    """Primary key and UTC timestamps shared by every index table."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        comment="Row creation time (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
        comment="Last modification time (UTC); refreshed by upserts",
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


class BaseModel(Base, IndexRowMixin):
    __abstract__ = True


# ================================
# String Length Constraints
# ================================
String20 = String(20)  # external video id
String50 = String(50)  # entity type
String100 = String(100)  # external channel id
String200 = String(200)  # channel name, keyword
String500 = String(500)  # video title, URLs
