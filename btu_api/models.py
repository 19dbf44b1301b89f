# btu_api/models.py
"""
Database models.

Tables:
- News: news feed posts with an optional image reference

`image_url` holds a storage reference, not necessarily a fetchable URL. Rows
written over the years carry three shapes (bare Drive id, retired absolute
URL, proxy path); btu_api.storage.references decodes them on every read.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func

from btu_api.database import Base


class News(Base):
    """A news feed post."""
    __tablename__ = "news"

    id = Column(Integer, primary_key=True, autoincrement=True)
    text = Column(Text, nullable=True)
    image_url = Column(String(255), nullable=True)
    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_news_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<News id={self.id} image_url={self.image_url!r}>"
