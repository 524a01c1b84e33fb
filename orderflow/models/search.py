"""Per-user search history and saved searches."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, Uuid, JSON, TIMESTAMP, ForeignKey, UniqueConstraint,
)

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class SearchHistoryEntry(Base):
    """One executed search. Only the newest entries per user are kept."""

    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    query = Column(Text, nullable=False)
    results_count = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)


class SavedSearch(Base):
    __tablename__ = "saved_searches"
    __table_args__ = (
        UniqueConstraint("user_id", "query", name="uq_saved_search_query"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    query = Column(Text, nullable=False)
    # {"cuisine": [...], "min_rating": 4.0, ...}
    filters = Column(JSON, nullable=False, default=dict)
    saved_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
