"""SQLAlchemy models for one-time survey access links."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)

from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OneLink(Base):
    """Durable record of an issued one-time link; source of truth for the used flag."""

    __tablename__ = "one_links"
    __table_args__ = (
        Index("idx_one_links_survey", "survey_id"),
        Index("idx_one_links_expires", "expires_at"),
        Index("idx_one_links_used", "used"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    survey_id = Column(Integer, nullable=False)
    # Token length grows with the prefill payload; lookups go through the digest.
    token = Column(Text, nullable=False)
    token_digest = Column(String(64), nullable=False, unique=True)
    prefill_data = Column(JSON, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False, server_default=false())
    used_at = Column(DateTime(timezone=True), nullable=True)
    accessed_at = Column(DateTime(timezone=True), nullable=True)  # first successful validation
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


class SurveyPrefillKey(Base):
    """Prefill keys a survey's questions accept (one row per question prefill key)."""

    __tablename__ = "survey_prefill_keys"
    __table_args__ = (UniqueConstraint("survey_id", "prefill_key", name="uq_survey_prefill_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    survey_id = Column(Integer, nullable=False, index=True)
    prefill_key = Column(String(128), nullable=False)
    question_id = Column(Integer, nullable=True)


class LinkSubmission(Base):
    """A respondent submission accepted through a one-time link."""

    __tablename__ = "link_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    one_link_id = Column(Integer, ForeignKey("one_links.id", ondelete="SET NULL"), nullable=True, index=True)
    survey_id = Column(Integer, nullable=False, index=True)
    answers = Column(JSON, nullable=False, default=list)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


__all__ = ["LinkSubmission", "OneLink", "SurveyPrefillKey"]
