"""
資料模型（SQLAlchemy ORM）

所有資料表都以 UUID 為主鍵；對外公開的連結只使用 short_codes 表裡的 8 碼短代碼。
刪除 Event 時，資料庫層的 ON DELETE CASCADE 和 ORM 的 cascade 會一起清掉
Beer、BrewerToken、Voter、Vote、Feedback、EventAdmin 和該活動的短代碼。
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, Enum, ForeignKey,
    Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow():
    return datetime.now(timezone.utc)


MAX_REVEAL_STAGE = 4


class ShortCodeType(str, enum.Enum):
    """短代碼指向的實體種類"""
    EVENT = "event"
    VOTER = "voter"
    MANAGE = "manage"
    BREWER = "brewer"


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    admins = relationship("Admin", back_populates="organization")
    events = relationship("Event", back_populates="organization")


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # 邀請時還沒有 user_id，第一次登入時才綁定（invite-or-link）
    user_id = Column(String(255), unique=True, nullable=True)
    email = Column(String(320), unique=True, nullable=False)
    is_super = Column(Boolean, nullable=False, default=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    organization = relationship("Organization", back_populates="admins")
    event_assignments = relationship(
        "EventAdmin", back_populates="admin", cascade="all, delete-orphan"
    )


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("max_points >= 1", name="ck_events_max_points"),
        CheckConstraint(
            f"reveal_stage >= 0 AND reveal_stage <= {MAX_REVEAL_STAGE}",
            name="ck_events_reveal_stage"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False)
    created_by_admin_id = Column(
        Uuid, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(200), nullable=False)
    date = Column(Date, nullable=True)
    max_points = Column(Integer, nullable=False, default=5)
    blind_tasting = Column(Boolean, nullable=False, default=False)
    reveal_stage = Column(Integer, nullable=False, default=0)
    manage_token = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    organization = relationship("Organization", back_populates="events")
    created_by = relationship("Admin", foreign_keys=[created_by_admin_id])
    beers = relationship(
        "Beer", back_populates="event", cascade="all, delete-orphan",
        passive_deletes=True, order_by="Beer.created_at"
    )
    voters = relationship(
        "Voter", back_populates="event", cascade="all, delete-orphan",
        passive_deletes=True
    )
    admin_assignments = relationship(
        "EventAdmin", back_populates="event", cascade="all, delete-orphan",
        passive_deletes=True
    )
    short_codes = relationship(
        "ShortCode", back_populates="event", cascade="all, delete-orphan",
        passive_deletes=True
    )


class EventAdmin(Base):
    __tablename__ = "event_admins"

    event_id = Column(Uuid, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    admin_id = Column(Uuid, ForeignKey("admins.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    event = relationship("Event", back_populates="admin_assignments")
    admin = relationship("Admin", back_populates="event_assignments")


class Beer(Base):
    __tablename__ = "beers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    brewer = Column(String(200), nullable=False)
    style = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    event = relationship("Event", back_populates="beers")
    brewer_token = relationship(
        "BrewerToken", back_populates="beer", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True
    )
    votes = relationship(
        "Vote", back_populates="beer", cascade="all, delete-orphan", passive_deletes=True
    )
    feedback = relationship(
        "Feedback", back_populates="beer", cascade="all, delete-orphan", passive_deletes=True
    )


class BrewerToken(Base):
    __tablename__ = "brewer_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    beer_id = Column(
        Uuid, ForeignKey("beers.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    beer = relationship("Beer", back_populates="brewer_token")


class Voter(Base):
    __tablename__ = "voters"

    # UUID 由外部發出（印在 QR code 上），不是資料庫產生
    id = Column(Uuid, primary_key=True)
    event_id = Column(Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    event = relationship("Event", back_populates="voters")
    votes = relationship(
        "Vote", back_populates="voter", cascade="all, delete-orphan", passive_deletes=True
    )
    feedback = relationship(
        "Feedback", back_populates="voter", cascade="all, delete-orphan", passive_deletes=True
    )


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("voter_id", "beer_id", name="uq_votes_voter_beer"),
        CheckConstraint("points >= 0", name="ck_votes_points"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    voter_id = Column(Uuid, ForeignKey("voters.id", ondelete="CASCADE"), nullable=False)
    beer_id = Column(Uuid, ForeignKey("beers.id", ondelete="CASCADE"), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    voter = relationship("Voter", back_populates="votes")
    beer = relationship("Beer", back_populates="votes")


class Feedback(Base):
    __tablename__ = "feedback"
    __table_args__ = (
        UniqueConstraint("voter_id", "beer_id", name="uq_feedback_voter_beer"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    voter_id = Column(Uuid, ForeignKey("voters.id", ondelete="CASCADE"), nullable=False)
    beer_id = Column(Uuid, ForeignKey("beers.id", ondelete="CASCADE"), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    share_with_brewer = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    voter = relationship("Voter", back_populates="feedback")
    beer = relationship("Beer", back_populates="feedback")


class ShortCode(Base):
    __tablename__ = "short_codes"

    # code 是主鍵：不論 target_type，整張表唯一
    code = Column(String(8), primary_key=True)
    target_type = Column(
        Enum(ShortCodeType, name="short_code_type",
             values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    target_id = Column(Uuid, nullable=False, index=True)
    event_id = Column(Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    event = relationship("Event", back_populates="short_codes")
