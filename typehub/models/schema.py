from sqlalchemy import Column, String, Integer, DateTime, Float, Boolean, ForeignKey, Index, JSON, Text
from sqlalchemy.orm import relationship
from typehub.database import Base
from typehub.utils import utcnow
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    google_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    avatar_url = Column(String, nullable=True)
    # Legacy global "paid" flag, predates itemized subscriptions
    is_paid = Column(Boolean, default=False, nullable=False)
    session_version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    subscriptions = relationship("Subscription", back_populates="user")
    submissions = relationship("Submission", back_populates="user")


class Paragraph(Base):
    __tablename__ = "paragraphs"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    language = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    # NULL -> derived from is_free
    access_type = Column(String, nullable=True)
    is_free = Column(Boolean, default=True, nullable=False)
    order = Column(Integer, default=0, nullable=False)
    # NULL -> legacy row, visible
    published = Column(Boolean, default=False, nullable=True)
    solved_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    submissions = relationship("Submission", back_populates="paragraph")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (Index("ix_subscriptions_user_product", "user_id", "product_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    product_id = Column(String, nullable=False)
    order_id = Column(String, nullable=False)
    payment_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    # NULL -> perpetual
    valid_until = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="subscriptions")


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, default=new_id)
    paragraph_id = Column(String, ForeignKey("paragraphs.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    time_taken_seconds = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=False)
    total_keystrokes = Column(Integer, nullable=False)
    backspace_count = Column(Integer, nullable=False)
    words_typed = Column(Integer, nullable=False)
    wpm = Column(Float, nullable=False)
    kpm = Column(Float, nullable=False)
    incorrect_words_count = Column(Integer, nullable=False)
    incorrect_words = Column(JSON, default=list)
    correct_words_count = Column(Integer, nullable=False)
    user_input = Column(Text, nullable=False)
    omitted_words_count = Column(Integer, nullable=True)
    total_passage_words = Column(Integer, nullable=True)
    # completionRatio^2 * accuracy/100 * wpm, 0 when not genuine, NULL for older clients
    ranking_score = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    user = relationship("User", back_populates="submissions")
    paragraph = relationship("Paragraph", back_populates="submissions")


class PendingOrder(Base):
    __tablename__ = "pending_orders"

    order_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    product_ids = Column(JSON, nullable=False)
    amount_paise = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
