from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, JSON, Text, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

class AiModel(Base):
    __tablename__ = "ai_models"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    provider = Column(String(50), nullable=False)      # "google", "openai", ...
    model_id = Column(String(100), nullable=False)     # upstream model name
    description = Column(Text)
    max_tokens = Column(Integer, default=4096, nullable=False)
    context_window = Column(Integer, default=128000, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    supports_vision = Column(Boolean, default=False, nullable=False)
    supports_streaming = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ux_ai_models_provider_model", "provider", "model_id", unique=True),
        Index("ix_ai_models_active", "is_active"),
    )

class Conversation(Base):
    __tablename__ = "conversations"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)        # owner, from X-User-Id
    ai_model_id = Column(Integer, ForeignKey("ai_models.id"), nullable=True)
    title = Column(String(255))
    system_prompt = Column(Text)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_favorite = Column(Boolean, default=False, nullable=False)
    last_message_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )

    __table_args__ = (
        Index("ix_conversations_user_archived", "user_id", "is_archived"),
        Index("ix_conversations_last_message_at", "last_message_at"),
    )

class Message(Base):
    __tablename__ = "messages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    ai_model_id = Column(Integer, ForeignKey("ai_models.id", ondelete="SET NULL"))
    role = Column(String(16), nullable=False)          # "user" | "assistant" | "system"
    content = Column(Text, nullable=False)
    input_tokens = Column(Integer)
    output_tokens = Column(Integer)
    meta = Column("metadata", JSON)                    # grounding_sources, search_queries
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (Index("ix_messages_conversation_created", "conversation_id", "created_at"),)

class Feature(Base):
    __tablename__ = "features"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    prompts = relationship(
        "FeaturePrompt",
        back_populates="feature",
        cascade="all, delete-orphan",
        order_by="FeaturePrompt.id",
    )

class FeaturePrompt(Base):
    __tablename__ = "feature_prompts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    feature_id = Column(Integer, ForeignKey("features.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    prompt_content = Column(Text)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    feature = relationship("Feature", back_populates="prompts")
