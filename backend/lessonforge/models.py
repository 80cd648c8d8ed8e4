from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, Float, JSON, ForeignKey
from .db import Base


def _uuid() -> str:
	return str(uuid.uuid4())


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	requests_used = Column(Integer, default=0, nullable=False)
	requests_limit = Column(Integer, default=1000, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# jti of the issued token
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Project(Base):
	__tablename__ = "projects"
	id = Column(String(36), primary_key=True, default=_uuid)
	owner = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	pipeline_status = Column(String(32), default="project_config", nullable=False)
	completion_percentage = Column(Integer, default=0, nullable=False)
	# Educational DNA blob, camelCase keys as submitted by the wizard
	config_dna = Column(JSON, default=dict, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Outline(Base):
	__tablename__ = "outlines"
	id = Column(String(36), primary_key=True, default=_uuid)
	project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True)
	structure = Column(JSON, default=dict, nullable=False)
	is_complete = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Section(Base):
	__tablename__ = "sections"
	id = Column(String(36), primary_key=True, default=_uuid)
	outline_id = Column(String(36), ForeignKey("outlines.id", ondelete="CASCADE"), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	order_index = Column(Integer, default=0, nullable=False)
	config = Column(JSON, default=dict, nullable=False)
	is_complete = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Prompt(Base):
	__tablename__ = "prompts"
	id = Column(String(36), primary_key=True, default=_uuid)
	section_id = Column(String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, unique=True)
	prompt_text = Column(Text, nullable=False, default="")
	# {model, max_tokens, temperature}
	parameters = Column(JSON, default=dict, nullable=False)
	is_generated = Column(Boolean, default=False, nullable=False)
	is_approved = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ContentItem(Base):
	__tablename__ = "content_items"
	id = Column(String(36), primary_key=True, default=_uuid)
	prompt_id = Column(String(36), ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False, unique=True)
	content_text = Column(Text, nullable=False, default="")
	is_approved = Column(Boolean, default=False, nullable=False)
	# model, style, temperature, generated_at and optionally quality_metrics
	metadata_ = Column("metadata", JSON, default=dict, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Validation(Base):
	__tablename__ = "validations"
	id = Column(String(36), primary_key=True, default=_uuid)
	content_id = Column(String(36), ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, unique=True)
	quality_score = Column(Float, nullable=True)
	standards_alignment_score = Column(Float, nullable=True)
	improvement_suggestions = Column(Text, nullable=True)
	validation_data = Column(JSON, default=dict, nullable=False)
	is_approved = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
