import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime uses this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class _Base:
    def to_dict(self) -> dict:
        data = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[column.key] = value
        return data


Base = declarative_base(cls=_Base)


def _id_column():
    return Column(String(36), primary_key=True, default=new_id)


def _timestamps():
    return (
        Column(DateTime, nullable=False, default=utcnow),
        Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )


# ============================
# Identity
# ============================

class User(Base):
    __tablename__ = "users"

    id = _id_column()
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255))
    is_superuser = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at, updated_at = _timestamps()

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.pop("password_hash", None)
        return data


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = _id_column()
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at, updated_at = _timestamps()


# ============================
# Projects
# ============================

class Project(Base):
    __tablename__ = "projects"

    id = _id_column()
    name = Column(String(255), nullable=False)
    description = Column(Text)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    created_at, updated_at = _timestamps()


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        CheckConstraint("role IN ('owner', 'editor', 'viewer')", name="ck_member_role"),
    )

    id = _id_column()
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False, default="viewer")
    created_at, updated_at = _timestamps()


class UserPresence(Base):
    __tablename__ = "user_presence"
    __table_args__ = (UniqueConstraint("user_id", "project_id", name="uq_user_presence"),)

    id = _id_column()
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    last_seen_at = Column(DateTime, nullable=False, default=utcnow)
    is_online = Column(Boolean, nullable=False, default=True)
    created_at, updated_at = _timestamps()


# ============================
# Data model graph
# ============================

class DataModel(Base):
    __tablename__ = "data_models"

    id = _id_column()
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    version = Column(String(32), nullable=False, default="1.0")
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    created_at, updated_at = _timestamps()


class Referential(Base):
    __tablename__ = "referentials"

    id = _id_column()
    data_model_id = Column(String(36), ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    color = Column(String(32), nullable=False, default="#6366F1")
    created_at, updated_at = _timestamps()


class Entity(Base):
    __tablename__ = "entities"
    __table_args__ = (
        CheckConstraint("entity_type IN ('standard', 'join')", name="ck_entity_type"),
    )

    id = _id_column()
    data_model_id = Column(String(36), ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    referential_id = Column(String(36), ForeignKey("referentials.id", ondelete="SET NULL"), index=True)
    position_x = Column(Float, nullable=False, default=0)
    position_y = Column(Float, nullable=False, default=0)
    entity_type = Column(String(16), nullable=False, default="standard")
    created_at, updated_at = _timestamps()


class Attribute(Base):
    __tablename__ = "attributes"

    id = _id_column()
    entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    data_type = Column(String(64), nullable=False, default="varchar")
    length = Column(Integer)
    default_value = Column(Text)
    is_primary_key = Column(Boolean, nullable=False, default=False)
    is_foreign_key = Column(Boolean, nullable=False, default=False)
    is_unique = Column(Boolean, nullable=False, default=False)
    is_required = Column(Boolean, nullable=False, default=False)
    is_calculated = Column(Boolean, nullable=False, default=False)
    calculation_rule = Column(Text)
    referenced_entity_id = Column(String(36), ForeignKey("entities.id", ondelete="SET NULL"), index=True)
    created_at, updated_at = _timestamps()


class Relationship(Base):
    __tablename__ = "relationships"
    __table_args__ = (
        CheckConstraint(
            "relationship_type IN ('one-to-one', 'one-to-many', 'many-to-many')",
            name="ck_relationship_type",
        ),
    )

    id = _id_column()
    data_model_id = Column(String(36), ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    source_entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False, index=True)
    target_entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False, index=True)
    source_attribute_id = Column(String(36), ForeignKey("attributes.id", ondelete="SET NULL"))
    target_attribute_id = Column(String(36), ForeignKey("attributes.id", ondelete="SET NULL"))
    relationship_type = Column(String(16), nullable=False, default="one-to-many")
    source_cardinality = Column(String(16))
    target_cardinality = Column(String(16))
    name = Column(String(255))
    description = Column(Text)
    created_at, updated_at = _timestamps()


class Rule(Base):
    __tablename__ = "rules"
    __table_args__ = (
        CheckConstraint("rule_type IN ('validation', 'business', 'automation')", name="ck_rule_type"),
        CheckConstraint("severity IN ('error', 'warning', 'info')", name="ck_rule_severity"),
    )

    id = _id_column()
    data_model_id = Column(String(36), ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), index=True)
    attribute_id = Column(String(36), ForeignKey("attributes.id", ondelete="CASCADE"), index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    rule_type = Column(String(16), nullable=False)
    condition_expression = Column(Text)
    action_expression = Column(Text, nullable=False)
    severity = Column(String(16), nullable=False, default="error")
    is_enabled = Column(Boolean, nullable=False, default=True)
    dependencies = Column(JSON, nullable=False, default=list)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    created_at, updated_at = _timestamps()


class Comment(Base):
    __tablename__ = "comments"

    id = _id_column()
    data_model_id = Column(String(36), ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_id = Column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), index=True)
    attribute_id = Column(String(36), ForeignKey("attributes.id", ondelete="CASCADE"), index=True)
    relationship_id = Column(String(36), ForeignKey("relationships.id", ondelete="CASCADE"), index=True)
    position_x = Column(Float)
    position_y = Column(Float)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    user_email = Column(String(320))
    content = Column(Text, nullable=False)
    created_at, updated_at = _timestamps()


# ============================
# Audit
# ============================

class ApiRequest(Base):
    __tablename__ = "api_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36))
    path = Column(String(1024), nullable=False)
    method = Column(String(16), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time_ms = Column(Integer, nullable=False)
    ip_address = Column(String(64))
    user_agent = Column(Text)
    request_timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
