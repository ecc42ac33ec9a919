"""Projects, their members and their data models."""

from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from modeler.auth.permissions import is_superuser
from modeler.db.models import DataModel, Project, ProjectMember, User
from modeler.errors import InvalidRequestError, NotFoundError
from modeler.graph.common import apply_fields, get_or_404
from modeler.graph.policy import Operation, OperationPolicy
from modeler.log import get_logger

logger = get_logger(__name__)

MEMBER_ROLES = ("owner", "editor", "viewer")

CREATE_PROJECT = OperationPolicy("create_project")
UPDATE_PROJECT = OperationPolicy("update_project")
DELETE_PROJECT = OperationPolicy("delete_project")
CHANGE_MEMBERS = OperationPolicy("change_members")
CHANGE_MODEL = OperationPolicy("change_data_model")


# ============================
# Projects
# ============================

def get_project(db: Session, project_id: str) -> Project:
    return get_or_404(db, Project, project_id, "Project")


def list_projects(db: Session, user: User) -> List[Project]:
    query = db.query(Project)
    if not is_superuser(user):
        member_of = db.query(ProjectMember.project_id).filter(ProjectMember.user_id == user.id)
        query = query.filter(or_(Project.created_by == user.id, Project.id.in_(member_of)))
    return query.order_by(Project.updated_at.desc()).all()


def create_project(db: Session, user: User, name: str, description: Optional[str] = None) -> Project:
    """Create a project; the creator joins it as owner in the same transaction."""
    if not name or not name.strip():
        raise InvalidRequestError("Project name is required")

    with Operation(db, CREATE_PROJECT):
        project = Project(name=name.strip(), description=description, created_by=user.id)
        db.add(project)
        db.flush()
        db.add(ProjectMember(project_id=project.id, user_id=user.id, role="owner"))
        db.flush()

    logger.info(f"[PROJECT] {user.email} created {project.name}")
    return project


def update_project(db: Session, project_id: str, values: dict) -> Project:
    project = get_project(db, project_id)
    if "name" in values and not (values["name"] or "").strip():
        raise InvalidRequestError("Project name is required")
    with Operation(db, UPDATE_PROJECT):
        apply_fields(project, values, ("name", "description"))
        db.flush()
    return project


def delete_project(db: Session, project_id: str) -> None:
    project = get_project(db, project_id)
    with Operation(db, DELETE_PROJECT):
        for data_model in db.query(DataModel).filter(DataModel.project_id == project.id).all():
            db.delete(data_model)
        db.query(ProjectMember).filter(ProjectMember.project_id == project.id).delete()
        db.delete(project)
        db.flush()


# ============================
# Members
# ============================

def list_members(db: Session, project_id: str) -> List[dict]:
    rows = (
        db.query(ProjectMember, User)
        .join(User, User.id == ProjectMember.user_id)
        .filter(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.created_at)
        .all()
    )
    members = []
    for member, user in rows:
        data = member.to_dict()
        data["email"] = user.email
        data["full_name"] = user.full_name
        members.append(data)
    return members


def _check_role(role: str) -> None:
    if role not in MEMBER_ROLES:
        raise InvalidRequestError(f"Invalid role: {role}", details={"allowed": list(MEMBER_ROLES)})


def _owner_count(db: Session, project_id: str) -> int:
    return (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project_id, ProjectMember.role == "owner")
        .count()
    )


def _get_member(db: Session, project_id: str, user_id: str) -> ProjectMember:
    member = (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
        .first()
    )
    if member is None:
        raise NotFoundError("Member not found")
    return member


def add_member(db: Session, project_id: str, email: str, role: str = "viewer") -> ProjectMember:
    get_project(db, project_id)
    _check_role(role)
    user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
    if user is None:
        raise NotFoundError("User not found")
    exists = (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project_id, ProjectMember.user_id == user.id)
        .first()
    )
    if exists is not None:
        raise InvalidRequestError("User is already a member of this project")

    with Operation(db, CHANGE_MEMBERS):
        member = ProjectMember(project_id=project_id, user_id=user.id, role=role)
        db.add(member)
        db.flush()
    return member


def update_member_role(db: Session, project_id: str, user_id: str, role: str) -> ProjectMember:
    _check_role(role)
    member = _get_member(db, project_id, user_id)
    if member.role == "owner" and role != "owner" and _owner_count(db, project_id) == 1:
        raise InvalidRequestError("A project must keep at least one owner")
    with Operation(db, CHANGE_MEMBERS):
        member.role = role
        db.flush()
    return member


def remove_member(db: Session, project_id: str, user_id: str) -> None:
    member = _get_member(db, project_id, user_id)
    if member.role == "owner" and _owner_count(db, project_id) == 1:
        raise InvalidRequestError("A project must keep at least one owner")
    with Operation(db, CHANGE_MEMBERS):
        db.delete(member)
        db.flush()


# ============================
# Data models
# ============================

def list_data_models(db: Session, project_id: str) -> List[DataModel]:
    return (
        db.query(DataModel)
        .filter(DataModel.project_id == project_id)
        .order_by(DataModel.updated_at.desc())
        .all()
    )


def get_project_data_model(db: Session, project_id: str, data_model_id: str) -> DataModel:
    data_model = get_or_404(db, DataModel, data_model_id, "Data model")
    if data_model.project_id != project_id:
        raise NotFoundError("Data model not found")
    return data_model


def create_data_model(
    db: Session, project_id: str, values: dict, created_by: Optional[str] = None
) -> DataModel:
    get_project(db, project_id)
    if not (values.get("name") or "").strip():
        raise InvalidRequestError("Data model name is required")
    with Operation(db, CHANGE_MODEL):
        data_model = DataModel(project_id=project_id, created_by=created_by, version="1.0")
        apply_fields(data_model, values, ("name", "description", "version"))
        data_model.version = data_model.version or "1.0"
        db.add(data_model)
        db.flush()
    return data_model


def update_data_model(db: Session, project_id: str, data_model_id: str, values: dict) -> DataModel:
    data_model = get_project_data_model(db, project_id, data_model_id)
    if "name" in values and not (values["name"] or "").strip():
        raise InvalidRequestError("Data model name is required")
    with Operation(db, CHANGE_MODEL):
        apply_fields(data_model, values, ("name", "description", "version"))
        db.flush()
    return data_model


def delete_data_model(db: Session, project_id: str, data_model_id: str) -> None:
    data_model = get_project_data_model(db, project_id, data_model_id)
    with Operation(db, CHANGE_MODEL):
        db.delete(data_model)
        db.flush()
