"""
Project role resolution.

Roles: owner, admin, editor, viewer. ``admin`` is never stored; it is what
superusers and project creators resolve to.
"""

from typing import Optional

from sqlalchemy.orm import Session

from modeler.config import SUPERUSER_EMAILS
from modeler.db.models import Project, ProjectMember, User

FULL_ACCESS = ("owner", "admin")

ALLOWED_METHODS = {
    "owner": {"GET", "POST", "PUT", "PATCH", "DELETE"},
    "admin": {"GET", "POST", "PUT", "PATCH", "DELETE"},
    "editor": {"GET", "POST", "PUT", "PATCH"},
    "viewer": {"GET"},
}


def is_superuser(user: Optional[User]) -> bool:
    if user is None:
        return False
    return bool(user.is_superuser) or user.email.lower() in SUPERUSER_EMAILS


def resolve_role(db: Session, user: User, project: Project) -> Optional[str]:
    if is_superuser(user):
        return "admin"
    if project.created_by == user.id:
        return "admin"
    member = (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project.id, ProjectMember.user_id == user.id)
        .first()
    )
    return member.role if member else None


def role_allows(role: Optional[str], method: str) -> bool:
    return method.upper() in ALLOWED_METHODS.get(role, set())


def can_manage(role: Optional[str]) -> bool:
    return role in FULL_ACCESS
