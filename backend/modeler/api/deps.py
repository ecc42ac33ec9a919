"""
Per-request access context.

The identity middleware resolves the caller once and stamps it on
``request.state``; RequestContext reads it and answers "may this caller do
METHOD in project P", caching each project's role for the rest of the
request. Every authorization decision goes through here.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from modeler.auth.permissions import can_manage, is_superuser, resolve_role, role_allows
from modeler.db.models import Attribute, DataModel, Entity, Project, User
from modeler.db.session import get_db
from modeler.errors import AuthenticationError, PermissionDenied
from modeler.graph.common import get_or_404
from modeler.nl.client import ChatCompletionsClient


class RequestContext:
    def __init__(self, request: Request, db: Session):
        self.request = request
        self.db = db
        self.user: Optional[User] = getattr(request.state, "user", None)
        if not hasattr(request.state, "roles"):
            request.state.roles = {}
        self._roles = request.state.roles

    @property
    def method(self) -> str:
        return self.request.method

    def require_user(self) -> User:
        if self.user is None:
            raise AuthenticationError("Unauthorized")
        return self.user

    def require_superuser(self) -> User:
        user = self.require_user()
        if not is_superuser(user):
            raise PermissionDenied("Superuser access required")
        return user

    def role_in(self, project: Project) -> Optional[str]:
        if project.id not in self._roles:
            self._roles[project.id] = resolve_role(self.db, self.require_user(), project)
        return self._roles[project.id]

    def require_project(self, project_id: str, method: Optional[str] = None) -> Project:
        """The project, if the caller's role allows ``method`` (the request method by default)."""
        self.require_user()
        project = get_or_404(self.db, Project, project_id, "Project")
        role = self.role_in(project)
        if role is None:
            raise PermissionDenied("You do not have access to this project")
        method = method or self.method
        if not role_allows(role, method):
            raise PermissionDenied(
                f"Your role ({role}) does not allow this action",
                details={"role": role, "method": method},
            )
        return project

    def require_manager(self, project_id: str) -> Project:
        project = self.require_project(project_id, "GET")
        if not can_manage(self.role_in(project)):
            raise PermissionDenied("Only project owners and admins can do this")
        return project

    def require_data_model(self, data_model_id: str, method: Optional[str] = None) -> DataModel:
        self.require_user()
        data_model = get_or_404(self.db, DataModel, data_model_id, "Data model")
        self.require_project(data_model.project_id, method)
        return data_model

    def require_entity(self, entity_id: str, method: Optional[str] = None) -> Entity:
        self.require_user()
        entity = get_or_404(self.db, Entity, entity_id, "Entity")
        self.require_data_model(entity.data_model_id, method)
        return entity

    def require_attribute(self, attribute_id: str, method: Optional[str] = None) -> Attribute:
        self.require_user()
        attribute = get_or_404(self.db, Attribute, attribute_id, "Attribute")
        self.require_entity(attribute.entity_id, method)
        return attribute


def get_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    return RequestContext(request, db)


def get_llm_client() -> ChatCompletionsClient:
    return ChatCompletionsClient()
