"""Diagram comments anchored to an entity, attribute, relationship or canvas position."""

from typing import List, Optional

from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Comment, Entity, Relationship, User
from modeler.errors import InvalidRequestError, NotFoundError, PermissionDenied
from modeler.graph.common import get_data_model, get_or_404

ANCHORS = (("entity_id", Entity), ("attribute_id", Attribute), ("relationship_id", Relationship))


def list_comments(db: Session, data_model_id: Optional[str] = None, entity_id: Optional[str] = None) -> List[Comment]:
    query = db.query(Comment)
    if data_model_id:
        query = query.filter(Comment.data_model_id == data_model_id)
    if entity_id:
        query = query.filter(Comment.entity_id == entity_id)
    return query.order_by(Comment.created_at).all()


def _anchor_model_id(db: Session, model, row_id: str) -> str:
    row = db.get(model, row_id)
    if row is None:
        raise NotFoundError(f"{model.__name__} not found")
    if isinstance(row, Attribute):
        return db.get(Entity, row.entity_id).data_model_id
    return row.data_model_id


def create_comment(db: Session, user: User, data_model_id: str, values: dict) -> Comment:
    get_data_model(db, data_model_id)
    content = (values.get("content") or "").strip()
    if not content:
        raise InvalidRequestError("Comment content is required")

    anchors = [(column, model) for column, model in ANCHORS if values.get(column)]
    has_position = values.get("position_x") is not None and values.get("position_y") is not None
    if len(anchors) > 1:
        raise InvalidRequestError("A comment is anchored to one entity, attribute or relationship")
    if not anchors and not has_position:
        raise InvalidRequestError(
            "A comment needs an entity, attribute, relationship or canvas position"
        )
    for column, model in anchors:
        if _anchor_model_id(db, model, values[column]) != data_model_id:
            raise InvalidRequestError("Comment target belongs to a different data model")

    comment = Comment(
        data_model_id=data_model_id,
        user_id=user.id,
        user_email=user.email,
        content=content,
        position_x=values.get("position_x"),
        position_y=values.get("position_y"),
    )
    for column, _ in anchors:
        setattr(comment, column, values[column])
    db.add(comment)
    db.commit()
    return comment


def get_comment(db: Session, comment_id: str) -> Comment:
    return get_or_404(db, Comment, comment_id, "Comment")


def update_comment(db: Session, user: User, comment_id: str, values: dict) -> Comment:
    """Anyone with write access may move a comment; only its author may edit the text."""
    comment = get_comment(db, comment_id)
    moving = values.get("position_x") is not None and values.get("position_y") is not None
    editing = values.get("content") is not None
    if not moving and not editing:
        raise InvalidRequestError("Either content or position coordinates are required")

    if editing:
        if comment.user_id != user.id:
            raise PermissionDenied("You can only edit the content of your own comments")
        if not values["content"].strip():
            raise InvalidRequestError("Comment content is required")
        comment.content = values["content"].strip()
    if moving:
        comment.position_x = values["position_x"]
        comment.position_y = values["position_y"]
    db.commit()
    return comment


def delete_comment(db: Session, user: User, comment_id: str, can_moderate: bool = False) -> None:
    comment = get_comment(db, comment_id)
    if comment.user_id != user.id and not can_moderate:
        raise PermissionDenied("You can only delete your own comments")
    db.delete(comment)
    db.commit()
