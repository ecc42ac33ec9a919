"""Lookups shared by the graph services."""

from typing import Optional, Type

from sqlalchemy.orm import Session

from modeler.db.models import Attribute, DataModel, Entity
from modeler.errors import InvalidRequestError, NotFoundError


def get_or_404(db: Session, model: Type, object_id: Optional[str], label: str):
    if not object_id:
        raise InvalidRequestError(f"{label} ID is required")
    obj = db.get(model, object_id)
    if obj is None:
        raise NotFoundError(f"{label} not found")
    return obj


def get_data_model(db: Session, data_model_id: Optional[str]) -> DataModel:
    return get_or_404(db, DataModel, data_model_id, "Data model")


def get_entity(db: Session, entity_id: Optional[str]) -> Entity:
    return get_or_404(db, Entity, entity_id, "Entity")


def get_attribute(db: Session, attribute_id: Optional[str]) -> Attribute:
    return get_or_404(db, Attribute, attribute_id, "Attribute")


def primary_key_of(db: Session, entity_id: str) -> Optional[Attribute]:
    return (
        db.query(Attribute)
        .filter(Attribute.entity_id == entity_id, Attribute.is_primary_key.is_(True))
        .order_by(Attribute.created_at)
        .first()
    )


def entity_ids_in_model(db: Session, data_model_id: str) -> set:
    rows = db.query(Entity.id).filter(Entity.data_model_id == data_model_id).all()
    return {row[0] for row in rows}


def apply_fields(obj, values: dict, allowed) -> None:
    """Copy the allowed keys present in ``values`` onto ``obj``."""
    for key in allowed:
        if key in values:
            setattr(obj, key, values[key])
