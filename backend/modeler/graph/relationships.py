from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Entity, Relationship
from modeler.errors import InvalidRequestError, NotFoundError
from modeler.graph.common import apply_fields, get_data_model, get_or_404
from modeler.graph.policy import Operation, OperationPolicy

RELATIONSHIP_TYPES = ("one-to-one", "one-to-many", "many-to-many")

RELATIONSHIP_FIELDS = (
    "source_entity_id",
    "target_entity_id",
    "source_attribute_id",
    "target_attribute_id",
    "relationship_type",
    "source_cardinality",
    "target_cardinality",
    "name",
    "description",
)

CREATE_RELATIONSHIP = OperationPolicy("create_relationship")
UPDATE_RELATIONSHIP = OperationPolicy("update_relationship")
DELETE_RELATIONSHIP = OperationPolicy("delete_relationship")


def _check_endpoints(db: Session, relationship: Relationship) -> None:
    """Both endpoints live in the relationship's model; attribute pairings reference a key."""
    if relationship.relationship_type not in RELATIONSHIP_TYPES:
        raise InvalidRequestError(
            f"Invalid relationship type: {relationship.relationship_type}",
            details={"allowed": list(RELATIONSHIP_TYPES)},
        )

    endpoints = {}
    for side in ("source", "target"):
        entity_id = getattr(relationship, f"{side}_entity_id")
        if not entity_id:
            raise InvalidRequestError(f"{side.capitalize()} entity ID is required")
        entity = db.get(Entity, entity_id)
        if entity is None:
            raise NotFoundError(f"{side.capitalize()} entity not found")
        if entity.data_model_id != relationship.data_model_id:
            raise InvalidRequestError(
                "Source and target entities must belong to the relationship's data model",
                details={"entity_id": entity_id, "side": side},
            )
        endpoints[side] = entity

    attributes = {}
    for side in ("source", "target"):
        attribute_id = getattr(relationship, f"{side}_attribute_id")
        if not attribute_id:
            continue
        attribute = db.get(Attribute, attribute_id)
        if attribute is None:
            raise NotFoundError(f"{side.capitalize()} attribute not found")
        if attribute.entity_id != endpoints[side].id:
            raise InvalidRequestError(
                f"{side.capitalize()} attribute must belong to the {side} entity"
            )
        attributes[side] = attribute

    # A foreign key can only reference a primary key
    if len(attributes) == 2 and not any(a.is_primary_key for a in attributes.values()):
        raise InvalidRequestError(
            "A relationship must reference a primary key attribute",
            details={side: a.id for side, a in attributes.items()},
        )


def insert_relationship(db: Session, data_model_id: str, values: dict) -> Relationship:
    """Validate and stage a relationship; callers own the transaction."""
    relationship = Relationship(data_model_id=data_model_id, relationship_type="one-to-many")
    apply_fields(relationship, values, RELATIONSHIP_FIELDS)
    if not relationship.relationship_type:
        relationship.relationship_type = "one-to-many"
    _check_endpoints(db, relationship)
    db.add(relationship)
    db.flush()
    return relationship


def create_relationship(db: Session, data_model_id: str, values: dict) -> Relationship:
    get_data_model(db, data_model_id)
    with Operation(db, CREATE_RELATIONSHIP):
        relationship = insert_relationship(db, data_model_id, values)
    return relationship


def get_relationship(db: Session, relationship_id: str) -> Relationship:
    return get_or_404(db, Relationship, relationship_id, "Relationship")


def list_relationships(db: Session, data_model_id: str) -> List[Relationship]:
    return (
        db.query(Relationship)
        .filter(Relationship.data_model_id == data_model_id)
        .order_by(Relationship.created_at)
        .all()
    )


def update_relationship(db: Session, relationship_id: str, values: dict) -> Relationship:
    relationship = get_relationship(db, relationship_id)
    with Operation(db, UPDATE_RELATIONSHIP):
        apply_fields(relationship, values, RELATIONSHIP_FIELDS)
        with db.no_autoflush:
            _check_endpoints(db, relationship)
        db.flush()
    return relationship


def delete_relationship(db: Session, relationship_id: str) -> None:
    relationship = get_relationship(db, relationship_id)
    with Operation(db, DELETE_RELATIONSHIP):
        db.delete(relationship)
        db.flush()


def relationships_touching(db: Session, data_model_id: str, entity_ids) -> List[Relationship]:
    entity_ids = list(entity_ids)
    return (
        db.query(Relationship)
        .filter(
            Relationship.data_model_id == data_model_id,
            or_(
                Relationship.source_entity_id.in_(entity_ids),
                Relationship.target_entity_id.in_(entity_ids),
            ),
        )
        .order_by(Relationship.created_at)
        .all()
    )


def detach_attribute(db: Session, attribute_id: str) -> None:
    """Null out relationship columns pointing at an attribute."""
    for column in (Relationship.source_attribute_id, Relationship.target_attribute_id):
        db.query(Relationship).filter(column == attribute_id).update(
            {column.key: None}, synchronize_session="fetch"
        )


def detach_demoted_key(db: Session, attribute: Attribute) -> None:
    """Drop an attribute that stopped being a key from pairings that relied on it."""
    paired = db.query(Relationship).filter(
        or_(
            Relationship.source_attribute_id == attribute.id,
            Relationship.target_attribute_id == attribute.id,
        )
    ).all()
    for relationship in paired:
        if relationship.source_attribute_id == attribute.id:
            other_id, column = relationship.target_attribute_id, "source_attribute_id"
        else:
            other_id, column = relationship.source_attribute_id, "target_attribute_id"
        other = db.get(Attribute, other_id) if other_id else None
        if other is not None and not other.is_primary_key:
            setattr(relationship, column, None)
    db.flush()
