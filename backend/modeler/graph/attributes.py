"""
Attribute lifecycle: create (with the foreign-key relationship side effect),
partial update, delete (removing the matching relationship) and the bulk
reconciliation used by the entity editor.
"""

from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from modeler.db.models import Attribute, DataModel, Entity, Relationship, Rule
from modeler.errors import InvalidRequestError, NotFoundError
from modeler.graph.common import apply_fields, get_attribute, get_entity, primary_key_of
from modeler.graph.policy import Operation, OperationPolicy, StepFailure
from modeler.graph.relationships import detach_attribute, detach_demoted_key, insert_relationship
from modeler.log import get_logger

logger = get_logger(__name__)

ATTRIBUTE_FIELDS = (
    "name",
    "description",
    "data_type",
    "length",
    "default_value",
    "is_primary_key",
    "is_foreign_key",
    "is_unique",
    "is_required",
    "is_calculated",
    "calculation_rule",
    "referenced_entity_id",
)

# Values a bulk-replace update falls back to when a field is not resent
ATTRIBUTE_DEFAULTS = {
    "description": None,
    "data_type": "varchar",
    "length": None,
    "default_value": None,
    "is_primary_key": False,
    "is_foreign_key": False,
    "is_unique": False,
    "is_required": False,
    "is_calculated": False,
    "calculation_rule": None,
    "referenced_entity_id": None,
}

# The relationship insert may fail without undoing the attribute
CREATE_ATTRIBUTE = OperationPolicy("create_attribute", tolerated=("fk_relationship",))
UPDATE_ATTRIBUTE = OperationPolicy("update_attribute")
DELETE_ATTRIBUTE = OperationPolicy("delete_attribute")
REPLACE_ATTRIBUTES = OperationPolicy("replace_attributes")


def _project_of(db: Session, entity: Entity) -> Optional[str]:
    data_model = db.get(DataModel, entity.data_model_id)
    return data_model.project_id if data_model is not None else None


def _check_reference(db: Session, owner: Entity, values: dict) -> None:
    """A foreign key may only point at an entity of the owner's project."""
    referenced_id = values.get("referenced_entity_id")
    if not referenced_id:
        return
    referenced = db.get(Entity, referenced_id)
    if referenced is None:
        raise NotFoundError("Referenced entity not found", details={"referenced_entity_id": referenced_id})
    if _project_of(db, referenced) != _project_of(db, owner):
        raise InvalidRequestError(
            "Referenced entity belongs to another project",
            details={"referenced_entity_id": referenced_id},
        )


def insert_attribute(db: Session, entity: Entity, values: dict) -> Attribute:
    """Validate and stage an attribute row; callers own the transaction."""
    if not values.get("name"):
        raise InvalidRequestError("Attribute name is required")
    if not values.get("data_type"):
        raise InvalidRequestError("Attribute data type is required")
    _check_reference(db, entity, values)

    attribute = Attribute(entity_id=entity.id)
    apply_fields(attribute, values, ATTRIBUTE_FIELDS)
    db.add(attribute)
    db.flush()
    return attribute


def create_fk_relationship(db: Session, entity: Entity, attribute: Attribute) -> Relationship:
    """Relationship owned by a foreign-key attribute: owner -> referenced entity."""
    target = db.get(Entity, attribute.referenced_entity_id)
    if target is None:
        raise NotFoundError("Referenced entity not found")
    target_pk = primary_key_of(db, target.id)
    return insert_relationship(
        db,
        target.data_model_id,
        {
            "source_entity_id": entity.id,
            "target_entity_id": target.id,
            "source_attribute_id": attribute.id,
            "target_attribute_id": target_pk.id if target_pk else None,
            "relationship_type": "one-to-many",
            "name": attribute.name,
        },
    )


def create_attribute(
    db: Session, entity_id: str, values: dict
) -> Tuple[Attribute, Optional[Relationship], List[StepFailure]]:
    """
    Insert an attribute; for a foreign key also insert its relationship.

    A failed relationship insert is logged and reported in the returned
    skipped list, and the attribute insert is kept.
    """
    entity = get_entity(db, entity_id)
    relationship = None

    with Operation(db, CREATE_ATTRIBUTE) as op:
        attribute = insert_attribute(db, entity, values)
        if attribute.is_foreign_key and attribute.referenced_entity_id:
            relationship = op.step("fk_relationship", create_fk_relationship, db, entity, attribute)
            if relationship is not None:
                logger.info(
                    f"[ATTRIBUTE] FK {attribute.name} -> relationship {relationship.id}"
                )

    return attribute, relationship, op.skipped


def list_attributes(db: Session, entity_id: str) -> List[Attribute]:
    return (
        db.query(Attribute)
        .filter(Attribute.entity_id == entity_id)
        .order_by(Attribute.is_primary_key.desc(), Attribute.created_at)
        .all()
    )


def _update_fields(db: Session, attribute: Attribute, values: dict) -> None:
    was_primary_key = bool(attribute.is_primary_key)
    if "name" in values and not values["name"]:
        raise InvalidRequestError("Attribute name is required")
    _check_reference(db, db.get(Entity, attribute.entity_id), values)
    apply_fields(attribute, values, ATTRIBUTE_FIELDS)
    if was_primary_key and not attribute.is_primary_key:
        # No longer a valid foreign-key target
        detach_demoted_key(db, attribute)
    db.flush()


def update_attribute(db: Session, attribute_id: str, values: dict) -> Attribute:
    attribute = get_attribute(db, attribute_id)
    with Operation(db, UPDATE_ATTRIBUTE):
        _update_fields(db, attribute, values)
    return attribute


def find_fk_relationship(db: Session, attribute: Attribute) -> Optional[Relationship]:
    """
    Locate the relationship a foreign-key attribute stands for.

    Candidates touch the owning entity or the referenced entity. One recorded
    with this attribute as source wins; otherwise the first pairing both
    entities is used. With several relationships between the same pair and
    none recorded against the attribute, the first one found is returned.
    """
    owner = db.get(Entity, attribute.entity_id)
    referenced_id = attribute.referenced_entity_id
    entity_ids = [owner.id, referenced_id]

    candidates = (
        db.query(Relationship)
        .filter(
            Relationship.data_model_id == owner.data_model_id,
            or_(
                Relationship.source_entity_id.in_(entity_ids),
                Relationship.target_entity_id.in_(entity_ids),
            ),
        )
        .order_by(Relationship.created_at)
        .all()
    )

    for relationship in candidates:
        if relationship.source_attribute_id == attribute.id:
            return relationship

    pair = {owner.id, referenced_id}
    for relationship in candidates:
        if {relationship.source_entity_id, relationship.target_entity_id} == pair:
            return relationship
    return None


def remove_attribute(db: Session, attribute: Attribute) -> Optional[str]:
    """Delete an attribute inside the caller's transaction; returns the removed relationship id."""
    removed = None
    if attribute.is_foreign_key and attribute.referenced_entity_id:
        relationship = find_fk_relationship(db, attribute)
        if relationship is not None:
            removed = relationship.id
            db.delete(relationship)
            db.flush()

    detach_attribute(db, attribute.id)
    db.query(Rule).filter(Rule.attribute_id == attribute.id).delete(synchronize_session="fetch")
    db.delete(attribute)
    db.flush()
    return removed


def delete_attribute(db: Session, attribute_id: str) -> Optional[str]:
    attribute = get_attribute(db, attribute_id)
    with Operation(db, DELETE_ATTRIBUTE):
        removed = remove_attribute(db, attribute)
    if removed:
        logger.info(f"[ATTRIBUTE] deleted {attribute_id} with relationship {removed}")
    return removed


def replace_attributes(db: Session, entity_id: str, items) -> List[Attribute]:
    """
    Reconcile an entity's attributes against a full desired list.

    Listed ids are updated with every field resent (missing fields fall back
    to defaults), items without an id are inserted, and existing ids absent
    from the list are deleted.
    """
    if not isinstance(items, list):
        raise InvalidRequestError("Attributes must be an array")

    entity = get_entity(db, entity_id)
    existing = {a.id: a for a in db.query(Attribute).filter(Attribute.entity_id == entity.id)}

    wanted_ids = set()
    for item in items:
        if not isinstance(item, dict):
            raise InvalidRequestError("Each attribute must be an object")
        item_id = item.get("id")
        if item_id:
            if item_id not in existing:
                raise InvalidRequestError(
                    "Attribute does not belong to this entity", details={"id": item_id}
                )
            wanted_ids.add(item_id)

    with Operation(db, REPLACE_ATTRIBUTES):
        for attribute_id in set(existing) - wanted_ids:
            remove_attribute(db, existing[attribute_id])

        for item in items:
            if item.get("id"):
                values = dict(ATTRIBUTE_DEFAULTS)
                values.update({k: v for k, v in item.items() if k in ATTRIBUTE_FIELDS})
                _update_fields(db, existing[item["id"]], values)
            else:
                values = {k: v for k, v in item.items() if k in ATTRIBUTE_FIELDS}
                values.setdefault("data_type", "varchar")
                insert_attribute(db, entity, values)

    return list_attributes(db, entity.id)
