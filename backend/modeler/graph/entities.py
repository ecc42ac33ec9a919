"""
Entity lifecycle.

Creating an entity synthesizes its primary-key attribute; a join entity also
gets one foreign key and one relationship per joined entity. Deleting an
entity removes every relationship, rule and reference that would otherwise
dangle.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Comment, Entity, Referential, Relationship, Rule
from modeler.errors import InvalidRequestError, NotFoundError
from modeler.graph.attributes import insert_attribute
from modeler.graph.common import apply_fields, get_data_model, get_entity, primary_key_of
from modeler.graph.policy import Operation, OperationPolicy
from modeler.graph.positions import resolve_position_hint
from modeler.graph.relationships import insert_relationship, relationships_touching
from modeler.graph.rules import prune_dependencies
from modeler.log import get_logger

logger = get_logger(__name__)

ENTITY_TYPES = ("standard", "join")

PRIMARY_KEY_TYPES = {
    "uuid": "uuid",
    "auto_increment": "integer",
    "custom": "varchar",
    "composite": "composite",
}

ENTITY_FIELDS = ("name", "description", "referential_id", "position_x", "position_y", "entity_type")

CREATE_ENTITY = OperationPolicy("create_entity")
UPDATE_ENTITY = OperationPolicy("update_entity")
DELETE_ENTITY = OperationPolicy("delete_entity")


@dataclass
class EntityCreation:
    entity: Entity
    attributes: List[Attribute] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.entity.to_dict()
        data["attributes"] = [a.to_dict() for a in self.attributes]
        data["relationships"] = [r.to_dict() for r in self.relationships]
        return data


def _check_referential(db: Session, data_model_id: str, referential_id: Optional[str]) -> None:
    if not referential_id:
        return
    referential = db.get(Referential, referential_id)
    if referential is None:
        raise NotFoundError("Referential not found")
    if referential.data_model_id != data_model_id:
        raise InvalidRequestError("Referential belongs to a different data model")


def _joined_entities(db: Session, data_model_id: str, join_entities) -> List[Entity]:
    joined = []
    for entity_id in join_entities or []:
        entity = db.get(Entity, entity_id)
        if entity is None:
            raise NotFoundError("Joined entity not found", details={"entity_id": entity_id})
        if entity.data_model_id != data_model_id:
            raise InvalidRequestError("Joined entities must belong to the same data model")
        joined.append(entity)
    return joined


def _link_join_entity(db: Session, join: Entity, target: Entity) -> tuple:
    target_pk = primary_key_of(db, target.id)
    foreign_key = insert_attribute(
        db,
        join,
        {
            "name": f"id{target.name.replace(' ', '')}",
            "description": f"Foreign key to {target.name}",
            "data_type": target_pk.data_type if target_pk else "uuid",
            "is_foreign_key": True,
            "is_required": True,
            "referenced_entity_id": target.id,
        },
    )
    relationship = insert_relationship(
        db,
        join.data_model_id,
        {
            "source_entity_id": join.id,
            "target_entity_id": target.id,
            "source_attribute_id": foreign_key.id,
            "target_attribute_id": target_pk.id if target_pk else None,
            "relationship_type": "one-to-many",
            "source_cardinality": "0..n",
            "target_cardinality": "0..1",
            "name": f"{join.name} to {target.name}",
        },
    )
    return foreign_key, relationship


def create_entity(
    db: Session,
    data_model_id: str,
    name: str,
    description: Optional[str] = None,
    entity_type: str = "standard",
    join_entities: Optional[List[str]] = None,
    referential_id: Optional[str] = None,
    position_x: Optional[float] = None,
    position_y: Optional[float] = None,
    primary_key_type: Optional[str] = "uuid",
    primary_key_name: Optional[str] = "id",
    with_primary_key: bool = True,
    reference_entity_id: Optional[str] = None,
    reference_entity_name: Optional[str] = None,
) -> EntityCreation:
    if not name or not name.strip():
        raise InvalidRequestError("Entity name is required")
    if not data_model_id:
        raise InvalidRequestError("Data model ID is required")
    get_data_model(db, data_model_id)

    entity_type = entity_type or "standard"
    if entity_type not in ENTITY_TYPES:
        raise InvalidRequestError(f"Invalid entity type: {entity_type}")
    pk_type = primary_key_type or "uuid"
    if pk_type not in PRIMARY_KEY_TYPES:
        raise InvalidRequestError(
            f"Invalid primary key type: {pk_type}", details={"allowed": list(PRIMARY_KEY_TYPES)}
        )
    _check_referential(db, data_model_id, referential_id)

    joined = []
    if entity_type == "join":
        joined = _joined_entities(db, data_model_id, join_entities)

    if position_x is None or position_y is None:
        if len(joined) >= 2:
            position_x = sum(e.position_x or 0 for e in joined) / len(joined)
            position_y = sum(e.position_y or 0 for e in joined) / len(joined)
        else:
            hint = resolve_position_hint(db, data_model_id, reference_entity_id, reference_entity_name)
            position = hint.offset() if hint else None
            position_x = position.x if position else 0
            position_y = position.y if position else 0

    with Operation(db, CREATE_ENTITY):
        entity = Entity(
            data_model_id=data_model_id,
            name=name.strip(),
            description=description,
            entity_type=entity_type,
            referential_id=referential_id or None,
            position_x=position_x,
            position_y=position_y,
        )
        db.add(entity)
        db.flush()
        result = EntityCreation(entity=entity)

        if with_primary_key:
            result.attributes.append(
                insert_attribute(
                    db,
                    entity,
                    {
                        "name": primary_key_name or "id",
                        "description": "Primary key",
                        "data_type": PRIMARY_KEY_TYPES[pk_type],
                        "is_primary_key": True,
                        "is_required": True,
                        "is_unique": True,
                    },
                )
            )

        if len(joined) >= 2:
            for target in joined:
                foreign_key, relationship = _link_join_entity(db, entity, target)
                result.attributes.append(foreign_key)
                result.relationships.append(relationship)

    logger.info(
        f"[ENTITY] created {entity.name} ({entity.entity_type}) with "
        f"{len(result.attributes)} attributes, {len(result.relationships)} relationships"
    )
    return result


def list_entities(db: Session, data_model_id: str) -> List[Entity]:
    return (
        db.query(Entity)
        .filter(Entity.data_model_id == data_model_id)
        .order_by(Entity.name)
        .all()
    )


def update_entity(db: Session, entity_id: str, values: dict) -> Entity:
    entity = get_entity(db, entity_id)
    if "name" in values and not (values["name"] or "").strip():
        raise InvalidRequestError("Entity name is required")
    if "entity_type" in values and values["entity_type"] not in ENTITY_TYPES:
        raise InvalidRequestError(f"Invalid entity type: {values['entity_type']}")
    if "referential_id" in values:
        _check_referential(db, entity.data_model_id, values["referential_id"])

    with Operation(db, UPDATE_ENTITY):
        apply_fields(entity, values, ENTITY_FIELDS)
        db.flush()
    return entity


def delete_entity(db: Session, entity_id: str) -> dict:
    """Delete an entity with everything scoped to it; returns removal counts."""
    entity = get_entity(db, entity_id)
    attribute_ids = [
        row[0] for row in db.query(Attribute.id).filter(Attribute.entity_id == entity.id)
    ]

    with Operation(db, DELETE_ENTITY):
        relationships = relationships_touching(db, entity.data_model_id, [entity.id])
        for relationship in relationships:
            db.delete(relationship)
        db.flush()

        # Foreign keys elsewhere lose their target
        cleared = (
            db.query(Attribute)
            .filter(Attribute.referenced_entity_id == entity.id, Attribute.entity_id != entity.id)
            .update(
                {"referenced_entity_id": None, "is_foreign_key": False},
                synchronize_session="fetch",
            )
        )

        rule_query = db.query(Rule).filter(Rule.data_model_id == entity.data_model_id)
        scoped_rules = [
            rule for rule in rule_query
            if rule.entity_id == entity.id or rule.attribute_id in attribute_ids
        ]
        for rule in scoped_rules:
            db.delete(rule)
        db.flush()
        prune_dependencies(db, entity.data_model_id, {rule.id for rule in scoped_rules})

        db.query(Comment).filter(
            (Comment.entity_id == entity.id) | (Comment.attribute_id.in_(attribute_ids))
        ).delete(synchronize_session="fetch")
        db.query(Attribute).filter(Attribute.entity_id == entity.id).delete(
            synchronize_session="fetch"
        )
        db.delete(entity)
        db.flush()

    return {
        "relationships": len(relationships),
        "attributes": len(attribute_ids),
        "rules": len(scoped_rules),
        "foreignKeysCleared": cleared,
    }
