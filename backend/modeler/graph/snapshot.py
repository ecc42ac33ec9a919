"""Whole-model aggregation: every row of a data model in one round trip."""

from collections import defaultdict

from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Comment, Entity, Referential, Relationship, Rule
from modeler.graph.common import get_data_model
from modeler.graph.rules import with_dependency_views


def _group(rows, key):
    grouped = defaultdict(list)
    for row in rows:
        value = row.get(key)
        if value:
            grouped[value].append(row)
    return dict(grouped)


def load_snapshot(db: Session, data_model_id: str) -> dict:
    """Plain-dict view of a model: entities, attributes, referentials, relationships, rules."""
    data_model = get_data_model(db, data_model_id)

    entities = (
        db.query(Entity).filter(Entity.data_model_id == data_model.id).order_by(Entity.name).all()
    )
    entity_ids = [e.id for e in entities]
    attributes = (
        db.query(Attribute)
        .filter(Attribute.entity_id.in_(entity_ids))
        .order_by(Attribute.is_primary_key.desc(), Attribute.name)
        .all()
        if entity_ids
        else []
    )
    rules = (
        db.query(Rule)
        .filter(Rule.data_model_id == data_model.id)
        .order_by(Rule.created_at.desc())
        .all()
    )
    relationships = (
        db.query(Relationship)
        .filter(Relationship.data_model_id == data_model.id)
        .order_by(Relationship.created_at)
        .all()
    )
    referentials = (
        db.query(Referential)
        .filter(Referential.data_model_id == data_model.id)
        .order_by(Referential.name)
        .all()
    )

    return {
        "dataModel": data_model.to_dict(),
        "entities": [e.to_dict() for e in entities],
        "attributes": [a.to_dict() for a in attributes],
        "referentials": [r.to_dict() for r in referentials],
        "relationships": [r.to_dict() for r in relationships],
        "rules": with_dependency_views(rules),
    }


def load_all_data(db: Session, data_model_id: str) -> dict:
    """The snapshot plus the lookup indexes the diagram view needs."""
    snapshot = load_snapshot(db, data_model_id)
    comments = (
        db.query(Comment)
        .filter(Comment.data_model_id == data_model_id)
        .order_by(Comment.created_at)
        .all()
    )

    rules = snapshot["rules"]
    relationships = snapshot["relationships"]

    snapshot.update({
        "comments": [c.to_dict() for c in comments],
        "attributesByEntityId": _group(snapshot["attributes"], "entity_id"),
        "rulesByEntityId": _group(rules, "entity_id"),
        "rulesByAttributeId": _group(rules, "attribute_id"),
        "modelLevelRules": [r for r in rules if not r["entity_id"] and not r["attribute_id"]],
        "relationshipsBySourceEntityId": _group(relationships, "source_entity_id"),
        "relationshipsByTargetEntityId": _group(relationships, "target_entity_id"),
        "entityMap": {e["id"]: e for e in snapshot["entities"]},
        "attributeMap": {a["id"]: a for a in snapshot["attributes"]},
    })
    return snapshot
