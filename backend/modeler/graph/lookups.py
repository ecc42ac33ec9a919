"""Small read-only lookups used by the diagram sidebar."""

from typing import Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Entity
from modeler.errors import InvalidRequestError
from modeler.graph.common import get_attribute, get_entity


def entity_names(db: Session, ids: Iterable[str]) -> Dict[str, str]:
    ids = [i for i in ids if i]
    if not ids:
        return {}
    rows = db.query(Entity.id, Entity.name).filter(Entity.id.in_(ids)).all()
    return {row.id: row.name for row in rows}


def attribute_reference_counts(
    db: Session, entity_id: Optional[str] = None, attribute_id: Optional[str] = None
) -> Dict[str, int]:
    """
    For each primary-key attribute in scope, how many distinct entities hold
    a foreign key referencing its entity. Scope is one attribute or every
    attribute of one entity; non-PK attributes count 0.
    """
    if attribute_id:
        attributes = [get_attribute(db, attribute_id)]
    elif entity_id:
        entity = get_entity(db, entity_id)
        attributes = db.query(Attribute).filter(Attribute.entity_id == entity.id).all()
    else:
        raise InvalidRequestError("Either entityId or attributeId is required")

    owners = {a.entity_id for a in attributes if a.is_primary_key}
    referencing = {}
    if owners:
        rows = (
            db.query(Attribute.referenced_entity_id, func.count(func.distinct(Attribute.entity_id)))
            .filter(
                Attribute.is_foreign_key.is_(True),
                Attribute.referenced_entity_id.in_(owners),
            )
            .group_by(Attribute.referenced_entity_id)
            .all()
        )
        referencing = dict(rows)

    return {
        a.id: referencing.get(a.entity_id, 0) if a.is_primary_key else 0
        for a in attributes
    }
