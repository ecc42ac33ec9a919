from typing import List, Optional

from sqlalchemy.orm import Session

from modeler.db.models import Entity, Referential
from modeler.errors import InvalidRequestError
from modeler.graph.common import apply_fields, get_data_model, get_or_404
from modeler.graph.policy import Operation, OperationPolicy
from modeler.log import get_logger

logger = get_logger(__name__)

DEFAULT_COLOR = "#6366F1"
REFERENTIAL_FIELDS = ("name", "description", "color")

CREATE_REFERENTIAL = OperationPolicy("create_referential")
UPDATE_REFERENTIAL = OperationPolicy("update_referential")
# Null-out and row delete commit together or not at all
DELETE_REFERENTIAL = OperationPolicy("delete_referential")


def get_referential(db: Session, referential_id: str) -> Referential:
    return get_or_404(db, Referential, referential_id, "Referential")


def list_referentials(db: Session, data_model_id: str) -> List[Referential]:
    return (
        db.query(Referential)
        .filter(Referential.data_model_id == data_model_id)
        .order_by(Referential.name)
        .all()
    )


def member_entities(db: Session, referential_id: str) -> List[Entity]:
    return db.query(Entity).filter(Entity.referential_id == referential_id).all()


def _assign_entities(db: Session, referential: Referential, entity_ids: List[str]) -> None:
    entities = db.query(Entity).filter(Entity.id.in_(entity_ids)).all() if entity_ids else []
    found = {e.id for e in entities}
    missing = [i for i in entity_ids if i not in found]
    if missing:
        raise InvalidRequestError("Unknown entities", details={"ids": missing})
    if any(e.data_model_id != referential.data_model_id for e in entities):
        raise InvalidRequestError("Entities must belong to the referential's data model")

    db.query(Entity).filter(Entity.referential_id == referential.id).update(
        {"referential_id": None}, synchronize_session="fetch"
    )
    for entity in entities:
        entity.referential_id = referential.id
    db.flush()


def create_referential(
    db: Session, data_model_id: str, values: dict, entity_ids: Optional[List[str]] = None
) -> Referential:
    get_data_model(db, data_model_id)
    if not values.get("name"):
        raise InvalidRequestError("Referential name is required")

    with Operation(db, CREATE_REFERENTIAL):
        referential = Referential(data_model_id=data_model_id)
        apply_fields(referential, values, REFERENTIAL_FIELDS)
        referential.color = referential.color or DEFAULT_COLOR
        db.add(referential)
        db.flush()
        if entity_ids is not None:
            _assign_entities(db, referential, entity_ids)
    return referential


def update_referential(
    db: Session, referential_id: str, values: dict, entity_ids: Optional[List[str]] = None
) -> Referential:
    referential = get_referential(db, referential_id)
    if "name" in values and not values["name"]:
        raise InvalidRequestError("Referential name is required")

    with Operation(db, UPDATE_REFERENTIAL):
        apply_fields(referential, values, REFERENTIAL_FIELDS)
        referential.color = referential.color or DEFAULT_COLOR
        db.flush()
        if entity_ids is not None:
            _assign_entities(db, referential, entity_ids)
    return referential


def delete_referential(db: Session, referential_id: str) -> int:
    """Detach member entities, then delete the referential; returns the detached count."""
    referential = get_referential(db, referential_id)

    with Operation(db, DELETE_REFERENTIAL):
        members = member_entities(db, referential.id)
        for entity in members:
            entity.referential_id = None
        db.flush()
        db.delete(referential)
        db.flush()

    logger.info(f"[REFERENTIAL] deleted {referential_id}, detached {len(members)} entities")
    return len(members)
