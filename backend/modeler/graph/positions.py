"""
Canvas position hint for new entities.

Best-effort UX convenience: places a new entity next to the one the user
referred to. Nothing correctness-bearing depends on this module.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from modeler.db.models import Entity

DEFAULT_OFFSET = 250
SIGNIFICANT_WORD_LENGTH = 3


@dataclass
class Position:
    x: float
    y: float

    def offset(self, dx: float = DEFAULT_OFFSET, dy: float = 0) -> "Position":
        return Position(self.x + dx, self.y + dy)


def _clean(name: str) -> str:
    return name.strip().strip("'\"`").strip().lower()


def match_entity(entities: List[Entity], reference_name: str) -> Optional[Entity]:
    """Match a free-text name against entities, loosest rule last."""
    wanted = _clean(reference_name)
    if not wanted:
        return None

    for entity in entities:
        if entity.name.lower() == wanted:
            return entity

    for entity in entities:
        candidate = entity.name.lower()
        if wanted in candidate or candidate in wanted:
            return entity

    words = [word for word in wanted.split() if len(word) > SIGNIFICANT_WORD_LENGTH]
    if words:
        longest = max(words, key=len)
        for entity in entities:
            if longest in entity.name.lower():
                return entity

    return None


def resolve_position_hint(
    db: Session,
    data_model_id: str,
    reference_entity_id: Optional[str] = None,
    reference_entity_name: Optional[str] = None,
) -> Optional[Position]:
    """Return the position of the referenced entity, or None when nothing matches."""
    if reference_entity_id:
        entity = db.get(Entity, reference_entity_id)
        if entity is not None and entity.data_model_id == data_model_id:
            return Position(entity.position_x or 0, entity.position_y or 0)

    entities = (
        db.query(Entity)
        .filter(Entity.data_model_id == data_model_id)
        .order_by(Entity.created_at)
        .all()
    )
    if not entities:
        return None

    if reference_entity_name:
        entity = match_entity(entities, reference_entity_name)
        if entity is not None:
            return Position(entity.position_x or 0, entity.position_y or 0)

    if reference_entity_id or reference_entity_name:
        first = entities[0]
        return Position(first.position_x or 0, first.position_y or 0)

    return None
