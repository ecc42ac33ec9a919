"""
Model import.

Three stages, the first two pure:

1. parse_import_payload: accept the nested ``{project?, dataModel}`` shape or
   the legacy flat ``{entities, relationships}`` shape.
2. convert_import: map the serialized model onto rows with fresh ids, then
   resolve_join_orientation flips one-to-many relationships touching a
   join entity.
3. import_data_model: insert the rows. Entities and attributes are
   all-or-nothing; each relationship is inserted on its own and skipped
   when it fails.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from modeler.db.models import Attribute, DataModel, Entity
from modeler.errors import InvalidRequestError
from modeler.graph.policy import Operation, OperationPolicy
from modeler.graph.relationships import RELATIONSHIP_TYPES, insert_relationship
from modeler.log import get_logger

logger = get_logger(__name__)

IMPORT_MODEL = OperationPolicy("import_data_model", tolerated=("relationship",))

DATA_TYPE_MAP = {
    "text": "varchar",
    "string": "varchar",
    "str": "varchar",
    "varchar": "varchar",
    "char": "char",
    "integer": "integer",
    "int": "integer",
    "number": "integer",
    "bigint": "bigint",
    "decimal": "decimal",
    "float": "float",
    "double": "double",
    "boolean": "boolean",
    "bool": "boolean",
    "date": "date",
    "datetime": "timestamp",
    "timestamp": "timestamp",
    "time": "time",
    "uuid": "uuid",
    "json": "json",
    "jsonb": "jsonb",
    "array": "array",
}

NAME_SEPARATOR = " to "


def map_data_type(imported: Optional[str]) -> str:
    return DATA_TYPE_MAP.get((imported or "").lower(), "varchar")


def _is_many(cardinality: str) -> bool:
    value = cardinality.lower()
    return "n" in value or "*" in value or "many" in value


# ============================
# Parsing
# ============================

def parse_import_payload(data: Any) -> dict:
    """Normalize either accepted shape to ``{project, dataModel}``."""
    if isinstance(data, (bytes, str)):
        try:
            data = json.loads(data)
        except ValueError as exc:
            raise InvalidRequestError("Invalid JSON file", details=str(exc))

    if not isinstance(data, dict):
        raise InvalidRequestError("Invalid JSON format: expected an object")

    if "dataModel" in data:
        model = data.get("dataModel") or {}
        if not isinstance(model.get("entities"), list):
            raise InvalidRequestError("Invalid JSON format: Missing entities array in dataModel")
        if not isinstance(model.get("relationships"), list):
            raise InvalidRequestError("Invalid JSON format: Missing relationships array in dataModel")
        return {"project": data.get("project") or {}, "dataModel": model}

    if not isinstance(data.get("entities"), list):
        raise InvalidRequestError("Invalid JSON format: Missing entities array")
    if not isinstance(data.get("relationships"), list):
        raise InvalidRequestError("Invalid JSON format: Missing relationships array")
    return {
        "project": {},
        "dataModel": {"entities": data["entities"], "relationships": data["relationships"]},
    }


# ============================
# Conversion
# ============================

@dataclass
class ImportPlan:
    data_model: Dict[str, Any]
    entities: List[Dict[str, Any]] = field(default_factory=list)
    attributes: List[Dict[str, Any]] = field(default_factory=list)
    relationships: List[Dict[str, Any]] = field(default_factory=list)


def _relationship_type(imported: dict, mixed_join: bool) -> str:
    if mixed_join:
        return "one-to-many"
    explicit = imported.get("type")
    if explicit in RELATIONSHIP_TYPES:
        return explicit
    source_many = _is_many(str(imported.get("sourceCardinality") or "1"))
    target_many = _is_many(str(imported.get("targetCardinality") or "n"))
    if source_many and target_many:
        return "many-to-many"
    if not source_many and not target_many:
        return "one-to-one"
    return "one-to-many"


def convert_import(payload: dict, model_name: str) -> ImportPlan:
    """Map a parsed payload onto insertable rows with freshly generated ids."""
    project = payload.get("project") or {}
    imported_entities = payload["dataModel"]["entities"]
    imported_relationships = payload["dataModel"]["relationships"]

    plan = ImportPlan(
        data_model={
            "name": project.get("name") or model_name,
            "description": project.get("description") or "Imported data model",
            "version": project.get("version") or "1.0",
        }
    )

    entity_ids: Dict[str, str] = {}
    for imported in imported_entities:
        if not isinstance(imported, dict) or not imported.get("name"):
            raise InvalidRequestError("Every entity needs a name")
        new_id = str(uuid.uuid4())
        if imported.get("id") is not None:
            entity_ids[str(imported["id"])] = new_id
        position = imported.get("position") or {}
        plan.entities.append({
            "id": new_id,
            "name": imported["name"],
            "description": imported.get("description"),
            "position_x": position.get("x") or 0,
            "position_y": position.get("y") or 0,
            "entity_type": "join" if imported.get("isJoinTable") else "standard",
        })

    for imported, entity in zip(imported_entities, plan.entities):
        for attr in imported.get("attributes") or []:
            referenced = attr.get("referencesEntityId")
            plan.attributes.append({
                "id": str(uuid.uuid4()),
                "entity_id": entity["id"],
                "name": attr.get("name"),
                "data_type": map_data_type(attr.get("dataType")),
                "description": attr.get("description"),
                "is_primary_key": bool(attr.get("isPrimaryKey")),
                "is_foreign_key": bool(attr.get("isForeignKey")),
                "referenced_entity_id": entity_ids.get(str(referenced)) if referenced else None,
                "is_unique": bool(attr.get("isUnique")),
                "is_required": bool(attr.get("isMandatory")) or not attr.get("isNullable", False),
                "default_value": attr.get("defaultValue"),
                "is_calculated": bool(attr.get("isCalculated")),
                "calculation_rule": attr.get("businessRules"),
            })

    entity_types = {e["id"]: e["entity_type"] for e in plan.entities}
    for imported in imported_relationships:
        source_id = entity_ids.get(str(imported.get("sourceEntityId")))
        target_id = entity_ids.get(str(imported.get("targetEntityId")))
        if not source_id or not target_id:
            logger.warning(f"[IMPORT] relationship {imported.get('name')!r} has unknown endpoints")
            plan.relationships.append({
                "source_entity_id": source_id or imported.get("sourceEntityId"),
                "target_entity_id": target_id or imported.get("targetEntityId"),
                "relationship_type": "one-to-many",
                "name": imported.get("name"),
            })
            continue

        source_attr, target_attr = _pair_attributes(plan.attributes, source_id, target_id)
        mixed_join = (entity_types[source_id] == "join") != (entity_types[target_id] == "join")
        plan.relationships.append({
            "source_entity_id": source_id,
            "target_entity_id": target_id,
            "source_attribute_id": source_attr,
            "target_attribute_id": target_attr,
            "relationship_type": _relationship_type(imported, mixed_join),
            "source_cardinality": imported.get("sourceCardinality"),
            "target_cardinality": imported.get("targetCardinality"),
            "name": imported.get("name"),
            "description": imported.get("description"),
        })

    return plan


def _pair_attributes(attributes: List[dict], source_id: str, target_id: str):
    """The foreign key between the pair plus the primary key it references."""

    def foreign_key(owner, referenced):
        for a in attributes:
            if a["entity_id"] == owner and a["is_foreign_key"] and a["referenced_entity_id"] == referenced:
                return a["id"]
        return None

    def primary_key(owner):
        for a in attributes:
            if a["entity_id"] == owner and a["is_primary_key"]:
                return a["id"]
        return None

    source_fk = foreign_key(source_id, target_id)
    if source_fk:
        return source_fk, primary_key(target_id)
    target_fk = foreign_key(target_id, source_id)
    if target_fk:
        return primary_key(source_id), target_fk
    return None, None


def _swap_name(name: Optional[str]) -> Optional[str]:
    """Swap a two-part "A to B" name; anything else is kept as is."""
    if not name:
        return name
    parts = name.split(NAME_SEPARATOR)
    if len(parts) != 2:
        return name
    return f"{parts[1]}{NAME_SEPARATOR}{parts[0]}"


def resolve_join_orientation(entities: List[dict], relationships: List[dict]) -> List[dict]:
    """
    Flip one-to-many relationships that touch a join entity.

    Applies when either endpoint is a join entity, including join-to-join,
    which is flipped exactly once. Entity ids, attribute ids and
    cardinalities are swapped, and an "A to B" name becomes "B to A".
    Other relationships are returned unchanged.
    """
    join_ids = {e["id"] for e in entities if e.get("entity_type") == "join"}
    resolved = []
    for rel in relationships:
        rel = dict(rel)
        touches_join = rel.get("source_entity_id") in join_ids or rel.get("target_entity_id") in join_ids
        if rel.get("relationship_type", "one-to-many") == "one-to-many" and touches_join:
            rel["source_entity_id"], rel["target_entity_id"] = rel.get("target_entity_id"), rel.get("source_entity_id")
            rel["source_attribute_id"], rel["target_attribute_id"] = (
                rel.get("target_attribute_id"),
                rel.get("source_attribute_id"),
            )
            rel["source_cardinality"], rel["target_cardinality"] = (
                rel.get("target_cardinality"),
                rel.get("source_cardinality"),
            )
            rel["name"] = _swap_name(rel.get("name"))
        resolved.append(rel)
    return resolved


# ============================
# Persistence
# ============================

def import_data_model(
    db: Session,
    project_id: str,
    model_name: str,
    data: Any,
    created_by: Optional[str] = None,
) -> dict:
    payload = parse_import_payload(data)
    plan = convert_import(payload, model_name)
    relationships = resolve_join_orientation(plan.entities, plan.relationships)

    logger.info(
        f"[IMPORT] {plan.data_model['name']}: {len(plan.entities)} entities, "
        f"{len(plan.attributes)} attributes, {len(relationships)} relationships"
    )

    created = []
    with Operation(db, IMPORT_MODEL) as op:
        data_model = DataModel(project_id=project_id, created_by=created_by, **plan.data_model)
        db.add(data_model)
        db.flush()

        for row in plan.entities:
            db.add(Entity(data_model_id=data_model.id, **row))
        db.flush()
        for row in plan.attributes:
            if not row["name"]:
                raise InvalidRequestError("Every attribute needs a name")
            db.add(Attribute(**row))
        db.flush()

        for row in relationships:
            relationship = op.step("relationship", insert_relationship, db, data_model.id, row)
            if relationship is not None:
                created.append(relationship)

    return {
        "success": True,
        "dataModel": data_model.to_dict(),
        "entityCount": len(plan.entities),
        "attributeCount": len(plan.attributes),
        "relationshipCount": len(created),
        "skippedRelationships": [failure.to_dict() for failure in op.skipped],
    }
