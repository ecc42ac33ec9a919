"""
Structured model changes, as produced by the natural-language editor.

    {
        "entities":      {"create": [...], "update": [{"id", "changes"}], "delete": [ids]},
        "attributes":    {...},
        "referentials":  {...},
        "relationships": {...},
        "rules":         {...},
    }

Sections apply in that order. preview_changes works on a copy of a snapshot
and touches nothing; apply_changes runs every item through the graph
services inside one transaction.
"""

import copy
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from modeler.db.models import Attribute, Entity, Referential, Relationship, Rule
from modeler.errors import InvalidRequestError, NotFoundError
from modeler.graph import attributes as attribute_service
from modeler.graph import entities as entity_service
from modeler.graph import referentials as referential_service
from modeler.graph import relationships as relationship_service
from modeler.graph import rules as rule_service
from modeler.graph.common import get_data_model
from modeler.graph.policy import Operation, OperationPolicy

SECTIONS = ("entities", "attributes", "referentials", "relationships", "rules")
ACTIONS = ("create", "update", "delete")

APPLY_CHANGES = OperationPolicy("apply_model_changes")


def normalize_changes(changes) -> Dict[str, Dict[str, list]]:
    """Validate the change-set shape and fill in empty lists."""
    if changes is None:
        changes = {}
    if not isinstance(changes, dict):
        raise InvalidRequestError("Changes must be an object")

    normalized = {}
    for section in SECTIONS:
        block = changes.get(section) or {}
        if not isinstance(block, dict):
            raise InvalidRequestError(f"Changes for {section} must be an object")
        normalized[section] = {}
        for action in ACTIONS:
            items = block.get(action) or []
            if not isinstance(items, list):
                raise InvalidRequestError(f"{section}.{action} must be an array")
            if action == "update":
                for item in items:
                    if not isinstance(item, dict) or not item.get("id"):
                        raise InvalidRequestError(f"{section}.update items need an id")
            normalized[section][action] = items
    return normalized


def summarize(changes: Dict[str, Dict[str, list]]) -> dict:
    return {
        section: {action: len(changes[section][action]) for action in ACTIONS}
        for section in SECTIONS
    }


# ============================
# Preview
# ============================

class _Preview:
    def __init__(self, snapshot: dict):
        self.state = copy.deepcopy({
            key: snapshot.get(key, [])
            for key in ("entities", "attributes", "referentials", "relationships", "rules")
        })
        self.warnings: List[str] = []
        self._counter = 0

    def new_id(self, section: str) -> str:
        self._counter += 1
        return f"new-{section}-{self._counter}"

    def entity_id_for(self, item: dict, key: str = "entity") -> Optional[str]:
        if item.get(f"{key}_id"):
            return item[f"{key}_id"]
        name = (item.get(f"{key}_name") or "").lower()
        for entity in self.state["entities"]:
            if entity["name"].lower() == name:
                return entity["id"]
        return None

    def update(self, section: str, item: dict) -> None:
        for row in self.state[section]:
            if row["id"] == item["id"]:
                row.update(item.get("changes") or {})
                return
        self.warnings.append(f"{section}: unknown id {item['id']}")

    def delete(self, section: str, row_id: str) -> None:
        rows = self.state[section]
        kept = [row for row in rows if row["id"] != row_id]
        if len(kept) == len(rows):
            self.warnings.append(f"{section}: unknown id {row_id}")
        self.state[section] = kept
        if section == "entities":
            self.state["attributes"] = [a for a in self.state["attributes"] if a["entity_id"] != row_id]
            self.state["relationships"] = [
                r for r in self.state["relationships"]
                if row_id not in (r["source_entity_id"], r["target_entity_id"])
            ]
        elif section == "referentials":
            for entity in self.state["entities"]:
                if entity.get("referential_id") == row_id:
                    entity["referential_id"] = None


def preview_changes(snapshot: dict, changes) -> dict:
    """Return the snapshot as it would look after the changes, without writing anything."""
    normalized = normalize_changes(changes)
    preview = _Preview(snapshot)

    for section in SECTIONS:
        for item in normalized[section]["create"]:
            row = {k: v for k, v in item.items() if not isinstance(v, (dict, list)) or k == "dependencies"}
            row["id"] = preview.new_id(section)
            if section == "entities":
                row.setdefault("entity_type", "standard")
                row.setdefault("referential_id", None)
                for attr in item.get("attributes") or []:
                    preview.state["attributes"].append(dict(attr, id=preview.new_id("attributes"), entity_id=row["id"]))
            elif section == "attributes":
                row["entity_id"] = preview.entity_id_for(item)
                if row["entity_id"] is None:
                    preview.warnings.append(f"attributes: unknown entity for {item.get('name')}")
            elif section == "relationships":
                row["source_entity_id"] = preview.entity_id_for(item, "source_entity")
                row["target_entity_id"] = preview.entity_id_for(item, "target_entity")
            preview.state[section].append(row)
        for item in normalized[section]["update"]:
            preview.update(section, item)
        for row_id in normalized[section]["delete"]:
            preview.delete(section, row_id)

    return {"snapshot": preview.state, "summary": summarize(normalized), "warnings": preview.warnings}


# ============================
# Apply
# ============================

def _owned(db: Session, model, row_id: str, data_model_id: str, label: str):
    row = db.get(model, row_id)
    if row is None:
        raise NotFoundError(f"{label} not found", details={"id": row_id})
    owner_model = row.data_model_id if hasattr(row, "data_model_id") else db.get(Entity, row.entity_id).data_model_id
    if owner_model != data_model_id:
        raise InvalidRequestError(f"{label} belongs to a different data model", details={"id": row_id})
    return row


class _Applier:
    def __init__(self, db: Session, data_model_id: str, created_by: Optional[str]):
        self.db = db
        self.data_model_id = data_model_id
        self.created_by = created_by
        self.created: Dict[str, List[str]] = {section: [] for section in SECTIONS}
        self.skipped: List[dict] = []

    def entity_id_for(self, item: dict, key: str = "entity") -> str:
        if item.get(f"{key}_id"):
            return _owned(self.db, Entity, item[f"{key}_id"], self.data_model_id, "Entity").id
        name = (item.get(f"{key}_name") or "").strip()
        if not name:
            raise InvalidRequestError(f"{key}_id or {key}_name is required")
        entity = (
            self.db.query(Entity)
            .filter(Entity.data_model_id == self.data_model_id)
            .filter(func.lower(Entity.name) == name.lower())
            .first()
        )
        if entity is None:
            raise NotFoundError(f"Entity '{name}' not found")
        return entity.id

    # -- entities
    def create_entity(self, item: dict) -> None:
        nested = item.get("attributes") or []
        has_pk = any(a.get("is_primary_key") for a in nested)
        creation = entity_service.create_entity(
            self.db,
            self.data_model_id,
            name=item.get("name"),
            description=item.get("description"),
            entity_type=item.get("entity_type") or "standard",
            join_entities=item.get("join_entities"),
            position_x=item.get("position_x"),
            position_y=item.get("position_y"),
            primary_key_type=item.get("primary_key_type") or "uuid",
            primary_key_name=item.get("primary_key_name") or "id",
            with_primary_key=not has_pk,
            reference_entity_id=item.get("reference_entity_id"),
            reference_entity_name=item.get("reference_entity_name"),
        )
        self.created["entities"].append(creation.entity.id)
        for attr in nested:
            self.create_attribute(dict(attr, entity_id=creation.entity.id))

    def update_entity(self, item: dict) -> None:
        _owned(self.db, Entity, item["id"], self.data_model_id, "Entity")
        entity_service.update_entity(self.db, item["id"], item.get("changes") or {})

    def delete_entity(self, row_id: str) -> None:
        _owned(self.db, Entity, row_id, self.data_model_id, "Entity")
        entity_service.delete_entity(self.db, row_id)

    # -- attributes
    def create_attribute(self, item: dict) -> None:
        entity_id = self.entity_id_for(item)
        values = {k: v for k, v in item.items() if k in attribute_service.ATTRIBUTE_FIELDS}
        values.setdefault("data_type", "varchar")
        if item.get("referenced_entity_name") and not values.get("referenced_entity_id"):
            values["referenced_entity_id"] = self.entity_id_for(item, "referenced_entity")
        attribute, _, skipped = attribute_service.create_attribute(self.db, entity_id, values)
        self.created["attributes"].append(attribute.id)
        self.skipped.extend(failure.to_dict() for failure in skipped)

    def update_attribute(self, item: dict) -> None:
        _owned(self.db, Attribute, item["id"], self.data_model_id, "Attribute")
        attribute_service.update_attribute(self.db, item["id"], item.get("changes") or {})

    def delete_attribute(self, row_id: str) -> None:
        _owned(self.db, Attribute, row_id, self.data_model_id, "Attribute")
        attribute_service.delete_attribute(self.db, row_id)

    # -- referentials
    def _entity_ids(self, item: dict) -> Optional[List[str]]:
        if item.get("entity_ids") is not None:
            return list(item["entity_ids"])
        if item.get("entity_names") is not None:
            return [self.entity_id_for({"entity_name": name}) for name in item["entity_names"]]
        return None

    def create_referential(self, item: dict) -> None:
        referential = referential_service.create_referential(
            self.db, self.data_model_id, item, entity_ids=self._entity_ids(item)
        )
        self.created["referentials"].append(referential.id)

    def update_referential(self, item: dict) -> None:
        _owned(self.db, Referential, item["id"], self.data_model_id, "Referential")
        changes = item.get("changes") or {}
        referential_service.update_referential(self.db, item["id"], changes, entity_ids=self._entity_ids(changes))

    def delete_referential(self, row_id: str) -> None:
        _owned(self.db, Referential, row_id, self.data_model_id, "Referential")
        referential_service.delete_referential(self.db, row_id)

    # -- relationships
    def create_relationship(self, item: dict) -> None:
        source_id = self.entity_id_for(item, "source_entity")
        target_id = self.entity_id_for(item, "target_entity")
        source_attribute = item.get("source_attribute")
        if isinstance(source_attribute, dict):
            # Declared through its foreign key, like the attribute editor does
            values = dict(source_attribute, entity_id=source_id, referenced_entity_id=target_id, is_foreign_key=True)
            self.create_attribute(values)
            return
        values = {k: v for k, v in item.items() if k in relationship_service.RELATIONSHIP_FIELDS}
        values.update(source_entity_id=source_id, target_entity_id=target_id)
        relationship = relationship_service.create_relationship(self.db, self.data_model_id, values)
        self.created["relationships"].append(relationship.id)

    def update_relationship(self, item: dict) -> None:
        _owned(self.db, Relationship, item["id"], self.data_model_id, "Relationship")
        relationship_service.update_relationship(self.db, item["id"], item.get("changes") or {})

    def delete_relationship(self, row_id: str) -> None:
        _owned(self.db, Relationship, row_id, self.data_model_id, "Relationship")
        relationship_service.delete_relationship(self.db, row_id)

    # -- rules
    def create_rule(self, item: dict) -> None:
        values = dict(item)
        if item.get("entity_name") and not item.get("entity_id"):
            values["entity_id"] = self.entity_id_for(item)
        rule = rule_service.create_rule(self.db, self.data_model_id, values, created_by=self.created_by)
        self.created["rules"].append(rule.id)

    def update_rule(self, item: dict) -> None:
        _owned(self.db, Rule, item["id"], self.data_model_id, "Rule")
        rule_service.update_rule(self.db, item["id"], item.get("changes") or {})

    def delete_rule(self, row_id: str) -> None:
        _owned(self.db, Rule, row_id, self.data_model_id, "Rule")
        rule_service.delete_rule(self.db, row_id)


_SINGULAR = {
    "entities": "entity",
    "attributes": "attribute",
    "referentials": "referential",
    "relationships": "relationship",
    "rules": "rule",
}


def apply_changes(db: Session, data_model_id: str, changes, created_by: Optional[str] = None) -> dict:
    """Apply a change-set all-or-nothing; returns a summary and the created ids."""
    normalized = normalize_changes(changes)
    get_data_model(db, data_model_id)
    applier = _Applier(db, data_model_id, created_by)

    with Operation(db, APPLY_CHANGES):
        for section in SECTIONS:
            name = _SINGULAR[section]
            for item in normalized[section]["create"]:
                getattr(applier, f"create_{name}")(item)
            for item in normalized[section]["update"]:
                getattr(applier, f"update_{name}")(item)
            for row_id in normalized[section]["delete"]:
                getattr(applier, f"delete_{name}")(row_id)

    return {
        "success": True,
        "summary": summarize(normalized),
        "created": applier.created,
        "skipped": applier.skipped,
    }
