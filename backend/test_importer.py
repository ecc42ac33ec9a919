"""Model import: payload parsing, conversion and join orientation."""

import json

import pytest

from modeler.db.models import Attribute, DataModel, Entity, Relationship
from modeler.errors import InvalidRequestError
from modeler.graph.importer import (
    convert_import,
    map_data_type,
    parse_import_payload,
    resolve_join_orientation,
)


def _document():
    return {
        "project": {"name": "School", "version": "2.1"},
        "dataModel": {
            "entities": [
                {
                    "id": "s",
                    "name": "Student",
                    "position": {"x": 10, "y": 20},
                    "attributes": [
                        {"name": "id", "dataType": "uuid", "isPrimaryKey": True},
                        {"name": "nickname", "dataType": "string", "isNullable": True},
                    ],
                },
                {
                    "id": "e",
                    "name": "Enrollment",
                    "isJoinTable": True,
                    "attributes": [
                        {"name": "id", "dataType": "uuid", "isPrimaryKey": True},
                        {"name": "student_id", "dataType": "uuid", "isForeignKey": True, "referencesEntityId": "s"},
                    ],
                },
                {
                    "id": "c",
                    "name": "Course",
                    "attributes": [{"name": "id", "dataType": "int", "isPrimaryKey": True}],
                },
            ],
            "relationships": [
                {
                    "sourceEntityId": "s",
                    "targetEntityId": "e",
                    "sourceCardinality": "1",
                    "targetCardinality": "0..n",
                    "name": "Student to Enrollment",
                },
                {
                    "sourceEntityId": "s",
                    "targetEntityId": "c",
                    "sourceCardinality": "0..n",
                    "targetCardinality": "0..n",
                    "name": "attends",
                },
                {"sourceEntityId": "s", "targetEntityId": "ghost", "name": "dangling"},
            ],
        },
    }


def test_parse_accepts_legacy_flat_shape():
    payload = parse_import_payload(json.dumps({"entities": [], "relationships": []}))
    assert payload == {"project": {}, "dataModel": {"entities": [], "relationships": []}}


@pytest.mark.parametrize(
    "raw,message",
    [
        ("{not json", "Invalid JSON file"),
        ({"dataModel": {"relationships": []}}, "Invalid JSON format: Missing entities array in dataModel"),
        ({"dataModel": {"entities": []}}, "Invalid JSON format: Missing relationships array in dataModel"),
        ({"relationships": []}, "Invalid JSON format: Missing entities array"),
    ],
)
def test_parse_rejects_malformed_payloads(raw, message):
    with pytest.raises(InvalidRequestError) as info:
        parse_import_payload(raw)
    assert info.value.message == message


def test_data_type_map():
    assert map_data_type("String") == "varchar"
    assert map_data_type("int") == "integer"
    assert map_data_type("datetime") == "timestamp"
    assert map_data_type("geometry") == "varchar"
    assert map_data_type(None) == "varchar"


def test_convert_remaps_ids_and_metadata():
    plan = convert_import(parse_import_payload(_document()), "Fallback")

    assert plan.data_model == {"name": "School", "description": "Imported data model", "version": "2.1"}
    ids = {e["id"] for e in plan.entities}
    assert not ids & {"s", "e", "c"}
    student, enrollment, _ = plan.entities
    assert (student["position_x"], student["position_y"]) == (10, 20)
    assert enrollment["entity_type"] == "join"

    nickname = next(a for a in plan.attributes if a["name"] == "nickname")
    assert nickname["is_required"] is False
    fk = next(a for a in plan.attributes if a["name"] == "student_id")
    assert fk["referenced_entity_id"] == student["id"]


def test_convert_types_and_pairs_attributes():
    plan = convert_import(parse_import_payload(_document()), "Fallback")
    to_join, many_to_many, dangling = plan.relationships

    assert to_join["relationship_type"] == "one-to-many"
    fk = next(a for a in plan.attributes if a["name"] == "student_id")
    student_pk = next(a for a in plan.attributes if a["entity_id"] == to_join["source_entity_id"] and a["is_primary_key"])
    assert (to_join["source_attribute_id"], to_join["target_attribute_id"]) == (student_pk["id"], fk["id"])

    assert many_to_many["relationship_type"] == "many-to-many"
    assert dangling["target_entity_id"] == "ghost"


def test_join_orientation_swaps_every_field():
    entities = [{"id": "a", "entity_type": "standard"}, {"id": "j", "entity_type": "join"}]
    relationships = [
        {
            "source_entity_id": "a",
            "target_entity_id": "j",
            "source_attribute_id": "a.id",
            "target_attribute_id": "j.a_id",
            "source_cardinality": "1",
            "target_cardinality": "0..n",
            "relationship_type": "one-to-many",
            "name": "A to J",
        }
    ]

    resolved = resolve_join_orientation(entities, relationships)[0]

    assert (resolved["source_entity_id"], resolved["target_entity_id"]) == ("j", "a")
    assert (resolved["source_attribute_id"], resolved["target_attribute_id"]) == ("j.a_id", "a.id")
    assert (resolved["source_cardinality"], resolved["target_cardinality"]) == ("0..n", "1")
    assert resolved["name"] == "J to A"
    assert relationships[0]["source_entity_id"] == "a"


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Store to Stock to Product", "Store to Stock to Product"),
        ("Order TO Product", "Order TO Product"),
        ("Order to Product", "Product to Order"),
        ("Shipment", "Shipment"),
    ],
)
def test_join_orientation_swaps_only_two_part_names(name, expected):
    entities = [{"id": "j", "entity_type": "join"}, {"id": "p", "entity_type": "standard"}]
    relationship = {"source_entity_id": "j", "target_entity_id": "p", "relationship_type": "one-to-many", "name": name}

    resolved = resolve_join_orientation(entities, [relationship])[0]

    assert (resolved["source_entity_id"], resolved["target_entity_id"]) == ("p", "j")
    assert resolved["name"] == expected


def test_join_orientation_leaves_standard_pairs_alone():
    entities = [{"id": "a", "entity_type": "standard"}, {"id": "b", "entity_type": "standard"}]
    relationship = {"source_entity_id": "a", "target_entity_id": "b", "relationship_type": "one-to-many", "name": "A to B"}
    assert resolve_join_orientation(entities, [relationship]) == [relationship]


def test_join_to_join_is_swapped_once():
    entities = [{"id": "j1", "entity_type": "join"}, {"id": "j2", "entity_type": "join"}]
    relationship = {"source_entity_id": "j1", "target_entity_id": "j2", "relationship_type": "one-to-many"}
    resolved = resolve_join_orientation(entities, [relationship])[0]
    assert (resolved["source_entity_id"], resolved["target_entity_id"]) == ("j2", "j1")


def test_many_to_many_with_join_is_unchanged():
    entities = [{"id": "a", "entity_type": "standard"}, {"id": "j", "entity_type": "join"}]
    relationship = {"source_entity_id": "a", "target_entity_id": "j", "relationship_type": "many-to-many"}
    assert resolve_join_orientation(entities, [relationship]) == [relationship]


def test_import_endpoint(owner, project, db):
    files = {"file": ("model.json", json.dumps(_document()), "application/json")}
    response = owner.post(
        "/api/data-models/import",
        data={"projectId": project["id"], "modelName": "Fallback"},
        files=files,
    )
    assert response.status_code == 201, response.text

    result = response.json()
    assert result["success"] is True
    assert result["entityCount"] == 3
    assert result["attributeCount"] == 5
    assert result["relationshipCount"] == 2
    assert len(result["skippedRelationships"]) == 1

    model_id = result["dataModel"]["id"]
    assert db.get(DataModel, model_id).name == "School"
    join = db.query(Entity).filter(Entity.data_model_id == model_id, Entity.name == "Enrollment").one()
    flipped = db.query(Relationship).filter(Relationship.source_entity_id == join.id).one()
    assert flipped.name == "Enrollment to Student"
    source_attribute = db.get(Attribute, flipped.source_attribute_id)
    assert source_attribute.name == "student_id"


def test_import_rejects_bad_file(owner, project, db):
    response = owner.post(
        "/api/data-models/import",
        data={"projectId": project["id"]},
        files={"file": ("model.json", "{broken", "application/json")},
    )
    assert response.status_code == 400
    assert db.query(DataModel).count() == 0


def test_import_requires_file(owner, project):
    response = owner.post("/api/data-models/import", data={"projectId": project["id"]})
    assert response.status_code == 400
