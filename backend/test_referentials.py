"""Referential membership and deletion cascade."""

from sqlalchemy.exc import OperationalError

from modeler.db.models import Entity, Referential
from modeler.graph import referentials


def _create(client, data_model_id, **fields):
    body = {"dataModelId": data_model_id, "name": "Sales"}
    body.update(fields)
    response = client.post("/api/referentials", json=body)
    assert response.status_code == 201, response.text
    return response.json()["referential"]


def test_create_defaults_color_and_assigns_members(owner, data_model, make_entity, db):
    customer = make_entity("Customer")
    order = make_entity("Order")

    referential = _create(owner, data_model["id"], entityIds=[customer["id"], order["id"]])

    assert referential["color"] == "#6366F1"
    assert sorted(referential["entity_ids"]) == sorted([customer["id"], order["id"]])
    assert db.get(Entity, customer["id"]).referential_id == referential["id"]


def test_update_reassigns_membership(owner, data_model, make_entity, db):
    customer = make_entity("Customer")
    order = make_entity("Order")
    referential = _create(owner, data_model["id"], entityIds=[customer["id"]])

    response = owner.put(f"/api/referentials/{referential['id']}", json={"entityIds": [order["id"]]})
    assert response.status_code == 200
    assert response.json()["referential"]["entity_ids"] == [order["id"]]
    assert db.get(Entity, customer["id"]).referential_id is None


def test_members_must_share_the_model(owner, project, data_model):
    other = owner.post(f"/api/projects/{project['id']}/models", json={"name": "Other"}).json()["dataModel"]
    remote = owner.post("/api/entities", json={"name": "Remote", "dataModelId": other["id"]}).json()["entity"]

    response = owner.post(
        "/api/referentials",
        json={"dataModelId": data_model["id"], "name": "Sales", "entityIds": [remote["id"]]},
    )
    assert response.status_code == 400


def test_delete_detaches_every_member(owner, data_model, make_entity, db):
    """Deleting a referential nulls membership and never deletes entities."""
    members = [make_entity(name) for name in ("Customer", "Order", "Invoice")]
    outsider = make_entity("Supplier")
    referential = _create(owner, data_model["id"], entityIds=[e["id"] for e in members])

    response = owner.delete(f"/api/referentials/{referential['id']}")
    assert response.status_code == 200
    assert response.json()["detachedEntities"] == 3

    assert db.get(Referential, referential["id"]) is None
    assert db.query(Entity).count() == 4
    assert all(db.get(Entity, e["id"]).referential_id is None for e in members + [outsider])


def test_delete_aborts_when_detach_fails(owner, data_model, make_entity, db, monkeypatch):
    customer = make_entity("Customer")
    referential = _create(owner, data_model["id"], entityIds=[customer["id"]])

    def broken(session, referential_id):
        raise OperationalError("UPDATE entities", {}, Exception("disk I/O error"))

    monkeypatch.setattr(referentials, "member_entities", broken)

    response = owner.delete(f"/api/referentials/{referential['id']}")
    assert response.status_code == 500
    assert db.get(Referential, referential["id"]) is not None
    assert db.get(Entity, customer["id"]).referential_id == referential["id"]


def test_delete_missing_is_404(owner):
    assert owner.delete("/api/referentials/does-not-exist").status_code == 404
