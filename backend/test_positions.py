"""Canvas position hints for new entities."""

from types import SimpleNamespace

import pytest

from modeler.graph.positions import Position, match_entity, resolve_position_hint


def _entities(*names):
    return [SimpleNamespace(name=name) for name in names]


@pytest.mark.parametrize(
    "reference,expected",
    [
        ("customer", "Customer"),
        ("'Customer'", "Customer"),
        ("order", "Order Line"),
        ("the shipping address", "Shipping Address"),
        ("xy", None),
        ("", None),
    ],
)
def test_match_entity(reference, expected):
    entities = _entities("Customer", "Order Line", "Shipping Address")
    match = match_entity(entities, reference)
    assert (match.name if match else None) == expected


def test_exact_match_beats_substring():
    entities = _entities("Customer Address", "Customer")
    assert match_entity(entities, "customer").name == "Customer"


def test_position_offset():
    assert Position(10, 20).offset() == Position(260, 20)


def test_hint_falls_back_to_first_entity(db, make_entity, data_model):
    make_entity("Customer", positionX=100, positionY=50)
    make_entity("Order", positionX=400, positionY=50)

    assert resolve_position_hint(db, data_model["id"], reference_entity_name="order") == Position(400, 50)
    assert resolve_position_hint(db, data_model["id"], reference_entity_name="zzz") == Position(100, 50)
    assert resolve_position_hint(db, data_model["id"]) is None


def test_hint_for_empty_model(db, data_model):
    assert resolve_position_hint(db, data_model["id"], reference_entity_name="anything") is None
