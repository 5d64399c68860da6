import pytest

from memory_mcp import graph
from memory_mcp.errors import NotFoundError, StorageError
from memory_mcp.models import GraphSnapshot, ObservationInput
from memory_mcp.search import search
from tests.conftest import count, entity, relation


def test_create_entities_is_idempotent_and_appends_observations(db):
    assert graph.create_entities(db, [entity("Alice", "Person", "likes tea")]) == 1
    assert graph.create_entities(db, [entity("Alice", "Person", "plays chess")]) == 1

    assert count(db, "entities") == 1
    assert graph.get_entity(db, "Alice")["observations"] == ["likes tea", "plays chess"]


def test_create_entities_counts_duplicates_in_one_batch(db):
    assert graph.create_entities(db, [entity("Alice"), entity("Alice")]) == 2
    assert count(db, "entities") == 1


def test_create_entity_returns_existing_id_for_duplicate(db):
    first = graph.create_entity(db, entity("Alice"))
    assert graph.create_entity(db, entity("Alice", "Other")) == first
    assert graph.get_entity(db, "Alice")["entityType"] == "Thing"


def test_entity_names_are_case_sensitive(db):
    graph.create_entities(db, [entity("alice"), entity("Alice")])
    assert count(db, "entities") == 2


def test_relation_triple_is_unique(db):
    graph.create_entities(db, [entity("A"), entity("B")])
    graph.create_relations(db, [relation("A", "B", "knows")])
    graph.create_relations(db, [relation("A", "B", "knows")])

    assert count(db, "relations") == 1
    graph.create_relations(db, [relation("A", "B", "works_with")])
    assert count(db, "relations") == 2


def test_create_relations_skips_missing_endpoint(db):
    graph.create_entities(db, [entity("Y")])

    assert graph.create_relations(db, [relation("X", "Y", "r")]) == 1
    assert count(db, "relations") == 0


def test_create_relation_raises_for_missing_endpoint(db):
    graph.create_entities(db, [entity("A")])
    with pytest.raises(NotFoundError):
        graph.create_relation(db, relation("A", "Nobody", "knows"))


def test_add_observations_skips_unknown_entities(db):
    graph.create_entities(db, [entity("A")])
    batches = [
        ObservationInput(entityName="A", contents=["x", "y"]),
        ObservationInput(entityName="Missing", contents=["z"]),
    ]

    assert graph.add_observations(db, batches) == 2
    assert graph.get_entity(db, "A")["observations"] == ["x", "y"]
    assert count(db, "observations") == 2


def test_append_observations_refreshes_updated_at(db):
    graph.create_entities(db, [entity("Beta"), entity("Alpha")])
    assert [e["name"] for e in graph.get_all_entities(db)] == ["Alpha", "Beta"]

    before = graph.get_entity(db, "Beta")["updatedAt"]
    graph.append_observations(db, "Beta", ["new fact"])

    assert graph.get_entity(db, "Beta")["updatedAt"] > before
    assert [e["name"] for e in graph.get_all_entities(db)] == ["Beta", "Alpha"]
    assert [e["name"] for e in graph.get_all_entities(db, order="name")] == ["Alpha", "Beta"]


def test_append_observations_missing_entity(db):
    with pytest.raises(NotFoundError):
        graph.append_observations(db, "Ghost", ["boo"])


def test_delete_entity_cascades(db):
    graph.create_entities(db, [entity("A", "T", "alpha secret"), entity("B", "T", "bravo"), entity("C")])
    graph.create_relations(db, [relation("A", "B", "r"), relation("C", "A", "r"), relation("B", "C", "r")])

    assert graph.delete_entities(db, ["A"]) == 1

    assert [(r["from"], r["to"]) for r in graph.get_relations(db)] == [("B", "C")]
    assert count(db, "observations") == 1
    assert search(db, "secret")["observations"] == []
    with pytest.raises(NotFoundError):
        graph.get_entity(db, "A")


def test_delete_missing_entity_is_noop(db):
    graph.create_entities(db, [entity("A", "T", "kept")])

    assert graph.delete_entities(db, ["Nope"]) == 1
    assert count(db, "entities") == 1
    assert count(db, "observations") == 1
    with pytest.raises(NotFoundError):
        graph.delete_entity(db, "Nope")


def test_delete_relations(db):
    graph.create_entities(db, [entity("A"), entity("B")])
    graph.create_relations(db, [relation("A", "B", "knows"), relation("B", "A", "knows")])

    removed = graph.delete_relations(db, [relation("A", "B", "knows"), relation("A", "Z", "knows"),
                                          relation("A", "B", "hates")])

    assert removed == 3
    assert [(r["from"], r["to"]) for r in graph.get_relations(db)] == [("B", "A")]


def test_delete_relation_reports_whether_removed(db):
    graph.create_entities(db, [entity("A"), entity("B")])
    graph.create_relation(db, relation("A", "B", "knows"))

    assert graph.delete_relation(db, relation("A", "B", "knows")) is True
    assert graph.delete_relation(db, relation("A", "B", "knows")) is False


def test_get_relations_resolves_names(db):
    graph.create_entities(db, [entity("A"), entity("B")])
    graph.create_relation(db, relation("A", "B", "knows"))

    (rel,) = graph.get_relations(db)
    assert rel["from"] == "A" and rel["to"] == "B" and rel["relationType"] == "knows"
    assert "id" in rel and "createdAt" in rel


def test_open_nodes_skips_unknown_names(db):
    graph.create_entities(db, [entity("A", "T", "one"), entity("B", "U")])

    nodes = graph.open_nodes(db, ["B", "Missing", "A"])

    assert nodes == [
        {"name": "B", "entityType": "U", "observations": []},
        {"name": "A", "entityType": "T", "observations": ["one"]},
    ]


def test_read_graph_after_bulk_import_round_trips(db):
    snapshot = GraphSnapshot.model_validate({
        "entities": [
            {"name": "Household Planner", "entityType": "Project", "observations": ["Added budget feature"]},
            {"name": "Ann", "entityType": "Person", "observations": ["owner", "likes lists"]},
            {"name": "Bob", "entityType": "Person", "observations": []},
        ],
        "relations": [
            {"from": "Ann", "to": "Household Planner", "relationType": "owns"},
            {"from": "Bob", "to": "Ann", "relationType": "knows"},
        ],
    })

    assert graph.bulk_import(db, snapshot) == {"entities": 3, "relations": 2}
    result = graph.read_graph(db)

    assert [e["name"] for e in result["entities"]] == ["Ann", "Bob", "Household Planner"]
    assert {(e["name"], e["entityType"], tuple(e["observations"])) for e in result["entities"]} == {
        ("Household Planner", "Project", ("Added budget feature",)),
        ("Ann", "Person", ("owner", "likes lists")),
        ("Bob", "Person", ()),
    }
    assert {(r["from"], r["to"], r["relationType"]) for r in result["relations"]} == {
        ("Ann", "Household Planner", "owns"),
        ("Bob", "Ann", "knows"),
    }


def test_bulk_import_reports_request_sizes(db):
    snapshot = GraphSnapshot.model_validate({
        "entities": [{"name": "A", "entityType": "T"}],
        "relations": [{"from": "A", "to": "Missing", "relationType": "r"}],
    })

    assert graph.bulk_import(db, snapshot) == {"entities": 1, "relations": 1}
    assert count(db, "relations") == 0


def test_storage_failure_is_reported_as_storage_error(db):
    db.close()
    with pytest.raises(StorageError):
        graph.get_all_entities(db)
    with pytest.raises(StorageError):
        graph.create_entities(db, [entity("A")])


@pytest.fixture
def reject_b(db):
    """Make the database refuse to insert an entity named B."""
    db.execute("CREATE TRIGGER reject_b BEFORE INSERT ON entities WHEN new.name = 'B' "
               "BEGIN SELECT RAISE(ABORT, 'rejected'); END")
    db.commit()
    return db


def test_storage_error_aborts_batch_keeping_earlier_items(reject_b):
    with pytest.raises(StorageError):
        graph.create_entities(reject_b, [entity("A", "T", "first"), entity("B"), entity("C")])

    names = [r["name"] for r in reject_b.execute("SELECT name FROM entities ORDER BY name")]
    assert names == ["A"]
    assert graph.get_entity(reject_b, "A")["observations"] == ["first"]


def test_bulk_import_stops_before_relations_after_storage_error(reject_b):
    snapshot = GraphSnapshot.model_validate({
        "entities": [{"name": "A", "entityType": "T"}, {"name": "B", "entityType": "T"}],
        "relations": [{"from": "A", "to": "A", "relationType": "self"}],
    })

    with pytest.raises(StorageError):
        graph.bulk_import(reject_b, snapshot)

    assert [e["name"] for e in graph.get_all_entities(reject_b)] == ["A"]
    assert count(reject_b, "relations") == 0
