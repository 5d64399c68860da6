"""
Graph repository: entities, observations and relations over SQLite.

Every function takes an open connection from ``db.get_db()``. Single-item
writes run in their own transaction, so a batch that fails midway keeps the
items already written. Batch variants skip items whose entities are missing
and stop at the first StorageError.
"""

import logging
import time

from memory_mcp.db import storage_errors
from memory_mcp.errors import NotFoundError
from memory_mcp.models import (
    entity_row,
    relation_row,
    snapshot_entity,
    snapshot_relation,
)

logger = logging.getLogger(__name__)

_RELATIONS_SQL = """
    SELECT r.id, r.relation_type, r.created_at, e1.name AS from_name, e2.name AS to_name
    FROM relations r
    JOIN entities e1 ON r.from_entity_id = e1.id
    JOIN entities e2 ON r.to_entity_id = e2.id
    ORDER BY r.id
"""

def _now():
    return time.time()

def find_entity_id(db, name):
    row = db.execute("SELECT id FROM entities WHERE name=?", (name,)).fetchone()
    return row["id"] if row else None

def _require_entity_id(db, name):
    entity_id = find_entity_id(db, name)
    if entity_id is None:
        raise NotFoundError(f"Entity not found: {name}")
    return entity_id

def _append(db, entity_id, contents):
    now = _now()
    db.executemany("INSERT INTO observations (entity_id, content, created_at) VALUES (?,?,?)",
                   [(entity_id, c, now) for c in contents])
    db.execute("UPDATE entities SET updated_at=? WHERE id=?", (now, entity_id))

def _observations(db, entity_id):
    rows = db.execute("SELECT content FROM observations WHERE entity_id=? ORDER BY id",
                      (entity_id,)).fetchall()
    return [r["content"] for r in rows]

# --- Entities ---

def create_entity(db, entity):
    """Get-or-create ``entity`` by name and append its observations. Returns the id."""
    with storage_errors(), db:
        now = _now()
        cur = db.execute(
            "INSERT OR IGNORE INTO entities (name, entity_type, created_at, updated_at) VALUES (?,?,?,?)",
            (entity.name, entity.entity_type, now, now))
        entity_id = cur.lastrowid if cur.rowcount else find_entity_id(db, entity.name)
        if entity.observations:
            _append(db, entity_id, entity.observations)
    return entity_id

def create_entities(db, entities):
    for entity in entities:
        create_entity(db, entity)
    logger.info("Processed %d entities", len(entities))
    return len(entities)

def append_observations(db, name, contents):
    with storage_errors(), db:
        entity_id = _require_entity_id(db, name)
        if contents:
            _append(db, entity_id, contents)
    return len(contents)

def add_observations(db, batches):
    """Append observation batches; batches for unknown entities are skipped."""
    added = 0
    for batch in batches:
        try:
            added += append_observations(db, batch.entity_name, batch.contents)
        except NotFoundError:
            logger.debug("Skipping observations for missing entity %r", batch.entity_name)
    logger.info("Added %d observations", added)
    return added

def delete_entity(db, name):
    """Remove an entity, its observations and every relation touching it."""
    with storage_errors(), db:
        entity_id = _require_entity_id(db, name)
        db.execute("DELETE FROM relations WHERE from_entity_id=? OR to_entity_id=?",
                   (entity_id, entity_id))
        db.execute("DELETE FROM observations WHERE entity_id=?", (entity_id,))
        db.execute("DELETE FROM entities WHERE id=?", (entity_id,))

def delete_entities(db, names):
    for name in names:
        try:
            delete_entity(db, name)
        except NotFoundError:
            logger.debug("Skipping delete of missing entity %r", name)
    logger.info("Deleted up to %d entities", len(names))
    return len(names)

def get_entity(db, name):
    with storage_errors():
        row = db.execute("SELECT * FROM entities WHERE name=?", (name,)).fetchone()
        if not row:
            raise NotFoundError(f"Entity not found: {name}")
        return {**entity_row(row), "observations": _observations(db, row["id"])}

def get_all_entities(db, order="updated"):
    """All entities without observations. order: 'updated' (newest first) or 'name'."""
    clause = "name" if order == "name" else "updated_at DESC, id DESC"
    with storage_errors():
        return [entity_row(r) for r in db.execute(f"SELECT * FROM entities ORDER BY {clause}")]

def open_nodes(db, names):
    """Snapshot form of each named entity that exists, in request order."""
    found = []
    with storage_errors():
        for name in names:
            row = db.execute("SELECT * FROM entities WHERE name=?", (name,)).fetchone()
            if row:
                found.append(snapshot_entity(row, _observations(db, row["id"])))
    return found

# --- Relations ---

def create_relation(db, rel):
    """Insert-or-ignore one relation. Returns True if a new row was written."""
    with storage_errors(), db:
        from_id = _require_entity_id(db, rel.from_)
        to_id = _require_entity_id(db, rel.to)
        cur = db.execute(
            "INSERT OR IGNORE INTO relations (from_entity_id, to_entity_id, relation_type, created_at) VALUES (?,?,?,?)",
            (from_id, to_id, rel.relation_type, _now()))
    return cur.rowcount > 0

def create_relations(db, relations):
    for rel in relations:
        try:
            create_relation(db, rel)
        except NotFoundError:
            logger.debug("Skipping relation %s -[%s]-> %s: missing endpoint",
                         rel.from_, rel.relation_type, rel.to)
    logger.info("Processed %d relations", len(relations))
    return len(relations)

def delete_relation(db, rel):
    """Delete one relation triple. Returns True if a row was removed."""
    with storage_errors(), db:
        from_id = _require_entity_id(db, rel.from_)
        to_id = _require_entity_id(db, rel.to)
        cur = db.execute(
            "DELETE FROM relations WHERE from_entity_id=? AND to_entity_id=? AND relation_type=?",
            (from_id, to_id, rel.relation_type))
    return cur.rowcount > 0

def delete_relations(db, relations):
    for rel in relations:
        try:
            delete_relation(db, rel)
        except NotFoundError:
            logger.debug("Skipping delete of relation with missing endpoint: %s -> %s",
                         rel.from_, rel.to)
    return len(relations)

def get_relations(db):
    with storage_errors():
        return [relation_row(r) for r in db.execute(_RELATIONS_SQL)]

# --- Snapshot ---

def read_graph(db):
    """Whole graph by name: entities alphabetical with observations, plus relations."""
    entities = get_all_entities(db, order="name")
    with storage_errors():
        obs = {}
        for r in db.execute("SELECT entity_id, content FROM observations ORDER BY id"):
            obs.setdefault(r["entity_id"], []).append(r["content"])
        relations = [snapshot_relation(r) for r in db.execute(_RELATIONS_SQL)]
    return {"entities": [{"name": e["name"], "entityType": e["entityType"], "observations": obs.get(e["id"], [])}
                         for e in entities],
            "relations": relations}

def bulk_import(db, snapshot):
    """Entities first, then relations. Not atomic across items."""
    counts = {"entities": create_entities(db, snapshot.entities),
              "relations": create_relations(db, snapshot.relations)}
    logger.info("Imported %(entities)d entities and %(relations)d relations", counts)
    return counts
