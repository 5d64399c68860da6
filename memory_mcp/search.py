"""Search over entity metadata (substring) and observation text (FTS5)."""

from memory_mcp.db import storage_errors
from memory_mcp.errors import ValidationError
from memory_mcp.models import entity_row

FTS_LIMIT = 20

def _like_pattern(query):
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

def _fts_query(query):
    # Quote every token so FTS5 operators in user input are matched literally.
    return " ".join('"' + token.replace('"', '""') + '"' for token in query.split())

def search(db, query):
    """Returns {entities, observations}. The two lists are not deduplicated against each other.

    The substring match folds case for ASCII only (SQLite LIKE), so "zoë" does not find "ZOË".
    """
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query required")
    p = _like_pattern(query)
    with storage_errors():
        entities = db.execute(
            "SELECT * FROM entities WHERE name LIKE ? ESCAPE '\\' OR entity_type LIKE ? ESCAPE '\\' ORDER BY name",
            (p, p)).fetchall()
        hits = db.execute("""
            SELECT e.*, o.content AS matched_observation
            FROM observations_fts
            JOIN observations o ON observations_fts.rowid = o.id
            JOIN entities e ON o.entity_id = e.id
            WHERE observations_fts MATCH ?
            ORDER BY observations_fts.rank
            LIMIT ?
        """, (_fts_query(query), FTS_LIMIT)).fetchall()
    return {"entities": [entity_row(r) for r in entities],
            "observations": [{**entity_row(r), "matchedObservation": r["matched_observation"]}
                             for r in hits]}
