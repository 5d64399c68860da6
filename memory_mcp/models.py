"""Request models and JSON renderers for graph rows."""

from typing import List

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from memory_mcp.errors import ValidationError

# --- Inputs ---

class _Input(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EntityInput(_Input):
    name: str = Field(min_length=1)
    entity_type: str = Field(alias="entityType")
    observations: List[str] = Field(default_factory=list)


class RelationInput(_Input):
    from_: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    relation_type: str = Field(alias="relationType")


class ObservationInput(_Input):
    entity_name: str = Field(alias="entityName")
    contents: List[str]


class GraphSnapshot(_Input):
    entities: List[EntityInput] = Field(default_factory=list)
    relations: List[RelationInput] = Field(default_factory=list)


class ContentsInput(_Input):
    contents: List[str]

# --- Tool arguments ---

class CreateEntitiesArgs(_Input):
    entities: List[EntityInput]


class CreateRelationsArgs(_Input):
    relations: List[RelationInput]


class AddObservationsArgs(_Input):
    observations: List[ObservationInput]


class ReadGraphArgs(_Input):
    pass


class SearchNodesArgs(_Input):
    query: str


class OpenNodesArgs(_Input):
    names: List[str]


class DeleteEntitiesArgs(_Input):
    entity_names: List[str] = Field(alias="entityNames")


class DeleteRelationsArgs(_Input):
    relations: List[RelationInput]


def parse(model, data):
    """Validate ``data`` against ``model``, raising ValidationError on failure."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(problems) from e

# --- Renderers ---

def entity_row(r):
    return {"id": r["id"], "name": r["name"], "entityType": r["entity_type"],
            "createdAt": r["created_at"], "updatedAt": r["updated_at"]}

def snapshot_entity(r, observations):
    return {"name": r["name"], "entityType": r["entity_type"], "observations": observations}

def relation_row(r):
    return {"id": r["id"], "from": r["from_name"], "to": r["to_name"],
            "relationType": r["relation_type"], "createdAt": r["created_at"]}

def snapshot_relation(r):
    return {"from": r["from_name"], "to": r["to_name"], "relationType": r["relation_type"]}
