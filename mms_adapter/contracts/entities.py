"""
Backend Entity Contracts

Typed views of the entities owned by the model-management backend.

Every entity carries a free-form `extra` bucket. Legacy clients send many
fields the backend has no column for; those travel in `extra` and are merged
back to top-level fields on the way out. Which fields are "known" (and thus
NOT routed through `extra`) is fixed per entity kind in KNOWN_FIELDS.

All types here are frozen. Layers that need a changed entity build a new one
with dataclasses.replace().
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# =============================================================================
# ENTITY KINDS & KNOWN FIELDS
# =============================================================================

class EntityKind(Enum):
    ORG = "org"
    PROJECT = "project"
    BRANCH = "branch"
    ELEMENT = "element"
    ARTIFACT = "artifact"


# Legacy-side field names copied verbatim into the backend payload.
# Any other key is moved into the `extra` bucket.
KNOWN_FIELDS: Dict[EntityKind, Tuple[str, ...]] = {
    EntityKind.ORG: ("id", "name"),
    EntityKind.PROJECT: ("id", "name"),
    EntityKind.BRANCH: ("id", "name", "source"),
    EntityKind.ELEMENT: (
        "id", "name", "documentation", "type", "parent",
        "source", "target", "artifact",
    ),
    EntityKind.ARTIFACT: ("id", "filename", "location"),
}


# SysML stereotype ids applied by the modelling tool to documents and views
DOCUMENT_STEREOTYPE_ID = "_17_0_2_3_87b0275_1371477871400_792964_43374"
VIEW_STEREOTYPE_ID = "_18_0beta_9150291_1392290067481_33752_4359"

ROOT_ELEMENT_ID = "model"
DEFAULT_BRANCH_ID = "master"


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass(frozen=True)
class BackendEntity:
    """Fields common to every backend entity."""
    id: str
    extra: Dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    created_on: Optional[datetime] = None
    last_modified_by: Optional[str] = None
    updated_on: Optional[datetime] = None


@dataclass(frozen=True)
class BackendOrg(BackendEntity):
    name: str = ""


@dataclass(frozen=True)
class BackendProject(BackendEntity):
    """`id` is "org:project"; `org` is the owning org id."""
    org: str = ""
    name: str = ""


@dataclass(frozen=True)
class BackendBranch(BackendEntity):
    """`source` is the composite id of the branch this one was created from."""
    project: str = ""
    name: str = ""
    source: Optional[str] = None
    tag: bool = False


@dataclass(frozen=True)
class BackendElement(BackendEntity):
    """
    `parent`, `source` and `target` hold composite element ids or None.
    `project` and `branch` hold the composite ids of the containing scope.
    """
    project: str = ""
    branch: str = ""
    name: Optional[str] = None
    documentation: Optional[str] = None
    type: Optional[str] = None
    parent: Optional[str] = None
    source: Optional[str] = None
    target: Optional[str] = None
    artifact: Optional[str] = None


@dataclass(frozen=True)
class BackendArtifact(BackendEntity):
    project: str = ""
    branch: str = ""
    filename: Optional[str] = None
    location: Optional[str] = None
    strategy: str = "memory"


def to_document(entity: BackendEntity) -> Dict[str, Any]:
    """
    Flatten an entity into the document shape filter predicates address:
    `_id` for the composite id, audit fields under their backend names and
    the custom bucket under `extra`.
    """
    doc: Dict[str, Any] = {
        "_id": entity.id,
        "extra": entity.extra,
        "createdBy": entity.created_by,
        "createdOn": entity.created_on,
        "lastModifiedBy": entity.last_modified_by,
        "updatedOn": entity.updated_on,
    }
    for name in entity.__dataclass_fields__:
        if name not in ("id", "extra", "created_by", "created_on",
                        "last_modified_by", "updated_on"):
            doc[name] = getattr(entity, name)
    return doc
