"""
Entity Formatters

RESPONSIBILITY: Translate between legacy wire records and backend entities
ALLOWED INPUTS: Legacy JSON dicts (inbound), backend entities (outbound)
OUTPUTS: Backend create/replace payload dicts, legacy JSON dicts

WHAT THIS LAYER MUST NOT DO:
============================
- Perform I/O or call the backend
- Validate field values (shape validation belongs to the request handlers)
- Mutate its inputs

ROUND-TRIP GUARANTEE:
=====================
Every key not listed in KNOWN_FIELDS for the entity kind is moved into the
`extra` bucket on the way in and merged back to the top level on the way
out, so unknown fields survive a legacy -> backend -> legacy trip unchanged.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..contracts.base import ABSENT, pick
from ..contracts.entities import (
    BackendArtifact,
    BackendBranch,
    BackendElement,
    BackendEntity,
    BackendOrg,
    BackendProject,
    DEFAULT_BRANCH_ID,
    EntityKind,
    KNOWN_FIELDS,
)
from ..contracts.ids import local_id


# Fields the legacy API synthesizes on read; never persisted.
SYNTHESIZED_ELEMENT_FIELDS = ("_childViews",)

# Output-only fields derived from audit data and scope. Clients echo them
# back on update; they are dropped rather than stored in `extra`.
DERIVED_FIELDS = (
    "_creator", "_created", "_modifier", "_modified", "_editable",
    "_projectId", "_refId",
)


# =============================================================================
# INBOUND (legacy -> backend)
# =============================================================================

def split_known_fields(record: Dict[str, Any], kind: EntityKind) -> Dict[str, Any]:
    """
    Copy the known fields of `record` and move everything else to `extra`.

    Output-only DERIVED_FIELDS are dropped. Returns a new payload dict;
    `record` is left untouched.
    """
    known = KNOWN_FIELDS[kind]
    payload: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in record.items():
        if key in DERIVED_FIELDS:
            continue
        if key in known:
            payload[key] = value
        else:
            extra[key] = value
    payload["extra"] = extra
    return payload


def to_backend_org(org: Dict[str, Any]) -> Dict[str, Any]:
    return split_known_fields(org, EntityKind.ORG)


def to_backend_project(project: Dict[str, Any]) -> Dict[str, Any]:
    return split_known_fields(project, EntityKind.PROJECT)


def to_backend_branch(ref: Dict[str, Any]) -> Dict[str, Any]:
    """Refs other than master branch off `parentRefId`."""
    payload = split_known_fields(ref, EntityKind.BRANCH)
    if payload.get("id") != DEFAULT_BRANCH_ID and ref.get("parentRefId") is not None:
        payload["source"] = ref["parentRefId"]
    return payload


def to_backend_element(element: Dict[str, Any]) -> Dict[str, Any]:
    """
    Format one legacy element for create/replace.

    - `ownerId` becomes `parent`; an explicit null owner is kept as an
      explicit `parent: None` so the backend clears the parent instead of
      defaulting it.
    - An explicit null `target` is stored in `extra` (the backend would drop
      a null relationship end); an absent target stays absent.
    - Missing `name` / `documentation` are recorded as explicit nulls in
      `extra`, which tells the outbound formatter to omit them.
    """
    record = {
        key: value for key, value in element.items()
        if key not in SYNTHESIZED_ELEMENT_FIELDS and key != "ownerId"
    }
    owner = pick(element, "ownerId")
    if owner is not ABSENT:
        record["parent"] = owner

    payload = split_known_fields(record, EntityKind.ELEMENT)
    extra = payload["extra"]

    if "target" in payload and payload["target"] is None:
        del payload["target"]
        extra["target"] = None

    if "name" not in element:
        extra["name"] = None
    if "documentation" not in element:
        extra["documentation"] = None

    return payload


def to_backend_elements(elements: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [to_backend_element(e) for e in elements]


def to_backend_artifact(artifact: Dict[str, Any]) -> Dict[str, Any]:
    return split_known_fields(artifact, EntityKind.ARTIFACT)


# =============================================================================
# OUTBOUND (backend -> legacy)
# =============================================================================

def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _provenance(entity: BackendEntity) -> Dict[str, Any]:
    return {
        "_creator": entity.created_by,
        "_created": _timestamp(entity.created_on),
        "_modifier": entity.last_modified_by,
        "_modified": _timestamp(entity.updated_on),
        "_editable": True,
    }


def _merge_extra(record: Dict[str, Any], entity: BackendEntity) -> Dict[str, Any]:
    record.update(entity.extra)
    return record


def to_legacy_org(org: BackendOrg) -> Dict[str, Any]:
    record = {"id": local_id(org.id), "name": org.name}
    record.update(_provenance(org))
    return _merge_extra(record, org)


def to_legacy_project(project: BackendProject) -> Dict[str, Any]:
    project_id = local_id(project.id)
    record = {
        "type": "Project",
        "id": project_id,
        "name": project.name,
        "orgId": project.org,
        "_projectId": project_id,
        "_refId": DEFAULT_BRANCH_ID,
        "categoryId": None,
        "_mounts": [],
    }
    record.update(_provenance(project))
    return _merge_extra(record, project)


def to_legacy_ref(branch: BackendBranch) -> Dict[str, Any]:
    record = {
        "id": local_id(branch.id),
        "name": branch.name,
        "type": "tag" if branch.tag else "Branch",
        "parentRefId": local_id(branch.source) if branch.source else DEFAULT_BRANCH_ID,
        "_projectId": local_id(branch.project),
    }
    record.update(_provenance(branch))
    return _merge_extra(record, branch)


def to_legacy_element(element: BackendElement) -> Dict[str, Any]:
    record = {
        "id": local_id(element.id),
        "name": element.name,
        "documentation": element.documentation,
        "type": element.type,
        "ownerId": None if element.parent is None else local_id(element.parent),
        "_projectId": local_id(element.project),
        "_refId": local_id(element.branch),
    }
    if element.source is not None:
        record["source"] = local_id(element.source)
    if element.target is not None:
        record["target"] = local_id(element.target)
    if element.artifact is not None:
        record["artifact"] = local_id(element.artifact)
    record.update(_provenance(element))
    _merge_extra(record, element)

    # An explicit null means "the client never set this"; do not echo it.
    for key in ("name", "documentation"):
        if record.get(key, ABSENT) is None:
            del record[key]
    return record


def to_legacy_artifact(artifact: BackendArtifact) -> Dict[str, Any]:
    project_id = local_id(artifact.project)
    ref_id = local_id(artifact.branch)
    artifact_id = local_id(artifact.id)
    record = {
        "id": artifact_id,
        "location": artifact.location,
        "filename": artifact.filename,
        "artifactLocation": f"/projects/{project_id}/refs/{ref_id}/artifacts/blob/{artifact_id}",
        "_projectId": project_id,
        "_refId": ref_id,
    }
    record.update(_provenance(artifact))
    return _merge_extra(record, artifact)


__all__ = [
    'SYNTHESIZED_ELEMENT_FIELDS', 'DERIVED_FIELDS', 'split_known_fields',
    'to_backend_org', 'to_backend_project', 'to_backend_branch',
    'to_backend_element', 'to_backend_elements', 'to_backend_artifact',
    'to_legacy_org', 'to_legacy_project', 'to_legacy_ref',
    'to_legacy_element', 'to_legacy_artifact',
]
