"""
Child-View Relationship Synthesizer

RESPONSIBILITY: Derive the legacy `_childViews` relationship on read, and
turn `_childViews` edits back into `ownedAttributeIds` changes on write
ALLOWED INPUTS: Backend elements (read), legacy element dicts (write), a
batched element lookup
OUTPUTS: New backend elements with `_childViews` in `extra` (read), a legacy
write set (write)

BOUNDARY ENFORCEMENT:
=====================
- Inputs are never mutated; augmented copies are returned
- Every cross-reference resolution is ONE batched lookup, never one per id
- Entry order follows `ownedAttributeIds` exactly as declared

A child view is `{id: typeId, aggregation, propertyId}` built from the
element a document/view lists in its `ownedAttributeIds`.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Sequence

from ..contracts.base import DataFormatError
from ..contracts.entities import (
    BackendElement,
    DOCUMENT_STEREOTYPE_ID,
    VIEW_STEREOTYPE_ID,
)
from ..contracts.ids import ID_DELIMITER, build_id, local_id, parse_id
from ..formatting import to_legacy_element


logger = logging.getLogger(__name__)


# Batched element lookup by composite id
ElementLookup = Callable[[List[str]], Awaitable[List[BackendElement]]]
# Stored elements whose ownedAttributeIds contain any of the given local ids
OwnerLookup = Callable[[List[str]], Awaitable[List[BackendElement]]]


def is_view_like(extra: Dict[str, Any]) -> bool:
    """True for documents and views that declare owned attributes."""
    stereotypes = extra.get("_appliedStereotypeIds")
    if not stereotypes or not isinstance(extra.get("ownedAttributeIds"), list):
        return False
    return DOCUMENT_STEREOTYPE_ID in stereotypes or VIEW_STEREOTYPE_ID in stereotypes


def _is_local_id(value: Any) -> bool:
    return isinstance(value, str) and value != "" and ID_DELIMITER not in value


def _as_id_list(value: Any) -> List[str]:
    """Local ids in a single-or-list reference field; anything else is skipped."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [v for v in value if _is_local_id(v)]


# =============================================================================
# READ PATH
# =============================================================================

async def synthesize_child_views(
    lookup: ElementLookup,
    elements: Sequence[BackendElement]
) -> List[BackendElement]:
    """
    Return `elements` with `_childViews` added to every qualifying one.

    Owned attributes of all qualifying elements are resolved with a single
    call to `lookup`. Ids that resolve to nothing are skipped.
    """
    owned_by_index: Dict[int, List[str]] = {}
    wanted: List[str] = []
    for index, element in enumerate(elements):
        if not is_view_like(element.extra):
            continue
        org_id, project_id, branch_id = parse_id(element.id, 4)[:3]
        composites = [
            build_id(org_id, project_id, branch_id, owned)
            for owned in _as_id_list(element.extra["ownedAttributeIds"])
        ]
        owned_by_index[index] = composites
        wanted.extend(composites)

    if not owned_by_index:
        return list(elements)

    child_views: Dict[str, Dict[str, Any]] = {}
    if wanted:
        for found in await lookup(list(dict.fromkeys(wanted))):
            if found.id not in child_views:
                child_views[found.id] = {
                    "id": found.extra.get("typeId"),
                    "aggregation": found.extra.get("aggregation"),
                    "propertyId": local_id(found.id),
                }
        logger.debug("Resolved %d of %d owned attributes", len(child_views), len(wanted))

    result = list(elements)
    for index, composites in owned_by_index.items():
        element = result[index]
        entries = [dict(child_views[c]) for c in composites if c in child_views]
        result[index] = replace(element, extra={**element.extra, "_childViews": entries})
    return result


# =============================================================================
# WRITE PATH (reorder / relocation)
# =============================================================================

@dataclass
class ChildViewUpdate:
    """
    Legacy elements to create or replace: the request's elements in request
    order, followed by stored elements pulled in by relocations.
    """
    elements: List[Dict[str, Any]]
    relocated: Dict[str, str] = field(default_factory=dict)


def _property_ids(element: Dict[str, Any]) -> List[str]:
    child_views = element["_childViews"]
    if not isinstance(child_views, list):
        raise DataFormatError(f"_childViews of element {element.get('id')} must be an array.")
    ids = []
    for child_view in child_views:
        if not isinstance(child_view, dict) or not _is_local_id(child_view.get("propertyId")):
            raise DataFormatError("Every child view requires a propertyId that is a local element id.")
        ids.append(child_view["propertyId"])
    return ids


async def plan_child_view_update(
    lookup: ElementLookup,
    find_owners: OwnerLookup,
    org_id: str,
    project_id: str,
    branch_id: str,
    legacy_elements: Sequence[Dict[str, Any]]
) -> ChildViewUpdate:
    """
    Expand `_childViews` edits into the full set of element writes.

    An element posted with `_childViews` is a partial update: its stored
    fields are kept and its `ownedAttributeIds` become the declared
    propertyIds in order. A propertyId that moved to another element is
    removed from its previous owner, and the owned end reached through
    property -> associationId -> ownedEndIds gets `typeId` set to the new
    owner.
    """
    scope = (org_id, project_id, branch_id)
    with_views = [e for e in legacy_elements if "_childViews" in e]
    if not with_views:
        return ChildViewUpdate(elements=[dict(e) for e in legacy_elements])

    stored = {
        local_id(e.id): e
        for e in await lookup([build_id(*scope, e["id"]) for e in with_views])
    }

    write_set: List[Dict[str, Any]] = []
    by_id: Dict[str, Dict[str, Any]] = {}
    new_owner: Dict[str, str] = {}
    for element in legacy_elements:
        record = dict(element)
        if "_childViews" in element:
            property_ids = _property_ids(element)
            base = to_legacy_element(stored[element["id"]]) if element["id"] in stored else {}
            base.update(record)
            record = base
            record["ownedAttributeIds"] = property_ids
            for property_id in property_ids:
                new_owner[property_id] = element["id"]
        write_set.append(record)
        by_id[record["id"]] = record

    if not new_owner:
        return ChildViewUpdate(elements=write_set)

    # Previous owners lose the ids that moved away from them
    moved: Dict[str, str] = {}
    for owner in await find_owners(list(new_owner)):
        owner_id = local_id(owner.id)
        owned = _as_id_list(owner.extra.get("ownedAttributeIds"))
        lost = [p for p in owned if new_owner.get(p, owner_id) != owner_id]
        if not lost:
            continue
        record = by_id.get(owner_id)
        if record is None:
            record = to_legacy_element(owner)
            write_set.append(record)
            by_id[owner_id] = record
        current = record.get("ownedAttributeIds", owned)
        record["ownedAttributeIds"] = [p for p in _as_id_list(current) if p not in lost]
        for property_id in lost:
            moved[property_id] = new_owner[property_id]

    if moved:
        await _retarget_owned_ends(lookup, scope, moved, write_set, by_id)
        logger.info("Relocated %d child view(s) in %s", len(moved), ":".join(scope))

    return ChildViewUpdate(elements=write_set, relocated=moved)


async def _retarget_owned_ends(
    lookup: ElementLookup,
    scope,
    moved: Dict[str, str],
    write_set: List[Dict[str, Any]],
    by_id: Dict[str, Dict[str, Any]]
):
    # property -> association
    association_owner: Dict[str, str] = {}
    for prop in await lookup([build_id(*scope, p) for p in moved]):
        association = prop.extra.get("associationId")
        if _is_local_id(association):
            association_owner.setdefault(association, moved[local_id(prop.id)])
    if not association_owner:
        return

    # association -> owned ends
    end_owner: Dict[str, str] = {}
    for association in await lookup([build_id(*scope, a) for a in association_owner]):
        for end_id in _as_id_list(association.extra.get("ownedEndIds")):
            end_owner.setdefault(end_id, association_owner[local_id(association.id)])
    if not end_owner:
        return

    for end in await lookup([build_id(*scope, e) for e in end_owner]):
        end_id = local_id(end.id)
        record = by_id.get(end_id)
        if record is None:
            record = to_legacy_element(end)
            write_set.append(record)
            by_id[end_id] = record
        record["typeId"] = end_owner[end_id]


__all__ = [
    'ElementLookup', 'OwnerLookup', 'ChildViewUpdate',
    'is_view_like', 'synthesize_child_views', 'plan_child_view_update',
]
