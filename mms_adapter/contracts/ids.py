"""
Composite Identifier Codec

The backend addresses every entity with a delimiter-joined id whose segments
follow the containment hierarchy:

    org                         -> "org"
    org, project                -> "org:project"
    org, project, branch        -> "org:project:branch"
    org, project, branch, elem  -> "org:project:branch:elem"

Legacy clients only ever see the last ("local") segment.
"""

from __future__ import annotations
from typing import List, Optional

from .base import MalformedIdentifierError


ID_DELIMITER = ":"


def build_id(
    org_id: str,
    project_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    element_id: Optional[str] = None
) -> str:
    """
    Join the given segments in hierarchy order.

    Trailing segments may be omitted; a gap (e.g. an element id without a
    branch id) is rejected, as is any segment containing the delimiter.
    """
    segments = [org_id, project_id, branch_id, element_id]
    while segments and segments[-1] is None:
        segments.pop()

    if not segments:
        raise MalformedIdentifierError("Cannot build an identifier without an org id.")

    for segment in segments:
        if segment is None:
            raise MalformedIdentifierError(
                f"Identifier segments must be contiguous, got {segments!r}."
            )
        if not isinstance(segment, str) or not segment:
            raise MalformedIdentifierError(f"Invalid identifier segment {segment!r}.")
        if ID_DELIMITER in segment:
            raise MalformedIdentifierError(
                f"Identifier segment {segment!r} contains the reserved "
                f"delimiter '{ID_DELIMITER}'."
            )

    return ID_DELIMITER.join(segments)


def parse_id(composite_id: str, min_segments: int = 1) -> List[str]:
    """Split a composite id into its ordered segments."""
    if not isinstance(composite_id, str) or not composite_id:
        raise MalformedIdentifierError(f"Invalid identifier {composite_id!r}.")

    segments = composite_id.split(ID_DELIMITER)
    if len(segments) < min_segments:
        raise MalformedIdentifierError(
            f"Identifier {composite_id!r} has {len(segments)} segment(s), "
            f"expected at least {min_segments}."
        )
    return segments


def local_id(composite_id: str) -> str:
    """The last segment of a composite id, i.e. the id legacy clients use."""
    return parse_id(composite_id).pop()
