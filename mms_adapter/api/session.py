"""
Session plumbing: ticket issuance and implicit org resolution.

Legacy routes below /projects carry no org id; the org is recovered from the
project id, which must be unique across orgs.
"""

from __future__ import annotations
import logging
import secrets
from typing import Dict, Optional

from ..contracts.base import AuthenticationError, NotFoundError, ServerError
from ..contracts.ids import ID_DELIMITER, parse_id
from ..storage import ModelBackend


logger = logging.getLogger(__name__)


class SessionStore:
    """
    In-process ticket store. A ticket is an opaque url-safe token mapped to
    the username it was issued for.
    """

    def __init__(self, users: Optional[Dict[str, str]] = None):
        self._users: Dict[str, str] = dict(users or {})
        self._tickets: Dict[str, str] = {}

    def authenticate(self, username: str, password: str) -> str:
        """Check credentials and issue a new ticket."""
        expected = self._users.get(username)
        if expected is None or not secrets.compare_digest(expected, password):
            raise AuthenticationError("Invalid username or password.")
        ticket = secrets.token_urlsafe(32)
        self._tickets[ticket] = username
        logger.info("Issued ticket for %s", username)
        return ticket

    def resolve(self, ticket: str) -> str:
        """Username for a ticket, or AuthenticationError."""
        username = self._tickets.get(ticket)
        if username is None:
            raise AuthenticationError("Invalid or expired ticket.")
        return username


async def resolve_org_id(backend: ModelBackend, user: str, project_id: str) -> str:
    """
    Find the org that owns `project_id`.

    Raises NotFoundError when no org has such a project and ServerError when
    several do.
    """
    suffix = f"{ID_DELIMITER}{project_id}"
    projects = await backend.projects.find(user)
    matching = [p.id for p in projects if p.id.endswith(suffix)]

    if len(matching) > 1:
        raise ServerError(
            "Multiple projects with the same ID exist. Please contact your "
            "local administrator."
        )
    if not matching:
        raise NotFoundError(f"The project {project_id} was not found.")
    return parse_id(matching[0], 2)[0]


__all__ = ['SessionStore', 'resolve_org_id']
