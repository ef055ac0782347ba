"""
Integration Test Fixtures

Explicit, deterministic fixtures: one org, one project, the master branch
and a small model with a document, a view and their owned attributes.
"""

import asyncio
from typing import Any, Dict, List

from mms_adapter.config import AdapterConfig, PdfConfig
from mms_adapter.contracts import DOCUMENT_STEREOTYPE_ID, VIEW_STEREOTYPE_ID
from mms_adapter.formatting import to_backend_elements
from mms_adapter.storage import InMemoryModelBackend


# =============================================================================
# SCOPE
# =============================================================================

USER = "admin"
PASSWORD = "admin-password"
ORG_ID = "org"
PROJECT_ID = "proj"
BRANCH_ID = "master"
SCOPE = (ORG_ID, PROJECT_ID, BRANCH_ID)


def run(coro):
    """Drive a coroutine to completion."""
    return asyncio.run(coro)


def make_config(tmp_dir: str = ".") -> AdapterConfig:
    return AdapterConfig(
        users={USER: PASSWORD},
        cors_origins=["*"],
        public_url="http://mms.test",
        pdf=PdfConfig(exec="prince", working_dir=tmp_dir),
    )


# =============================================================================
# ELEMENT FIXTURES
# =============================================================================

def create_model_elements() -> List[Dict[str, Any]]:
    """
    elem_001: document owning oa_003, oa_004, oa_005
    elem_002: view with no owned attributes yet
    oa_003 -> association elem_006 -> owned end elem_007 (typeId elem_001)
    elem_008: group
    """
    return [
        {
            "id": "elem_001",
            "name": "Document",
            "ownerId": "model",
            "_appliedStereotypeIds": [DOCUMENT_STEREOTYPE_ID],
            "ownedAttributeIds": ["oa_003", "oa_004", "oa_005"],
        },
        {
            "id": "elem_002",
            "name": "View",
            "ownerId": "model",
            "_appliedStereotypeIds": VIEW_STEREOTYPE_ID,
        },
        {
            "id": "oa_003",
            "ownerId": "model",
            "typeId": "type_3",
            "aggregation": "composite",
            "associationId": "elem_006",
        },
        {"id": "oa_004", "ownerId": "model", "typeId": "type_4", "aggregation": "none"},
        {"id": "oa_005", "ownerId": "model", "typeId": "type_5", "aggregation": "shared"},
        {"id": "elem_006", "ownerId": "model", "ownedEndIds": "elem_007"},
        {"id": "elem_007", "ownerId": "model", "typeId": "elem_001"},
        {"id": "elem_008", "name": "Group", "ownerId": "model", "_isGroup": "true"},
    ]


async def seed_backend(backend: InMemoryModelBackend = None, elements=None) -> InMemoryModelBackend:
    """Org, project (with master branch and model root) and the model elements."""
    backend = backend or InMemoryModelBackend()
    await backend.orgs.create(USER, [{"id": ORG_ID, "name": "Test Org", "extra": {}}])
    await backend.projects.create(USER, ORG_ID, [{"id": PROJECT_ID, "name": "Test Project", "extra": {}}])
    records = create_model_elements() if elements is None else elements
    if records:
        await backend.elements.create_or_replace(USER, *SCOPE, to_backend_elements(records))
    return backend


def create_seeded_backend(elements=None) -> InMemoryModelBackend:
    return run(seed_backend(elements=elements))
