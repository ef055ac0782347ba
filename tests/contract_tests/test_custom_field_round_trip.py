"""
Property Tests for Entity Formatters
Unknown legacy fields must survive legacy -> backend -> legacy unchanged.
"""

from hypothesis import given, strategies as st
from hypothesis.strategies import composite

from mms_adapter.contracts import (
    BackendArtifact,
    BackendBranch,
    BackendElement,
    BackendOrg,
    BackendProject,
)
from mms_adapter.formatting import (
    to_backend_artifact,
    to_backend_branch,
    to_backend_element,
    to_backend_org,
    to_backend_project,
    to_legacy_artifact,
    to_legacy_element,
    to_legacy_org,
    to_legacy_project,
    to_legacy_ref,
)

# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=10),
    lambda children: st.lists(children, max_size=3),
    max_leaves=5,
)


@composite
def extra_fields(draw):
    """Custom fields, none of which collide with a known or derived field."""
    keys = draw(st.lists(st.text(min_size=1, max_size=8), max_size=5, unique=True))
    return {"x_" + key: draw(json_values) for key in keys}


local_ids = st.text(alphabet="abcdefghij0123456789_", min_size=1, max_size=10)


def _assert_extras_survive(legacy, extras):
    for key, value in extras.items():
        assert legacy[key] == value


# =============================================================================
# PROPERTIES
# =============================================================================

@given(local_ids, extra_fields())
def test_org_round_trip(org_id, extras):
    payload = to_backend_org({"id": org_id, "name": "Org", **extras})
    org = BackendOrg(id=payload["id"], name=payload["name"], extra=payload["extra"])
    _assert_extras_survive(to_legacy_org(org), extras)


@given(local_ids, extra_fields())
def test_project_round_trip(project_id, extras):
    payload = to_backend_project({"id": project_id, "name": "Project", **extras})
    project = BackendProject(
        id=f"org:{payload['id']}", org="org", name=payload["name"], extra=payload["extra"]
    )
    _assert_extras_survive(to_legacy_project(project), extras)


@given(local_ids, extra_fields())
def test_branch_round_trip(branch_id, extras):
    payload = to_backend_branch({"id": branch_id, "name": "Branch", **extras})
    branch = BackendBranch(
        id=f"org:proj:{payload['id']}", project="org:proj", name=payload["name"],
        extra=payload["extra"],
    )
    _assert_extras_survive(to_legacy_ref(branch), extras)


@given(local_ids, extra_fields())
def test_element_round_trip(element_id, extras):
    payload = to_backend_element({"id": element_id, "name": "Block", "ownerId": "model", **extras})
    element = BackendElement(
        id=f"org:proj:master:{payload['id']}",
        project="org:proj",
        branch="org:proj:master",
        name=payload["name"],
        parent=f"org:proj:master:{payload['parent']}",
        extra=payload["extra"],
    )
    legacy = to_legacy_element(element)
    _assert_extras_survive(legacy, extras)
    assert legacy["ownerId"] == "model"
    assert "documentation" not in legacy


@given(local_ids, extra_fields())
def test_artifact_round_trip(artifact_id, extras):
    payload = to_backend_artifact({"id": artifact_id, "filename": "a.svg", **extras})
    artifact = BackendArtifact(
        id=f"org:proj:master:{payload['id']}", project="org:proj", branch="org:proj:master",
        filename=payload["filename"], extra=payload["extra"],
    )
    _assert_extras_survive(to_legacy_artifact(artifact), extras)
