"""
Model Backend Controllers

RESPONSIBILITY: The function-call contract the adapter consumes from the
model-management backend, plus an in-memory reference implementation.
ALLOWED INPUTS: Requesting user, scope ids, backend payload dicts, filter
predicates, find options
OUTPUTS: Frozen backend entities (contracts.entities)

BOUNDARY ENFORCEMENT:
=====================
- Handlers talk to the backend ONLY through the controller interfaces below
- Controllers never see legacy-shaped records (formatters run first)
- Ids in payloads are local; controllers scope them into composite ids
- A missing scope (org / project / branch) raises NotFoundError; a find for
  specific ids returns whatever subset exists

The in-memory backend is suitable for tests and single-process deployments.
It keeps insertion order, which is the order finds return.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..contracts.base import ABSENT, DataFormatError, NotFoundError
from ..contracts.entities import (
    BackendArtifact,
    BackendBranch,
    BackendElement,
    BackendOrg,
    BackendProject,
    DEFAULT_BRANCH_ID,
    ROOT_ELEMENT_ID,
    to_document,
)
from ..contracts.ids import build_id, local_id
from .matching import MISSING, matches, resolve_path


IdArg = Union[str, Sequence[str], None]


@dataclass
class FindOptions:
    """Options honoured by element finds."""
    subtree: bool = False
    limit: int = 0
    skip: int = 0
    sort: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)


def _as_list(ids: IdArg) -> Optional[List[str]]:
    if ids is None:
        return None
    if isinstance(ids, str):
        return [ids]
    return list(ids)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_id(payload: Dict[str, Any], kind: str) -> str:
    entity_id = payload.get("id")
    if not isinstance(entity_id, str) or not entity_id:
        raise DataFormatError(f"Every {kind} requires a non-empty string id.")
    return entity_id


# =============================================================================
# CONTROLLER INTERFACES (Dependency Inversion)
# =============================================================================

class OrgController:
    async def find(self, user: str, org_ids: IdArg = None) -> List[BackendOrg]:
        raise NotImplementedError

    async def create(self, user: str, payloads: List[Dict[str, Any]]) -> List[BackendOrg]:
        raise NotImplementedError


class ProjectController:
    async def find(
        self, user: str, org_id: Optional[str] = None, project_ids: IdArg = None
    ) -> List[BackendProject]:
        """Projects of one org, or of every org when org_id is None."""
        raise NotImplementedError

    async def create(
        self, user: str, org_id: str, payloads: List[Dict[str, Any]]
    ) -> List[BackendProject]:
        raise NotImplementedError


class BranchController:
    async def find(
        self, user: str, org_id: str, project_id: str, branch_ids: IdArg = None
    ) -> List[BackendBranch]:
        raise NotImplementedError

    async def create(
        self, user: str, org_id: str, project_id: str, payloads: List[Dict[str, Any]]
    ) -> List[BackendBranch]:
        raise NotImplementedError

    async def update(
        self, user: str, org_id: str, project_id: str, payloads: List[Dict[str, Any]]
    ) -> List[BackendBranch]:
        raise NotImplementedError


class ElementController:
    async def find(
        self,
        user: str,
        org_id: str,
        project_id: str,
        branch_id: str,
        ids: IdArg = None,
        query: Optional[Dict[str, Any]] = None,
        options: Optional[FindOptions] = None
    ) -> List[BackendElement]:
        raise NotImplementedError

    async def find_by_ids(self, composite_ids: Sequence[str]) -> List[BackendElement]:
        """One round trip for any number of composite ids, across scopes."""
        raise NotImplementedError

    async def create_or_replace(
        self,
        user: str,
        org_id: str,
        project_id: str,
        branch_id: str,
        payloads: List[Dict[str, Any]]
    ) -> List[BackendElement]:
        raise NotImplementedError

    async def remove(
        self, user: str, org_id: str, project_id: str, branch_id: str, ids: IdArg
    ) -> List[str]:
        """Remove elements and their descendants; returns removed local ids."""
        raise NotImplementedError


class ArtifactController:
    async def find(
        self, user: str, org_id: str, project_id: str, branch_id: str, ids: IdArg = None
    ) -> List[BackendArtifact]:
        raise NotImplementedError

    async def create_or_replace(
        self,
        user: str,
        org_id: str,
        project_id: str,
        branch_id: str,
        payloads: List[Dict[str, Any]]
    ) -> List[BackendArtifact]:
        raise NotImplementedError

    async def upload_blob(
        self, user: str, org_id: str, project_id: str, location: str, filename: str, data: bytes
    ) -> None:
        raise NotImplementedError

    async def get_blob(
        self, user: str, org_id: str, project_id: str, location: str, filename: str
    ) -> bytes:
        raise NotImplementedError


class ModelBackend:
    """Bundle of the five controllers the adapter calls."""
    orgs: OrgController
    projects: ProjectController
    branches: BranchController
    elements: ElementController
    artifacts: ArtifactController


# =============================================================================
# IN-MEMORY BACKEND (Reference Implementation)
# =============================================================================

class _Store:
    """Shared state of the in-memory controllers, keyed by composite id."""

    def __init__(self):
        self.orgs: Dict[str, BackendOrg] = {}
        self.projects: Dict[str, BackendProject] = {}
        self.branches: Dict[str, BackendBranch] = {}
        self.elements: Dict[str, BackendElement] = {}
        self.artifacts: Dict[str, BackendArtifact] = {}
        self.blobs: Dict[Tuple[str, str], bytes] = {}

    def require_org(self, org_id: str) -> str:
        if org_id not in self.orgs:
            raise NotFoundError(f"The org {org_id} was not found.")
        return org_id

    def require_project(self, org_id: str, project_id: str) -> str:
        self.require_org(org_id)
        composite = build_id(org_id, project_id)
        if composite not in self.projects:
            raise NotFoundError(f"The project {project_id} was not found.")
        return composite

    def require_branch(self, org_id: str, project_id: str, branch_id: str) -> str:
        self.require_project(org_id, project_id)
        composite = build_id(org_id, project_id, branch_id)
        if composite not in self.branches:
            raise NotFoundError(f"The branch {branch_id} was not found.")
        return composite


class InMemoryOrgController(OrgController):
    def __init__(self, store: _Store):
        self._store = store

    async def find(self, user, org_ids=None):
        wanted = _as_list(org_ids)
        if wanted is None:
            return list(self._store.orgs.values())
        return [self._store.orgs[o] for o in wanted if o in self._store.orgs]

    async def create(self, user, payloads):
        created = []
        for payload in payloads:
            org_id = _require_id(payload, "org")
            if org_id in self._store.orgs:
                raise DataFormatError(f"The org {org_id} already exists.")
            org = BackendOrg(
                id=build_id(org_id),
                name=payload.get("name") or org_id,
                extra=dict(payload.get("extra") or {}),
                created_by=user,
                created_on=_now(),
            )
            self._store.orgs[org.id] = org
            created.append(org)
        return created


class InMemoryProjectController(ProjectController):
    def __init__(self, store: _Store):
        self._store = store

    async def find(self, user, org_id=None, project_ids=None):
        if org_id is None:
            projects = list(self._store.projects.values())
        else:
            self._store.require_org(org_id)
            projects = [p for p in self._store.projects.values() if p.org == org_id]

        wanted = _as_list(project_ids)
        if wanted is not None:
            projects = [p for p in projects if local_id(p.id) in wanted]
        return projects

    async def create(self, user, org_id, payloads):
        self._store.require_org(org_id)
        created = []
        for payload in payloads:
            project_id = _require_id(payload, "project")
            composite = build_id(org_id, project_id)
            if composite in self._store.projects:
                raise DataFormatError(f"The project {project_id} already exists.")

            now = _now()
            project = BackendProject(
                id=composite,
                org=org_id,
                name=payload.get("name") or project_id,
                extra=dict(payload.get("extra") or {}),
                created_by=user,
                created_on=now,
            )
            self._store.projects[composite] = project

            # Every project starts with a master branch holding the root element
            master = BackendBranch(
                id=build_id(org_id, project_id, DEFAULT_BRANCH_ID),
                project=composite,
                name="Master",
                created_by=user,
                created_on=now,
            )
            self._store.branches[master.id] = master
            root = BackendElement(
                id=build_id(org_id, project_id, DEFAULT_BRANCH_ID, ROOT_ELEMENT_ID),
                project=composite,
                branch=master.id,
                name="Model",
                created_by=user,
                created_on=now,
            )
            self._store.elements[root.id] = root
            created.append(project)
        return created


class InMemoryBranchController(BranchController):
    def __init__(self, store: _Store):
        self._store = store

    async def find(self, user, org_id, project_id, branch_ids=None):
        project = self._store.require_project(org_id, project_id)
        branches = [b for b in self._store.branches.values() if b.project == project]
        wanted = _as_list(branch_ids)
        if wanted is not None:
            branches = [b for b in branches if local_id(b.id) in wanted]
        return branches

    async def create(self, user, org_id, project_id, payloads):
        project = self._store.require_project(org_id, project_id)
        created = []
        for payload in payloads:
            branch_id = _require_id(payload, "branch")
            composite = build_id(org_id, project_id, branch_id)
            if composite in self._store.branches:
                raise DataFormatError(f"The branch {branch_id} already exists.")

            source_id = payload.get("source") or DEFAULT_BRANCH_ID
            source = self._store.require_branch(org_id, project_id, source_id)
            branch = BackendBranch(
                id=composite,
                project=project,
                name=payload.get("name") or branch_id,
                source=source,
                tag=bool(payload.get("tag", False)),
                extra=dict(payload.get("extra") or {}),
                created_by=user,
                created_on=_now(),
            )
            self._store.branches[composite] = branch
            self._copy_elements(source, composite)
            created.append(branch)
        return created

    async def update(self, user, org_id, project_id, payloads):
        self._store.require_project(org_id, project_id)
        updated = []
        for payload in payloads:
            branch_id = _require_id(payload, "branch")
            composite = self._store.require_branch(org_id, project_id, branch_id)
            branch = self._store.branches[composite]
            changes: Dict[str, Any] = {
                "extra": dict(payload.get("extra") or {}),
                "last_modified_by": user,
                "updated_on": _now(),
            }
            if payload.get("name") is not None:
                changes["name"] = payload["name"]
            branch = replace(branch, **changes)
            self._store.branches[composite] = branch
            updated.append(branch)
        return updated

    def _copy_elements(self, source: str, target: str):
        prefix = source + ":"

        def rescope(composite: Optional[str]) -> Optional[str]:
            if composite is not None and composite.startswith(prefix):
                return target + ":" + composite[len(prefix):]
            return composite

        for element in [e for e in self._store.elements.values() if e.branch == source]:
            copy = replace(
                element,
                id=rescope(element.id),
                branch=target,
                parent=rescope(element.parent),
                source=rescope(element.source),
                target=rescope(element.target),
            )
            self._store.elements[copy.id] = copy


class InMemoryElementController(ElementController):
    def __init__(self, store: _Store):
        self._store = store

    async def find(self, user, org_id, project_id, branch_id, ids=None, query=None, options=None):
        branch = self._store.require_branch(org_id, project_id, branch_id)
        options = options or FindOptions()

        wanted = _as_list(ids)
        if wanted is None:
            candidates = [e for e in self._store.elements.values() if e.branch == branch]
        else:
            composites = [build_id(org_id, project_id, branch_id, i) for i in wanted]
            candidates = [self._store.elements[c] for c in dict.fromkeys(composites)
                          if c in self._store.elements]

        predicate = dict(query or {})
        predicate.update(self._option_filters(org_id, project_id, branch_id, options.filters))
        found = [e for e in candidates if matches(to_document(e), predicate)]

        if options.subtree:
            found = self._with_descendants(branch, found)
        if options.sort:
            found = self._sorted(found, options.sort)
        if options.skip:
            found = found[options.skip:]
        if options.limit:
            found = found[:options.limit]
        return found

    async def find_by_ids(self, composite_ids):
        return [self._store.elements[c] for c in dict.fromkeys(composite_ids)
                if c in self._store.elements]

    async def create_or_replace(self, user, org_id, project_id, branch_id, payloads):
        branch = self._store.require_branch(org_id, project_id, branch_id)
        project = build_id(org_id, project_id)
        scope = (org_id, project_id, branch_id)
        batch_ids = {build_id(*scope, _require_id(p, "element")) for p in payloads}

        results = []
        for payload in payloads:
            composite = build_id(*scope, payload["id"])
            existing = self._store.elements.get(composite)
            now = _now()
            element = BackendElement(
                id=composite,
                project=project,
                branch=branch,
                name=payload.get("name"),
                documentation=payload.get("documentation"),
                type=payload.get("type"),
                parent=self._resolve_parent(scope, payload, batch_ids),
                source=self._scoped(scope, payload.get("source")),
                target=self._scoped(scope, payload.get("target")),
                artifact=self._scoped(scope, payload.get("artifact")),
                extra=dict(payload.get("extra") or {}),
                created_by=existing.created_by if existing else user,
                created_on=existing.created_on if existing else now,
                last_modified_by=user,
                updated_on=now,
            )
            self._store.elements[composite] = element
            results.append(element)
        return results

    async def remove(self, user, org_id, project_id, branch_id, ids):
        branch = self._store.require_branch(org_id, project_id, branch_id)
        composites = [build_id(org_id, project_id, branch_id, i) for i in _as_list(ids) or []]
        targets = [self._store.elements[c] for c in composites if c in self._store.elements]
        if not targets:
            raise NotFoundError("No elements found to delete.")

        removed = self._with_descendants(branch, targets)
        for element in removed:
            del self._store.elements[element.id]
        return [local_id(e.id) for e in removed]

    # -------------------------------------------------------------------------

    @staticmethod
    def _scoped(scope: Tuple[str, str, str], value: Optional[str]) -> Optional[str]:
        return None if value is None else build_id(*scope, value)

    def _resolve_parent(self, scope, payload, batch_ids) -> Optional[str]:
        parent = payload.get("parent", ABSENT)
        if parent is None:
            return None
        if parent is ABSENT:
            if payload["id"] == ROOT_ELEMENT_ID:
                return None
            parent = ROOT_ELEMENT_ID
        composite = build_id(*scope, parent)
        if composite not in self._store.elements and composite not in batch_ids:
            raise NotFoundError(f"The parent element {parent} was not found.")
        return composite

    @staticmethod
    def _sorted(elements: List[BackendElement], sort: str) -> List[BackendElement]:
        """Sort on a field path; a leading "-" sorts descending. Unset values go last."""
        descending = sort.startswith("-")
        path = sort.lstrip("-")
        keyed = [(resolve_path(to_document(e), path), e) for e in elements]
        present = [(v, e) for v, e in keyed if v is not MISSING and v is not None]
        missing = [e for v, e in keyed if v is MISSING or v is None]
        present.sort(key=lambda pair: str(pair[0]), reverse=descending)
        return [e for _, e in present] + missing

    def _option_filters(self, org_id, project_id, branch_id, filters: Dict[str, Any]) -> Dict[str, Any]:
        predicate: Dict[str, Any] = {}
        for key, value in filters.items():
            if key in ("parent", "source", "target", "artifact"):
                predicate[key] = build_id(org_id, project_id, branch_id, value)
            elif key.startswith("custom."):
                predicate["extra." + key[len("custom."):]] = value
            else:
                predicate[key] = value
        return predicate

    def _with_descendants(self, branch: str, roots: Iterable[BackendElement]) -> List[BackendElement]:
        result = list(roots)
        seen = {e.id for e in result}
        children: Dict[str, List[BackendElement]] = {}
        for element in self._store.elements.values():
            if element.branch == branch and element.parent is not None:
                children.setdefault(element.parent, []).append(element)

        index = 0
        while index < len(result):
            for child in children.get(result[index].id, []):
                if child.id not in seen:
                    seen.add(child.id)
                    result.append(child)
            index += 1
        return result


class InMemoryArtifactController(ArtifactController):
    def __init__(self, store: _Store):
        self._store = store

    async def find(self, user, org_id, project_id, branch_id, ids=None):
        branch = self._store.require_branch(org_id, project_id, branch_id)
        artifacts = [a for a in self._store.artifacts.values() if a.branch == branch]
        wanted = _as_list(ids)
        if wanted is not None:
            artifacts = [a for a in artifacts if local_id(a.id) in wanted]
        return artifacts

    async def create_or_replace(self, user, org_id, project_id, branch_id, payloads):
        branch = self._store.require_branch(org_id, project_id, branch_id)
        results = []
        for payload in payloads:
            composite = build_id(org_id, project_id, branch_id, _require_id(payload, "artifact"))
            existing = self._store.artifacts.get(composite)
            now = _now()
            artifact = BackendArtifact(
                id=composite,
                project=build_id(org_id, project_id),
                branch=branch,
                filename=payload.get("filename"),
                location=payload.get("location"),
                extra=dict(payload.get("extra") or {}),
                created_by=existing.created_by if existing else user,
                created_on=existing.created_on if existing else now,
                last_modified_by=user,
                updated_on=now,
            )
            self._store.artifacts[composite] = artifact
            results.append(artifact)
        return results

    async def upload_blob(self, user, org_id, project_id, location, filename, data):
        self._store.require_project(org_id, project_id)
        self._store.blobs[(location, filename)] = bytes(data)

    async def get_blob(self, user, org_id, project_id, location, filename):
        self._store.require_project(org_id, project_id)
        try:
            return self._store.blobs[(location, filename)]
        except KeyError:
            raise NotFoundError(f"The artifact blob {filename} was not found.") from None


class InMemoryModelBackend(ModelBackend):
    """In-memory implementation of every controller, sharing one store."""

    def __init__(self):
        self._store = _Store()
        self.orgs = InMemoryOrgController(self._store)
        self.projects = InMemoryProjectController(self._store)
        self.branches = InMemoryBranchController(self._store)
        self.elements = InMemoryElementController(self._store)
        self.artifacts = InMemoryArtifactController(self._store)


__all__ = [
    'FindOptions', 'ModelBackend',
    'OrgController', 'ProjectController', 'BranchController',
    'ElementController', 'ArtifactController',
    'InMemoryModelBackend',
]
