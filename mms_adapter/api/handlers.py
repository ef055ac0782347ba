"""
Legacy API Request Handlers

RESPONSIBILITY: One handler per legacy endpoint. Each handler resolves the
scope, validates the minimal preconditions, calls the backend controllers
and shapes the result with the formatters, synthesizer and translator.
ALLOWED INPUTS: LegacyRequest (already authenticated)
OUTPUTS: LegacyResponse (status code + JSON payload, or raw bytes)

BOUNDARY ENFORCEMENT:
=====================
- Handlers are transport-agnostic; the HTTP layer builds LegacyRequest
  objects and emits LegacyResponse objects
- Every handler is wrapped by @legacy_handler: any error becomes a status
  code and a {"message": ...} payload, and the handler always returns
- Success payloads are enveloped as {<plural entity name>: [...]}
"""

from __future__ import annotations
import asyncio
import functools
import logging
import mimetypes
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from ..config import AdapterConfig
from ..contracts.base import (
    AdapterError,
    DataFormatError,
    NotFoundError,
    get_status_code,
)
from ..contracts.entities import DOCUMENT_STEREOTYPE_ID
from ..contracts.ids import build_id, local_id
from ..formatting import (
    to_backend_artifact,
    to_backend_branch,
    to_backend_elements,
    to_backend_org,
    to_backend_project,
    to_legacy_artifact,
    to_legacy_element,
    to_legacy_org,
    to_legacy_project,
    to_legacy_ref,
)
from ..integrations import convert_html_to_pdf, email_blob_link
from ..query import to_backend_query
from ..storage import FindOptions, ModelBackend
from ..views import plan_child_view_update, synthesize_child_views
from .options import parse_element_find_options
from .session import SessionStore, resolve_org_id


logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST / RESPONSE
# =============================================================================

@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    data: bytes


@dataclass
class LegacyRequest:
    """An authenticated legacy API call, independent of the HTTP framework."""
    backend: ModelBackend
    user: str
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    file: Optional[UploadedFile] = None
    config: Optional[AdapterConfig] = None
    sessions: Optional[SessionStore] = None


@dataclass
class LegacyResponse:
    """JSON `payload`, or raw `content` bytes of `media_type`."""
    status_code: int = 200
    payload: Any = None
    media_type: str = "application/json"
    content: Optional[bytes] = None


Handler = Callable[[LegacyRequest], Awaitable[LegacyResponse]]


def legacy_handler(func: Callable[[LegacyRequest, LegacyResponse], Awaitable[None]]) -> Handler:
    """
    Run a handler body and convert any error it raises into a response.

    The wrapped handler never raises.
    """
    @functools.wraps(func)
    async def wrapper(request: LegacyRequest) -> LegacyResponse:
        response = LegacyResponse()
        try:
            await func(request, response)
        except AdapterError as e:
            logger.warning("%s: %s", func.__name__, e.message)
            response.status_code = e.status_code
            response.payload = {"message": e.message}
            response.content = None
        except Exception as e:
            logger.exception("%s failed unexpectedly", func.__name__)
            response.status_code = get_status_code(e)
            response.payload = {"message": str(e)}
            response.content = None
        return response
    return wrapper


# =============================================================================
# HELPERS
# =============================================================================

async def _project_scope(request: LegacyRequest) -> Tuple[str, str]:
    project_id = request.params["projectid"]
    org_id = await resolve_org_id(request.backend, request.user, project_id)
    return org_id, project_id


async def _branch_scope(request: LegacyRequest) -> Tuple[str, str, str]:
    org_id, project_id = await _project_scope(request)
    return org_id, project_id, request.params["refid"]


def _require_records(body: Any, key: str) -> List[Dict[str, Any]]:
    """The array under `key` in the request body, each entry with a string id."""
    records = body.get(key) if isinstance(body, dict) else None
    if not isinstance(records, list) or not records:
        raise DataFormatError(f"Request body must contain a non-empty array of {key}.")
    for record in records:
        if not isinstance(record, dict) or not isinstance(record.get("id"), str) or not record["id"]:
            raise DataFormatError(f"Every entry in {key} requires a string id.")
    return records


def _element_lookup(request: LegacyRequest):
    return request.backend.elements.find_by_ids


async def _legacy_elements(request: LegacyRequest, elements) -> List[Dict[str, Any]]:
    """Synthesize child views, then format for the legacy API."""
    elements = await synthesize_child_views(_element_lookup(request), elements)
    return [to_legacy_element(e) for e in elements]


async def _drop_missing_parents(
    request: LegacyRequest,
    scope: Tuple[str, str, str],
    records: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Remove `ownerId` from elements whose owner neither exists nor is part of
    the request, so the backend places them under the root instead.
    """
    requested = {r["id"] for r in records}
    owners = {
        r["ownerId"] for r in records
        if isinstance(r.get("ownerId"), str) and r["ownerId"] not in requested
    }
    if not owners:
        return records

    found = await request.backend.elements.find_by_ids([build_id(*scope, o) for o in owners])
    existing = {local_id(e.id) for e in found}

    verified = []
    for record in records:
        owner = record.get("ownerId")
        if isinstance(owner, str) and owner not in requested and owner not in existing:
            logger.debug("Owner %s of element %s not found; using the root", owner, record["id"])
            record = {k: v for k, v in record.items() if k != "ownerId"}
        verified.append(record)
    return verified


# =============================================================================
# LOGIN
# =============================================================================

@legacy_handler
async def post_login(request: LegacyRequest, response: LegacyResponse):
    body = request.body if isinstance(request.body, dict) else {}
    username, password = body.get("username"), body.get("password")
    if not isinstance(username, str) or not isinstance(password, str):
        raise DataFormatError("Login requires a username and password.")
    ticket = request.sessions.authenticate(username, password)
    response.payload = {"data": {"ticket": quote(ticket, safe="")}}


@legacy_handler
async def get_ticket(request: LegacyRequest, response: LegacyResponse):
    response.payload = {"username": request.user}


# =============================================================================
# ORGS
# =============================================================================

@legacy_handler
async def get_orgs(request: LegacyRequest, response: LegacyResponse):
    orgs = await request.backend.orgs.find(request.user)
    response.payload = {"orgs": [to_legacy_org(o) for o in orgs]}


@legacy_handler
async def get_org(request: LegacyRequest, response: LegacyResponse):
    orgs = await request.backend.orgs.find(request.user, request.params["orgid"])
    response.payload = {"orgs": [to_legacy_org(o) for o in orgs]}


@legacy_handler
async def post_orgs(request: LegacyRequest, response: LegacyResponse):
    payloads = [to_backend_org(o) for o in _require_records(request.body, "orgs")]
    orgs = await request.backend.orgs.create(request.user, payloads)
    response.payload = {"orgs": [to_legacy_org(o) for o in orgs]}


# =============================================================================
# PROJECTS
# =============================================================================

@legacy_handler
async def get_projects(request: LegacyRequest, response: LegacyResponse):
    projects = await request.backend.projects.find(request.user, request.params["orgid"])
    response.payload = {"projects": [to_legacy_project(p) for p in projects]}


@legacy_handler
async def get_all_projects(request: LegacyRequest, response: LegacyResponse):
    projects = await request.backend.projects.find(request.user)
    response.payload = {"projects": [to_legacy_project(p) for p in projects]}


@legacy_handler
async def get_project(request: LegacyRequest, response: LegacyResponse):
    # Legacy clients probe for projects; a missing one is an empty result
    try:
        org_id, project_id = await _project_scope(request)
        projects = await request.backend.projects.find(request.user, org_id, project_id)
    except NotFoundError as e:
        logger.warning("get_project: %s", e.message)
        response.payload = {"projects": []}
        return
    response.payload = {"projects": [to_legacy_project(p) for p in projects]}


@legacy_handler
async def post_projects(request: LegacyRequest, response: LegacyResponse):
    payloads = [to_backend_project(p) for p in _require_records(request.body, "projects")]
    projects = await request.backend.projects.create(
        request.user, request.params["orgid"], payloads
    )
    response.payload = {"projects": [to_legacy_project(p) for p in projects]}


@legacy_handler
async def get_mounts(request: LegacyRequest, response: LegacyResponse):
    """The project itself plus every project its Mount elements reference."""
    org_id, project_id, branch_id = await _branch_scope(request)
    mounts = await request.backend.elements.find(
        request.user, org_id, project_id, branch_id, query={"type": "Mount"}
    )
    wanted = [project_id]
    for mount in mounts:
        mounted = mount.extra.get("mountedElementProjectId")
        if isinstance(mounted, str) and mounted not in wanted:
            wanted.append(mounted)

    projects = await request.backend.projects.find(request.user, org_id, wanted)
    projects.sort(key=lambda p: wanted.index(local_id(p.id)))
    response.payload = {"projects": [to_legacy_project(p) for p in projects]}


# =============================================================================
# REFS
# =============================================================================

@legacy_handler
async def get_refs(request: LegacyRequest, response: LegacyResponse):
    org_id, project_id = await _project_scope(request)
    branches = await request.backend.branches.find(request.user, org_id, project_id)
    response.payload = {"refs": [to_legacy_ref(b) for b in branches]}


@legacy_handler
async def get_ref(request: LegacyRequest, response: LegacyResponse):
    org_id, project_id = await _project_scope(request)
    branches = await request.backend.branches.find(
        request.user, org_id, project_id, request.params["refid"]
    )
    response.payload = {"refs": [to_legacy_ref(b) for b in branches]}


@legacy_handler
async def post_refs(request: LegacyRequest, response: LegacyResponse):
    """Existing refs are updated, new ones are created; results keep request order."""
    org_id, project_id = await _project_scope(request)
    payloads = [to_backend_branch(r) for r in _require_records(request.body, "refs")]

    existing = {
        local_id(b.id) for b in await request.backend.branches.find(
            request.user, org_id, project_id, [p["id"] for p in payloads]
        )
    }
    to_update = [p for p in payloads if p["id"] in existing]
    to_create = [p for p in payloads if p["id"] not in existing]

    results = {}
    if to_update:
        for branch in await request.backend.branches.update(request.user, org_id, project_id, to_update):
            results[local_id(branch.id)] = branch
    if to_create:
        for branch in await request.backend.branches.create(request.user, org_id, project_id, to_create):
            results[local_id(branch.id)] = branch

    response.payload = {"refs": [to_legacy_ref(results[p["id"]]) for p in payloads]}


# =============================================================================
# ELEMENTS
# =============================================================================

@legacy_handler
async def post_elements(request: LegacyRequest, response: LegacyResponse):
    """Create or replace elements, applying child-view reorders and moves."""
    scope = await _branch_scope(request)
    elements = _require_records(request.body, "elements")
    logger.info("There were %d elements posted", len(elements))

    async def find_owners(property_ids: List[str]):
        return await request.backend.elements.find(
            request.user, *scope,
            query={"extra.ownedAttributeIds": {"$in": property_ids}},
        )

    update = await plan_child_view_update(
        _element_lookup(request), find_owners, *scope, elements
    )
    records = await _drop_missing_parents(request, scope, update.elements)
    results = await request.backend.elements.create_or_replace(
        request.user, *scope, to_backend_elements(records)
    )
    logger.info("There were %d elements created/replaced", len(results))
    response.payload = {"elements": await _legacy_elements(request, results)}


@legacy_handler
async def put_elements(request: LegacyRequest, response: LegacyResponse):
    """Despite the verb, a find by the ids listed in the body."""
    scope = await _branch_scope(request)
    options = parse_element_find_options(request.query)
    ids = [e["id"] for e in _require_records(request.body, "elements")]
    logger.info("There were %d elements requested via PUT", len(ids))

    found = await request.backend.elements.find(request.user, *scope, ids, options=options)
    logger.info("There were %d elements returned for PUT", len(found))
    response.payload = {"elements": await _legacy_elements(request, found)}


@legacy_handler
async def delete_elements(request: LegacyRequest, response: LegacyResponse):
    scope = await _branch_scope(request)
    ids = [e["id"] for e in _require_records(request.body, "elements")]
    removed = await request.backend.elements.remove(request.user, *scope, ids)
    response.payload = {"elements": removed}


@legacy_handler
async def get_element(request: LegacyRequest, response: LegacyResponse):
    scope = await _branch_scope(request)
    element_id = request.params["elementid"]
    found = await request.backend.elements.find(request.user, *scope, [element_id])
    if not found:
        raise NotFoundError(f"Element {element_id} not found.")
    # The single-element read is not wrapped in an array
    [element] = await _legacy_elements(request, found[:1])
    response.payload = {"elements": element}


@legacy_handler
async def search_elements(request: LegacyRequest, response: LegacyResponse):
    """
    Search with the legacy query DSL: {"query": {...}, "from": n, "size": n}.
    """
    scope = await _branch_scope(request)
    body = request.body
    if not isinstance(body, dict) or not isinstance(body.get("query"), dict):
        raise DataFormatError("Search body must contain a query object.")

    options = FindOptions()
    for key, attribute in (("from", "skip"), ("size", "limit")):
        value = body.get(key)
        if value is not None:
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise DataFormatError(f"Search option {key} must be a non-negative integer.")
            setattr(options, attribute, value)

    predicate = to_backend_query(body["query"], *scope)
    found = await request.backend.elements.find(
        request.user, *scope, query=predicate, options=options
    )
    logger.debug("Search matched %d elements", len(found))
    response.payload = {"elements": await _legacy_elements(request, found)}


@legacy_handler
async def get_groups(request: LegacyRequest, response: LegacyResponse):
    scope = await _branch_scope(request)
    groups = await request.backend.elements.find(
        request.user, *scope, query={"extra._isGroup": {"$in": [True, "true"]}}
    )
    logger.info("There were %d groups returned", len(groups))
    response.payload = {"groups": [to_legacy_element(e) for e in groups]}


@legacy_handler
async def get_documents(request: LegacyRequest, response: LegacyResponse):
    scope = await _branch_scope(request)
    documents = await request.backend.elements.find(
        request.user, *scope, query={"extra._appliedStereotypeIds": DOCUMENT_STEREOTYPE_ID}
    )
    response.payload = {"documents": await _legacy_elements(request, documents)}


@legacy_handler
async def get_commits(request: LegacyRequest, response: LegacyResponse):
    # Commits are not tracked; an empty history reads as "at the latest commit"
    org_id, project_id, branch_id = await _branch_scope(request)
    await request.backend.branches.find(request.user, org_id, project_id, branch_id)
    response.payload = {"commits": []}


# =============================================================================
# ARTIFACTS
# =============================================================================

def _blob_location(org_id: str, project_id: str) -> str:
    return f"{org_id}/{project_id}"


def _blob_filename(artifact_id: str, upload_name: Optional[str], content_type: Optional[str]) -> str:
    extension = os.path.splitext(upload_name or "")[1]
    if not extension and content_type:
        extension = mimetypes.guess_extension(content_type) or ""
    return f"{artifact_id}{extension}"


async def _store_artifact(
    request: LegacyRequest,
    scope: Tuple[str, str, str],
    record: Dict[str, Any],
    upload: UploadedFile
):
    org_id, project_id, _ = scope
    record = dict(record)
    record["location"] = _blob_location(org_id, project_id)
    record["filename"] = _blob_filename(record["id"], upload.filename, upload.content_type)
    if upload.content_type:
        record.setdefault("contentType", upload.content_type)

    await request.backend.artifacts.upload_blob(
        request.user, org_id, project_id, record["location"], record["filename"], upload.data
    )
    return await request.backend.artifacts.create_or_replace(
        request.user, *scope, [to_backend_artifact(record)]
    )


@legacy_handler
async def post_artifacts(request: LegacyRequest, response: LegacyResponse):
    """Upload one artifact blob with its metadata (multipart form)."""
    scope = await _branch_scope(request)
    if request.file is None:
        raise DataFormatError("An artifact upload requires a file.")
    record = dict(request.body or {})
    if not isinstance(record.get("id"), str) or not record["id"]:
        record["id"] = uuid.uuid4().hex

    artifacts = await _store_artifact(request, scope, record, request.file)
    response.payload = {"artifacts": [to_legacy_artifact(a) for a in artifacts]}


@legacy_handler
async def put_artifacts(request: LegacyRequest, response: LegacyResponse):
    """Like PUT on elements: a find by the ids listed in the body."""
    scope = await _branch_scope(request)
    ids = [a["id"] for a in _require_records(request.body, "artifacts")]
    artifacts = await request.backend.artifacts.find(request.user, *scope, ids)
    response.payload = {"artifacts": [to_legacy_artifact(a) for a in artifacts]}


@legacy_handler
async def get_artifact_blob(request: LegacyRequest, response: LegacyResponse):
    org_id, project_id, branch_id = await _branch_scope(request)
    blob_id = request.params["blobid"]
    artifacts = await request.backend.artifacts.find(
        request.user, org_id, project_id, branch_id, [blob_id]
    )
    if not artifacts:
        raise NotFoundError(f"Artifact {blob_id} not found.")

    artifact = artifacts[0]
    response.content = await request.backend.artifacts.get_blob(
        request.user, org_id, project_id, artifact.location, artifact.filename
    )
    response.media_type = (
        artifact.extra.get("contentType")
        or mimetypes.guess_type(artifact.filename or "")[0]
        or "application/octet-stream"
    )


@legacy_handler
async def post_convert(request: LegacyRequest, response: LegacyResponse):
    """
    Convert posted HTML to PDF, store the PDF as an artifact and email a
    link to it when the body names an `email` address.
    """
    scope = await _branch_scope(request)
    body = request.body if isinstance(request.body, dict) else {}
    html = body.get("body", body.get("html"))
    if not isinstance(html, str) or not html:
        raise DataFormatError("Conversion requires an HTML body.")

    config = request.config
    name = body.get("name") or "document"
    css = body.get("css")
    if isinstance(css, str) and css:
        html = f"<style>{css}</style>\n{html}"

    os.makedirs(config.pdf.working_dir, exist_ok=True)
    with tempfile.TemporaryDirectory(dir=config.pdf.working_dir) as workdir:
        html_path = os.path.join(workdir, "document.html")
        pdf_path = os.path.join(workdir, "document.pdf")
        with open(html_path, "w", encoding="utf-8") as f:
            f.write(html)
        await asyncio.to_thread(convert_html_to_pdf, config, html_path, pdf_path)
        with open(pdf_path, "rb") as f:
            data = f.read()

    record = {"id": uuid.uuid4().hex, "name": name, "contentType": "application/pdf"}
    upload = UploadedFile(filename=f"{name}.pdf", content_type="application/pdf", data=data)
    artifacts = await _store_artifact(request, scope, record, upload)
    legacy = [to_legacy_artifact(a) for a in artifacts]

    address = body.get("email")
    if isinstance(address, str) and address:
        link = config.public_url.rstrip("/") + legacy[0]["artifactLocation"]
        await asyncio.to_thread(email_blob_link, config, address, link)

    response.payload = {"artifacts": legacy}


__all__ = [
    'UploadedFile', 'LegacyRequest', 'LegacyResponse', 'legacy_handler',
    'post_login', 'get_ticket',
    'get_orgs', 'get_org', 'post_orgs',
    'get_projects', 'get_all_projects', 'get_project', 'post_projects', 'get_mounts',
    'get_refs', 'get_ref', 'post_refs',
    'post_elements', 'put_elements', 'delete_elements', 'get_element',
    'search_elements', 'get_groups', 'get_documents', 'get_commits',
    'post_artifacts', 'put_artifacts', 'get_artifact_blob', 'post_convert',
]
