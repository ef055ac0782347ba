"""
Legacy Model API: HTTP Server
=============================

FastAPI application exposing the legacy (MMS3-style) routes on top of a
model-management backend.

Routes:
- POST /api/login, GET|POST /api/login/ticket/{ticket}
- /orgs, /orgs/{orgid}, /orgs/{orgid}/projects
- /projects, /projects/{projectid}, /projects/{projectid}/refs[/{refid}]
- /projects/{projectid}/refs/{refid}/elements[/{elementid}], .../search
- .../mounts, .../groups, .../documents, .../commits
- .../artifacts, .../artifacts/blob/{blobid}, .../convert
- anything else -> 501

Authentication: `Authorization: Bearer <ticket>` or the `alf_ticket` query
parameter.

Usage:
    uvicorn mms_adapter.api.server:app --reload
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional
from urllib.parse import unquote

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ..config import AdapterConfig
from ..contracts.base import (
    AdapterError,
    AuthenticationError,
    DataFormatError,
    NotImplementedEndpointError,
)
from ..storage import InMemoryModelBackend, ModelBackend
from . import handlers
from .handlers import Handler, LegacyRequest, UploadedFile
from .session import SessionStore


logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST PLUMBING
# =============================================================================

class LoginRequest(BaseModel):
    username: str
    password: str


async def current_user(request: Request) -> str:
    """Resolve the requesting user from a bearer ticket or `alf_ticket`."""
    sessions: SessionStore = request.app.state.sessions
    authorization = request.headers.get("Authorization", "")
    ticket = request.query_params.get("alf_ticket")

    if authorization.startswith("Bearer "):
        return sessions.resolve(authorization[len("Bearer "):].strip())
    if ticket:
        return sessions.resolve(unquote(ticket))
    raise AuthenticationError("Authentication required.")


def _basic_credentials(request: Request) -> Optional[LoginRequest]:
    authorization = request.headers.get("Authorization", "")
    if not authorization.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(authorization[len("Basic "):]).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise AuthenticationError("Malformed basic credentials.") from None
    username, _, password = decoded.partition(":")
    return LoginRequest(username=username, password=password)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise DataFormatError("Request body must be valid JSON.") from None


async def _dispatch(
    handler: Handler,
    request: Request,
    user: str,
    body: Any = None,
    file: Optional[UploadedFile] = None
) -> Response:
    legacy_request = LegacyRequest(
        backend=request.app.state.backend,
        user=user,
        params=dict(request.path_params),
        query=dict(request.query_params),
        body=body,
        file=file,
        config=request.app.state.config,
        sessions=request.app.state.sessions,
    )
    result = await handler(legacy_request)
    if result.content is not None:
        return Response(result.content, status_code=result.status_code, media_type=result.media_type)
    return JSONResponse(result.payload, status_code=result.status_code)


def _endpoint(handler: Handler, with_body: bool = False):
    async def endpoint(request: Request, user: str = Depends(current_user)):
        body = await _json_body(request) if with_body else None
        return await _dispatch(handler, request, user, body)
    endpoint.__name__ = handler.__name__
    return endpoint


# =============================================================================
# ROUTES
# =============================================================================

router = APIRouter()

_REF = "/projects/{projectid}/refs/{refid}"

# (method, path, handler, reads JSON body)
ROUTES = [
    ("GET", "/orgs", handlers.get_orgs, False),
    ("POST", "/orgs", handlers.post_orgs, True),
    ("GET", "/orgs/{orgid}", handlers.get_org, False),
    ("GET", "/orgs/{orgid}/projects", handlers.get_projects, False),
    ("POST", "/orgs/{orgid}/projects", handlers.post_projects, True),
    ("GET", "/projects", handlers.get_all_projects, False),
    ("GET", "/projects/{projectid}", handlers.get_project, False),
    ("GET", "/projects/{projectid}/refs", handlers.get_refs, False),
    ("POST", "/projects/{projectid}/refs", handlers.post_refs, True),
    ("GET", _REF, handlers.get_ref, False),
    ("GET", _REF + "/mounts", handlers.get_mounts, False),
    ("GET", _REF + "/groups", handlers.get_groups, False),
    ("GET", _REF + "/documents", handlers.get_documents, False),
    ("GET", _REF + "/commits", handlers.get_commits, False),
    ("POST", _REF + "/elements", handlers.post_elements, True),
    ("PUT", _REF + "/elements", handlers.put_elements, True),
    ("DELETE", _REF + "/elements", handlers.delete_elements, True),
    ("GET", _REF + "/elements/{elementid}", handlers.get_element, False),
    ("PUT", _REF + "/search", handlers.search_elements, True),
    ("PUT", _REF + "/artifacts", handlers.put_artifacts, True),
    ("GET", _REF + "/artifacts/blob/{blobid}", handlers.get_artifact_blob, False),
    ("POST", _REF + "/convert", handlers.post_convert, True),
]

for _method, _path, _handler, _with_body in ROUTES:
    router.add_api_route(_path, _endpoint(_handler, _with_body), methods=[_method])


@router.post("/api/login")
async def login(request: Request, credentials: Optional[LoginRequest] = None):
    """Issue a ticket for a JSON body or basic-auth credentials."""
    credentials = credentials or _basic_credentials(request)
    body = credentials.model_dump() if credentials is not None else None
    return await _dispatch(handlers.post_login, request, "", body)


@router.api_route("/api/login/ticket/{ticket}", methods=["GET", "POST"])
async def check_ticket(request: Request, ticket: str):
    """The ticket in the path is the credential being checked."""
    user = request.app.state.sessions.resolve(unquote(ticket))
    return await _dispatch(handlers.get_ticket, request, user)


@router.post(_REF + "/artifacts")
async def upload_artifact(
    request: Request,
    file: Optional[UploadFile] = File(None),
    user: str = Depends(current_user)
):
    """Multipart upload: the blob under `file`, metadata as other form fields."""
    form = await request.form()
    body = {key: value for key, value in form.items() if key != "file" and isinstance(value, str)}
    upload = None
    if file is not None:
        upload = UploadedFile(
            filename=file.filename or "",
            content_type=file.content_type,
            data=await file.read(),
        )
    return await _dispatch(handlers.post_artifacts, request, user, body, upload)


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(
    config: Optional[AdapterConfig] = None,
    backend: Optional[ModelBackend] = None
) -> FastAPI:
    """Build the adapter application. Tests inject config and backend."""
    config = config or AdapterConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.config = config
        app.state.backend = backend or InMemoryModelBackend()
        app.state.sessions = SessionStore(config.users)
        logger.info("Legacy API adapter started with %d configured user(s)", len(config.users))
        yield
        logger.info("Legacy API adapter shutting down")

    app = FastAPI(
        title="Legacy Model API Adapter",
        version="0.1.0",
        description="MMS3-compatible API over a model-management backend",
        lifespan=lifespan,
    )

    # Legacy clients send credentials from arbitrary origins; "*" reflects them
    reflect_all = "*" in config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if reflect_all else config.cors_origins,
        allow_origin_regex=".*" if reflect_all else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS", "PUT", "DELETE"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )

    @app.exception_handler(AdapterError)
    async def adapter_error_handler(request: Request, exc: AdapterError):
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"message": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"message": "Invalid request body."}, status_code=400)

    app.include_router(router)

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
    async def not_implemented(path: str):
        raise NotImplementedEndpointError("Not Implemented")

    return app


app = create_app()
