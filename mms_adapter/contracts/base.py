"""
Base Contracts and Shared Types

Foundational types used across every layer of the adapter.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- No I/O, no dependencies on other adapter modules
- Errors are raised as AdapterError subclasses and converted to
  HTTP status codes ONLY by the request handlers
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, Optional


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes. Every failure the adapter can report maps to
    exactly one of these, and each one maps to exactly one HTTP status.
    """
    DATA_FORMAT = "data_format"
    UNAUTHORIZED = "unauthorized"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    MALFORMED_IDENTIFIER = "malformed_identifier"
    NOT_IMPLEMENTED = "not_implemented"


STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.DATA_FORMAT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.SERVER_ERROR: 500,
    ErrorCode.MALFORMED_IDENTIFIER: 500,
    ErrorCode.NOT_IMPLEMENTED: 501,
}


class AdapterError(Exception):
    """Base class for every error the adapter raises on purpose."""

    code: ErrorCode = ErrorCode.SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.code]


class DataFormatError(AdapterError):
    """Malformed request body or query options."""
    code = ErrorCode.DATA_FORMAT


class AuthenticationError(AdapterError):
    code = ErrorCode.UNAUTHORIZED


class PermissionDeniedError(AdapterError):
    code = ErrorCode.PERMISSION_DENIED


class NotFoundError(AdapterError):
    """Missing org, project, branch, element or artifact."""
    code = ErrorCode.NOT_FOUND


class ServerError(AdapterError):
    """Unexpected backend or integration failure."""
    code = ErrorCode.SERVER_ERROR


class MalformedIdentifierError(ServerError):
    """A composite identifier could not be built or parsed."""
    code = ErrorCode.MALFORMED_IDENTIFIER


class NotImplementedEndpointError(AdapterError):
    code = ErrorCode.NOT_IMPLEMENTED


def get_status_code(error: BaseException) -> int:
    """Map any exception to the HTTP status reported to legacy clients."""
    if isinstance(error, AdapterError):
        return error.status_code
    return STATUS_CODES[ErrorCode.SERVER_ERROR]


# =============================================================================
# THREE-STATE VALUES
# =============================================================================

class Absent(Enum):
    """
    Marker for a field that was not supplied at all.

    Legacy clients distinguish "clear this field" (explicit null) from
    "leave this field alone" (key missing). Optional[...] alone cannot
    carry that difference, so formatters use ABSENT for the latter.
    """
    ABSENT = "absent"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT


def pick(mapping: Dict[str, object], key: str) -> Optional[object]:
    """Return mapping[key], or ABSENT when the key is missing."""
    if key in mapping:
        return mapping[key]
    return ABSENT
