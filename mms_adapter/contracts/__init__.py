"""
Adapter Contracts

Shared, dependency-free types: errors, composite identifiers and the
backend entity model.
"""

from .base import (
    ABSENT,
    Absent,
    AdapterError,
    AuthenticationError,
    DataFormatError,
    ErrorCode,
    MalformedIdentifierError,
    NotFoundError,
    NotImplementedEndpointError,
    PermissionDeniedError,
    ServerError,
    STATUS_CODES,
    get_status_code,
)
from .ids import ID_DELIMITER, build_id, local_id, parse_id
from .entities import (
    BackendArtifact,
    BackendBranch,
    BackendElement,
    BackendEntity,
    BackendOrg,
    BackendProject,
    DEFAULT_BRANCH_ID,
    DOCUMENT_STEREOTYPE_ID,
    EntityKind,
    KNOWN_FIELDS,
    ROOT_ELEMENT_ID,
    VIEW_STEREOTYPE_ID,
    to_document,
)

__all__ = [
    # Errors
    'AdapterError', 'DataFormatError', 'AuthenticationError',
    'PermissionDeniedError', 'NotFoundError', 'ServerError',
    'MalformedIdentifierError', 'NotImplementedEndpointError',
    'ErrorCode', 'STATUS_CODES', 'get_status_code',
    # Three-state values
    'ABSENT', 'Absent',
    # Identifiers
    'ID_DELIMITER', 'build_id', 'parse_id', 'local_id',
    # Entities
    'EntityKind', 'KNOWN_FIELDS', 'BackendEntity', 'BackendOrg',
    'BackendProject', 'BackendBranch', 'BackendElement', 'BackendArtifact',
    'DOCUMENT_STEREOTYPE_ID', 'VIEW_STEREOTYPE_ID', 'ROOT_ELEMENT_ID',
    'DEFAULT_BRANCH_ID', 'to_document',
]
