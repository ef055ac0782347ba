"""
Query-option parsing for element finds.

Legacy clients pass find options as query-string parameters. Each accepted
option has a declared type; values are converted from their string form and
anything undeclared is rejected with a DataFormatError.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import Any, Dict, Mapping

from ..contracts.base import DataFormatError
from ..storage import FindOptions


logger = logging.getLogger(__name__)


class OptionType(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


ELEMENT_OPTIONS: Dict[str, OptionType] = {
    # Legacy options
    "alf_ticket": OptionType.STRING,
    "depth": OptionType.NUMBER,
    # Backend find options
    "populate": OptionType.ARRAY,
    "archived": OptionType.BOOLEAN,
    "includeArchived": OptionType.BOOLEAN,
    "subtree": OptionType.BOOLEAN,
    "fields": OptionType.ARRAY,
    "limit": OptionType.NUMBER,
    "skip": OptionType.NUMBER,
    "sort": OptionType.STRING,
    "ids": OptionType.ARRAY,
    "format": OptionType.STRING,
    "minified": OptionType.BOOLEAN,
    "parent": OptionType.STRING,
    "source": OptionType.STRING,
    "target": OptionType.STRING,
    "type": OptionType.STRING,
    "name": OptionType.STRING,
    "createdBy": OptionType.STRING,
    "lastModifiedBy": OptionType.STRING,
    "archivedBy": OptionType.STRING,
    "artifact": OptionType.STRING,
}

CUSTOM_OPTION_PREFIX = "custom."

# Options that become field filters on the element find
FILTER_OPTIONS = (
    "parent", "source", "target", "type", "name",
    "createdBy", "lastModifiedBy", "artifact",
)


def _convert(name: str, raw: str, option_type: OptionType) -> Any:
    if option_type is OptionType.BOOLEAN:
        if raw not in ("true", "false"):
            raise DataFormatError(f"Option {name} is not a boolean.")
        return raw == "true"
    if option_type is OptionType.NUMBER:
        try:
            return int(raw)
        except ValueError:
            raise DataFormatError(f"Option {name} is not a number.") from None
    if option_type is OptionType.ARRAY:
        return [part for part in raw.split(",") if part]
    return raw


def parse_options(query: Mapping[str, str], valid: Mapping[str, OptionType]) -> Dict[str, Any]:
    """
    Convert query-string options to typed values.

    Keys starting with "custom." are always accepted as strings.
    """
    options: Dict[str, Any] = {}
    for name, raw in query.items():
        if name.startswith(CUSTOM_OPTION_PREFIX):
            options[name] = raw
            continue
        if name not in valid:
            raise DataFormatError(f"Invalid parameter: {name}")
        options[name] = _convert(name, raw, valid[name])
    return options


def parse_element_find_options(query: Mapping[str, str]) -> FindOptions:
    """Parse element find options and map the legacy ones onto backend ones."""
    options = parse_options(query, ELEMENT_OPTIONS)
    options.pop("alf_ticket", None)

    # Legacy depth has no level limit here; only an explicit depth=0 limits
    # the find to the listed elements
    depth = options.pop("depth", None)
    subtree = options.pop("subtree", False) or depth != 0

    filters = {
        name: value for name, value in options.items()
        if name in FILTER_OPTIONS or name.startswith(CUSTOM_OPTION_PREFIX)
    }
    ignored = sorted(
        name for name in options
        if name not in filters and name not in ("limit", "skip", "sort")
    )
    if ignored:
        logger.debug("Ignoring unsupported find options: %s", ", ".join(ignored))

    return FindOptions(
        subtree=subtree,
        limit=options.get("limit", 0),
        skip=options.get("skip", 0),
        sort=options.get("sort"),
        filters=filters,
    )


__all__ = [
    'OptionType', 'ELEMENT_OPTIONS', 'FILTER_OPTIONS',
    'parse_options', 'parse_element_find_options',
]
