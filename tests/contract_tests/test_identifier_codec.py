"""
Property Tests for the Composite Identifier Codec
Verifies reversibility and the delimiter invariant.
"""

import pytest
from hypothesis import given, strategies as st
from hypothesis.strategies import composite

from mms_adapter.contracts import (
    ID_DELIMITER,
    MalformedIdentifierError,
    ServerError,
    build_id,
    local_id,
    parse_id,
)

# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

segment_text = st.text(min_size=1, max_size=20).filter(lambda s: ID_DELIMITER not in s)


@composite
def segment_tuples(draw):
    """1 to 4 valid segments in hierarchy order."""
    count = draw(st.integers(min_value=1, max_value=4))
    return [draw(segment_text) for _ in range(count)]


# =============================================================================
# PROPERTIES
# =============================================================================

@given(segment_tuples())
def test_parse_reverses_build(segments):
    assert parse_id(build_id(*segments)) == segments


@given(segment_tuples())
def test_local_id_is_last_segment(segments):
    assert local_id(build_id(*segments)) == segments[-1]


@given(segment_tuples())
def test_built_id_has_one_delimiter_per_boundary(segments):
    assert build_id(*segments).count(ID_DELIMITER) == len(segments) - 1


# =============================================================================
# EDGE CASES
# =============================================================================

class TestMalformedIdentifiers:

    def test_segment_with_delimiter_rejected(self):
        with pytest.raises(MalformedIdentifierError):
            build_id("org", "pro:ject")

    def test_gap_rejected(self):
        with pytest.raises(MalformedIdentifierError):
            build_id("org", None, "master")

    def test_empty_segment_rejected(self):
        with pytest.raises(MalformedIdentifierError):
            build_id("org", "")

    def test_too_few_segments_rejected(self):
        with pytest.raises(MalformedIdentifierError):
            parse_id("org", min_segments=2)

    def test_malformed_identifier_is_a_server_error(self):
        assert issubclass(MalformedIdentifierError, ServerError)
        assert MalformedIdentifierError("x").status_code == 500

    def test_trailing_segments_omitted(self):
        assert build_id("org", "proj") == "org:proj"
        assert build_id("org", "proj", "master", "model") == "org:proj:master:model"
