"""
Shared fixtures for the ProtoSeg test suite.
"""

import pytest

from protoseg.modules.segments import ParsedMessage, segments_from_boundaries


@pytest.fixture
def dns_query():
    """DNS query for www.ifc.com"""
    return bytes.fromhex(
        "FE 47 81 82 00 01 00 00 00 00 00 00 "
        "03 77 77 77 03 69 66 63 03 63 6F 6D 00 00 01 00 01"
    )


@pytest.fixture
def make_message():
    """Build a ParsedMessage from hex and boundary offsets (all UNKNOWN unless types are given)"""
    def _make(hex_data, boundaries=(0,), msg_id=0, field_types=None):
        data = bytes.fromhex(hex_data) if isinstance(hex_data, str) else bytes(hex_data)
        segments = segments_from_boundaries(boundaries, len(data), field_types)
        return ParsedMessage(segments, data, msg_id)
    return _make
