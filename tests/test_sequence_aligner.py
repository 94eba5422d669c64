"""
Tests for the segment alignment engine.
"""

import numpy as np
import pytest

from protoseg.modules.segments import FieldType
from protoseg.modules.sequence_aligner import (
    SegmentAligner,
    canberra_distance,
    canberra_ulm_dissimilarity,
    needleman_wunsch_matrix,
)

BE = FieldType.PAYLOAD_LENGTH_BIG_ENDIAN
LE = FieldType.PAYLOAD_LENGTH_LITTLE_ENDIAN


@pytest.fixture
def aligner():
    return SegmentAligner()


class TestCanberra:

    def test_equal_segments(self):
        assert canberra_distance(b"\x01\x02\x03", b"\x01\x02\x03") == 0.0

    def test_unequal_segments(self):
        assert canberra_distance(b"\x02\x04", b"\x00\x01") == pytest.approx(1.6)

    def test_zero_pairs_skipped(self):
        assert canberra_distance(b"\x00\x00", b"\x00\x00") == 0.0


class TestCanberraUlm:

    def test_identical_segments(self):
        assert canberra_ulm_dissimilarity(b"\x00\x00", b"\x00\x00") == 0.0
        assert canberra_ulm_dissimilarity(b"\x10\x20\x30", b"\x10\x20\x30") == 0.0

    def test_equal_length_is_normalized_canberra(self):
        a, b = b"\xa3\xb7", b"\xc7\x01"
        assert canberra_ulm_dissimilarity(a, b) == pytest.approx(canberra_distance(a, b) / 2)

    def test_commutative_for_equal_length(self):
        a, b = b"\x10\x99\x00\x42", b"\x11\x00\x7f\x42"
        assert canberra_ulm_dissimilarity(a, b) == canberra_ulm_dissimilarity(b, a)

    def test_shifted_segment_penalized_by_size_only(self):
        # best window matches exactly, only the size mismatch remains
        dm = canberra_ulm_dissimilarity(b"\x01\x02\x03", b"\x00\x01\x02\x03\x04")
        r = 2 / 5
        assert dm == pytest.approx(r + r * (3 / 25 - 0.8))

    def test_matching_length_fields_identical(self):
        assert canberra_ulm_dissimilarity(b"\x00\x05", b"\x01\x00", BE, BE) == 0.0
        assert canberra_ulm_dissimilarity(b"\x05\x00", b"\x00\x01", LE, LE) == 0.0

    def test_length_fields_of_different_size_identical(self):
        assert canberra_ulm_dissimilarity(b"\x05", b"\x00\x07", BE, BE) == 0.0

    def test_mixed_length_field_endianness_compared_by_value(self):
        assert canberra_ulm_dissimilarity(b"\x00\x05", b"\x01\x00", BE, LE) == pytest.approx(1.0)

    def test_empty_segments(self):
        assert canberra_ulm_dissimilarity(b"", b"") == 0.0
        assert canberra_ulm_dissimilarity(b"", b"\x01") == 1.0


class TestNeedlemanWunsch:

    def test_matrix(self):
        matrix = needleman_wunsch_matrix(2, 2, {(0, 0): 0.9, (1, 1): 0.8}, -1.0)
        expected = np.array([
            [0.0, -1.0, -2.0],
            [-1.0, 0.9, -0.1],
            [-2.0, -0.1, 1.7],
        ])
        assert np.allclose(matrix, expected, atol=1e-4)

    def test_gap_rows(self):
        matrix = needleman_wunsch_matrix(3, 1, {}, -2.0)
        assert matrix[:, 0].tolist() == [0.0, -2.0, -4.0, -6.0]
        assert matrix[0, :].tolist() == [0.0, -2.0]


class TestSegmentAligner:

    @pytest.fixture
    def similar_pair(self, make_message):
        a = make_message("01 02 03 04 05 06 07 08", [0, 2, 4, 6], msg_id=0)
        b = make_message("01 02 03 0A 0B 06 07 08", [0, 2, 4, 6], msg_id=1)
        return a, b

    def test_identical_fields_aligned(self, aligner, similar_pair):
        aligned = aligner.align_pair(*similar_pair)
        pairs = {(s.segment_index_a, s.segment_index_b): s.dissimilarity for s in aligned}
        assert pairs[(0, 0)] == pytest.approx(0.0)
        assert pairs[(3, 3)] == pytest.approx(0.0)
        assert (1, 1) not in pairs
        assert (2, 2) not in pairs

    def test_aligned_segments_reference_messages(self, aligner, similar_pair):
        for s in aligner.align_pair(*similar_pair):
            assert (s.message_a, s.message_b) == (0, 1)
            assert 0.0 <= s.dissimilarity < aligner.threshold

    def test_sparse_matrix_threshold(self, aligner, similar_pair):
        similarities = aligner.similarity_matrix(*similar_pair)
        assert similarities[(0, 0)] == pytest.approx(1.0)
        assert all(sim >= aligner.threshold for sim in similarities.values())

    def test_dissimilar_messages_not_aligned(self, aligner, make_message):
        a = make_message("FF FF FF FF", [0, 2], msg_id=0)
        b = make_message("00 00 00 00", [0, 2], msg_id=1)
        assert aligner.align_pair(a, b) == []

    def test_align_all_pairs(self, aligner, make_message):
        messages = {
            i: make_message(f"0{i} 10 20 30 40 AA BB", [0, 1, 5], msg_id=i)
            for i in (2, 0, 1)
        }
        aligned = aligner.align(messages)
        pairs = {(s.message_a, s.message_b) for s in aligned}
        assert pairs == {(0, 1), (0, 2), (1, 2)}

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            SegmentAligner(threshold=1.5)
