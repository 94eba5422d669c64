"""
Tests for the ProtoSeg pipeline facade.
"""

import numpy as np
import pytest

import protoseg
from protoseg.example import SimpleProtocol, example_corpus
from protoseg.modules.segments import FieldType, ParsedMessage, Segment, segments_from_boundaries
from protoseg.protoseg import ProtoSeg, free_ranges

BE = FieldType.PAYLOAD_LENGTH_BIG_ENDIAN


@pytest.fixture
def pipeline():
    return ProtoSeg()


class TestFreeRanges:

    def test_runs_of_unclaimed_bytes(self):
        claimed = np.array([False, False, True, True, False, True, False])
        assert free_ranges(claimed) == [(0, 2), (4, 5), (6, 7)]

    def test_all_claimed(self):
        assert free_ranges(np.ones(4, dtype=bool)) == []

    def test_empty(self):
        assert free_ranges(np.zeros(0, dtype=bool)) == []


class TestSegment:

    @pytest.mark.parametrize("data", [b"", b"\x01", b"\x01\x02"])
    def test_short_inputs(self, pipeline, data):
        parsed = pipeline.segment(data, msg_id=4)
        assert parsed.segments == (Segment(0, FieldType.UNKNOWN),)
        assert parsed.msg_id == 4
        assert parsed.data == data

    def test_segments_are_canonical(self, pipeline):
        data = bytes((i * 53 + 7) % 256 for i in range(48))
        parsed = pipeline.segment(data)
        offsets = parsed.boundaries()
        assert offsets[0] == 0
        assert all(a < b for a, b in zip(offsets, offsets[1:]))
        assert offsets[-1] < len(data)

    def test_boundary_round_trip(self, pipeline, dns_query):
        parsed = pipeline.segment(dns_query)
        rebuilt = segments_from_boundaries(parsed.boundaries(), len(dns_query))
        assert [s.offset for s in rebuilt] == parsed.boundaries()

    def test_dns_labels_isolated(self, pipeline, dns_query):
        segments = pipeline.segment(dns_query).segments
        for expected in (Segment(13, FieldType.STRING_PAYLOAD),
                         Segment(16, BE), Segment(17, FieldType.STRING_PAYLOAD),
                         Segment(20, BE), Segment(21, FieldType.STRING_PAYLOAD)):
            assert expected in segments
        assert Segment(11, BE) in segments
        # nothing from the statistical segmenter lands inside the labels
        assert [s.offset for s in segments if 11 <= s.offset < 24] == [11, 13, 16, 17, 20, 21]

    def test_confidence(self, pipeline):
        assert pipeline.confidence(b"\x12") == 0.0
        assert pipeline.confidence(b"\x12\x34\x56") == 0.76

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            ProtoSeg(sigma=0)
        with pytest.raises(ValueError):
            ProtoSeg(alignment_threshold=-0.1)
        with pytest.raises(ValueError):
            ProtoSeg(gap_penalty=1.0)


class TestCorpusPipeline:

    def test_full_pipeline(self, pipeline):
        messages = example_corpus()
        results = pipeline.run_full_pipeline(messages)

        assert len(results['messages']) == len(messages)
        assert all(isinstance(p, ParsedMessage) for p in results['messages'])
        assert [p.msg_id for p in results['messages']] == list(range(len(messages)))
        assert results['phase3']['aligned_count'] == len(results['alignments'])
        assert results['total_time'] >= 0

    def test_alignments_reference_valid_segments(self, pipeline):
        results = pipeline.run_full_pipeline(example_corpus())
        by_id = {p.msg_id: p for p in results['messages']}
        for a in results['alignments']:
            assert a.message_a < a.message_b
            assert 0 <= a.segment_index_a < len(by_id[a.message_a].segments)
            assert 0 <= a.segment_index_b < len(by_id[a.message_b].segments)
            assert 0.0 <= a.dissimilarity < 0.17

    def test_phases_can_be_disabled(self, pipeline):
        messages = example_corpus()
        results = pipeline.run_full_pipeline(messages, enable_corpus_refinement=False, enable_alignment=False)
        assert results['phase2'] == {}
        assert results['alignments'] == []
        assert [p.boundaries() for p in results['messages']] == \
            [pipeline.segment(m, i).boundaries() for i, m in enumerate(messages)]

    def test_refine_and_align_on_edited_messages(self, pipeline, make_message):
        messages = [
            make_message(SimpleProtocol.create_message(1, 1, b"abc"), [0, 2, 3, 5, 7, 10], msg_id=0),
            make_message(SimpleProtocol.create_message(1, 2, b"xyz"), [0, 2, 3, 5, 7, 10], msg_id=1),
        ]
        refined = pipeline.refine_across_corpus(messages)
        aligned = pipeline.align({m.msg_id: m for m in refined})
        assert any(a.segment_index_a == 0 and a.segment_index_b == 0 for a in aligned)

    def test_module_level_shortcuts(self, dns_query):
        parsed = protoseg.segment(dns_query, 9)
        assert parsed.msg_id == 9
        refined = protoseg.refine_across_corpus([parsed])
        assert protoseg.align({9: refined[0]}) == []
