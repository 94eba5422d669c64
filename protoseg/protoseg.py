"""
ProtoSeg: unsupervised segmentation and alignment of binary protocol messages
Main pipeline integrating the per-message segmenter, the corpus refiner and the aligner
"""

import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
import numpy as np

from protoseg.modules.bc_segmenter import BitCongruenceSegmenter
from protoseg.modules.consensus_refiner import CorpusRefiner
from protoseg.modules.length_detector import LengthPrefixDetector
from protoseg.modules.refiner import BoundaryRefiner
from protoseg.modules.segments import AlignedSegment, FieldType, ParsedMessage, Segment, canonicalize
from protoseg.modules.sequence_aligner import SegmentAligner

MIN_MESSAGE_LENGTH = 3
DECODER_CONFIDENCE = 0.76


def free_ranges(claimed: np.ndarray) -> List[Tuple[int, int]]:
    """
    Get the maximal runs of unclaimed bytes.

    Returns:
        List of (start, end) ranges, end exclusive
    """
    if claimed.size == 0:
        return []
    padded = np.concatenate(([True], claimed, [True]))
    changes = np.flatnonzero(padded[1:] != padded[:-1])
    return [(int(start), int(end)) for start, end in zip(changes[::2], changes[1::2])]


class ProtoSeg:
    """
    Main ProtoSeg pipeline.

    Integrates three phases:
    1. Segmentation - length-prefix detection plus bit-congruence boundaries per message
    2. Corpus refinement - frequent value cropping and message length field detection
    3. Alignment - Canberra-Ulm dissimilarity and Needleman-Wunsch per message pair
    """

    def __init__(self,
                 # Segmentation params
                 sigma: float = 0.6,
                 accept_binary_payloads: bool = True,
                 # Corpus refinement params
                 frequency_threshold: float = 0.1,
                 min_segment_length: int = 2,
                 # Alignment params
                 alignment_threshold: float = 0.17,
                 gap_penalty: float = -1.0,
                 penalty_factor: float = 0.8,
                 # General params
                 further_decode: Optional[Callable[[bytes], Optional[Any]]] = None):
        """
        Initialize ProtoSeg pipeline.

        Args:
            sigma: Standard deviation of the gaussian smoothing kernel
            accept_binary_payloads: Accept length-prefixed payloads that are not printable
            frequency_threshold: Share of messages a segment value needs to count as frequent
            min_segment_length: Shortest segment counted by corpus refinement
            alignment_threshold: Similarity threshold of the alignment
            gap_penalty: Needleman-Wunsch gap penalty
            penalty_factor: Size mismatch weight of the dissimilarity
            further_decode: Optional decoder tried on unknown segments by the report
        """
        if gap_penalty > 0:
            raise ValueError(f"gap_penalty must not be positive, got {gap_penalty}")

        logging.info("=" * 80)
        logging.info("Initializing ProtoSeg Pipeline")
        logging.info("=" * 80)

        self.bc_segmenter = BitCongruenceSegmenter(sigma=sigma)
        self.length_detector = LengthPrefixDetector(accept_binary_payloads=accept_binary_payloads)
        self.boundary_refiner = BoundaryRefiner()
        self.corpus_refiner = CorpusRefiner(
            frequency_threshold=frequency_threshold,
            min_segment_length=min_segment_length
        )
        self.aligner = SegmentAligner(
            threshold=alignment_threshold,
            gap_penalty=gap_penalty,
            penalty_factor=penalty_factor
        )
        self.further_decode = further_decode

        logging.info(f"Segmenter: sigma={sigma}, accept_binary_payloads={accept_binary_payloads}")
        logging.info("ProtoSeg initialization complete")
        logging.info("=" * 80)

    def confidence(self, data: bytes) -> float:
        """Confidence that data can be segmented at all"""
        return DECODER_CONFIDENCE if len(data) >= MIN_MESSAGE_LENGTH else 0.0

    def segment(self, data: bytes, msg_id: int = 0) -> ParsedMessage:
        """
        Segment a single message.

        Length-prefixed fields are fixed first. Every remaining byte range is
        segmented on its own and refined, then translated back to message
        offsets. Fixed segments win over dynamic ones at the same offset.

        Args:
            data: Message bytes
            msg_id: Identifier of the message

        Returns:
            Parsed message with canonical segments
        """
        data = bytes(data)
        if len(data) < MIN_MESSAGE_LENGTH:
            return ParsedMessage((Segment(0, FieldType.UNKNOWN),), data, msg_id)

        fixed, claimed = self.length_detector.detect(data)

        dynamic = []
        for start, end in free_ranges(claimed):
            chunk = data[start:end]
            boundaries = self.bc_segmenter.find_boundaries(chunk)
            for seg in self.boundary_refiner.refine(boundaries, chunk):
                dynamic.append(Segment(start + seg.offset, seg.field_type))

        segments = canonicalize(list(fixed) + dynamic, len(data))
        logging.debug(f"Message {msg_id}: {len(segments)} segments at {[s.offset for s in segments]}")
        return ParsedMessage(segments, data, msg_id)

    def refine_across_corpus(self, messages: Sequence[ParsedMessage]) -> List[ParsedMessage]:
        return self.corpus_refiner.refine(messages)

    def align(self, messages: Mapping[int, ParsedMessage]) -> List[AlignedSegment]:
        return self.aligner.align(messages)

    def phase1_segmentation(self, messages: Sequence[bytes]) -> List[ParsedMessage]:
        """
        Phase 1: Segment every message on its own.

        Message ids are the positions in the input sequence.
        """
        logging.info("=" * 80)
        logging.info("PHASE 1: Segmentation (Length prefixes + Bit congruence)")
        logging.info("=" * 80)

        parsed = []
        for i, msg in enumerate(messages):
            result = self.segment(msg, msg_id=i)
            parsed.append(result)

            if i < 3:  # Log first few
                logging.info(f"Message {i} segmentation: {result.boundaries()}")

        logging.info(f"Segmentation complete. Segmented {len(parsed)} messages")
        return parsed

    def phase2_corpus_refinement(self, parsed: Sequence[ParsedMessage]) -> List[ParsedMessage]:
        logging.info("=" * 80)
        logging.info("PHASE 2: Corpus Refinement")
        logging.info("=" * 80)

        refined = self.refine_across_corpus(parsed)
        before = sum(len(p.segments) for p in parsed)
        after = sum(len(p.segments) for p in refined)
        logging.info(f"Corpus refinement complete. Segments: {before} -> {after}")
        return refined

    def phase3_alignment(self, parsed: Sequence[ParsedMessage]) -> List[AlignedSegment]:
        logging.info("=" * 80)
        logging.info("PHASE 3: Alignment (Canberra-Ulm + Needleman-Wunsch)")
        logging.info("=" * 80)

        return self.align({p.msg_id: p for p in parsed})

    def run_full_pipeline(self,
                          messages: Sequence[bytes],
                          enable_corpus_refinement: bool = True,
                          enable_alignment: bool = True) -> Dict:
        """
        Run complete ProtoSeg pipeline.

        Args:
            messages: Protocol messages
            enable_corpus_refinement: Enable phase 2
            enable_alignment: Enable phase 3

        Returns:
            Dictionary with all results
        """
        start_time = time.time()

        results = {
            'phase1': {},
            'phase2': {},
            'phase3': {},
            'messages': [],
            'alignments': [],
            'total_time': 0
        }

        # Phase 1: Segmentation
        phase1_start = time.time()
        parsed = self.phase1_segmentation(messages)
        results['phase1']['segment_count'] = sum(len(p.segments) for p in parsed)
        results['phase1']['time'] = time.time() - phase1_start

        # Phase 2: Corpus refinement
        if enable_corpus_refinement:
            phase2_start = time.time()
            parsed = self.phase2_corpus_refinement(parsed)
            results['phase2']['segment_count'] = sum(len(p.segments) for p in parsed)
            results['phase2']['time'] = time.time() - phase2_start
        else:
            logging.warning("Skipping Phase 2: Corpus refinement disabled")

        # Phase 3: Alignment
        alignments = []
        if enable_alignment:
            phase3_start = time.time()
            alignments = self.phase3_alignment(parsed)
            results['phase3']['aligned_count'] = len(alignments)
            results['phase3']['time'] = time.time() - phase3_start
        else:
            logging.warning("Skipping Phase 3: Alignment disabled")

        results['messages'] = parsed
        results['alignments'] = alignments
        results['total_time'] = time.time() - start_time

        logging.info("=" * 80)
        logging.info("ProtoSeg Pipeline Complete")
        logging.info(f"Total time: {results['total_time']:.2f}s")
        logging.info("=" * 80)

        return results


_default_pipeline: Optional[ProtoSeg] = None


def _pipeline() -> ProtoSeg:
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = ProtoSeg()
    return _default_pipeline


def segment(data: bytes, msg_id: int = 0) -> ParsedMessage:
    """Segment one message with the default parameters"""
    return _pipeline().segment(data, msg_id)


def refine_across_corpus(messages: Sequence[ParsedMessage]) -> List[ParsedMessage]:
    return _pipeline().refine_across_corpus(messages)


def align(messages: Mapping[int, ParsedMessage]) -> List[AlignedSegment]:
    return _pipeline().align(messages)


def setup_logging(level=logging.INFO, logfile: Optional[str] = None):
    """Setup logging configuration"""
    handlers = [logging.StreamHandler()]

    if logfile:
        handlers.append(logging.FileHandler(logfile))

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers
    )
