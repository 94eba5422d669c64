"""
ProtoSeg: Unsupervised Binary Protocol Segmentation

Infers field boundaries in binary protocol messages without a schema:
- Bit-congruence signal and length-prefix detection per message
- Heuristic boundary refinement and corpus-wide consistency checks
- Canberra-Ulm dissimilarity and Needleman-Wunsch alignment across messages
"""

__version__ = '1.0.0'
__author__ = 'ProtoSeg Team'

from .protoseg import ProtoSeg, setup_logging, segment, refine_across_corpus, align
from .modules import (
    FieldType,
    Segment,
    ParsedMessage,
    AlignedSegment,
    BitCongruenceSegmenter,
    LengthPrefixDetector,
    BoundaryRefiner,
    CorpusRefiner,
    SegmentAligner
)
from .utils import MessageLoader

__all__ = [
    'ProtoSeg',
    'setup_logging',
    'segment',
    'refine_across_corpus',
    'align',
    'FieldType',
    'Segment',
    'ParsedMessage',
    'AlignedSegment',
    'BitCongruenceSegmenter',
    'LengthPrefixDetector',
    'BoundaryRefiner',
    'CorpusRefiner',
    'SegmentAligner',
    'MessageLoader',
]
