"""
ProtoSeg Modules
"""

from .segments import FieldType, Segment, ParsedMessage, AlignedSegment
from .bc_segmenter import BitCongruenceSegmenter
from .length_detector import LengthPrefixDetector
from .refiner import BoundaryRefiner
from .consensus_refiner import CorpusRefiner
from .sequence_aligner import SegmentAligner

__all__ = [
    'FieldType',
    'Segment',
    'ParsedMessage',
    'AlignedSegment',
    'BitCongruenceSegmenter',
    'LengthPrefixDetector',
    'BoundaryRefiner',
    'CorpusRefiner',
    'SegmentAligner'
]
