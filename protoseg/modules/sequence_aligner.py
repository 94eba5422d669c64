"""
Segment alignment

Pairwise Canberra-Ulm dissimilarity between the segments of two messages,
followed by a Needleman-Wunsch global alignment of their segment sequences.
"""

import logging
import numpy as np
from typing import Dict, List, Mapping, Tuple

from protoseg.modules.segments import AlignedSegment, FieldType, ParsedMessage

SparseMatrix = Dict[Tuple[int, int], float]


def canberra_distance(a: bytes, b: bytes) -> float:
    """Canberra distance of two equally long byte strings; 0/0 terms are skipped"""
    total = 0.0
    for x, y in zip(a, b):
        denominator = x + y
        if denominator != 0:
            total += abs(x - y) / denominator
    return total


def canberra_ulm_dissimilarity(a: bytes, b: bytes,
                               type_a: FieldType = FieldType.UNKNOWN,
                               type_b: FieldType = FieldType.UNKNOWN,
                               penalty_factor: float = 0.8) -> float:
    """
    Dissimilarity of two segments of possibly different length.

    The shorter segment is slid over the longer one and the best normalized
    Canberra distance is kept. A size mismatch is penalized non-linearly.

    Args:
        a, b: Segment bytes
        type_a, type_b: Field types of the segments
        penalty_factor: Weight of the size mismatch penalty

    Returns:
        Dissimilarity, 0 for identical segments
    """
    short, long_ = (a, b) if len(a) <= len(b) else (b, a)
    if not long_:
        return 0.0
    if not short:
        return 1.0

    # Length fields of the same byte order are equivalent whatever their size
    if type_a.is_length_field and type_a == type_b:
        return 0.0

    min_d = min(canberra_distance(short, long_[offset:offset + len(short)]) / len(short)
                for offset in range(len(long_) - len(short) + 1))

    s, l = len(short), len(long_)
    r = (l - s) / l
    return (s / l) * min_d + r + (1 - min_d) * r * (s / l ** 2 - penalty_factor)


def needleman_wunsch_matrix(m: int, n: int, similarities: SparseMatrix,
                            gap_penalty: float = -1.0) -> np.ndarray:
    """
    Fill the global alignment score matrix.

    A missing similarity entry is a forbidden match (-inf); there is no
    separate mismatch score.
    """
    matrix = np.zeros((m + 1, n + 1), dtype=np.float64)
    matrix[:, 0] = np.arange(m + 1) * gap_penalty
    matrix[0, :] = np.arange(n + 1) * gap_penalty

    for i in range(1, m + 1):
        for j in range(1, n + 1):
            sim = similarities.get((i - 1, j - 1), -np.inf)
            matrix[i, j] = max(matrix[i - 1, j - 1] + sim,
                               matrix[i - 1, j] + gap_penalty,
                               matrix[i, j - 1] + gap_penalty)
    return matrix


class SegmentAligner:
    """
    Aligns the segments of every pair of messages in a corpus.
    """

    def __init__(self,
                 threshold: float = 0.17,
                 gap_penalty: float = -1.0,
                 penalty_factor: float = 0.8):
        """
        Args:
            threshold: Minimum similarity kept in the sparse matrix; aligned
                segments must have a dissimilarity below it
            gap_penalty: Score of an insert or delete move
            penalty_factor: Size mismatch weight of the Canberra-Ulm dissimilarity
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be in [0, 1], got {threshold}")
        self.threshold = threshold
        self.gap_penalty = gap_penalty
        self.penalty_factor = penalty_factor
        logging.info(f"SegmentAligner initialized: threshold={threshold}, "
                     f"gap_penalty={gap_penalty}, penalty_factor={penalty_factor}")

    def similarity_matrix(self, msg_a: ParsedMessage, msg_b: ParsedMessage) -> SparseMatrix:
        similarities = {}
        for i, seg_a in enumerate(msg_a.segments):
            bytes_a = msg_a.segment_bytes(i)
            for j, seg_b in enumerate(msg_b.segments):
                dissimilarity = canberra_ulm_dissimilarity(
                    bytes_a, msg_b.segment_bytes(j),
                    seg_a.field_type, seg_b.field_type, self.penalty_factor)
                sim = 1.0 - dissimilarity
                if sim >= self.threshold:
                    similarities[(i, j)] = sim
        return similarities

    def align_pair(self, msg_a: ParsedMessage, msg_b: ParsedMessage) -> List[AlignedSegment]:
        """
        Align two messages and report their corresponding segments.

        Returns:
            Aligned segments in traceback order (last segments first)
        """
        similarities = self.similarity_matrix(msg_a, msg_b)
        if not similarities:
            return []

        m, n = len(msg_a.segments), len(msg_b.segments)
        matrix = needleman_wunsch_matrix(m, n, similarities, self.gap_penalty)

        aligned = []
        i, j = m, n
        while i > 0 and j > 0:
            score = matrix[i, j]
            sim = similarities.get((i - 1, j - 1), -np.inf)
            if score == matrix[i - 1, j - 1] + sim:
                if 1.0 - sim < self.threshold:
                    aligned.append(AlignedSegment(msg_a.msg_id, msg_b.msg_id, i - 1, j - 1, 1.0 - sim))
                i -= 1
                j -= 1
            elif score == matrix[i - 1, j] + self.gap_penalty:
                i -= 1
            else:
                j -= 1
        return aligned

    def align(self, messages: Mapping[int, ParsedMessage]) -> List[AlignedSegment]:
        """
        Align every unordered pair of messages.

        Args:
            messages: Messages keyed by their id

        Returns:
            All aligned segments, pairs ordered by (id_a, id_b) with id_a < id_b
        """
        ids = sorted(messages)
        results = []
        for x, id_a in enumerate(ids):
            for id_b in ids[x + 1:]:
                results.extend(self.align_pair(messages[id_a], messages[id_b]))

        logging.info(f"Aligned {len(results)} segment pairs across {len(ids)} messages")
        return results
