import logging
from typing import Iterable, List, Sequence, Tuple

from protoseg.modules.segments import FieldType, Segment, canonicalize
from protoseg.utils.byte_utils import is_printable, is_printable_char, shannon_entropy


class BoundaryRefiner:
    """
    Post-processor for the raw inflection points of one byte range.

    Runs four heuristic passes in a fixed order:
    text merge -> char window slide -> null byte shift -> entropy merge.
    Every pass takes and returns a canonical segment tuple.
    """

    def __init__(self,
                 entropy_threshold: float = 0.7,
                 entropy_diff_threshold: float = 0.05,
                 xor_entropy_threshold: float = 0.8,
                 max_null_shift: int = 2):
        """
        Args:
            entropy_threshold: Both segments need more entropy than this to be merged
            entropy_diff_threshold: Maximum entropy difference of merged segments
            xor_entropy_threshold: Minimum entropy of the XOR of both segment starts
            max_null_shift: Longest null byte run that is moved across a boundary
        """
        self.entropy_threshold = entropy_threshold
        self.entropy_diff_threshold = entropy_diff_threshold
        self.xor_entropy_threshold = xor_entropy_threshold
        self.max_null_shift = max_null_shift

    def refine(self, boundaries: Iterable[int], data: bytes) -> Tuple[Segment, ...]:
        """
        Turn raw boundaries into typed segments.

        Args:
            boundaries: Raw boundary offsets relative to data
            data: Bytes of the range the boundaries belong to

        Returns:
            Canonical segments relative to data
        """
        segments = merge_char_sequences(boundaries, data)
        segments = slide_char_window(segments, data)
        segments = self.null_byte_transitions(segments, data)
        segments = self.entropy_merge(segments, data)
        return segments

    def null_byte_transitions(self, segments: Sequence[Segment], data: bytes) -> Tuple[Segment, ...]:
        """
        Move short null byte runs to the neighbouring field they most likely belong to.

        A string keeps up to max_null_shift terminating null bytes that follow
        it. A non-string field takes over up to max_null_shift null bytes that
        precede it.
        """
        shifted: List[Segment] = list(segments[:1])
        for seg in segments[1:]:
            prev = shifted[-1]
            start = seg.offset
            new_start = start

            if prev.field_type == FieldType.STRING:
                extra = 0
                while start + extra < len(data) and data[start + extra] == 0:
                    extra += 1
                if 1 <= extra <= self.max_null_shift:
                    new_start = start + extra

            if seg.field_type != FieldType.STRING:
                count = 0
                idx = start - 1
                while idx >= prev.offset and data[idx] == 0:
                    count += 1
                    idx -= 1
                if 1 <= count <= self.max_null_shift:
                    new_start = start - count

            shifted.append(Segment(new_start, seg.field_type))

        return canonicalize(shifted, len(data))

    def entropy_merge(self, segments: Sequence[Segment], data: bytes) -> Tuple[Segment, ...]:
        """
        Merge neighbouring segments of the same type that both look random.

        Two high-entropy segments whose starts XOR to a high-entropy value are
        taken to be one field, e.g. an encrypted or derived block that the
        signal split up.
        """
        result = []
        index = 0
        while index < len(segments):
            seg = segments[index]
            if index + 1 < len(segments) and self._should_merge(segments, index, data):
                logging.debug(f"Entropy merge of segments at {seg.offset} and {segments[index + 1].offset}")
                result.append(seg)
                index += 2
                continue
            result.append(seg)
            index += 1
        return canonicalize(result, len(data))

    def _should_merge(self, segments: Sequence[Segment], index: int, data: bytes) -> bool:
        left, right = segments[index], segments[index + 1]
        if left.field_type != right.field_type:
            return False

        right_end = segments[index + 2].offset if index + 2 < len(segments) else len(data)
        left_bytes = data[left.offset:right.offset]
        right_bytes = data[right.offset:right_end]

        left_entropy = shannon_entropy(left_bytes)
        right_entropy = shannon_entropy(right_bytes)
        if left_entropy <= self.entropy_threshold or right_entropy <= self.entropy_threshold:
            return False
        if abs(left_entropy - right_entropy) >= self.entropy_diff_threshold:
            return False

        xor_length = min(2, len(left_bytes), len(right_bytes))
        xored = bytes(a ^ b for a, b in zip(left_bytes[:xor_length], right_bytes[:xor_length]))
        return shannon_entropy(xored) > self.xor_entropy_threshold


def _ranges(segments: Sequence[Segment], length: int) -> List[Tuple[int, int]]:
    ends = [s.offset for s in segments[1:]] + [length]
    return [(s.offset, end) for s, end in zip(segments, ends)]


def merge_char_sequences(boundaries: Iterable[int], data: bytes) -> Tuple[Segment, ...]:
    """
    Collapse runs of two or more fully printable segments into one STRING segment.

    Without any boundary the whole range becomes a single UNKNOWN segment.
    """
    offsets = sorted(set(b for b in boundaries if 0 < b < len(data)))
    if not offsets:
        return (Segment(0, FieldType.UNKNOWN),)

    starts = [0] + offsets
    ends = offsets + [len(data)]

    merged = []
    i = 0
    while i < len(starts):
        run_start = starts[i]
        field_type = FieldType.UNKNOWN
        if is_printable(data[starts[i]:ends[i]]):
            while i + 1 < len(starts) and is_printable(data[starts[i + 1]:ends[i + 1]]):
                i += 1
                field_type = FieldType.STRING
        merged.append(Segment(run_start, field_type))
        i += 1

    return canonicalize(merged, len(data))


def slide_char_window(segments: Sequence[Segment], data: bytes) -> Tuple[Segment, ...]:
    """
    Grow STRING segments over adjacent printable bytes the signal missed.

    A segment never starts before the end the previous string was extended to,
    and a string never grows back over the start of the previous segment.
    """
    improved = []
    extended_end = 0

    for start, end in _ranges(segments, len(data)):
        field_type = segments[len(improved)].field_type
        if start < extended_end:
            start = extended_end

        if field_type == FieldType.STRING:
            lower = improved[-1].offset + 1 if improved else 0
            new_start = start
            extended_end = end
            while new_start > lower and is_printable_char(data[new_start - 1]):
                new_start -= 1
            while extended_end < len(data) and is_printable_char(data[extended_end]):
                extended_end += 1
            improved.append(Segment(new_start, field_type))
        else:
            improved.append(Segment(start, field_type))

    return canonicalize(improved, len(data))
