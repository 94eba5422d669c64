"""
Segment data model

A message is split into fields by a list of Segment start offsets. A segment
runs from its own offset to the next segment's offset (or to the end of the
message for the last one). Every refinement stage produces a new tuple of
segments; nothing here is mutated in place.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple


class FieldType(Enum):
    """How the bytes of a segment should be interpreted downstream"""
    UNKNOWN = "unknown"
    STRING = "string"
    PAYLOAD_LENGTH_LITTLE_ENDIAN = "payload_length_le"
    PAYLOAD_LENGTH_BIG_ENDIAN = "payload_length_be"
    STRING_PAYLOAD = "string_payload"

    @property
    def is_length_field(self) -> bool:
        return self in (FieldType.PAYLOAD_LENGTH_LITTLE_ENDIAN,
                        FieldType.PAYLOAD_LENGTH_BIG_ENDIAN)

    @staticmethod
    def length_field(big_endian: bool) -> 'FieldType':
        if big_endian:
            return FieldType.PAYLOAD_LENGTH_BIG_ENDIAN
        return FieldType.PAYLOAD_LENGTH_LITTLE_ENDIAN


@dataclass(frozen=True)
class Segment:
    """Start of one field inside a message"""
    offset: int
    field_type: FieldType = FieldType.UNKNOWN


@dataclass(frozen=True)
class ParsedMessage:
    """
    A message together with its current segmentation.

    Attributes:
        segments: Segments ordered by offset
        data: Raw message bytes
        msg_id: Identifier, unique within one session
    """
    segments: Tuple[Segment, ...]
    data: bytes
    msg_id: int

    def __post_init__(self):
        # No boundaries means one implicit UNKNOWN segment over the whole message
        if not self.segments and self.data:
            object.__setattr__(self, 'segments', (Segment(0, FieldType.UNKNOWN),))

    def __len__(self) -> int:
        return len(self.data)

    def segment_range(self, index: int) -> Tuple[int, int]:
        """
        Get the byte range [start, end) of the segment at the given index.

        Args:
            index: Position of the segment in self.segments

        Returns:
            (start, end) offsets
        """
        assert 0 <= index < len(self.segments), \
            f"segment index {index} out of range for message {self.msg_id}"
        start = self.segments[index].offset
        if index + 1 < len(self.segments):
            end = self.segments[index + 1].offset
        else:
            end = len(self.data)
        return start, end

    def segment_bytes(self, index: int) -> bytes:
        start, end = self.segment_range(index)
        return self.data[start:end]

    def boundaries(self) -> List[int]:
        """Segment start offsets in order"""
        return [seg.offset for seg in self.segments]

    def find_segment_for_offset(self, offset: int) -> Optional[Segment]:
        """
        Get the segment that contains a byte offset.

        Bytes in front of the first segment belong to no segment and give None.
        An offset outside the message is a logic error.
        """
        assert 0 <= offset < len(self.data), \
            f"offset {offset} outside message {self.msg_id} of length {len(self.data)}"
        found = None
        for seg in self.segments:
            if seg.offset > offset:
                break
            found = seg
        return found

    def with_segments(self, segments: Iterable[Segment]) -> 'ParsedMessage':
        return replace(self, segments=canonicalize(segments, len(self.data)))


@dataclass(frozen=True)
class AlignedSegment:
    """Field segment_index_a of message_a corresponds to field segment_index_b of message_b"""
    message_a: int
    message_b: int
    segment_index_a: int
    segment_index_b: int
    dissimilarity: float


def canonicalize(segments: Iterable[Segment], length: int) -> Tuple[Segment, ...]:
    """
    Sort segments by offset, drop offsets outside [0, length) and keep only
    the first segment seen for every offset.
    """
    ordered = sorted(segments, key=lambda s: s.offset)
    result = []
    seen = set()
    for seg in ordered:
        if seg.offset < 0 or seg.offset >= length or seg.offset in seen:
            continue
        seen.add(seg.offset)
        result.append(seg)
    return tuple(result)


def segments_from_boundaries(boundaries: Iterable[int], length: int,
                             field_types: Optional[Sequence[FieldType]] = None) -> Tuple[Segment, ...]:
    """
    Build a canonical segment tuple from raw boundary offsets.

    Offset 0 is always present. Without field_types every segment is UNKNOWN.
    """
    offsets = sorted(set(b for b in boundaries if 0 <= b < length) | ({0} if length > 0 else set()))
    if field_types is None:
        return tuple(Segment(o) for o in offsets)
    if len(field_types) != len(offsets):
        raise ValueError(f"Expected {len(offsets)} field types, got {len(field_types)}")
    return tuple(Segment(o, t) for o, t in zip(offsets, field_types))


# Editing commands for a presentation layer. Each returns a new message whose
# segments are all UNKNOWN again, ready to be refined and aligned.

def with_boundaries(parsed: ParsedMessage, boundaries: Iterable[int]) -> ParsedMessage:
    return replace(parsed, segments=segments_from_boundaries(boundaries, len(parsed.data)))


def move_boundary(parsed: ParsedMessage, old_offset: int, new_offset: int) -> ParsedMessage:
    if old_offset not in parsed.boundaries():
        raise ValueError(f"Message {parsed.msg_id} has no boundary at {old_offset}")
    boundaries = [b for b in parsed.boundaries() if b != old_offset] + [new_offset]
    return with_boundaries(parsed, boundaries)


def delete_boundary(parsed: ParsedMessage, offset: int) -> ParsedMessage:
    if offset not in parsed.boundaries():
        raise ValueError(f"Message {parsed.msg_id} has no boundary at {offset}")
    return with_boundaries(parsed, [b for b in parsed.boundaries() if b != offset])


def insert_boundary(parsed: ParsedMessage, offset: int) -> ParsedMessage:
    if not 0 <= offset < len(parsed.data):
        raise ValueError(f"Offset {offset} outside message {parsed.msg_id}")
    return with_boundaries(parsed, parsed.boundaries() + [offset])
