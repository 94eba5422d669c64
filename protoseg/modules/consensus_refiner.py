import logging
from collections import Counter
from typing import List, Optional, Sequence, Tuple

from protoseg.modules.segments import FieldType, ParsedMessage, Segment
from protoseg.utils.byte_utils import try_parse_length


class CorpusRefiner:
    """
    Corpus-wide post-processor.

    Real field boundaries and length fields tend to be consistent across the
    messages of one protocol, so evidence from the whole corpus is used to
    split segments further and to mark a shared message length field.
    """

    LENGTH_FIELD_CONFIGS = [(1, True), (2, True), (2, False), (4, True), (4, False)]

    def __init__(self,
                 frequency_threshold: float = 0.1,  # share of messages a value must reach
                 min_segment_length: int = 2):      # shorter segments are not counted
        if not 0.0 <= frequency_threshold <= 1.0:
            raise ValueError(f"frequency_threshold must be in [0, 1], got {frequency_threshold}")
        if min_segment_length < 1:
            raise ValueError(f"min_segment_length must be positive, got {min_segment_length}")
        self.frequency_threshold = frequency_threshold
        self.min_segment_length = min_segment_length
        logging.info(f"CorpusRefiner initialized: frequency_threshold={frequency_threshold}, "
                     f"min_segment_length={min_segment_length}")

    def refine(self, messages: Sequence[ParsedMessage]) -> List[ParsedMessage]:
        if not messages:
            return list(messages)
        return self.detect_message_length_field(self.crop_distinct(messages))

    def count_segment_values(self, messages: Sequence[ParsedMessage]) -> Counter:
        """Count segment byte values, skipping short and all-zero segments"""
        counts = Counter()
        for msg in messages:
            for index in range(len(msg.segments)):
                value = msg.segment_bytes(index)
                if len(value) < self.min_segment_length:
                    continue
                if not any(value):
                    continue
                counts[value] += 1
        return counts

    def crop_distinct(self, messages: Sequence[ParsedMessage]) -> List[ParsedMessage]:
        """
        Split segments around values that occur frequently in the corpus.

        Args:
            messages: Segmented messages

        Returns:
            New messages; STRING segments are never split
        """
        counts = self.count_segment_values(messages)
        threshold = max(int(len(messages) * self.frequency_threshold), 1)
        frequent = [value for value, count in counts.items() if count >= threshold]
        logging.debug(f"crop_distinct: {len(frequent)} frequent values (threshold {threshold})")

        refined = []
        for msg in messages:
            new_segments = []
            for index, seg in enumerate(msg.segments):
                if seg.field_type == FieldType.STRING:
                    new_segments.append(seg)
                    continue

                start, end = msg.segment_range(index)
                split_offsets = {0, end - start}
                value = msg.data[start:end]

                for pattern in frequent:
                    if len(pattern) >= len(value):
                        continue
                    pos = value.find(pattern)
                    while pos != -1:
                        split_offsets.add(pos)
                        split_offsets.add(pos + len(pattern))
                        pos = value.find(pattern, pos + len(pattern))

                for rel in sorted(split_offsets)[:-1]:
                    new_segments.append(Segment(start + rel, seg.field_type))

            refined.append(msg.with_segments(new_segments))
        return refined

    def detect_length_field_in_message(self, msg: ParsedMessage, size: int,
                                       big_endian: bool) -> Optional[Tuple[int, int]]:
        """
        Find a field whose value equals the number of bytes that follow it.

        Returns:
            (offset, length) of the first match, or None
        """
        for offset in range(0, len(msg.data) - size):
            length = try_parse_length(msg.data, offset, size, big_endian)
            if length is None:
                continue
            if offset + size + length != len(msg.data):
                continue
            containing = msg.find_segment_for_offset(offset)
            if containing is None or containing.field_type != FieldType.UNKNOWN:
                continue
            return offset, length
        return None

    def detect_message_length_field(self, messages: Sequence[ParsedMessage]) -> List[ParsedMessage]:
        """
        Mark a message length field if one configuration explains every message.

        The first configuration that holds for the whole corpus wins. If none
        does, the messages are returned unchanged.
        """
        for size, big_endian in self.LENGTH_FIELD_CONFIGS:
            matches = []
            for msg in messages:
                match = self.detect_length_field_in_message(msg, size, big_endian)
                if match is None:
                    break
                matches.append(match)
            else:
                logging.info(f"Message length field detected: {size} byte(s), "
                             f"{'big' if big_endian else 'little'} endian")
                return [self._apply_length_field(msg, offset, size, big_endian)
                        for msg, (offset, _) in zip(messages, matches)]

        logging.debug("No message length field valid for the whole corpus")
        return list(messages)

    @staticmethod
    def _apply_length_field(msg: ParsedMessage, offset: int, size: int, big_endian: bool) -> ParsedMessage:
        payload_start = offset + size
        segments = [s for s in msg.segments
                    if not offset <= s.offset < payload_start]
        segments.append(Segment(offset, FieldType.length_field(big_endian)))
        if not any(s.offset == payload_start for s in segments):
            segments.append(Segment(payload_start, FieldType.UNKNOWN))
        return msg.with_segments(segments)
