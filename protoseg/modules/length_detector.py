"""
Length-prefix detector

Finds explicit (length field, payload) pairs in a single message before any
statistical segmentation happens. The byte ranges it claims are excluded from
the bit-congruence segmenter.
"""

import logging
import numpy as np
from typing import List, Optional, Tuple

from protoseg.modules.segments import FieldType, Segment, canonicalize
from protoseg.utils.byte_utils import is_printable, try_parse_length

LOOKAHEAD_BYTES = 3
MIN_PAYLOAD_LENGTH = 3


class LengthPrefixDetector:
    """
    Scans a message for length-prefixed fields.

    Field configurations are tried at every offset in priority order:
    2-byte big endian, 2-byte little endian, 1 byte.
    """

    FIELD_CONFIGS = [(2, True), (2, False), (1, True)]

    def __init__(self, accept_binary_payloads: bool = True):
        """
        Args:
            accept_binary_payloads: Also accept payloads that are not printable
        """
        self.accept_binary_payloads = accept_binary_payloads

    def detect(self, data: bytes) -> Tuple[Tuple[Segment, ...], np.ndarray]:
        """
        Args:
            data: Message bytes

        Returns:
            (segments, claimed)
            - segments: length and payload segments, sorted by offset
            - claimed: boolean array, True for every byte covered by a detected pair
        """
        claimed = np.zeros(len(data), dtype=bool)
        segments = []

        i = 0
        while i < len(data) - 1:
            for size, big_endian in self.FIELD_CONFIGS:
                found = self._check_candidate(data, claimed, i, size, big_endian)
                if found is not None:
                    pair, payload_end = found
                    segments.extend(pair)
                    i = payload_end
                    break
            else:
                i += 1

        if segments:
            logging.debug(f"Length-prefix detector claimed {int(claimed.sum())}/{len(data)} bytes")
        return canonicalize(segments, len(data)), claimed

    def _check_candidate(self, data: bytes, claimed: np.ndarray, offset: int,
                         size: int, big_endian: bool) -> Optional[Tuple[List[Segment], int]]:
        """Try one field configuration at one offset and claim its range on success"""
        if offset + size >= len(data):
            return None

        length = try_parse_length(data, offset, size, big_endian)
        if length is None or length < MIN_PAYLOAD_LENGTH:
            return None

        payload_start = offset + size
        payload_end = payload_start + length
        if payload_end > len(data):
            return None
        if claimed[offset:payload_end].any():
            return None

        payload_printable = is_printable(data[payload_start:payload_end])
        if not payload_printable and not self.accept_binary_payloads:
            return None

        # a candidate followed by more text is most likely part of a text run
        lookahead = data[payload_end:min(payload_end + LOOKAHEAD_BYTES, len(data))]
        if lookahead and is_printable(lookahead):
            return None

        claimed[offset:payload_end] = True
        payload_type = FieldType.STRING_PAYLOAD if payload_printable else FieldType.UNKNOWN
        pair = [Segment(offset, FieldType.length_field(big_endian)),
                Segment(payload_start, payload_type)]
        return pair, payload_end
