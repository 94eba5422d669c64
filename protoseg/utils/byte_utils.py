"""
Byte-level helpers shared by the segmenter, the refiners and the report
"""

import math
import struct
from collections import Counter
from typing import List, Optional

_LENGTH_FORMATS = {
    (1, True): 'B',
    (1, False): 'B',
    (2, True): '>H',
    (2, False): '<H',
    (4, True): '>I',
    (4, False): '<I',
}


def is_printable_char(byte: int) -> bool:
    """Tab, LF, CR and 0x20-0x7e count as printable"""
    return byte in (0x09, 0x0A, 0x0D) or 0x20 <= byte <= 0x7E


def is_printable(data: bytes) -> bool:
    """True if every byte is printable. Empty input is printable."""
    return all(is_printable_char(b) for b in data)


def shannon_entropy(data: bytes) -> float:
    """Shannon entropy (base 2) of the byte values in data"""
    if not data:
        return 0.0

    counts = Counter(data)
    total = len(data)
    entropy = 0.0

    for count in counts.values():
        p = count / total
        entropy -= p * math.log2(p)

    return entropy


def try_parse_length(data: bytes, offset: int, size: int, big_endian: bool) -> Optional[int]:
    """
    Read an unsigned length value.

    Args:
        data: Message bytes
        offset: Position of the length field
        size: Field size in bytes (1, 2 or 4)
        big_endian: Byte order for multi-byte fields

    Returns:
        The value, or None if the field does not fit into data
    """
    fmt = _LENGTH_FORMATS.get((size, big_endian))
    if fmt is None or offset < 0:
        return None
    try:
        return struct.unpack_from(fmt, data, offset)[0]
    except struct.error:
        return None


def hexdump(src: bytes, length: int = 16, sep: str = ".") -> List[str]:
    """Hex dump bytes to lines of offset, hex and ASCII columns"""
    lines = []
    for c in range(0, len(src), length):
        chars = src[c:c + length]
        hex_ = " ".join("{:02x}".format(x) for x in chars)
        if len(hex_) > 24:
            hex_ = "{} {}".format(hex_[:24], hex_[24:])
        printable = "".join(chr(x) if 0x20 <= x <= 0x7E else sep for x in chars)
        lines.append("{0:08x}  {1:{2}s} |{3:{4}s}|".format(c, hex_, length * 3, printable, length))
    return lines
