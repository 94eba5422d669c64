"""
Example: Running ProtoSeg on a simple custom protocol

This example segments and aligns a small corpus of a length-prefixed
request protocol.
"""

import logging
import struct
from typing import List

from protoseg.protoseg import ProtoSeg, setup_logging
from protoseg.utils.report import render_text_report


class SimpleProtocol:
    """
    Simple custom protocol for demonstration.

    Message format:
    [Header(2)] [Command(1)] [Sequence(2)] [Length(2, big endian)] [Payload(variable)] [Checksum(1)]

    Commands:
    0x01: ECHO
    0x02: UPPER
    0x03: REVERSE
    """

    HEADER = b'\xAA\xBB'

    @staticmethod
    def calculate_checksum(data: bytes) -> int:
        """Simple XOR checksum"""
        checksum = 0
        for b in data:
            checksum ^= b
        return checksum

    @classmethod
    def create_message(cls, command: int, sequence: int, payload: bytes) -> bytes:
        """Helper to create valid protocol messages"""
        body = cls.HEADER + struct.pack('>BHH', command, sequence, len(payload)) + payload
        return body + bytes([cls.calculate_checksum(body)])

    @classmethod
    def field_boundaries(cls, message: bytes) -> List[int]:
        """True field boundaries of a message built by create_message"""
        length = struct.unpack_from('>H', message, 5)[0]
        return [0, 2, 3, 5, 7, 7 + length]


def example_corpus() -> List[bytes]:
    return [
        SimpleProtocol.create_message(0x01, 1, b'hello'),
        SimpleProtocol.create_message(0x01, 2, b'world'),
        SimpleProtocol.create_message(0x02, 3, b'test'),
        SimpleProtocol.create_message(0x03, 4, b'reverse'),
        SimpleProtocol.create_message(0x01, 5, b'protocol'),
        SimpleProtocol.create_message(0x02, 6, b'segment'),
    ]


def main():
    """Run ProtoSeg on simple protocol example"""

    setup_logging(level=logging.INFO)

    logging.info("=" * 80)
    logging.info("ProtoSeg Example: Simple Custom Protocol")
    logging.info("=" * 80)

    messages = example_corpus()

    protoseg = ProtoSeg(sigma=0.6, alignment_threshold=0.17)

    # Run full pipeline
    logging.info("Running ProtoSeg pipeline...")
    results = protoseg.run_full_pipeline(messages)

    # Display results
    logging.info("=" * 80)
    logging.info("RESULTS")
    logging.info("=" * 80)

    for parsed in results['messages'][:3]:
        truth = SimpleProtocol.field_boundaries(parsed.data)
        logging.info(f"Message {parsed.msg_id}: inferred {parsed.boundaries()} true {truth}")

    logging.info(f"Aligned segments: {len(results['alignments'])}")
    logging.info(f"Total time: {results['total_time']:.2f}s")

    print(render_text_report(results['messages'], results['alignments']))

    logging.info("=" * 80)
    logging.info("Example completed successfully!")
    logging.info("=" * 80)
    return results


if __name__ == '__main__':
    main()
