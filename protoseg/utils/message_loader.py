"""
Message Data Loader with Ground Truth

Loads protocol messages from a hex text file (one message per line) or from
a directory of raw *.bin files, and optional ground truth field boundaries.
"""

import logging
from typing import List, Optional, Sequence
from pathlib import Path


def parse_hex_message(line: str) -> bytes:
    """
    Parse one message written as hex, with or without separating whitespace.

    Raises:
        ValueError: If the line is not valid hex
    """
    cleaned = "".join(line.split()).replace(":", "")
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise ValueError(f"Invalid hex message '{line.strip()}': {e}") from e


class MessageLoader:
    """
    Loads protocol messages and ground truth boundaries from disk.
    """

    def __init__(self, max_messages: Optional[int] = None):
        """
        Args:
            max_messages: Maximum number of messages to load (None for all)
        """
        self.max_messages = max_messages

    def load_messages(self, path: str) -> List[bytes]:
        """
        Load messages from a hex text file or a directory of *.bin files.

        Args:
            path: File or directory

        Returns:
            List of raw protocol messages
        """
        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"Input not found: {source}")

        if source.is_dir():
            messages = self._load_bin_dir(source)
        else:
            messages = self._load_hex_file(source)

        if self.max_messages:
            messages = messages[:self.max_messages]

        logging.info(f"Loaded {len(messages)} messages from {source}")
        return messages

    def _load_hex_file(self, source: Path) -> List[bytes]:
        messages = []
        with open(source, 'r') as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                try:
                    messages.append(parse_hex_message(line))
                except ValueError as e:
                    raise ValueError(f"{source}:{line_no}: {e}") from e
        return messages

    def _load_bin_dir(self, source: Path) -> List[bytes]:
        files = sorted(source.glob('*.bin'))
        if not files:
            logging.warning(f"No *.bin files in {source}")
        return [f.read_bytes() for f in files]

    def load_ground_truth(self, path: str, messages: Sequence[bytes]) -> List[List[int]]:
        """
        Load true boundary offsets, one line of comma or space separated
        offsets per message.

        Offset 0 is always added; offsets outside a message are dropped.

        Args:
            path: Ground truth text file
            messages: Messages the boundaries belong to

        Returns:
            Sorted boundary list for every message
        """
        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"Ground truth not found: {source}")

        ground_truth = []
        with open(source, 'r') as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                try:
                    offsets = [int(tok) for tok in line.replace(',', ' ').split()]
                except ValueError as e:
                    raise ValueError(f"Invalid ground truth line '{line}': {e}") from e
                ground_truth.append(offsets)

        if len(ground_truth) < len(messages):
            raise ValueError(f"Ground truth has {len(ground_truth)} lines for {len(messages)} messages")

        normalized = []
        for offsets, msg in zip(ground_truth, messages):
            normalized.append(sorted({0} | {o for o in offsets if 0 <= o < len(msg)}))
        return normalized
