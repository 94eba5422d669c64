"""
Utility functions for ProtoSeg

The evaluator is imported from protoseg.utils.evaluator directly; it selects
a matplotlib backend on import.
"""

from .message_loader import MessageLoader

__all__ = [
    'MessageLoader'
]
