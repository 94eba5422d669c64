"""
Report rendering

Human-readable and JSON views of a segmented and aligned corpus.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from protoseg.modules.segments import AlignedSegment, FieldType, ParsedMessage
from protoseg.utils.byte_utils import hexdump

DECODABLE_TYPES = (FieldType.UNKNOWN, FieldType.STRING_PAYLOAD)

FurtherDecode = Callable[[bytes], Optional[Any]]


def describe_segments(parsed: ParsedMessage,
                      further_decode: Optional[FurtherDecode] = None) -> List[Dict]:
    """
    Describe every segment of a message.

    The optional decoder is only tried on UNKNOWN and STRING_PAYLOAD segments;
    a None result means it did not recognize the bytes.
    """
    fields = []
    for index, seg in enumerate(parsed.segments):
        start, end = parsed.segment_range(index)
        value = parsed.data[start:end]
        field = {
            'index': index,
            'start': start,
            'end': end,
            'type': seg.field_type.value,
            'hex': value.hex(),
        }
        if seg.field_type in (FieldType.STRING, FieldType.STRING_PAYLOAD):
            field['text'] = value.decode('ascii', errors='replace')
        if further_decode is not None and seg.field_type in DECODABLE_TYPES:
            decoded = further_decode(value)
            if decoded is not None:
                field['decoded'] = decoded
        fields.append(field)
    return fields


def build_json_report(messages: Sequence[ParsedMessage],
                      alignments: Sequence[AlignedSegment],
                      further_decode: Optional[FurtherDecode] = None,
                      metrics: Optional[Dict] = None) -> Dict:
    report = {
        'messages': [
            {
                'id': msg.msg_id,
                'length': len(msg),
                'boundaries': msg.boundaries(),
                'segments': describe_segments(msg, further_decode),
            }
            for msg in messages
        ],
        'alignments': [
            {
                'message_a': a.message_a,
                'message_b': a.message_b,
                'segment_a': a.segment_index_a,
                'segment_b': a.segment_index_b,
                'dissimilarity': a.dissimilarity,
            }
            for a in alignments
        ],
    }
    if metrics:
        report['metrics'] = metrics
    return report


def render_text_report(messages: Sequence[ParsedMessage],
                       alignments: Sequence[AlignedSegment],
                       further_decode: Optional[FurtherDecode] = None,
                       show_hexdump: bool = False) -> str:
    lines = ["=" * 80, "ProtoSeg Segmentation Report", "=" * 80, ""]

    lines.append("## Messages")
    lines.append("")
    for msg in messages:
        lines.append(f"Message {msg.msg_id} ({len(msg)} bytes, {len(msg.segments)} segments)")
        if show_hexdump:
            lines.extend("  " + row for row in hexdump(msg.data))
        for field in describe_segments(msg, further_decode):
            line = f"  Field {field['index']}: bytes [{field['start']}:{field['end']}] {field['type']:<18} {field['hex']}"
            if 'text' in field:
                line += f"  '{field['text']}'"
            if 'decoded' in field:
                line += f"  -> {field['decoded']}"
            lines.append(line)
        lines.append("")

    lines.append("## Alignments")
    lines.append("")
    if alignments:
        for a in alignments:
            lines.append(f"  msg {a.message_a} field {a.segment_index_a} <-> "
                         f"msg {a.message_b} field {a.segment_index_b} "
                         f"(dissimilarity={a.dissimilarity:.3f})")
    else:
        lines.append("  No aligned segments")

    lines.append("")
    lines.append("=" * 80)
    return "\n".join(lines)


def save_json_report(filepath: str, report: Dict):
    with open(filepath, 'w') as f:
        json.dump(report, f, indent=2, default=str)
    logging.info(f"Report saved to {filepath}")
