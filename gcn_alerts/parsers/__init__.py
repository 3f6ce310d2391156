"""
GCN Notice Parsers
Binary notice decoding, field layouts and the time/angle conversions they use
"""

from .binary_notice_parser import BinaryNoticeParser, NoticeDecodeError
from .layouts import LAYOUTS, PACKET_LENGTH, FieldSpec, NoticeLayout, get_layout
from .notice_types import NoticeType, notice_label

__all__ = [
    'BinaryNoticeParser', 'NoticeDecodeError', 'LAYOUTS', 'PACKET_LENGTH',
    'FieldSpec', 'NoticeLayout', 'get_layout', 'NoticeType', 'notice_label',
]
